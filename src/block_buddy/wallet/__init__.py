"""Wallet custody and transfer execution for Block Buddy.

Secrets are encrypted at rest with Argon2id + AES-256-GCM, each identity
gets at most one wallet per chain, and transfers run through a fixed
validate / sign / submit / confirm pipeline that reports typed outcomes.
"""
