"""
Shared pytest fixtures and in-memory collaborators for the Block Buddy suite.
"""

from __future__ import annotations

from typing import Optional

import pytest

from block_buddy.errors import DuplicateWalletError
from block_buddy.models import Identity, Receipt, WalletRecord
from block_buddy.service import WalletService
from block_buddy.wallet.chains import get_chain
from block_buddy.wallet.cipher import KeyCipher

PASSPHRASE = "test-encryption-key"
RECIPIENT = "0x000000000000000000000000000000000000dEaD"
GWEI = 10 ** 9


class MemoryIdentityStore:
    """Dict-backed IdentityStore."""

    def __init__(self):
        self.identities: dict[str, Identity] = {}
        self.wallets: dict[tuple[str, str], WalletRecord] = {}
        self.fail_with: Optional[Exception] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def upsert_identity(self, handle):
        self._maybe_fail()
        if handle not in self.identities:
            self.identities[handle] = Identity(handle=handle)
        return self.identities[handle]

    async def find_identity(self, handle):
        self._maybe_fail()
        return self.identities.get(handle)

    async def find_wallet_record(self, identity_id, chain):
        self._maybe_fail()
        return self.wallets.get((identity_id, chain))

    async def insert_wallet_record(self, record):
        self._maybe_fail()
        key = (record.identity_id, record.chain)
        if key in self.wallets:
            raise DuplicateWalletError("duplicate")
        self.wallets[key] = record
        return record

    def replace_wallet(self, record: WalletRecord):
        self.wallets[(record.identity_id, record.chain)] = record


class FakeChainState:
    """Scriptable ChainStateProvider."""

    def __init__(self, chain_name="ethereum"):
        self.chain = get_chain(chain_name)
        self.balances: dict[str, int] = {}
        self.fee_rate = 0
        self.nonce = 0
        self.names: dict[str, str] = {}
        self.reverse: dict[str, str] = {}
        self.text_records: dict[tuple[str, str], str] = {}
        self.failing_text_keys: set[str] = set()
        self.coin_addresses: dict[tuple[str, int], str] = {}
        self.content_hashes: dict[str, str] = {}
        self.without_resolver: set[str] = set()
        self.receipt = Receipt(status=1, block_number=1234)
        self.submitted: list[bytes] = []
        self.calls: list[str] = []
        self.fail: dict[str, Exception] = {}

    def _record(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    async def get_balance(self, address):
        self._record("get_balance")
        return self.balances.get(address.lower(), 0)

    async def get_fee_rate(self):
        self._record("get_fee_rate")
        return self.fee_rate

    async def get_nonce(self, address):
        self._record("get_nonce")
        return self.nonce

    async def resolve_name(self, name):
        self._record("resolve_name")
        return self.names.get(name)

    async def reverse_lookup(self, address):
        self._record("reverse_lookup")
        return self.reverse.get(address)

    async def get_text_record(self, name, key):
        if key in self.failing_text_keys:
            raise RuntimeError(f"resolver error for {key}")
        return self.text_records.get((name, key))

    async def has_resolver(self, name):
        self._record("has_resolver")
        return name not in self.without_resolver

    async def get_coin_address(self, name, coin_type):
        self._record("get_coin_address")
        return self.coin_addresses.get((name, coin_type))

    async def get_content_hash(self, name):
        self._record("get_content_hash")
        return self.content_hashes.get(name)

    async def submit_signed_transaction(self, raw_transaction):
        self._record("submit_signed_transaction")
        self.submitted.append(bytes(raw_transaction))
        return "0x" + "ab" * 32

    async def await_receipt(self, tx_hash):
        self._record("await_receipt")
        return self.receipt


@pytest.fixture
def cipher():
    """KeyCipher with cheap Argon2 parameters."""
    return KeyCipher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def store():
    return MemoryIdentityStore()


@pytest.fixture
def chain_state():
    return FakeChainState()


@pytest.fixture
def service(store, chain_state, cipher):
    return WalletService(store, lambda chain: chain_state, cipher, PASSPHRASE)
