"""
Tests for secret encryption (wallet/cipher.py).

Covers:
  - Round trip, including empty and non-ASCII plaintexts
  - Fresh nonce and salt per call
  - Wrong passphrase and tamper detection
  - Encoding shape and malformed input
  - Legacy three-field secrets
"""

from __future__ import annotations

import secrets

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from block_buddy.errors import IntegrityError, ValidationError
from block_buddy.wallet.cipher import (
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    EncryptedSecret,
    KeyCipher,
    is_well_formed,
)


class TestRoundTrip:
    @pytest.mark.parametrize("plaintext", [
        "seed-phrase-words",
        "",
        "0x" + "11" * 32,
        "ünïcödé • ключ • 鍵",
        "a:b:c",
    ])
    def test_decrypt_returns_plaintext(self, cipher, plaintext):
        secret = cipher.encrypt(plaintext, "pw")
        assert cipher.decrypt(secret, "pw") == plaintext

    def test_decrypt_accepts_encoded_string(self, cipher):
        encoded = cipher.encrypt("seed-phrase-words", "pw").encode()
        assert cipher.decrypt(encoded, "pw") == "seed-phrase-words"

    def test_nonce_and_salt_are_fresh(self, cipher):
        a = cipher.encrypt("same", "pw")
        b = cipher.encrypt("same", "pw")
        assert a.nonce != b.nonce
        assert a.salt != b.salt
        assert a.ciphertext != b.ciphertext

    def test_field_sizes(self, cipher):
        secret = cipher.encrypt("hello", "pw")
        assert len(secret.nonce) == NONCE_SIZE
        assert len(secret.tag) == TAG_SIZE
        assert len(secret.salt) == SALT_SIZE
        assert len(secret.ciphertext) == len("hello")

    def test_empty_passphrase_rejected(self, cipher):
        with pytest.raises(ValidationError):
            cipher.encrypt("x", "")


class TestIntegrity:
    def test_wrong_passphrase(self, cipher):
        secret = cipher.encrypt("seed", "right")
        with pytest.raises(IntegrityError):
            cipher.decrypt(secret, "wrong")

    def test_every_tag_bit_flip_detected(self, cipher):
        secret = cipher.encrypt("seed-phrase-words", "pw")
        for i in range(len(secret.tag) * 8):
            tag = bytearray(secret.tag)
            tag[i // 8] ^= 1 << (i % 8)
            tampered = EncryptedSecret(secret.nonce, bytes(tag), secret.ciphertext, secret.salt)
            with pytest.raises(IntegrityError):
                cipher.decrypt(tampered, "pw")

    def test_every_ciphertext_bit_flip_detected(self, cipher):
        secret = cipher.encrypt("key", "pw")
        for i in range(len(secret.ciphertext) * 8):
            ct = bytearray(secret.ciphertext)
            ct[i // 8] ^= 1 << (i % 8)
            tampered = EncryptedSecret(secret.nonce, secret.tag, bytes(ct), secret.salt)
            with pytest.raises(IntegrityError):
                cipher.decrypt(tampered, "pw")

    def test_swapped_salt_detected(self, cipher):
        secret = cipher.encrypt("key", "pw")
        other = EncryptedSecret(secret.nonce, secret.tag, secret.ciphertext, secrets.token_bytes(SALT_SIZE))
        with pytest.raises(IntegrityError):
            cipher.decrypt(other, "pw")


class TestEncoding:
    def test_four_lowercase_hex_fields(self, cipher):
        encoded = cipher.encrypt("seed", "pw").encode()
        fields = encoded.split(":")
        assert len(fields) == 4
        assert all(f == f.lower() for f in fields)
        assert EncryptedSecret.parse(encoded).encode() == encoded

    def test_legacy_three_fields_round_trip(self):
        text = "00" * 12 + ":" + "11" * 16 + ":" + "abcdef"
        parsed = EncryptedSecret.parse(text)
        assert parsed.is_legacy
        assert parsed.encode() == text

    @pytest.mark.parametrize("text", [
        "",
        "abc",
        "zz:00:00",
        "00:11",
        "a:b:c:d:e",
        "00" * 12 + ":" + "11" * 15 + ":" + "ab",
        "00" * 16 + ":" + "00" * 11 + ":" + "11" * 16 + ":ab",
        "00" * 12 + ":" + "11" * 16 + ":abc",
        "00" * 12 + ":" + "11" * 16 + ":AB",
    ])
    def test_malformed_raises_integrity_error(self, cipher, text):
        assert not is_well_formed(text)
        with pytest.raises(IntegrityError):
            cipher.decrypt(text, "pw")

    def test_is_well_formed_rejects_non_strings(self):
        assert not is_well_formed(None)
        assert not is_well_formed(b"00:11:22")


class TestLegacySecrets:
    def _legacy_encrypt(self, plaintext: str, passphrase: str, nonce_size: int = 16) -> str:
        key = KeyCipher.derive_legacy_key(passphrase)
        nonce = secrets.token_bytes(nonce_size)
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode(), None)
        return f"{nonce.hex()}:{sealed[-16:].hex()}:{sealed[:-16].hex()}"

    def test_decrypts_legacy_secret(self, cipher):
        legacy = self._legacy_encrypt("0x" + "22" * 32, "default-32-byte-key-for-testing!")
        assert cipher.decrypt(legacy, "default-32-byte-key-for-testing!") == "0x" + "22" * 32

    def test_legacy_wrong_passphrase(self, cipher):
        legacy = self._legacy_encrypt("secret", "a", nonce_size=12)
        with pytest.raises(IntegrityError):
            cipher.decrypt(legacy, "b")

    def test_encrypt_never_emits_legacy(self, cipher):
        assert not cipher.encrypt("x", "pw").is_legacy
