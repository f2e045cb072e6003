"""Authenticated encryption of secret strings at rest.

- Argon2id key derivation (memory-hard), fresh random salt per secret
- AES-256-GCM authenticated encryption, fresh random nonce per call

Stored form is colon-delimited lowercase hex, ``salt:nonce:tag:ciphertext``.
Secrets written by the earlier service use the three-field form
``nonce:tag:ciphertext`` with a fixed scrypt salt; those are still readable
but are never produced. Switching to per-secret salts breaks that format on
purpose.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from typing import Optional

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from block_buddy.errors import IntegrityError, ValidationError

# Argon2id parameters (OWASP recommendations for high-security)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 4

KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12  # 96 bits (recommended for GCM)
TAG_SIZE = 16
SALT_SIZE = 16

# Parameters of the legacy three-field format
LEGACY_SALT = b"salt"
LEGACY_SCRYPT_N = 2 ** 14
LEGACY_SCRYPT_R = 8
LEGACY_SCRYPT_P = 1

_HEX_FIELD_RE = re.compile(r"^(?:[0-9a-f]{2})*$")


@dataclass(frozen=True)
class EncryptedSecret:
    """A self-describing encrypted secret.

    ``salt`` is ``None`` only for secrets parsed from the legacy format.
    """

    nonce: bytes
    tag: bytes
    ciphertext: bytes
    salt: Optional[bytes] = None

    @property
    def is_legacy(self) -> bool:
        return self.salt is None

    def encode(self) -> str:
        fields = [self.nonce.hex(), self.tag.hex(), self.ciphertext.hex()]
        if self.salt is not None:
            fields.insert(0, self.salt.hex())
        return ":".join(fields)

    @classmethod
    def parse(cls, text: str) -> "EncryptedSecret":
        """Parse the stored form. Raises ``IntegrityError`` if malformed."""
        if not isinstance(text, str):
            raise IntegrityError("Encrypted secret is not a string")
        fields = text.split(":")
        if len(fields) not in (3, 4):
            raise IntegrityError("Encrypted secret has the wrong number of fields")
        for field in fields:
            if not _HEX_FIELD_RE.match(field):
                raise IntegrityError("Encrypted secret contains a non-hex field")

        raw = [bytes.fromhex(f) for f in fields]
        if len(raw) == 4:
            salt, nonce, tag, ciphertext = raw
            if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE:
                raise IntegrityError("Encrypted secret has a bad salt or nonce length")
        else:
            salt = None
            nonce, tag, ciphertext = raw
            # GCM accepts variable IV lengths; the earlier service may not have used 12
            if not 8 <= len(nonce) <= 128:
                raise IntegrityError("Encrypted secret has a bad nonce length")
        if len(tag) != TAG_SIZE:
            raise IntegrityError("Encrypted secret has a bad tag length")
        return cls(nonce=nonce, tag=tag, ciphertext=ciphertext, salt=salt)


def is_well_formed(text: object) -> bool:
    """Cheap shape check for a stored secret, without decrypting it."""
    if not isinstance(text, str) or not text:
        return False
    try:
        EncryptedSecret.parse(text)
    except IntegrityError:
        return False
    return True


class KeyCipher:
    """Encrypts and decrypts secret strings with a passphrase."""

    def __init__(
        self,
        time_cost: int = ARGON2_TIME_COST,
        memory_cost: int = ARGON2_MEMORY_COST,
        parallelism: int = ARGON2_PARALLELISM,
    ) -> None:
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    def derive_key(self, passphrase: str, salt: bytes) -> bytes:
        """Derive an AES key from *passphrase* using Argon2id."""
        return hash_secret_raw(
            secret=passphrase.encode("utf-8"),
            salt=salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=KEY_SIZE,
            type=Type.ID,
        )

    @staticmethod
    def derive_legacy_key(passphrase: str) -> bytes:
        kdf = Scrypt(
            salt=LEGACY_SALT,
            length=KEY_SIZE,
            n=LEGACY_SCRYPT_N,
            r=LEGACY_SCRYPT_R,
            p=LEGACY_SCRYPT_P,
        )
        return kdf.derive(passphrase.encode("utf-8"))

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str, passphrase: str) -> EncryptedSecret:
        if not passphrase:
            raise ValidationError("An encryption passphrase is required")
        salt = secrets.token_bytes(SALT_SIZE)
        nonce = secrets.token_bytes(NONCE_SIZE)
        key = self.derive_key(passphrase, salt)

        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedSecret(
            nonce=nonce,
            tag=sealed[-TAG_SIZE:],
            ciphertext=sealed[:-TAG_SIZE],
            salt=salt,
        )

    def decrypt(self, secret: EncryptedSecret | str, passphrase: str) -> str:
        """Decrypt *secret*.

        Raises ``IntegrityError`` if the passphrase is wrong, the data was
        tampered with, or the encoding is malformed.
        """
        if isinstance(secret, str):
            secret = EncryptedSecret.parse(secret)
        if not passphrase:
            raise ValidationError("An encryption passphrase is required")

        if secret.is_legacy:
            key = self.derive_legacy_key(passphrase)
        else:
            key = self.derive_key(passphrase, secret.salt)

        try:
            plaintext = AESGCM(key).decrypt(secret.nonce, secret.ciphertext + secret.tag, None)
        except InvalidTag as exc:
            raise IntegrityError("Wrong passphrase or corrupted secret") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IntegrityError("Decrypted secret is not valid UTF-8") from exc
