"""Idempotent wallet provisioning: one encrypted keypair per (identity, chain)."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from eth_account import Account

from block_buddy.errors import DuplicateWalletError, NetworkError, ValidationError, WalletError
from block_buddy.models import CreationResult, SecretDisclosure, WalletRecord
from block_buddy.stores.base import IdentityStore
from block_buddy.wallet.chains import get_chain
from block_buddy.wallet.cipher import KeyCipher

logger = logging.getLogger("block_buddy.wallet.provisioner")

# Enable HD wallet features
Account.enable_unaudited_hdwallet_features()

DisclosureCallback = Callable[[SecretDisclosure], None]


def generate_keypair() -> tuple[str, str, str]:
    """Generate a BIP-39 mnemonic and its first BIP-44 account.

    Returns ``(address, private_key_hex, mnemonic)``.
    """
    acct, mnemonic = Account.create_with_mnemonic(num_words=12)
    return acct.address, "0x" + bytes(acct.key).hex(), mnemonic


class WalletProvisioner:
    """Creates a wallet for an identity unless one already exists."""

    def __init__(self, store: IdentityStore, cipher: KeyCipher, passphrase: str) -> None:
        if not passphrase:
            raise ValidationError("An encryption passphrase is required")
        self.store = store
        self.cipher = cipher
        self._passphrase = passphrase

    def _encrypt_pair(self, private_key: str, mnemonic: str) -> tuple[str, str]:
        # Runs off the event loop; Argon2 is memory-hard.
        return (
            self.cipher.encrypt(private_key, self._passphrase).encode(),
            self.cipher.encrypt(mnemonic, self._passphrase).encode(),
        )

    async def create(
        self,
        identity_handle: str,
        chain: str,
        disclose: Optional[DisclosureCallback] = None,
    ) -> CreationResult:
        """Provision a wallet for *identity_handle* on *chain*.

        When a wallet is created and *disclose* is given, it receives the
        plaintext secrets exactly once, after the record is persisted.
        """
        get_chain(chain)
        handle = (identity_handle or "").strip()
        if not handle:
            raise ValidationError("An identity handle is required")

        try:
            identity = await self.store.upsert_identity(handle)
            existing = await self.store.find_wallet_record(identity.id, chain)
        except WalletError:
            raise
        except Exception as exc:
            raise NetworkError(f"Identity store failed: {exc}") from exc

        if existing is not None:
            logger.info(f"Wallet already exists for identity {identity.id} on {chain}")
            return CreationResult(created=False, address=existing.address)

        address, private_key, mnemonic = generate_keypair()
        encrypted_key, encrypted_mnemonic = await asyncio.to_thread(
            self._encrypt_pair, private_key, mnemonic
        )
        record = WalletRecord(
            identity_id=identity.id,
            chain=chain,
            address=address,
            encrypted_private_key=encrypted_key,
            encrypted_mnemonic=encrypted_mnemonic,
        )

        try:
            stored = await self.store.insert_wallet_record(record)
        except DuplicateWalletError:
            # Lost a race with a concurrent create; the other record wins.
            winner = await self.store.find_wallet_record(identity.id, chain)
            if winner is None:
                raise NetworkError(f"Wallet for identity {identity.id} vanished after conflict")
            logger.info(f"Concurrent create for identity {identity.id} on {chain}; keeping {winner.address}")
            return CreationResult(created=False, address=winner.address)
        except WalletError:
            raise
        except Exception as exc:
            raise NetworkError(f"Identity store failed: {exc}") from exc

        logger.info(f"Wallet {stored.address} created for identity {identity.id} on {chain}")
        if disclose is not None:
            disclose(SecretDisclosure(address=stored.address, private_key=private_key, mnemonic=mnemonic))
        return CreationResult(created=True, address=stored.address, record_id=stored.id)
