"""High-level wallet service used by the CLI and chat front-ends."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from block_buddy.config import BuddyConfig
from block_buddy.errors import ErrorKind, NotFoundError, NetworkError, WalletError
from block_buddy.models import (
    CreationResult,
    NameProfile,
    TransferFailure,
    TransferRequest,
    TransferResult,
)
from block_buddy.stores.base import IdentityStore
from block_buddy.stores.hasura import HasuraIdentityStore
from block_buddy.stores.sqlite import SqliteIdentityStore
from block_buddy.wallet.chains import get_chain
from block_buddy.wallet.cipher import KeyCipher
from block_buddy.wallet.provider import ChainStateFactory, Web3Provider
from block_buddy.wallet.provisioner import DisclosureCallback, WalletProvisioner
from block_buddy.wallet.resolver import NameResolver
from block_buddy.wallet.transfer import TransferExecutor

logger = logging.getLogger("block_buddy.service")


class WalletService:
    """Wires the identity store, chain state and cipher into the public operations."""

    def __init__(
        self,
        store: IdentityStore,
        chain_states: ChainStateFactory,
        cipher: KeyCipher,
        passphrase: str,
        *,
        default_chain: str = "ethereum",
    ) -> None:
        self.store = store
        self.chain_states = chain_states
        self.default_chain = default_chain
        self.provisioner = WalletProvisioner(store, cipher, passphrase)
        self.executor = TransferExecutor(store, chain_states, cipher, passphrase)

    @classmethod
    def from_config(cls, config: BuddyConfig) -> "WalletService":
        """Build a service from configuration. SQLite stores still need ``connect()``."""
        if config.store.backend == "hasura":
            store: IdentityStore = HasuraIdentityStore(
                config.store.hasura_endpoint,
                config.store.hasura_admin_secret,
                timeout=config.store.timeout_seconds,
            )
        elif config.store.backend == "sqlite":
            store = SqliteIdentityStore(config.store.sqlite_path)
        else:
            raise ValueError(f"Unknown store backend '{config.store.backend}'")

        cipher = KeyCipher(
            time_cost=config.cipher.time_cost,
            memory_cost=config.cipher.memory_cost,
            parallelism=config.cipher.parallelism,
        )
        return cls(
            store,
            Web3Provider(config),
            cipher,
            config.cipher.passphrase,
            default_chain=config.chains.default_chain,
        )

    async def open(self) -> None:
        if isinstance(self.store, SqliteIdentityStore):
            await self.store.connect()

    async def close(self) -> None:
        if isinstance(self.store, SqliteIdentityStore):
            await self.store.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_wallet(
        self,
        identity_handle: str,
        chain: Optional[str] = None,
        disclose: Optional[DisclosureCallback] = None,
    ) -> CreationResult:
        """Provision a wallet; idempotent per (identity, chain).

        Raises a :class:`~block_buddy.errors.WalletError` subclass on failure.
        """
        return await self.provisioner.create(identity_handle, chain or self.default_chain, disclose)

    async def transfer(
        self,
        identity_handle: str,
        recipient: str,
        amount: int,
        chain: Optional[str] = None,
    ) -> TransferResult:
        """Send *amount* (smallest unit) to an address or ENS name."""
        try:
            request = TransferRequest(
                identity_handle=identity_handle,
                recipient=recipient,
                amount=amount,
                chain=chain or self.default_chain,
            )
        except PydanticValidationError as exc:
            return TransferFailure(
                kind=ErrorKind.VALIDATION_ERROR,
                message=f"Invalid transfer request: {exc.errors()[0]['msg']}",
            )
        return await self.executor.execute(request)

    async def lookup_name(self, name: str, chain: Optional[str] = None) -> Optional[NameProfile]:
        """ENS lookup with text records and reverse-resolution check."""
        chain_name = get_chain(chain or self.default_chain).name
        try:
            return await NameResolver(self.chain_states(chain_name)).lookup_profile(name)
        except WalletError:
            raise
        except Exception as exc:
            raise NetworkError(f"ENS lookup failed: {exc}") from exc

    async def get_balance(self, identity_handle: str, chain: Optional[str] = None) -> int:
        """Balance (smallest unit) of the identity's wallet on *chain*."""
        chain_name = get_chain(chain or self.default_chain).name
        try:
            identity = await self.store.find_identity(identity_handle)
            if identity is None:
                raise NotFoundError("identity", "User not found. Please create a wallet first.")
            wallet = await self.store.find_wallet_record(identity.id, chain_name)
            if wallet is None:
                raise NotFoundError("wallet", f"No {chain_name} wallet found. Please create a wallet first.")
            return int(await self.chain_states(chain_name).get_balance(wallet.address))
        except WalletError:
            raise
        except Exception as exc:
            raise NetworkError(f"Balance lookup failed: {exc}") from exc
