"""The identity-store contract consumed by the wallet core."""

from __future__ import annotations

from typing import Optional, Protocol

from block_buddy.models import Identity, WalletRecord


class IdentityStore(Protocol):
    """Persistent registry of identities and their wallet records.

    ``insert_wallet_record`` must raise
    :class:`~block_buddy.errors.DuplicateWalletError` when the
    (identity, chain) pair already has a record.
    """

    async def upsert_identity(self, handle: str) -> Identity: ...

    async def find_identity(self, handle: str) -> Optional[Identity]: ...

    async def find_wallet_record(self, identity_id: str, chain: str) -> Optional[WalletRecord]: ...

    async def insert_wallet_record(self, record: WalletRecord) -> WalletRecord: ...
