"""Identity store backed by a Hasura GraphQL endpoint via httpx.

Talks to the ``users`` / ``wallets`` schema: a user is keyed by phone
number, and ``wallets`` has a unique (user_id, chain) constraint.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from block_buddy.errors import DuplicateWalletError, NetworkError
from block_buddy.models import Identity, WalletRecord

logger = logging.getLogger("block_buddy.stores.hasura")

_UPSERT_USER = """
mutation UpsertUser($phone: String!) {
    insert_users_one(
        object: { phone: $phone }
        on_conflict: { constraint: users_phone_key, update_columns: [] }
    ) { id phone created_at }
}
"""

_GET_USER = """
query GetUserByPhone($phone: String!) {
    users(where: { phone: { _eq: $phone } }) { id phone created_at }
}
"""

_GET_WALLET = """
query GetWallet($user_id: uuid!, $chain: String!) {
    wallets(where: { user_id: { _eq: $user_id }, chain: { _eq: $chain } }) {
        id user_id chain address encrypted_private_key encrypted_mnemonic created_at
    }
}
"""

_CREATE_WALLET = """
mutation CreateWallet(
    $user_id: uuid!, $chain: String!, $address: String!,
    $encrypted_private_key: String!, $encrypted_mnemonic: String!
) {
    insert_wallets_one(object: {
        user_id: $user_id, chain: $chain, address: $address,
        encrypted_private_key: $encrypted_private_key,
        encrypted_mnemonic: $encrypted_mnemonic
    }) { id user_id chain address encrypted_private_key encrypted_mnemonic created_at }
}
"""


def _identity_from_row(row: dict) -> Identity:
    return Identity(id=str(row["id"]), handle=row["phone"], created_at=row["created_at"])


def _wallet_from_row(row: dict) -> WalletRecord:
    return WalletRecord(
        id=str(row["id"]),
        identity_id=str(row["user_id"]),
        chain=row["chain"],
        address=row["address"],
        encrypted_private_key=row.get("encrypted_private_key"),
        encrypted_mnemonic=row.get("encrypted_mnemonic"),
        created_at=row["created_at"],
    )


class HasuraIdentityStore:
    """:class:`~block_buddy.stores.base.IdentityStore` over Hasura GraphQL."""

    def __init__(
        self,
        endpoint: str,
        admin_secret: str,
        *,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._headers = {
            "Content-Type": "application/json",
            "x-hasura-admin-secret": admin_secret,
        }
        self._timeout = timeout
        self._client = client

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict:
        """POST a GraphQL document and return its ``data`` section."""
        payload = {"query": query, "variables": variables or {}}
        try:
            if self._client is not None:
                resp = await self._client.post(
                    self.endpoint, json=payload, headers=self._headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(
                        self.endpoint, json=payload, headers=self._headers, timeout=self._timeout
                    )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise NetworkError(f"Identity store unreachable: {exc}") from exc

        body = resp.json()
        errors = body.get("errors")
        if errors:
            first = errors[0]
            code = (first.get("extensions") or {}).get("code")
            if code == "constraint-violation":
                raise DuplicateWalletError(first.get("message", "constraint violation"))
            logger.error(f"GraphQL errors: {errors}")
            raise NetworkError(f"Identity store error: {first.get('message', 'unknown')}")
        return body.get("data") or {}

    async def upsert_identity(self, handle: str) -> Identity:
        data = await self.execute(_UPSERT_USER, {"phone": handle})
        row = data.get("insert_users_one")
        if row is None:
            # on_conflict with no update columns returns null for existing rows
            found = await self.find_identity(handle)
            if found is None:
                raise NetworkError(f"Identity store did not return a user for {handle}")
            return found
        return _identity_from_row(row)

    async def find_identity(self, handle: str) -> Optional[Identity]:
        data = await self.execute(_GET_USER, {"phone": handle})
        rows = data.get("users") or []
        return _identity_from_row(rows[0]) if rows else None

    async def find_wallet_record(self, identity_id: str, chain: str) -> Optional[WalletRecord]:
        data = await self.execute(_GET_WALLET, {"user_id": identity_id, "chain": chain})
        rows = data.get("wallets") or []
        return _wallet_from_row(rows[0]) if rows else None

    async def insert_wallet_record(self, record: WalletRecord) -> WalletRecord:
        data = await self.execute(
            _CREATE_WALLET,
            {
                "user_id": record.identity_id,
                "chain": record.chain,
                "address": record.address,
                "encrypted_private_key": record.encrypted_private_key,
                "encrypted_mnemonic": record.encrypted_mnemonic,
            },
        )
        return _wallet_from_row(data["insert_wallets_one"])
