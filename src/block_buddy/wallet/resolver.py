"""ENS name resolution with best-effort auxiliary lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional

from block_buddy.errors import NetworkError, ValidationError, WalletError
from block_buddy.models import NameProfile
from block_buddy.wallet.provider import ChainStateProvider

logger = logging.getLogger("block_buddy.wallet.resolver")

TEXT_RECORD_KEYS = (
    "avatar",
    "email",
    "url",
    "description",
    "com.twitter",
    "com.github",
)

# SLIP-44 coin types
COIN_TYPES = {
    "btc": 0,
    "ltc": 2,
    "doge": 3,
}


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if "." not in name or name.startswith(".") or name.endswith("."):
        raise ValidationError(
            f"Invalid ENS name '{name}'. Provide a full name such as name.eth"
        )
    return name


async def _settle(name: str, calls: dict[str, Awaitable[Any]]) -> dict[str, Optional[Any]]:
    """Await *calls* concurrently; a failed or empty call settles to ``None``."""
    labels = list(calls)
    results = await asyncio.gather(*calls.values(), return_exceptions=True)
    settled: dict[str, Optional[Any]] = {}
    for label, value in zip(labels, results):
        if isinstance(value, BaseException):
            if not isinstance(value, Exception):
                raise value
            logger.debug(f"Record {label} for {name} failed: {value}")
            value = None
        settled[label] = value or None
    return settled


class NameResolver:
    """Resolves human-readable names on one chain.

    Only :meth:`resolve` is authoritative. Reverse, text-record, coin-address
    and content-hash lookups degrade to ``None`` on any failure.
    """

    def __init__(self, chain_state: ChainStateProvider) -> None:
        self.chain_state = chain_state

    @property
    def supported(self) -> bool:
        return self.chain_state.chain.supports_ens

    async def resolve(self, name: str) -> Optional[str]:
        """Return the address *name* points at, or ``None`` if unconfigured."""
        name = validate_name(name)
        if not self.supported:
            logger.info(f"ENS is not available on {self.chain_state.chain.name}; {name} not resolved")
            return None
        address = await self.chain_state.resolve_name(name)
        if not address:
            logger.info(f"ENS name {name} has no address configured")
            return None
        logger.info(f"ENS name {name} resolved to {address}")
        return address

    async def reverse_lookup(self, address: str) -> Optional[str]:
        if not self.supported:
            return None
        try:
            return await self.chain_state.reverse_lookup(address) or None
        except Exception as exc:
            logger.debug(f"Reverse lookup for {address} failed: {exc}")
            return None

    async def fetch_text_records(self, name: str) -> dict[str, Optional[str]]:
        """Fetch the standard text records concurrently; failures become ``None``."""
        return await _settle(
            name, {key: self.chain_state.get_text_record(name, key) for key in TEXT_RECORD_KEYS}
        )

    async def fetch_records(
        self, name: str
    ) -> tuple[dict[str, Optional[str]], dict[str, Optional[str]], Optional[str]]:
        """Text records, non-ETH coin addresses and content hash in one batch."""
        calls: dict[str, Awaitable[Any]] = {
            f"text:{key}": self.chain_state.get_text_record(name, key) for key in TEXT_RECORD_KEYS
        }
        for symbol, coin_type in COIN_TYPES.items():
            calls[f"coin:{symbol}"] = self.chain_state.get_coin_address(name, coin_type)
        calls["contenthash"] = self.chain_state.get_content_hash(name)

        settled = await _settle(name, calls)
        text_records = {key: settled[f"text:{key}"] for key in TEXT_RECORD_KEYS}
        coins = {symbol: settled[f"coin:{symbol}"] for symbol in COIN_TYPES}
        return text_records, coins, settled["contenthash"]

    async def lookup_profile(self, name: str) -> Optional[NameProfile]:
        """Resolve *name* and gather its records. ``None`` when unconfigured.

        Raises ``NetworkError`` when the authoritative lookups fail.
        """
        name = validate_name(name)
        try:
            address = await self.resolve(name)
            if address is None:
                return None
            has_resolver = await self.chain_state.has_resolver(name)
        except WalletError:
            raise
        except Exception as exc:
            raise NetworkError(f"ENS lookup for {name} failed: {exc}") from exc

        if not has_resolver:
            logger.info(f"ENS name {name} has an address but no resolver")
            return NameProfile(
                name=name,
                address=address,
                crypto_addresses={"eth": address},
                has_resolver=False,
            )

        (text_records, coins, content_hash), primary = await asyncio.gather(
            self.fetch_records(name),
            self.reverse_lookup(address),
        )
        return NameProfile(
            name=name,
            address=address,
            text_records=text_records,
            crypto_addresses={"eth": address, **coins},
            content_hash=content_hash,
            primary_name=primary,
            is_primary=primary == name,
        )
