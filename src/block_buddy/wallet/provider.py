"""Chain-state access: the provider contract and its web3 implementation."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted
from web3.middleware import ExtraDataToPOAMiddleware

from block_buddy.config import BuddyConfig
from block_buddy.errors import NetworkError
from block_buddy.models import Receipt
from block_buddy.wallet.chains import Chain, get_chain

logger = logging.getLogger("block_buddy.wallet.provider")


class ChainStateProvider(Protocol):
    """Everything the core reads from, or submits to, one chain."""

    chain: Chain

    async def get_balance(self, address: str) -> int: ...

    async def get_fee_rate(self) -> int: ...

    async def get_nonce(self, address: str) -> int: ...

    async def resolve_name(self, name: str) -> Optional[str]: ...

    async def reverse_lookup(self, address: str) -> Optional[str]: ...

    async def get_text_record(self, name: str, key: str) -> Optional[str]: ...

    async def has_resolver(self, name: str) -> bool: ...

    async def get_coin_address(self, name: str, coin_type: int) -> Optional[str]: ...

    async def get_content_hash(self, name: str) -> Optional[str]: ...

    async def submit_signed_transaction(self, raw_transaction: bytes) -> str: ...

    async def await_receipt(self, tx_hash: str) -> Receipt: ...


ChainStateFactory = Callable[[str], ChainStateProvider]


class Web3ChainState:
    """:class:`ChainStateProvider` backed by an ``AsyncWeb3`` HTTP connection."""

    def __init__(self, chain: Chain, rpc_url: str, receipt_timeout: float = 120.0) -> None:
        self.chain = chain
        self.receipt_timeout = receipt_timeout
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

        # Inject POA middleware for non-mainnet chains (Base, Polygon, testnets)
        if chain.chain_id != 1:
            self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, name="poa", layer=0)

    async def get_balance(self, address: str) -> int:
        return int(await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)))

    async def get_fee_rate(self) -> int:
        return int(await self.w3.eth.gas_price)

    async def get_nonce(self, address: str) -> int:
        checksum = AsyncWeb3.to_checksum_address(address)
        return int(await self.w3.eth.get_transaction_count(checksum, "pending"))

    async def resolve_name(self, name: str) -> Optional[str]:
        return await self.w3.ens.address(name)

    async def reverse_lookup(self, address: str) -> Optional[str]:
        return await self.w3.ens.name(AsyncWeb3.to_checksum_address(address))

    async def get_text_record(self, name: str, key: str) -> Optional[str]:
        value = await self.w3.ens.get_text(name, key)
        return value or None

    async def has_resolver(self, name: str) -> bool:
        return await self.w3.ens.resolver(name) is not None

    async def get_coin_address(self, name: str, coin_type: int) -> Optional[str]:
        resolver = await self.w3.ens.resolver(name)
        if resolver is None:
            return None
        raw = await resolver.caller.addr(self.w3.ens.namehash(name), coin_type)
        return AsyncWeb3.to_hex(raw) if raw else None

    async def get_content_hash(self, name: str) -> Optional[str]:
        resolver = await self.w3.ens.resolver(name)
        if resolver is None:
            return None
        raw = await resolver.caller.contenthash(self.w3.ens.namehash(name))
        return AsyncWeb3.to_hex(raw) if raw else None

    async def submit_signed_transaction(self, raw_transaction: bytes) -> str:
        tx_hash = await self.w3.eth.send_raw_transaction(raw_transaction)
        return AsyncWeb3.to_hex(tx_hash)

    async def await_receipt(self, tx_hash: str) -> Receipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted as exc:
            raise NetworkError(
                f"No receipt for {tx_hash} after {self.receipt_timeout:.0f}s; "
                "the transaction may still confirm.",
                tx_hash=tx_hash,
            ) from exc
        return Receipt(status=receipt["status"], block_number=receipt.get("blockNumber"))


class Web3Provider:
    """Hands out (cached) :class:`Web3ChainState` instances per chain name."""

    def __init__(self, config: BuddyConfig | None = None) -> None:
        self.config = config or BuddyConfig()
        self._instances: dict[str, Web3ChainState] = {}

    def for_chain(self, chain_name: str) -> Web3ChainState:
        if chain_name in self._instances:
            return self._instances[chain_name]

        chain = get_chain(chain_name)
        state = Web3ChainState(
            chain,
            self.config.rpc_url_for(chain_name, chain.rpc_url),
            receipt_timeout=self.config.chains.receipt_timeout_seconds,
        )
        logger.debug(f"Connected chain state for {chain_name} (chain id {chain.chain_id})")
        self._instances[chain_name] = state
        return state

    __call__ = for_chain
