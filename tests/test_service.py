"""
End-to-end tests of the public surface (service.py) with in-memory collaborators.
"""

from __future__ import annotations

import pytest

from block_buddy.config import BuddyConfig
from block_buddy.errors import NotFoundError, NetworkError
from block_buddy.service import WalletService
from block_buddy.stores.hasura import HasuraIdentityStore
from block_buddy.stores.sqlite import SqliteIdentityStore

from conftest import PASSPHRASE, RECIPIENT, FakeChainState


class TestCreateWallet:
    @pytest.mark.asyncio
    async def test_idempotent_per_identity_and_chain(self, service):
        first = await service.create_wallet("contact-1", "ethereum")
        second = await service.create_wallet("contact-1", "ethereum")
        assert first.created is True
        assert second.created is False
        assert first.address == second.address

    @pytest.mark.asyncio
    async def test_default_chain(self, service, store):
        await service.create_wallet("contact-1")
        identity = store.identities["contact-1"]
        assert (identity.id, "ethereum") in store.wallets

    @pytest.mark.asyncio
    async def test_with_sqlite_store(self, tmp_path, chain_state, cipher):
        store = SqliteIdentityStore(tmp_path / "buddy.db")
        service = WalletService(store, lambda chain: chain_state, cipher, "pw")
        await service.open()
        try:
            first = await service.create_wallet("+15550001", "ethereum")
            second = await service.create_wallet("+15550001", "ethereum")
        finally:
            await service.close()
        assert second.created is False
        assert second.address == first.address


class TestBalance:
    @pytest.mark.asyncio
    async def test_balance_of_wallet(self, service, chain_state):
        created = await service.create_wallet("contact-1", "ethereum")
        chain_state.balances[created.address.lower()] = 42
        assert await service.get_balance("contact-1", "ethereum") == 42

    @pytest.mark.asyncio
    async def test_balance_without_wallet(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_balance("nobody", "ethereum")
        assert exc_info.value.what == "identity"

    @pytest.mark.asyncio
    async def test_balance_rpc_failure(self, service, chain_state):
        await service.create_wallet("contact-1", "ethereum")
        chain_state.fail["get_balance"] = ConnectionError("down")
        with pytest.raises(NetworkError):
            await service.get_balance("contact-1", "ethereum")


class TestTransferScenarios:
    @pytest.mark.asyncio
    async def test_full_flow(self, service, chain_state):
        created = await service.create_wallet("contact-1", "ethereum")
        chain_state.balances[created.address.lower()] = 10 ** 18
        chain_state.fee_rate = 10 ** 9

        result = await service.transfer("contact-1", RECIPIENT, 10 ** 17, "ethereum")
        assert result.success
        assert "0.1 ETH" in result.message


class TestLookupName:
    @pytest.mark.asyncio
    async def test_lookup(self, service, chain_state):
        chain_state.names["vitalik.eth"] = RECIPIENT
        profile = await service.lookup_name("vitalik.eth")
        assert profile.address == RECIPIENT

    @pytest.mark.asyncio
    async def test_lookup_missing(self, service):
        assert await service.lookup_name("unknown.name") is None

    @pytest.mark.asyncio
    async def test_lookup_rpc_failure_is_network_error(self, service, chain_state):
        chain_state.fail["resolve_name"] = ConnectionError("rpc down")
        with pytest.raises(NetworkError):
            await service.lookup_name("vitalik.eth")

    @pytest.mark.asyncio
    async def test_lookup_on_chain_without_ens(self, store, cipher):
        polygon = FakeChainState("polygon")
        polygon.names["friend.eth"] = RECIPIENT
        service = WalletService(store, lambda chain: polygon, cipher, PASSPHRASE)
        assert await service.lookup_name("friend.eth", "polygon") is None
        assert polygon.calls == []


class TestFromConfig:
    def test_sqlite_backend(self, tmp_path):
        cfg = BuddyConfig()
        cfg.cipher.passphrase = "pw"
        cfg.store.sqlite_path = str(tmp_path / "x.db")
        service = WalletService.from_config(cfg)
        assert isinstance(service.store, SqliteIdentityStore)

    def test_hasura_backend(self):
        cfg = BuddyConfig()
        cfg.cipher.passphrase = "pw"
        cfg.store.backend = "hasura"
        service = WalletService.from_config(cfg)
        assert isinstance(service.store, HasuraIdentityStore)

    def test_unknown_backend(self):
        cfg = BuddyConfig()
        cfg.cipher.passphrase = "pw"
        cfg.store.backend = "mongo"
        with pytest.raises(ValueError):
            WalletService.from_config(cfg)
