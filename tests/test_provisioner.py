"""
Tests for wallet provisioning (wallet/provisioner.py).
"""

from __future__ import annotations

import logging

import pytest
from eth_account import Account

from block_buddy.errors import NetworkError, ValidationError
from block_buddy.wallet.provisioner import WalletProvisioner, generate_keypair

from conftest import PASSPHRASE

Account.enable_unaudited_hdwallet_features()


@pytest.fixture
def provisioner(store, cipher):
    return WalletProvisioner(store, cipher, PASSPHRASE)


class TestGenerateKeypair:
    def test_mnemonic_derives_same_account(self):
        address, private_key, mnemonic = generate_keypair()
        assert len(mnemonic.split()) == 12
        assert Account.from_key(private_key).address == address
        assert Account.from_mnemonic(mnemonic).address == address


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_and_persists_encrypted_record(self, provisioner, store, cipher):
        result = await provisioner.create("contact-1", "ethereum")

        assert result.created is True
        assert result.address.startswith("0x")
        identity = store.identities["contact-1"]
        record = store.wallets[(identity.id, "ethereum")]
        assert record.address == result.address
        assert result.record_id == record.id
        key = cipher.decrypt(record.encrypted_private_key, PASSPHRASE)
        assert Account.from_key(key).address == result.address
        mnemonic = cipher.decrypt(record.encrypted_mnemonic, PASSPHRASE)
        assert len(mnemonic.split()) == 12

    @pytest.mark.asyncio
    async def test_second_call_is_idempotent(self, provisioner, store):
        first = await provisioner.create("contact-1", "ethereum")
        second = await provisioner.create("contact-1", "ethereum")

        assert second.created is False
        assert second.address == first.address
        assert second.record_id is None
        assert len(store.wallets) == 1

    @pytest.mark.asyncio
    async def test_one_wallet_per_chain(self, provisioner, store):
        eth = await provisioner.create("contact-1", "ethereum")
        base = await provisioner.create("contact-1", "base")
        assert eth.created and base.created
        assert len(store.wallets) == 2

    @pytest.mark.asyncio
    async def test_disclosure_happens_once_with_secrets(self, provisioner, cipher):
        seen = []
        result = await provisioner.create("contact-1", "ethereum", disclose=seen.append)
        await provisioner.create("contact-1", "ethereum", disclose=seen.append)

        assert len(seen) == 1
        disclosure = seen[0]
        assert disclosure.address == result.address
        assert Account.from_key(disclosure.private_key).address == result.address
        assert "never be displayed again" in disclosure.warning

    @pytest.mark.asyncio
    async def test_result_and_logs_carry_no_secrets(self, provisioner, caplog):
        seen = []
        with caplog.at_level(logging.DEBUG, logger="block_buddy"):
            result = await provisioner.create("contact-1", "ethereum", disclose=seen.append)
        disclosure = seen[0]
        dumped = result.model_dump_json()
        assert disclosure.private_key[2:] not in dumped
        assert disclosure.mnemonic not in dumped
        assert disclosure.private_key[2:] not in caplog.text
        assert disclosure.mnemonic not in caplog.text
        assert disclosure.private_key not in repr(disclosure)

    @pytest.mark.asyncio
    async def test_lost_race_returns_winner(self, provisioner, store):
        winner = await provisioner.create("contact-1", "ethereum")
        identity = store.identities["contact-1"]
        real_find = store.find_wallet_record
        calls = {"n": 0}

        async def find_missing_once(identity_id, chain):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await real_find(identity_id, chain)

        store.find_wallet_record = find_missing_once
        result = await provisioner.create("contact-1", "ethereum")
        assert result.created is False
        assert result.address == winner.address
        assert store.wallets[(identity.id, "ethereum")].address == winner.address

    @pytest.mark.asyncio
    async def test_unknown_chain(self, provisioner):
        with pytest.raises(ValidationError):
            await provisioner.create("contact-1", "dogechain")

    @pytest.mark.asyncio
    async def test_blank_handle(self, provisioner):
        with pytest.raises(ValidationError):
            await provisioner.create("   ", "ethereum")

    @pytest.mark.asyncio
    async def test_store_failure_is_network_error(self, provisioner, store):
        store.fail_with = ConnectionError("store down")
        with pytest.raises(NetworkError):
            await provisioner.create("contact-1", "ethereum")

    def test_requires_passphrase(self, store, cipher):
        with pytest.raises(ValidationError):
            WalletProvisioner(store, cipher, "")
