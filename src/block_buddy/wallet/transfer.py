"""Native-asset transfer pipeline.

One request runs through a fixed sequence of stages; each either advances or
ends the run with a typed failure:

 1. resolve identity          6. fetch balance and fee rate
 2. resolve wallet            7. balance >= amount
 3. validate key material     8. balance >= amount + fee
 4. decrypt key               9. sign and submit
 5. resolve recipient name   10. await confirmation

All amounts are integers in the chain's smallest unit; conversion to ether
happens only when composing messages. Nothing is retried. Once a transaction
is submitted it is never retracted: cancelling during stage 10 only stops
waiting.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Awaitable, Optional, TypeVar

from eth_account import Account
from web3 import Web3

from block_buddy.errors import (
    ChainRejectionError,
    ErrorKind,
    InsufficientBalanceError,
    InsufficientBalanceForFeeError,
    IntegrityError,
    NameResolutionFailed,
    NetworkError,
    NotFoundError,
    SubmissionFailedError,
    ValidationError,
    WalletError,
)
from block_buddy.models import (
    Identity,
    TransferFailure,
    TransferRequest,
    TransferResult,
    TransferSuccess,
    WalletRecord,
)
from block_buddy.stores.base import IdentityStore
from block_buddy.wallet.chains import TRANSFER_GAS_UNITS, Chain, get_chain
from block_buddy.wallet.cipher import KeyCipher, is_well_formed
from block_buddy.wallet.provider import ChainStateFactory, ChainStateProvider
from block_buddy.wallet.resolver import NameResolver

logger = logging.getLogger("block_buddy.wallet.transfer")

T = TypeVar("T")


def to_ether(amount: int) -> str:
    """Display conversion only; never use the result in comparisons."""
    return f"{Decimal(Web3.from_wei(amount, 'ether')):f}"


async def _io(what: str, awaitable: Awaitable[T], *, tx_hash: str | None = None) -> T:
    """Await a collaborator call, turning unexpected failures into ``NetworkError``."""
    try:
        return await awaitable
    except WalletError:
        raise
    except Exception as exc:
        raise NetworkError(f"{what} failed: {exc}", tx_hash=tx_hash) from exc


class TransferExecutor:
    """Validates, signs, submits and confirms native-asset transfers."""

    def __init__(
        self,
        store: IdentityStore,
        chain_states: ChainStateFactory,
        cipher: KeyCipher,
        passphrase: str,
    ) -> None:
        if not passphrase:
            raise ValidationError("An encryption passphrase is required")
        self.store = store
        self.chain_states = chain_states
        self.cipher = cipher
        self._passphrase = passphrase

    async def execute(self, request: TransferRequest) -> TransferResult:
        """Run the pipeline for *request*; always returns a tagged result."""
        try:
            return await self._run(request)
        except WalletError as exc:
            logger.warning(f"Transfer by {request.identity_handle} failed [{exc.kind.value}]: {exc.message}")
            return TransferFailure(kind=exc.kind, message=exc.message, tx_hash=exc.tx_hash)
        except Exception as exc:
            logger.exception(f"Transfer by {request.identity_handle} failed unexpectedly")
            return TransferFailure(
                kind=ErrorKind.NETWORK_ERROR,
                message=f"Transfer failed unexpectedly ({type(exc).__name__}).",
            )

    async def _run(self, request: TransferRequest) -> TransferSuccess:
        chain = get_chain(request.chain)
        state = self.chain_states(chain.name)

        identity = await self._resolve_identity(request.identity_handle)
        wallet = await self._resolve_wallet(identity, chain)
        self._validate_key_material(wallet)
        private_key = await asyncio.to_thread(self._decrypt_key, wallet)
        recipient = await self._resolve_recipient(request, state)

        balance, fee_rate = await self._fetch_chain_state(state, wallet.address)
        fee = fee_rate * TRANSFER_GAS_UNITS
        self._check_amount(balance, request.amount, chain)
        self._check_amount_plus_fee(balance, request.amount, fee, chain)

        tx_hash = await self._sign_and_submit(state, chain, private_key, wallet, recipient, request.amount, fee_rate)
        del private_key
        block_number = await self._await_confirmation(state, tx_hash)

        resolved_from = request.recipient if request.recipient_is_name else None
        amount_display = f"{to_ether(request.amount)} {chain.native_symbol}"
        message = f"Successfully sent {amount_display} to {recipient}"
        if resolved_from:
            message += f" (resolved from {resolved_from})"
        message += f"\n\nTransaction hash: {tx_hash}\nBlock: {block_number}"
        logger.info(f"Transfer {tx_hash} confirmed in block {block_number}")
        return TransferSuccess(
            tx_hash=tx_hash,
            block_number=block_number,
            amount=request.amount,
            recipient=recipient,
            resolved_from=resolved_from,
            message=message,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _resolve_identity(self, handle: str) -> Identity:
        identity = await _io("Identity lookup", self.store.find_identity(handle))
        if identity is None:
            raise NotFoundError("identity", "User not found. Please create a wallet first.")
        return identity

    async def _resolve_wallet(self, identity: Identity, chain: Chain) -> WalletRecord:
        wallet = await _io("Wallet lookup", self.store.find_wallet_record(identity.id, chain.name))
        if wallet is None:
            raise NotFoundError(
                "wallet", f"No {chain.name} wallet found. Please create a wallet first."
            )
        logger.info(f"Using wallet {wallet.address} on {chain.name}")
        return wallet

    @staticmethod
    def _validate_key_material(wallet: WalletRecord) -> None:
        if not wallet.encrypted_private_key:
            raise IntegrityError("Wallet configuration error: no private key found.")
        if not is_well_formed(wallet.encrypted_private_key):
            raise IntegrityError("Wallet configuration error: stored private key is malformed.")

    def _decrypt_key(self, wallet: WalletRecord) -> str:
        private_key = self.cipher.decrypt(wallet.encrypted_private_key, self._passphrase)
        try:
            derived = Account.from_key(private_key).address
        except Exception as exc:
            raise IntegrityError("Decrypted key material is not a valid private key.") from exc
        if derived.lower() != wallet.address.lower():
            raise IntegrityError("Decrypted key does not match the wallet address.")
        return private_key

    async def _resolve_recipient(self, request: TransferRequest, state: ChainStateProvider) -> str:
        recipient = request.recipient
        if not request.recipient_is_name:
            if not Web3.is_address(recipient):
                raise ValidationError(f"'{recipient}' is neither an address nor an ENS name.")
            return Web3.to_checksum_address(recipient)

        logger.info(f"Resolving ENS name {recipient}")
        try:
            address = await NameResolver(state).resolve(recipient)
        except WalletError:
            raise
        except Exception as exc:
            raise NameResolutionFailed(f"Failed to resolve ENS name {recipient}: {exc}") from exc
        if not address:
            raise NotFoundError(
                "name", f"Could not resolve ENS name: {recipient}. Please verify the name is correct."
            )
        if not Web3.is_address(address):
            raise NameResolutionFailed(
                f"ENS name {recipient} points at an invalid address: {address}"
            )
        return Web3.to_checksum_address(address)

    @staticmethod
    async def _fetch_chain_state(state: ChainStateProvider, address: str) -> tuple[int, int]:
        balance = int(await _io("Balance lookup", state.get_balance(address)))
        fee_rate = int(await _io("Fee rate lookup", state.get_fee_rate()))
        logger.info(f"Balance of {address}: {balance} wei, fee rate {fee_rate} wei/gas")
        return balance, fee_rate

    @staticmethod
    def _check_amount(balance: int, amount: int, chain: Chain) -> None:
        if balance < amount:
            raise InsufficientBalanceError(
                f"Insufficient balance. You have {to_ether(balance)} {chain.native_symbol}, "
                f"but trying to send {to_ether(amount)} {chain.native_symbol}."
            )

    @staticmethod
    def _check_amount_plus_fee(balance: int, amount: int, fee: int, chain: Chain) -> None:
        total = amount + fee
        if balance < total:
            sym = chain.native_symbol
            raise InsufficientBalanceForFeeError(
                f"Insufficient balance for gas. Need {to_ether(total)} {sym} "
                f"({to_ether(amount)} {sym} + ~{to_ether(fee)} {sym} gas)."
            )

    @staticmethod
    async def _sign_and_submit(
        state: ChainStateProvider,
        chain: Chain,
        private_key: str,
        wallet: WalletRecord,
        recipient: str,
        amount: int,
        fee_rate: int,
    ) -> str:
        nonce = await _io("Nonce lookup", state.get_nonce(wallet.address))
        tx: dict[str, Any] = {
            "to": recipient,
            "value": amount,
            "gas": TRANSFER_GAS_UNITS,
            "gasPrice": fee_rate,
            "nonce": nonce,
            "chainId": chain.chain_id,
        }
        signed = Account.sign_transaction(tx, private_key)

        logger.info(f"Submitting {amount} wei from {wallet.address} to {recipient} on {chain.name}")
        try:
            tx_hash = await state.submit_signed_transaction(signed.raw_transaction)
        except WalletError:
            raise
        except Exception as exc:
            raise SubmissionFailedError(f"Transaction was not accepted: {exc}") from exc
        logger.info(f"Transaction sent: {tx_hash}")
        return tx_hash

    @staticmethod
    async def _await_confirmation(state: ChainStateProvider, tx_hash: str) -> Optional[int]:
        receipt = await _io("Confirmation wait", state.await_receipt(tx_hash), tx_hash=tx_hash)
        if not receipt.succeeded:
            raise ChainRejectionError(
                "Transaction failed on chain. Please try again.", tx_hash=tx_hash
            )
        return receipt.block_number
