"""Error taxonomy for the wallet core.

Each pipeline stage raises one of these internally; the public surface turns
them into :class:`~block_buddy.models.TransferFailure` values carrying the
matching :class:`ErrorKind`. Messages must never contain secret material.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    IDENTITY_NOT_FOUND = "identity_not_found"
    WALLET_NOT_FOUND = "wallet_not_found"
    INTEGRITY_ERROR = "integrity_error"
    NAME_RESOLUTION_FAILED = "name_resolution_failed"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_BALANCE_FOR_FEE = "insufficient_balance_for_fee"
    NETWORK_ERROR = "network_error"
    SUBMISSION_FAILED = "submission_failed"
    CHAIN_REJECTION = "chain_rejection"


class WalletError(Exception):
    """Base class for every expected failure of the wallet core."""

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.tx_hash = tx_hash


class ValidationError(WalletError):
    kind = ErrorKind.VALIDATION_ERROR


class NotFoundError(WalletError):
    """An identity, wallet or name is absent.

    ``what`` is one of ``"identity"``, ``"wallet"`` or ``"name"``. An absent
    name reports as ``name_resolution_failed``.
    """

    _KINDS = {
        "identity": ErrorKind.IDENTITY_NOT_FOUND,
        "wallet": ErrorKind.WALLET_NOT_FOUND,
        "name": ErrorKind.NAME_RESOLUTION_FAILED,
    }

    def __init__(self, what: str, message: str) -> None:
        if what not in self._KINDS:
            raise ValueError(f"Unknown not-found subject '{what}'")
        super().__init__(message)
        self.what = what
        self.kind = self._KINDS[what]


class IntegrityError(WalletError):
    kind = ErrorKind.INTEGRITY_ERROR


class NameResolutionFailed(WalletError):
    kind = ErrorKind.NAME_RESOLUTION_FAILED


class InsufficientBalanceError(WalletError):
    kind = ErrorKind.INSUFFICIENT_BALANCE


class InsufficientBalanceForFeeError(WalletError):
    kind = ErrorKind.INSUFFICIENT_BALANCE_FOR_FEE


class NetworkError(WalletError):
    kind = ErrorKind.NETWORK_ERROR


class SubmissionFailedError(WalletError):
    kind = ErrorKind.SUBMISSION_FAILED


class ChainRejectionError(WalletError):
    kind = ErrorKind.CHAIN_REJECTION


class DuplicateWalletError(Exception):
    """Raised by an identity store when (identity, chain) already has a wallet."""
