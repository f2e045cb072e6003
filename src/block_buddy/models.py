"""Pydantic models for identities, wallet records and operation results."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from block_buddy.errors import ErrorKind

_HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

ONE_TIME_WARNING = (
    "Store these secrets offline now. They are shown exactly once and will "
    "never be displayed again. Do not keep them in this chat."
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    """Generate a short hex ID (12 characters)."""
    return uuid.uuid4().hex[:12]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def looks_like_address(value: str) -> bool:
    """True when *value* has the shape of a 20-byte hex address."""
    return bool(_HEX_ADDRESS_RE.match(value))


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------

class Identity(BaseModel):
    """A user known to the identity store (e.g. a phone number)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    handle: str
    created_at: datetime = Field(default_factory=_now)


class WalletRecord(BaseModel):
    """Maps to the ``wallets`` table; one row per (identity, chain)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    identity_id: str
    chain: str
    address: str
    encrypted_private_key: Optional[str] = Field(default=None, repr=False)
    encrypted_mnemonic: Optional[str] = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=_now)


class Receipt(BaseModel):
    """The part of a transaction receipt the core cares about."""

    status: int
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class NameProfile(BaseModel):
    """Structured ENS data for a name; display formatting is left to callers."""

    name: str
    address: str
    text_records: dict[str, Optional[str]] = Field(default_factory=dict)
    # "eth" plus SLIP-44 coins; non-ETH values are raw resolver bytes as hex
    crypto_addresses: dict[str, Optional[str]] = Field(default_factory=dict)
    content_hash: Optional[str] = None
    primary_name: Optional[str] = None
    is_primary: bool = False
    has_resolver: bool = True


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TransferRequest(BaseModel):
    """A single-use instruction to move *amount* (smallest unit) to *recipient*."""

    model_config = ConfigDict(frozen=True)

    identity_handle: str = Field(min_length=1)
    recipient: str = Field(min_length=1)
    amount: int = Field(gt=0, strict=True)
    chain: str = "ethereum"

    @field_validator("recipient", "identity_handle")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def recipient_is_name(self) -> bool:
        return not looks_like_address(self.recipient) and "." in self.recipient


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class CreationResult(BaseModel):
    """Outcome of wallet provisioning. Never carries secret material."""

    created: bool
    address: str
    record_id: Optional[str] = None


class SecretDisclosure(BaseModel):
    """Plaintext secrets of a freshly created wallet, handed out exactly once."""

    model_config = ConfigDict(frozen=True)

    address: str
    private_key: str = Field(repr=False)
    mnemonic: str = Field(repr=False)
    warning: str = ONE_TIME_WARNING


class TransferSuccess(BaseModel):
    kind: Literal["success"] = "success"
    tx_hash: str
    block_number: Optional[int] = None
    amount: int
    recipient: str
    resolved_from: Optional[str] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return True


class TransferFailure(BaseModel):
    kind: ErrorKind
    message: str
    tx_hash: Optional[str] = None

    @property
    def success(self) -> bool:
        return False


TransferResult = Union[TransferSuccess, TransferFailure]
