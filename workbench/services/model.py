"""model.py

Pydantic **domain models** shared across the service layer and the UI.

The upstream custody API sends amounts and prices as decimal *strings*
(``"0.50000000"``); the models keep them as strings so nothing is lost to
float rounding and ledger search can match the digits exactly.  Numbers
are still accepted and coerced.  Timestamps are parsed into tz-aware
``datetime`` objects (naive values are taken as UTC).
"""

from __future__ import annotations

# -----------------------------------------------------------------------------
# Standard library
# -----------------------------------------------------------------------------
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

# Third-party
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Side = Literal["BUY", "SELL"]
TransactionType = Literal["deposit", "withdrawal", "trade", "conversion", "transfer"]
Direction = Literal["in", "out", "neutral"]

# Closed status sets
OrderStatus = Literal["OPEN", "PARTIALLY_FILLED", "FILLED", "CANCELLED", "EXPIRED"]
TransferStatus = Literal["PENDING", "PROCESSING", "COMPLETED", "FAILED", "CANCELLED"]


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class WireModel(BaseModel):
    """Common config: tolerate unknown keys, coerce numeric amounts to str."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @field_validator("*", mode="after")
    @classmethod
    def utc_datetimes(cls, v: Any) -> Any:
        return as_utc(v) if isinstance(v, datetime) else v


def _upper(v: Any) -> Any:
    return v.upper() if isinstance(v, str) else v


def parse_positive(value: Any) -> Decimal | None:
    """Return *value* as a positive ``Decimal`` or ``None``.

    Blank strings, garbage, NaN/inf, zero and negatives all give ``None`` –
    that is the single rule behind every "amount > 0" check.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number <= 0:
        return None
    return number


# -----------------------------------------------------------------------------
# Quotes
# -----------------------------------------------------------------------------

class Quote(WireModel):
    """Time-bounded, price-guaranteed offer from `GET /quotes`."""

    id: str
    market: str                           # e.g. "BTCUSD"
    side: Side
    amount: str
    price: str
    expires_at: datetime                  # fixed at creation, never moves

    @field_validator("side", mode="before")
    @classmethod
    def upper_enums(cls, v: Any) -> Any:
        return _upper(v)


class QuoteExecution(WireModel):
    """Answer of `POST /quote-executions`."""

    id: str
    status: str = "PENDING"
    quote_id: Optional[str] = None


# -----------------------------------------------------------------------------
# Orders & executions
# -----------------------------------------------------------------------------

class Order(WireModel):
    """Flat representation of an order row from `/orders`."""

    id: str
    market: str
    side: Side
    type: str                             # QUOTE/MARKET/LIMIT/STOP as sent back
    amount: Optional[str] = None
    price: Optional[str] = None
    stop_price: Optional[str] = None
    time_in_force: Optional[str] = None
    base_amount: Optional[str] = None
    quote_amount: Optional[str] = None
    status: OrderStatus
    created_at: datetime

    @field_validator("side", "type", "status", mode="before")
    @classmethod
    def upper_enums(cls, v: Any) -> Any:
        return _upper(v)


class Execution(WireModel):
    id: str
    order_id: Optional[str] = None
    market: str
    side: Side
    price: str
    amount: str
    created_at: datetime

    @field_validator("side", mode="before")
    @classmethod
    def upper_enums(cls, v: Any) -> Any:
        return _upper(v)


# -----------------------------------------------------------------------------
# Transfers & conversions
# -----------------------------------------------------------------------------

class Transfer(WireModel):
    """Deposit, withdrawal or internal transfer from `/transfers`."""

    id: str
    asset: str
    amount: str
    direction: Optional[str] = None       # CREDIT | DEBIT | IN | OUT
    type: Optional[str] = None            # free text, e.g. "CRYPTO_WITHDRAWAL"
    status: TransferStatus = "PENDING"
    destination_address: Optional[str] = None
    fee: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("direction", "status", mode="before")
    @classmethod
    def upper_enums(cls, v: Any) -> Any:
        return _upper(v)


class Conversion(WireModel):
    """Stablecoin conversion from `/stablecoin-conversions`."""

    id: str
    source_asset: str = Field(validation_alias=AliasChoices("source_asset", "from_asset"))
    target_asset: str = Field(validation_alias=AliasChoices("target_asset", "to_asset"))
    amount: str
    status: str
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def upper_enums(cls, v: Any) -> Any:
        return _upper(v)


# -----------------------------------------------------------------------------
# Market data & fees
# -----------------------------------------------------------------------------

class Ticker(WireModel):
    market: str
    last_price: str


class FeeEstimate(WireModel):
    """Answer of `POST /fees` – the server sends either ``fee`` or ``amount``."""

    fee: str = Field(default="0", validation_alias=AliasChoices("fee", "amount"))
    estimated_arrival: Optional[str] = None


# -----------------------------------------------------------------------------
# Canonical ledger row
# -----------------------------------------------------------------------------

class Transaction(BaseModel):
    """Read-only ledger row derived from exactly one source record."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: TransactionType
    asset: str
    amount: str
    usd_value: str
    status: str
    date: datetime
    direction: Direction
    details: Mapping[str, str]            # insertion-ordered label → value, read-only
    source: Transfer | Order | Conversion

    @field_validator("details", mode="after")
    @classmethod
    def read_only_details(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(v))
