"""
Mint Indexer Core Types

Canonical type definitions for mints, raw mint transactions and OHLCV candles.

SERIALIZATION CONTRACT:
    Internal Python code uses snake_case (Pythonic convention).
    API responses use camelCase via Pydantic's `alias_generator` and
    `populate_by_name`. Monetary values are Decimal internally and are
    rendered as plain (non-exponent) strings in JSON.

    Example:
        Internal: candle.trade_count
        API JSON: {"tradeCount": 2}
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .errors import InvalidResolutionError


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase for API serialization."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def format_decimal(value: Decimal) -> str:
    """Render a Decimal without exponent notation (1E+2 -> "100")."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


# =============================================================================
# Core Enums
# =============================================================================

class Resolution(str, Enum):
    """Candle resolutions produced for every mint."""
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def seconds(self) -> int:
        """Bucket width in seconds."""
        from .constants import RESOLUTION_SECONDS
        return RESOLUTION_SECONDS[self]


def parse_resolution(value: "str | Resolution") -> Resolution:
    """
    Parse a period string into a Resolution.

    Raises:
        InvalidResolutionError: if the period is not one of the supported tags
    """
    if isinstance(value, Resolution):
        return value
    try:
        return Resolution(str(value).strip().lower())
    except ValueError:
        raise InvalidResolutionError(value) from None


# =============================================================================
# Mint (instrument) Types
# =============================================================================

class Mint(BaseModel):
    """Registered mint token. Read-only in this service."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    address: str = Field(..., description="Mint address (external identifier)")
    name: Optional[str] = Field(default=None, description="Token name")
    symbol: Optional[str] = Field(default=None, description="Token symbol")
    fee_rate: Decimal = Field(default=Decimal(0), description="Reference rate used for price derivation")

    @field_serializer("fee_rate", when_used="json")
    def _serialize_fee_rate(self, value: Decimal) -> str:
        return format_decimal(value)


# =============================================================================
# Transaction Types
# =============================================================================

class UpstreamMintEvent(BaseModel):
    """Raw mint event as returned by the upstream GraphQL source (newest first)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    timestamp: int = Field(..., description="Event time (unix seconds)")
    mint_size_epoch: Decimal = Field(..., description="Mint size for the epoch")
    mint_fee: Decimal = Field(default=Decimal(0), description="Fee reported upstream (not used for pricing)")
    current_era: Optional[int] = None
    current_epoch: Optional[int] = None


class Transaction(BaseModel):
    """Stored mint transaction. Unique per (mint_id, timestamp); never mutated."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    mint_id: str = Field(..., description="Mint address")
    timestamp: int = Field(..., description="Event time (unix seconds)")
    mint_size_epoch: Decimal = Field(..., description="Size metric")
    mint_fee: Decimal = Field(..., description="Derived fee (the mint's reference rate)")
    price: Decimal = Field(..., description="mint_fee / mint_size_epoch, or 0")
    current_era: Optional[int] = None
    current_epoch: Optional[int] = None

    @field_serializer("mint_size_epoch", "mint_fee", "price", when_used="json")
    def _serialize_decimal(self, value: Decimal) -> str:
        return format_decimal(value)


# =============================================================================
# Candle Types
# =============================================================================

class Candle(BaseModel):
    """OHLCV candle for one (mint, period, bucket start)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    mint_id: str = Field(..., description="Mint address")
    period: Resolution = Field(..., description="Candle resolution")
    timestamp: int = Field(..., description="Bucket start (unix seconds, aligned to period)")
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = Field(default=0, description="Scaled volume (sum of floored sizes / 10^9)")
    trade_count: int = Field(default=0, description="Transactions folded into this candle")
    updated_at: Optional[datetime] = None

    @field_serializer("open", "high", "low", "close", when_used="json")
    def _serialize_price(self, value: Decimal) -> str:
        return format_decimal(value)

    @field_serializer("volume", when_used="json")
    def _serialize_volume(self, value: int) -> str:
        return str(value)
