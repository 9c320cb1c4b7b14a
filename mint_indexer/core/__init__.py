# Mint Indexer Core Modules
"""
Core business logic for mint transaction pricing and candle aggregation.

Modules:
- types: Canonical type definitions (Pydantic models)
- constants: Resolution table, volume scale, paging defaults
- errors: Typed service errors
- pricing: Price derivation from the mint's reference rate
- candle_builder: Bucketing, OHLCV fold and merge rule
- locks: Keyed async locks
"""

from .types import (
    Candle,
    Mint,
    Resolution,
    Transaction,
    UpstreamMintEvent,
    format_decimal,
    parse_resolution,
)

from .errors import (
    InvalidResolutionError,
    MintIndexerError,
    MintNotFoundError,
    StorageError,
    UpstreamTransientError,
)

from .constants import (
    ALL_RESOLUTIONS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SWEEP_CONCURRENCY,
    RESOLUTION_SECONDS,
    VOLUME_SCALE,
    get_bucket_seconds,
)

from .pricing import (
    build_transaction,
    derive_price,
)

from .candle_builder import (
    CandleAccumulator,
    build_candles,
    floor_to_bucket,
    merge_candles,
    scale_volume,
)

from .locks import KeyedLock

__all__ = [
    # Types
    "Candle",
    "Mint",
    "Resolution",
    "Transaction",
    "UpstreamMintEvent",
    "format_decimal",
    "parse_resolution",
    # Errors
    "InvalidResolutionError",
    "MintIndexerError",
    "MintNotFoundError",
    "StorageError",
    "UpstreamTransientError",
    # Constants
    "ALL_RESOLUTIONS",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SWEEP_CONCURRENCY",
    "RESOLUTION_SECONDS",
    "VOLUME_SCALE",
    "get_bucket_seconds",
    # Pricing
    "build_transaction",
    "derive_price",
    # Candle Builder
    "CandleAccumulator",
    "build_candles",
    "floor_to_bucket",
    "merge_candles",
    "scale_volume",
    # Locks
    "KeyedLock",
]
