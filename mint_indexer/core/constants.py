"""
Mint Indexer Constants

Fixed values shared by the ingestion and aggregation engines.
"""

from .types import Resolution


# =============================================================================
# Resolutions
# =============================================================================

# Bucket width per resolution (seconds)
RESOLUTION_SECONDS: dict[Resolution, int] = {
    Resolution.M5: 300,
    Resolution.M15: 900,
    Resolution.M30: 1800,
    Resolution.H1: 3600,
    Resolution.H4: 14400,
    Resolution.D1: 86400,
}

# Order used by "all resolutions" operations
ALL_RESOLUTIONS: tuple[Resolution, ...] = tuple(RESOLUTION_SECONDS.keys())


# =============================================================================
# Aggregation
# =============================================================================

# Raw mint sizes are summed as integers, then scaled down by 10^9
VOLUME_SCALE = 10**9


# =============================================================================
# Ingestion
# =============================================================================

# Events requested per upstream page
DEFAULT_PAGE_SIZE = 1000

# Instruments processed concurrently by sweeps
DEFAULT_SWEEP_CONCURRENCY = 4


def get_bucket_seconds(resolution: Resolution) -> int:
    """Get bucket width in seconds for a resolution."""
    return RESOLUTION_SECONDS[resolution]
