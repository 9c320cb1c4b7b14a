"""
Mint Indexer Errors

Typed failures raised by the engines and their collaborators.
None of these are retried internally; the scheduler's next run is the retry.
"""


class MintIndexerError(Exception):
    """Base class for service errors."""


class MintNotFoundError(MintIndexerError):
    """Mint address is not registered upstream."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Mint not found: {address}")


class UpstreamTransientError(MintIndexerError):
    """Network or protocol failure talking to the upstream GraphQL source."""


class StorageError(MintIndexerError):
    """Read or write failure against the transaction or candle store."""


class InvalidResolutionError(MintIndexerError, ValueError):
    """Unsupported candle period."""

    def __init__(self, period: object):
        self.period = period
        super().__init__(f"Invalid period: {period}")
