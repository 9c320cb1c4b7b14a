# Mint Indexer Persistence
# PostgreSQL storage for mint transactions and OHLCV candles

"""
Persistence module for storing transactions and candles.

Components:
- TransactionRepository: Idempotent raw transaction ledger
- CandleRepository: Merge-upsert candle store
- InMemoryTransactionRepository / InMemoryCandleRepository: No-database fallback
- DatabasePool: Connection pool management
"""

from .repository import CandleRepository, TransactionRepository
from .memory import InMemoryCandleRepository, InMemoryTransactionRepository
from .pool import DatabasePool

__all__ = [
    "CandleRepository",
    "TransactionRepository",
    "InMemoryCandleRepository",
    "InMemoryTransactionRepository",
    "DatabasePool",
]
