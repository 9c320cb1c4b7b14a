"""
In-Memory Repositories

Process-local stand-ins for the PostgreSQL repositories, used when no
DATABASE_URL is configured. Same method signatures and the same
conflict semantics (first write wins for transactions, merge for candles).
Data is lost on restart.
"""

from datetime import datetime, timezone
from typing import Optional

from ..core.candle_builder import merge_candles
from ..core.types import Candle, Resolution, Transaction


class InMemoryTransactionRepository:
    """Transactions keyed by mint, then by timestamp."""

    def __init__(self):
        self._rows: dict[str, dict[int, Transaction]] = {}

    async def insert_if_absent(self, tx: Transaction) -> bool:
        rows = self._rows.setdefault(tx.mint_id, {})
        if tx.timestamp in rows:
            return False
        rows[tx.timestamp] = tx
        return True

    async def get_latest_timestamp(self, mint_id: str) -> Optional[int]:
        rows = self._rows.get(mint_id)
        return max(rows) if rows else None

    async def find_in_range(
        self,
        mint_id: str,
        start_time: int,
        end_time: Optional[int] = None,
    ) -> list[Transaction]:
        rows = self._rows.get(mint_id, {})
        return [
            rows[ts] for ts in sorted(rows)
            if ts >= start_time and (end_time is None or ts <= end_time)
        ]

    async def find_by_mint(
        self,
        mint_id: str,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Transaction]:
        rows = await self.find_in_range(mint_id, from_time if from_time is not None else 0, to_time)
        return list(reversed(rows))[:limit]

    def count(self, mint_id: str) -> int:
        """Number of stored transactions for a mint."""
        return len(self._rows.get(mint_id, {}))


class InMemoryCandleRepository:
    """Candles keyed by (mint, period), then by bucket start."""

    def __init__(self):
        self._rows: dict[tuple[str, Resolution], dict[int, Candle]] = {}

    async def merge_upsert(self, candle: Candle) -> Candle:
        rows = self._rows.setdefault((candle.mint_id, candle.period), {})
        incoming = candle.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        existing = rows.get(candle.timestamp)
        stored = merge_candles(existing, incoming) if existing else incoming
        rows[candle.timestamp] = stored
        return stored

    async def get_latest_bucket_start(self, mint_id: str, period: Resolution) -> Optional[int]:
        rows = self._rows.get((mint_id, period))
        return max(rows) if rows else None

    async def find_in_range(
        self,
        mint_id: str,
        period: Resolution,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Candle]:
        rows = self._rows.get((mint_id, period), {})
        selected = [
            rows[ts] for ts in sorted(rows, reverse=True)
            if (from_time is None or ts >= from_time) and (to_time is None or ts <= to_time)
        ]
        return selected[:limit]

    async def delete_all(self, mint_id: str, period: Resolution) -> int:
        rows = self._rows.pop((mint_id, period), {})
        return len(rows)
