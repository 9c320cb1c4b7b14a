"""
Transaction and Candle Repositories

PostgreSQL storage for raw mint transactions and OHLCV candles.

Table schema: see schema_postgres.sql.
    transactions  UNIQUE (mint_id, timestamp)          -- conflict = no-op
    ohlc_data     UNIQUE (mint_id, period, timestamp)  -- conflict = merge
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Optional

import asyncpg

from ..core.errors import StorageError
from ..core.metrics import record_db_write
from ..core.types import Candle, Resolution, Transaction
from .pool import DatabasePool


logger = logging.getLogger(__name__)

# Failures that abort the current mint's operation
STORAGE_EXCEPTIONS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
    RuntimeError,
)


def _parse_delete_count(result: Optional[str]) -> int:
    """Parse asyncpg's "DELETE N" status string."""
    if result and result.startswith("DELETE"):
        try:
            return int(result.split()[-1])
        except (ValueError, IndexError):
            pass
    return 0


class TransactionRepository:
    """
    Repository for raw mint transactions.

    Inserts are idempotent: a second insert for the same (mint, timestamp)
    is silently ignored and the first write wins.

    Usage:
        repo = TransactionRepository(pool)
        stored = await repo.insert_if_absent(tx)
        latest = await repo.get_latest_timestamp(mint_id)
    """

    def __init__(self, pool: DatabasePool):
        self.pool = pool

    async def insert_if_absent(self, tx: Transaction) -> bool:
        """
        Insert a transaction unless one already exists at its timestamp.

        Returns:
            True if stored, False if it was a duplicate
        """
        start = time.time()
        try:
            query = """
                INSERT INTO transactions (
                    mint_id, timestamp, mint_size_epoch, mint_fee, price,
                    current_era, current_epoch
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (mint_id, timestamp) DO NOTHING
                RETURNING id
            """

            result = await self.pool.fetchval(
                query,
                tx.mint_id,
                tx.timestamp,
                tx.mint_size_epoch,
                tx.mint_fee,
                tx.price,
                tx.current_era,
                tx.current_epoch,
            )
            record_db_write("transactions", success=True, latency_seconds=time.time() - start)

            if result is None:
                logger.debug(f"Duplicate transaction ignored: {tx.mint_id} time={tx.timestamp}")
            return result is not None

        except STORAGE_EXCEPTIONS as e:
            record_db_write("transactions", success=False, latency_seconds=time.time() - start)
            logger.error(f"Failed to insert transaction {tx.mint_id}@{tx.timestamp}: {e}")
            raise StorageError(f"Failed to insert transaction: {e}") from e

    async def get_latest_timestamp(self, mint_id: str) -> Optional[int]:
        """Latest stored event time for a mint, or None if it has none."""
        try:
            value = await self.pool.fetchval(
                "SELECT MAX(timestamp) FROM transactions WHERE mint_id = $1",
                mint_id,
            )
            return int(value) if value is not None else None

        except STORAGE_EXCEPTIONS as e:
            logger.error(f"Failed to get latest transaction time for {mint_id}: {e}")
            raise StorageError(f"Failed to get latest transaction time: {e}") from e

    async def find_in_range(
        self,
        mint_id: str,
        start_time: int,
        end_time: Optional[int] = None,
    ) -> list[Transaction]:
        """
        Get transactions with start_time <= timestamp (<= end_time).

        Returns:
            Transactions ordered by time ascending
        """
        try:
            query = """
                SELECT mint_id, timestamp, mint_size_epoch, mint_fee, price,
                       current_era, current_epoch
                FROM transactions
                WHERE mint_id = $1 AND timestamp >= $2
            """
            params: list = [mint_id, start_time]

            if end_time is not None:
                query += " AND timestamp <= $3"
                params.append(end_time)

            query += " ORDER BY timestamp ASC"

            rows = await self.pool.fetch(query, *params)
            return [self._row_to_transaction(row) for row in rows]

        except STORAGE_EXCEPTIONS as e:
            logger.error(f"Failed to get transaction range for {mint_id}: {e}")
            raise StorageError(f"Failed to get transaction range: {e}") from e

    async def find_by_mint(
        self,
        mint_id: str,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Transaction]:
        """
        Get the most recent transactions for a mint.

        Returns:
            Transactions ordered by time descending
        """
        try:
            query = """
                SELECT mint_id, timestamp, mint_size_epoch, mint_fee, price,
                       current_era, current_epoch
                FROM transactions
                WHERE mint_id = $1
            """
            params: list = [mint_id]

            if from_time is not None:
                params.append(from_time)
                query += f" AND timestamp >= ${len(params)}"

            if to_time is not None:
                params.append(to_time)
                query += f" AND timestamp <= ${len(params)}"

            params.append(limit)
            query += f" ORDER BY timestamp DESC LIMIT ${len(params)}"

            rows = await self.pool.fetch(query, *params)
            return [self._row_to_transaction(row) for row in rows]

        except STORAGE_EXCEPTIONS as e:
            logger.error(f"Failed to get transactions for {mint_id}: {e}")
            raise StorageError(f"Failed to get transactions: {e}") from e

    def _row_to_transaction(self, row) -> Transaction:
        """Convert database row to Transaction."""
        return Transaction(
            mint_id=row["mint_id"],
            timestamp=int(row["timestamp"]),
            mint_size_epoch=row["mint_size_epoch"],
            mint_fee=row["mint_fee"],
            price=row["price"],
            current_era=row["current_era"],
            current_epoch=row["current_epoch"],
        )


class CandleRepository:
    """
    Repository for OHLCV candles.

    Merge-upsert semantics on (mint_id, period, timestamp):
    - open: set on first write only
    - high/low: widened with GREATEST/LEAST
    - close: replaced by the incoming value
    - volume/trade_count: summed

    Usage:
        repo = CandleRepository(pool)
        stored = await repo.merge_upsert(candle)
        latest = await repo.get_latest_bucket_start(mint_id, Resolution.M5)
    """

    def __init__(self, pool: DatabasePool):
        self.pool = pool

    async def merge_upsert(self, candle: Candle) -> Candle:
        """
        Insert a candle, or merge it into the stored candle for the same bucket.

        Returns:
            The stored candle after the merge
        """
        start = time.time()
        try:
            query = """
                INSERT INTO ohlc_data (
                    mint_id, period, timestamp,
                    open_price, high_price, low_price, close_price,
                    volume, trade_count
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (mint_id, period, timestamp) DO UPDATE SET
                    high_price = GREATEST(ohlc_data.high_price, EXCLUDED.high_price),
                    low_price = LEAST(ohlc_data.low_price, EXCLUDED.low_price),
                    close_price = EXCLUDED.close_price,
                    volume = ohlc_data.volume + EXCLUDED.volume,
                    trade_count = ohlc_data.trade_count + EXCLUDED.trade_count,
                    updated_at = NOW()
                RETURNING mint_id, period, timestamp,
                          open_price, high_price, low_price, close_price,
                          volume, trade_count, updated_at
            """

            row = await self.pool.fetchrow(
                query,
                candle.mint_id,
                candle.period.value,
                candle.timestamp,
                candle.open,
                candle.high,
                candle.low,
                candle.close,
                Decimal(candle.volume),
                candle.trade_count,
            )
            record_db_write("ohlc_data", success=True, latency_seconds=time.time() - start)
            return self._row_to_candle(row)

        except STORAGE_EXCEPTIONS as e:
            record_db_write("ohlc_data", success=False, latency_seconds=time.time() - start)
            logger.error(
                f"Failed to upsert candle {candle.mint_id}/{candle.period.value} "
                f"time={candle.timestamp}: {e}"
            )
            raise StorageError(f"Failed to upsert candle: {e}") from e

    async def get_latest_bucket_start(self, mint_id: str, period: Resolution) -> Optional[int]:
        """Latest stored bucket start for (mint, period), or None."""
        try:
            value = await self.pool.fetchval(
                "SELECT MAX(timestamp) FROM ohlc_data WHERE mint_id = $1 AND period = $2",
                mint_id,
                period.value,
            )
            return int(value) if value is not None else None

        except STORAGE_EXCEPTIONS as e:
            logger.error(f"Failed to get latest candle for {mint_id}/{period.value}: {e}")
            raise StorageError(f"Failed to get latest candle: {e}") from e

    async def find_in_range(
        self,
        mint_id: str,
        period: Resolution,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Candle]:
        """
        Get candles for (mint, period), optionally bounded by bucket start.

        Returns:
            Candles ordered by time descending
        """
        try:
            query = """
                SELECT mint_id, period, timestamp,
                       open_price, high_price, low_price, close_price,
                       volume, trade_count, updated_at
                FROM ohlc_data
                WHERE mint_id = $1 AND period = $2
            """
            params: list = [mint_id, period.value]

            if from_time is not None:
                params.append(from_time)
                query += f" AND timestamp >= ${len(params)}"

            if to_time is not None:
                params.append(to_time)
                query += f" AND timestamp <= ${len(params)}"

            params.append(limit)
            query += f" ORDER BY timestamp DESC LIMIT ${len(params)}"

            rows = await self.pool.fetch(query, *params)
            return [self._row_to_candle(row) for row in rows]

        except STORAGE_EXCEPTIONS as e:
            logger.error(f"Failed to get candle range for {mint_id}/{period.value}: {e}")
            raise StorageError(f"Failed to get candle range: {e}") from e

    async def delete_all(self, mint_id: str, period: Resolution) -> int:
        """
        Delete every candle for (mint, period). Used by rebuild.

        Returns:
            Number of rows deleted
        """
        try:
            result = await self.pool.execute(
                "DELETE FROM ohlc_data WHERE mint_id = $1 AND period = $2",
                mint_id,
                period.value,
            )
            deleted = _parse_delete_count(result)
            logger.info(f"Deleted {deleted} candles for {mint_id}/{period.value}")
            return deleted

        except STORAGE_EXCEPTIONS as e:
            logger.error(f"Failed to delete candles for {mint_id}/{period.value}: {e}")
            raise StorageError(f"Failed to delete candles: {e}") from e

    def _row_to_candle(self, row) -> Candle:
        """Convert database row to Candle."""
        return Candle(
            mint_id=row["mint_id"],
            period=Resolution(row["period"]),
            timestamp=int(row["timestamp"]),
            open=row["open_price"],
            high=row["high_price"],
            low=row["low_price"],
            close=row["close_price"],
            volume=int(row["volume"]),
            trade_count=row["trade_count"],
            updated_at=row["updated_at"],
        )
