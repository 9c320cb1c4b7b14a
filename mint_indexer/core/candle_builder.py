"""
Mint Indexer Candle Builder

Folds mint transactions into OHLCV candles at a fixed resolution and defines
the merge rule applied when a candle for the same bucket already exists.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from .constants import VOLUME_SCALE
from .types import Candle, Resolution, Transaction


def floor_to_bucket(timestamp: int, bucket_seconds: int) -> int:
    """Floor a timestamp (unix seconds) to the start of its bucket."""
    return (timestamp // bucket_seconds) * bucket_seconds


def scale_volume(raw_volume: int) -> int:
    """Scale an integer sum of mint sizes down by 10^9."""
    return raw_volume // VOLUME_SCALE


@dataclass
class CandleAccumulator:
    """
    Accumulates transactions into a forming candle.

    Transactions must be added in ascending time order and must belong to
    this bucket (caller verifies). Volume is kept as the exact integer sum of
    floored sizes and only scaled when the candle is produced.
    """

    bucket_start: int  # Unix seconds (start of bucket)
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Optional[Decimal] = None
    raw_volume: int = 0
    trade_count: int = 0

    def add_transaction(self, tx: Transaction) -> None:
        """Add a transaction to the accumulator."""
        price = tx.price

        # First transaction sets all values
        if self.open is None:
            self.open = price
            self.high = price
            self.low = price
        else:
            if price > self.high:  # type: ignore
                self.high = price
            if price < self.low:  # type: ignore
                self.low = price
        self.close = price

        self.raw_volume += math.floor(tx.mint_size_epoch)
        self.trade_count += 1

    def to_candle(self, mint_id: str, period: Resolution) -> Optional[Candle]:
        """
        Convert accumulator to a Candle.

        Returns None if no transactions have been accumulated.
        """
        if self.open is None:
            return None

        return Candle(
            mint_id=mint_id,
            period=period,
            timestamp=self.bucket_start,
            open=self.open,
            high=self.high,  # type: ignore
            low=self.low,  # type: ignore
            close=self.close,  # type: ignore
            volume=scale_volume(self.raw_volume),
            trade_count=self.trade_count,
        )


def group_by_bucket(
    transactions: Iterable[Transaction],
    bucket_seconds: int,
) -> dict[int, list[Transaction]]:
    """
    Partition transactions into buckets keyed by bucket start.

    Transactions are sorted ascending by time first, so each bucket's list is
    in time order and the mapping is ordered by bucket start.
    """
    grouped: dict[int, list[Transaction]] = {}
    for tx in sorted(transactions, key=lambda t: t.timestamp):
        grouped.setdefault(floor_to_bucket(tx.timestamp, bucket_seconds), []).append(tx)
    return grouped


def build_candles(
    mint_id: str,
    period: Resolution,
    transactions: Iterable[Transaction],
) -> list[Candle]:
    """
    Build one candle per non-empty bucket, ordered by bucket start.

    Args:
        mint_id: Mint address the transactions belong to
        period: Target resolution
        transactions: Transactions in any order

    Returns:
        Candles ascending by timestamp
    """
    candles: list[Candle] = []
    for bucket_start, bucket_txs in group_by_bucket(transactions, period.seconds).items():
        accumulator = CandleAccumulator(bucket_start=bucket_start)
        for tx in bucket_txs:
            accumulator.add_transaction(tx)
        candle = accumulator.to_candle(mint_id, period)
        if candle:
            candles.append(candle)
    return candles


def merge_candles(existing: Candle, incoming: Candle) -> Candle:
    """
    Merge a newly computed candle into the stored candle for the same bucket.

    open is kept from the first write, high/low widen, close takes the
    incoming value, volume and trade_count add up.
    """
    return Candle(
        mint_id=existing.mint_id,
        period=existing.period,
        timestamp=existing.timestamp,
        open=existing.open,
        high=max(existing.high, incoming.high),
        low=min(existing.low, incoming.low),
        close=incoming.close,
        volume=existing.volume + incoming.volume,
        trade_count=existing.trade_count + incoming.trade_count,
        updated_at=incoming.updated_at,
    )
