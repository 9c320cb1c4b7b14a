"""
OHLC Aggregator

Folds stored mint transactions into OHLCV candles for all six resolutions.

Two modes per (mint, period):
- incremental: resume one bucket past the latest stored candle and merge
  the new buckets in
- rebuild: delete every candle and replay the full transaction history

Both modes hold the same per-(mint, period) lock, so a rebuild's delete can
never interleave with an incremental merge on the same series.

Usage:
    aggregator = OHLCAggregator(directory, transaction_repo, candle_repo)
    updated = await aggregator.aggregate(mint_address, "5m")
    total = await aggregator.aggregate_all()
"""

import asyncio
import logging
import time
from typing import Optional, Union

from ..core.candle_builder import build_candles
from ..core.constants import ALL_RESOLUTIONS, DEFAULT_SWEEP_CONCURRENCY
from ..core.errors import MintNotFoundError
from ..core.locks import KeyedLock
from ..core.metrics import record_aggregate_failure, record_candles_upserted, record_sweep
from ..core.types import Mint, Resolution, parse_resolution

logger = logging.getLogger(__name__)


MODE_INCREMENTAL = "incremental"
MODE_REBUILD = "rebuild"


class OHLCAggregator:
    """
    Multi-resolution candle builder.

    Holds no state between calls beyond the lock map; the resume point for
    each series is read from the candle store.
    """

    def __init__(
        self,
        directory,
        transaction_repo,
        candle_repo,
        max_concurrency: int = DEFAULT_SWEEP_CONCURRENCY,
    ):
        self.directory = directory
        self.transaction_repo = transaction_repo
        self.candle_repo = candle_repo
        self.max_concurrency = max(1, max_concurrency)
        self._locks = KeyedLock()

    # =========================================================================
    # Single mint
    # =========================================================================

    async def aggregate(
        self,
        mint_address: str,
        period: Optional[Union[str, Resolution]] = None,
    ) -> list[Resolution]:
        """
        Incrementally aggregate one mint.

        Args:
            mint_address: Mint address
            period: One resolution, or None for all six

        Returns:
            Resolutions that had at least one bucket written

        Raises:
            MintNotFoundError: mint is not registered
            InvalidResolutionError: unsupported period string
            StorageError: store failure (aborts this call)
        """
        periods = self._periods_in_scope(period)
        mint = await self._resolve(mint_address)

        updated = []
        for resolution in periods:
            written = await self._aggregate_period(mint.address, resolution)
            if written > 0:
                updated.append(resolution)

        logger.info(
            f"Generated OHLC data for mint {mint.address}: "
            f"{[r.value for r in updated] or 'no new buckets'}"
        )
        return updated

    async def rebuild(
        self,
        mint_address: str,
        period: Optional[Union[str, Resolution]] = None,
    ) -> list[Resolution]:
        """
        Delete and fully replay candles for one mint.

        Returns:
            Resolutions that were rebuilt with at least one bucket
        """
        periods = self._periods_in_scope(period)
        mint = await self._resolve(mint_address)

        rebuilt = []
        for resolution in periods:
            written = await self._rebuild_period(mint.address, resolution)
            if written > 0:
                rebuilt.append(resolution)

        logger.info(
            f"Rebuilt OHLC data for mint {mint.address}: "
            f"{[r.value for r in rebuilt] or 'no buckets'}"
        )
        return rebuilt

    # =========================================================================
    # Sweeps
    # =========================================================================

    async def aggregate_all(self) -> int:
        """Incremental aggregation for every mint and resolution. Returns buckets written."""
        return await self._sweep(MODE_INCREMENTAL)

    async def rebuild_all(self) -> int:
        """Rebuild every mint and resolution. Returns buckets written."""
        return await self._sweep(MODE_REBUILD)

    async def _sweep(self, mode: str) -> int:
        """
        Fan out over mints x resolutions with bounded concurrency.

        A failure on one (mint, period) is logged and counted; the rest of
        the sweep continues.
        """
        start = time.time()
        mints = await self.directory.list_all()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        run = self._rebuild_period if mode == MODE_REBUILD else self._aggregate_period

        async def _worker(mint_id: str, resolution: Resolution) -> int:
            async with semaphore:
                try:
                    return await run(mint_id, resolution)
                except Exception as e:
                    record_aggregate_failure(resolution.value, mode)
                    logger.error(
                        f"Failed to {'rebuild' if mode == MODE_REBUILD else 'generate'} "
                        f"OHLC for mint {mint_id} period {resolution.value}: "
                        f"{type(e).__name__}: {e}"
                    )
                    return 0

        counts = await asyncio.gather(*[
            _worker(mint.address, resolution)
            for mint in mints
            for resolution in ALL_RESOLUTIONS
        ])

        total = sum(counts)
        duration = time.time() - start
        record_sweep("rebuild" if mode == MODE_REBUILD else "aggregate", duration)
        logger.info(
            f"OHLC {mode} sweep complete: {len(mints)} mints, {total} buckets ({duration:.2f}s)"
        )
        return total

    # =========================================================================
    # Per-series work
    # =========================================================================

    async def _aggregate_period(self, mint_id: str, resolution: Resolution) -> int:
        """Resume one series past its latest bucket. Returns buckets written."""
        async with self._locks.hold((mint_id, resolution)):
            last_bucket = await self.candle_repo.get_latest_bucket_start(mint_id, resolution)
            start_time = last_bucket + resolution.seconds if last_bucket is not None else 0
            return await self._fold_from(mint_id, resolution, start_time, MODE_INCREMENTAL)

    async def _rebuild_period(self, mint_id: str, resolution: Resolution) -> int:
        """Delete then replay one series from time 0. Returns buckets written."""
        async with self._locks.hold((mint_id, resolution)):
            await self.candle_repo.delete_all(mint_id, resolution)
            return await self._fold_from(mint_id, resolution, 0, MODE_REBUILD)

    async def _fold_from(
        self,
        mint_id: str,
        resolution: Resolution,
        start_time: int,
        mode: str,
    ) -> int:
        """Build candles from transactions at or after start_time and merge them in."""
        transactions = await self.transaction_repo.find_in_range(mint_id, start_time)
        if not transactions:
            logger.debug(f"{mint_id}/{resolution.value}: no transactions since {start_time}")
            return 0

        candles = build_candles(mint_id, resolution, transactions)
        for candle in candles:
            await self.candle_repo.merge_upsert(candle)

        record_candles_upserted(resolution.value, mode, len(candles))
        logger.debug(
            f"{mint_id}/{resolution.value}: {len(transactions)} transactions -> "
            f"{len(candles)} buckets ({mode})"
        )
        return len(candles)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _resolve(self, mint_address: str) -> Mint:
        mint = await self.directory.resolve(mint_address)
        if mint is None:
            raise MintNotFoundError(mint_address.strip())
        return mint

    @staticmethod
    def _periods_in_scope(period: Optional[Union[str, Resolution]]) -> tuple[Resolution, ...]:
        if period is None:
            return ALL_RESOLUTIONS
        if isinstance(period, Resolution):
            return (period,)
        return (parse_resolution(period),)
