"""
Unit tests for the Mint Indexer OHLC aggregator.

Tests incremental aggregation, rebuild, sweeps and per-series locking
against the in-memory stores.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from mint_indexer.aggregator import OHLCAggregator
from mint_indexer.core.constants import ALL_RESOLUTIONS
from mint_indexer.core.errors import InvalidResolutionError, MintNotFoundError, StorageError
from mint_indexer.core.pricing import build_transaction
from mint_indexer.core.types import Mint, Resolution, UpstreamMintEvent
from mint_indexer.persistence import InMemoryCandleRepository, InMemoryTransactionRepository


M1 = Mint(address="M1", fee_rate=Decimal(1000))
M2 = Mint(address="M2", fee_rate=Decimal(100))


def _directory(*mints: Mint):
    by_address = {m.address: m for m in mints}
    directory = MagicMock()
    directory.resolve = AsyncMock(side_effect=lambda address: by_address.get(address.strip()))
    directory.list_all = AsyncMock(return_value=list(mints))
    return directory


async def _store(repo, mint: Mint, events: list[tuple[int, str]]) -> None:
    for timestamp, size in events:
        event = UpstreamMintEvent(timestamp=timestamp, mint_size_epoch=Decimal(size))
        await repo.insert_if_absent(build_transaction(mint, event))


async def _all_candles(repo, mint_id: str, period: Resolution) -> dict:
    candles = await repo.find_in_range(mint_id, period, limit=10_000)
    return {
        c.timestamp: (c.open, c.high, c.low, c.close, c.volume, c.trade_count)
        for c in candles
    }


@pytest.fixture
def tx_repo():
    return InMemoryTransactionRepository()


@pytest.fixture
def candle_repo():
    return InMemoryCandleRepository()


@pytest.fixture
def aggregator(tx_repo, candle_repo):
    return OHLCAggregator(_directory(M1, M2), tx_repo, candle_repo)


class TestAggregate:
    """Tests for OHLCAggregator.aggregate."""

    @pytest.mark.asyncio
    async def test_scenario_bucket(self, aggregator, tx_repo, candle_repo):
        """Events at t=100 (size 10) and t=160 (size 20) fold into bucket 0."""
        await _store(tx_repo, M1, [(100, "10"), (160, "20")])

        updated = await aggregator.aggregate("M1", "5m")

        assert updated == [Resolution.M5]
        candles = await candle_repo.find_in_range("M1", Resolution.M5)
        assert len(candles) == 1
        candle = candles[0]
        assert candle.timestamp == 0
        assert candle.open == Decimal(100)
        assert candle.close == Decimal(50)
        assert candle.high == Decimal(100)
        assert candle.low == Decimal(50)
        assert candle.trade_count == 2

    @pytest.mark.asyncio
    async def test_all_periods_when_unspecified(self, aggregator, tx_repo):
        await _store(tx_repo, M1, [(100, "10")])

        updated = await aggregator.aggregate("M1")

        assert updated == list(ALL_RESOLUTIONS)

    @pytest.mark.asyncio
    async def test_no_transactions(self, aggregator):
        """Zero transactions contributes nothing and is not an error."""
        assert await aggregator.aggregate("M1") == []

    @pytest.mark.asyncio
    async def test_not_found(self, aggregator):
        with pytest.raises(MintNotFoundError):
            await aggregator.aggregate("UNKNOWN", "5m")

    @pytest.mark.asyncio
    async def test_invalid_period(self, aggregator):
        with pytest.raises(InvalidResolutionError):
            await aggregator.aggregate("M1", "2m")

    @pytest.mark.asyncio
    async def test_resume_past_last_bucket(self, aggregator, tx_repo, candle_repo):
        """A second run reads from latest bucket + width only."""
        await _store(tx_repo, M1, [(100, "10")])
        await aggregator.aggregate("M1", "5m")

        await _store(tx_repo, M1, [(400, "10"), (700, "20")])
        tx_repo.find_in_range = AsyncMock(wraps=tx_repo.find_in_range)

        updated = await aggregator.aggregate("M1", "5m")

        assert updated == [Resolution.M5]
        tx_repo.find_in_range.assert_awaited_once_with("M1", 300)
        candles = await _all_candles(candle_repo, "M1", Resolution.M5)
        assert sorted(candles) == [0, 300, 600]
        assert candles[0][5] == 1

    @pytest.mark.asyncio
    async def test_repeat_without_new_data(self, aggregator, tx_repo, candle_repo):
        """Re-running with no new transactions writes nothing."""
        await _store(tx_repo, M1, [(100, "10"), (160, "20")])
        await aggregator.aggregate("M1", "5m")

        assert await aggregator.aggregate("M1", "5m") == []
        candles = await _all_candles(candle_repo, "M1", Resolution.M5)
        assert candles[0][5] == 2

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self, tx_repo):
        candle_repo = MagicMock()
        candle_repo.get_latest_bucket_start = AsyncMock(side_effect=StorageError("db down"))
        aggregator = OHLCAggregator(_directory(M1), tx_repo, candle_repo)

        with pytest.raises(StorageError):
            await aggregator.aggregate("M1", "5m")


class TestRebuild:
    """Tests for OHLCAggregator.rebuild."""

    @pytest.mark.asyncio
    async def test_rebuild_replaces_candles(self, aggregator, tx_repo, candle_repo):
        """Rebuild after a repeated aggregate gives the clean fold."""
        await _store(tx_repo, M1, [(100, "10"), (160, "20")])
        await aggregator.aggregate("M1", "5m")
        expected = await _all_candles(candle_repo, "M1", Resolution.M5)

        rebuilt = await aggregator.rebuild("M1", "5m")

        assert rebuilt == [Resolution.M5]
        assert await _all_candles(candle_repo, "M1", Resolution.M5) == expected

    @pytest.mark.asyncio
    async def test_rebuild_equivalence(self, tx_repo, candle_repo):
        """Incremental runs over any chunking match a single rebuild."""
        events = [(t, str(10 + (t % 7))) for t in range(50, 4000, 130)]
        aggregator = OHLCAggregator(_directory(M1), tx_repo, candle_repo)

        # Chunks end on bucket boundaries of the coarsest period used
        boundaries = [0, 900, 1800, 2700, 3600, 4000]
        for lo, hi in zip(boundaries, boundaries[1:]):
            await _store(tx_repo, M1, [e for e in events if lo <= e[0] < hi])
            await aggregator.aggregate("M1", "15m")
            await aggregator.aggregate("M1", "5m")

        incremental = {
            period: await _all_candles(candle_repo, "M1", period)
            for period in (Resolution.M5, Resolution.M15)
        }

        rebuild_repo = InMemoryCandleRepository()
        rebuilder = OHLCAggregator(_directory(M1), tx_repo, rebuild_repo)
        await rebuilder.rebuild("M1", "5m")
        await rebuilder.rebuild("M1", "15m")

        for period in (Resolution.M5, Resolution.M15):
            assert await _all_candles(rebuild_repo, "M1", period) == incremental[period]

    @pytest.mark.asyncio
    async def test_rebuild_no_transactions(self, aggregator, candle_repo):
        """Only resolutions that got buckets are reported."""
        assert await aggregator.rebuild("M1") == []
        assert await _all_candles(candle_repo, "M1", Resolution.M5) == {}

    @pytest.mark.asyncio
    async def test_rebuild_reports_only_written_periods(self, aggregator, tx_repo):
        await _store(tx_repo, M1, [(100, "10")])

        assert await aggregator.rebuild("M1") == list(ALL_RESOLUTIONS)
        assert await aggregator.rebuild("M2") == []

    @pytest.mark.asyncio
    async def test_rebuild_not_found(self, aggregator):
        with pytest.raises(MintNotFoundError):
            await aggregator.rebuild("UNKNOWN")

    @pytest.mark.asyncio
    async def test_rebuild_and_aggregate_serialized(self, tx_repo):
        """Rebuild's delete + replay never interleaves with an aggregate on the same series."""
        await _store(tx_repo, M1, [(100, "10"), (160, "20")])
        inner = InMemoryCandleRepository()
        events = []

        class RecordingRepo:
            async def delete_all(self, mint_id, period):
                events.append("delete-start")
                await asyncio.sleep(0.01)
                result = await inner.delete_all(mint_id, period)
                events.append("delete-end")
                return result

            async def merge_upsert(self, candle):
                events.append("upsert")
                return await inner.merge_upsert(candle)

            async def get_latest_bucket_start(self, mint_id, period):
                return await inner.get_latest_bucket_start(mint_id, period)

        aggregator = OHLCAggregator(_directory(M1), tx_repo, RecordingRepo())

        await asyncio.gather(
            aggregator.rebuild("M1", "5m"),
            aggregator.aggregate("M1", "5m"),
        )

        # Rebuild ran first and finished its replay before the aggregate looked
        assert events[:3] == ["delete-start", "delete-end", "upsert"]
        assert events.count("upsert") == 1
        candles = await _all_candles(inner, "M1", Resolution.M5)
        assert candles[0][5] == 2


class TestSweeps:
    """Tests for aggregate_all / rebuild_all."""

    @pytest.mark.asyncio
    async def test_aggregate_all_counts_buckets(self, aggregator, tx_repo):
        await _store(tx_repo, M1, [(100, "10"), (400, "10")])
        await _store(tx_repo, M2, [(100, "10")])

        total = await aggregator.aggregate_all()

        # M1: two 5m buckets, one bucket in every coarser period; M2: one per period
        assert total == (2 + 5) + 6

    @pytest.mark.asyncio
    async def test_rebuild_all_does_not_double_count(self, aggregator, tx_repo, candle_repo):
        await _store(tx_repo, M1, [(100, "10"), (160, "20")])
        await aggregator.aggregate_all()

        await aggregator.rebuild_all()
        await aggregator.rebuild_all()

        for period in ALL_RESOLUTIONS:
            candles = await _all_candles(candle_repo, "M1", period)
            assert candles[0][5] == 2

    @pytest.mark.asyncio
    async def test_sweep_isolates_failures(self, tx_repo):
        """A failing series is skipped; the rest of the sweep completes."""
        await _store(tx_repo, M1, [(100, "10")])
        await _store(tx_repo, M2, [(100, "10")])
        inner = InMemoryCandleRepository()

        class FlakyRepo:
            async def get_latest_bucket_start(self, mint_id, period):
                if mint_id == "M1" and period == Resolution.H1:
                    raise StorageError("db timeout")
                return await inner.get_latest_bucket_start(mint_id, period)

            async def merge_upsert(self, candle):
                return await inner.merge_upsert(candle)

        aggregator = OHLCAggregator(_directory(M1, M2), tx_repo, FlakyRepo())

        total = await aggregator.aggregate_all()

        assert total == 11
        assert await inner.find_in_range("M1", Resolution.H1) == []
        assert len(await inner.find_in_range("M2", Resolution.H1)) == 1
