"""
Unit tests for the Mint Indexer ingestion service.

Uses an in-memory upstream (newest-first pages) and the in-memory
transaction store.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from mint_indexer.core.errors import StorageError, UpstreamTransientError
from mint_indexer.core.types import Mint, UpstreamMintEvent
from mint_indexer.ingestion import IngestionService, IngestResult
from mint_indexer.persistence import InMemoryTransactionRepository


M1 = Mint(address="M1", fee_rate=Decimal(1000))
M2 = Mint(address="M2", fee_rate=Decimal(500))


class FakeEventSource:
    """Upstream stand-in returning pages newest first."""

    def __init__(self, events_by_mint: dict[str, list[tuple[int, str]]]):
        self.events_by_mint = events_by_mint
        self.calls: list[tuple[str, int, int]] = []

    def add(self, mint: str, timestamp: int, size: str) -> None:
        self.events_by_mint.setdefault(mint, []).append((timestamp, size))

    async def fetch_page(self, mint_address: str, offset: int, first: int) -> list[UpstreamMintEvent]:
        self.calls.append((mint_address, offset, first))
        events = sorted(self.events_by_mint.get(mint_address, []), reverse=True)
        return [
            UpstreamMintEvent(timestamp=ts, mint_size_epoch=Decimal(size))
            for ts, size in events[offset:offset + first]
        ]


def _directory(*mints: Mint):
    by_address = {m.address: m for m in mints}
    directory = MagicMock()
    directory.resolve = AsyncMock(side_effect=lambda address: by_address.get(address.strip()))
    directory.list_all = AsyncMock(return_value=list(mints))
    return directory


@pytest.fixture
def repo():
    return InMemoryTransactionRepository()


@pytest.fixture
def source():
    return FakeEventSource({"M1": [(100, "10"), (160, "20")]})


@pytest.fixture
def service(repo, source):
    return IngestionService(_directory(M1, M2), source, repo, page_size=1000)


class TestIngest:
    """Tests for IngestionService.ingest."""

    @pytest.mark.asyncio
    async def test_scenario_prices(self, service, repo):
        """Rate 1000 with sizes 10 and 20 stores prices 100 and 50."""
        count = await service.ingest("M1")

        assert count == 2
        stored = await repo.find_in_range("M1", 0)
        assert [(tx.timestamp, tx.price) for tx in stored] == [(100, Decimal(100)), (160, Decimal(50))]
        assert all(tx.mint_fee == Decimal(1000) for tx in stored)

    @pytest.mark.asyncio
    async def test_idempotent(self, service):
        """Second run with no new upstream data stores nothing."""
        assert await service.ingest("M1") == 2
        assert await service.ingest("M1") == 0

    @pytest.mark.asyncio
    async def test_resumption(self, repo):
        """Stored up to 300; upstream adds 400; exactly one new event."""
        source = FakeEventSource({"M1": [(100, "1"), (200, "1"), (300, "1")]})
        service = IngestionService(_directory(M1), source, repo)
        assert await service.ingest("M1") == 3

        source.add("M1", 400, "1")
        source.calls.clear()

        assert await service.ingest("M1") == 1
        assert repo.count("M1") == 4
        # Cutoff hit on the first page
        assert source.calls == [("M1", 0, 1000)]

    @pytest.mark.asyncio
    async def test_unknown_mint_returns_zero(self, service, source):
        """Unregistered mint is nothing to do, not an error."""
        assert await service.ingest("UNKNOWN") == 0
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_address_trimmed(self, service):
        assert await service.ingest("  M1  ") == 2

    @pytest.mark.asyncio
    async def test_pagination(self, repo):
        """Full pages advance the offset; a short page ends paging."""
        source = FakeEventSource({"M1": [(t, "1") for t in range(1, 6)]})
        service = IngestionService(_directory(M1), source, repo, page_size=2)

        count = await service.ingest("M1")

        assert count == 5
        assert [offset for _, offset, _ in source.calls] == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_pagination_exact_multiple_stops_on_empty_page(self, repo):
        source = FakeEventSource({"M1": [(t, "1") for t in range(1, 5)]})
        service = IngestionService(_directory(M1), source, repo, page_size=2)

        assert await service.ingest("M1") == 4
        assert [offset for _, offset, _ in source.calls] == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_page_size_override(self, service, source):
        await service.ingest("M1", page_size=1)
        assert source.calls[0] == ("M1", 0, 1)

    def test_invalid_page_size(self, repo, source):
        with pytest.raises(ValueError):
            IngestionService(_directory(M1), source, repo, page_size=0)

    @pytest.mark.asyncio
    async def test_zero_size_event(self, repo):
        source = FakeEventSource({"M1": [(100, "0")]})
        service = IngestionService(_directory(M1), source, repo)

        await service.ingest("M1")

        stored = await repo.find_in_range("M1", 0)
        assert stored[0].price == Decimal(0)

    @pytest.mark.asyncio
    async def test_duplicate_insert_not_counted(self, service):
        """A conflicting insert is a no-op and is not counted."""
        repo = MagicMock()
        repo.get_latest_timestamp = AsyncMock(return_value=None)
        repo.insert_if_absent = AsyncMock(side_effect=[True, False])
        service.transaction_repo = repo

        assert await service.ingest("M1") == 1

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, repo):
        source = MagicMock()
        source.fetch_page = AsyncMock(side_effect=UpstreamTransientError("HTTP error! status: 502"))
        service = IngestionService(_directory(M1), source, repo)

        with pytest.raises(UpstreamTransientError):
            await service.ingest("M1")

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self, source):
        repo = MagicMock()
        repo.get_latest_timestamp = AsyncMock(return_value=None)
        repo.insert_if_absent = AsyncMock(side_effect=StorageError("connection lost"))
        service = IngestionService(_directory(M1), source, repo)

        with pytest.raises(StorageError):
            await service.ingest("M1")

    @pytest.mark.asyncio
    async def test_storage_failure_midway_resumes_without_gaps(self, repo):
        """A failed insert leaves nothing newer stored, so a retry fills every event."""
        source = FakeEventSource({"M1": [(100, "1"), (200, "1"), (300, "1")]})
        service = IngestionService(_directory(M1), source, repo)

        real_insert = repo.insert_if_absent

        async def flaky_insert(tx):
            if tx.timestamp == 200:
                raise StorageError("connection lost")
            return await real_insert(tx)

        repo.insert_if_absent = flaky_insert
        with pytest.raises(StorageError):
            await service.ingest("M1")
        assert [tx.timestamp for tx in await repo.find_in_range("M1", 0)] == [100]

        repo.insert_if_absent = real_insert
        assert await service.ingest("M1") == 2
        assert [tx.timestamp for tx in await repo.find_in_range("M1", 0)] == [100, 200, 300]

    @pytest.mark.asyncio
    async def test_upstream_failure_on_later_page_stores_nothing(self, repo):
        """Newer events from the first page are not stored ahead of older pages."""
        good = FakeEventSource({"M1": [(t, "1") for t in range(1, 6)]})

        async def fetch_page(mint_address, offset, first):
            if offset > 0:
                raise UpstreamTransientError("HTTP error! status: 502")
            return await good.fetch_page(mint_address, offset, first)

        source = MagicMock()
        source.fetch_page = AsyncMock(side_effect=fetch_page)
        service = IngestionService(_directory(M1), source, repo, page_size=2)

        with pytest.raises(UpstreamTransientError):
            await service.ingest("M1")
        assert repo.count("M1") == 0

        service.event_source = good
        assert await service.ingest("M1") == 5

    @pytest.mark.asyncio
    async def test_inserts_oldest_first(self, source):
        repo = MagicMock()
        repo.get_latest_timestamp = AsyncMock(return_value=None)
        repo.insert_if_absent = AsyncMock(return_value=True)
        service = IngestionService(_directory(M1), source, repo)

        await service.ingest("M1")

        inserted = [call.args[0].timestamp for call in repo.insert_if_absent.call_args_list]
        assert inserted == [100, 160]

    @pytest.mark.asyncio
    async def test_concurrent_same_mint(self, service, repo):
        """Overlapping runs for one mint never double-store."""
        counts = await asyncio.gather(service.ingest("M1"), service.ingest("M1"))

        assert sorted(counts) == [0, 2]
        assert repo.count("M1") == 2


class TestIngestAll:
    """Tests for IngestionService.ingest_all."""

    @pytest.mark.asyncio
    async def test_all_mints(self, repo):
        source = FakeEventSource({"M1": [(100, "10")], "M2": [(100, "5"), (200, "5")]})
        service = IngestionService(_directory(M1, M2), source, repo)

        results = await service.ingest_all()

        assert {r.mint: r.new_transactions for r in results} == {"M1": 1, "M2": 2}
        assert all(r.ok for r in results)

    @pytest.mark.asyncio
    async def test_failure_isolated(self, repo):
        """One mint failing does not stop the others."""
        good = FakeEventSource({"M2": [(100, "5")]})

        async def fetch_page(mint_address, offset, first):
            if mint_address == "M1":
                raise UpstreamTransientError("HTTP error! status: 500")
            return await good.fetch_page(mint_address, offset, first)

        source = MagicMock()
        source.fetch_page = AsyncMock(side_effect=fetch_page)
        service = IngestionService(_directory(M1, M2), source, repo)

        results = {r.mint: r for r in await service.ingest_all()}

        assert not results["M1"].ok
        assert "500" in results["M1"].error
        assert results["M2"].ok
        assert results["M2"].new_transactions == 1

    @pytest.mark.asyncio
    async def test_list_failure_propagates(self, repo, source):
        directory = _directory(M1)
        directory.list_all = AsyncMock(side_effect=UpstreamTransientError("timeout"))
        service = IngestionService(directory, source, repo)

        with pytest.raises(UpstreamTransientError):
            await service.ingest_all()

    def test_ingest_result_ok(self):
        assert IngestResult(mint="M1", new_transactions=3).ok
        assert not IngestResult(mint="M1", error="boom").ok
