"""
Ingestion Service

Pulls new mint events from the upstream source and stores them as priced
transactions.

Usage:
    service = IngestionService(directory, event_source, transaction_repo)
    count = await service.ingest("So11111111111111111111111111111111111111112")
    results = await service.ingest_all()
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..core.constants import DEFAULT_PAGE_SIZE, DEFAULT_SWEEP_CONCURRENCY
from ..core.errors import StorageError, UpstreamTransientError
from ..core.locks import KeyedLock
from ..core.metrics import record_ingest_failure, record_ingested, record_sweep
from ..core.pricing import build_transaction
from ..core.types import Mint, Transaction

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of ingesting one mint during a sweep."""

    mint: str
    new_transactions: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IngestionService:
    """
    Incremental, resumable ingestion of mint transactions.

    The upstream returns events newest first. Ingestion walks pages from
    offset 0 and stops at the first event at or before the latest stored
    time, so each run only touches events it has not seen.

    Runs for the same mint are serialized; different mints run concurrently
    (bounded by max_concurrency during sweeps). Duplicate inserts are no-ops,
    so an overlapping or repeated run never double-stores an event.
    """

    def __init__(
        self,
        directory,
        event_source,
        transaction_repo,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_concurrency: int = DEFAULT_SWEEP_CONCURRENCY,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.directory = directory
        self.event_source = event_source
        self.transaction_repo = transaction_repo
        self.page_size = page_size
        self.max_concurrency = max(1, max_concurrency)
        self._locks = KeyedLock()

    async def ingest(self, mint_address: str, page_size: Optional[int] = None) -> int:
        """
        Fetch and store new transactions for one mint.

        Args:
            mint_address: Mint address (trimmed before lookup)
            page_size: Events per upstream page (default: service page size)

        Returns:
            Number of newly stored transactions; 0 for unregistered mints

        Raises:
            UpstreamTransientError: upstream transport/protocol failure
            StorageError: transaction store failure
        """
        mint = await self.directory.resolve(mint_address)
        if mint is None:
            logger.info(f"Mint {mint_address.strip()} not registered - nothing to ingest")
            return 0
        return await self.ingest_mint(mint, page_size)

    async def ingest_mint(self, mint: Mint, page_size: Optional[int] = None) -> int:
        """Ingest an already-resolved mint."""
        page_size = page_size or self.page_size
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")

        async with self._locks.hold(mint.address):
            count = await self._fetch_new(mint, page_size)

        record_ingested(count)
        logger.info(f"Fetched {count} new transactions for mint {mint.address}")
        return count

    async def _fetch_new(self, mint: Mint, page_size: int) -> int:
        """
        Page through upstream events until the resumption cutoff, then store
        them oldest first.

        The stored maximum timestamp only advances over a contiguous stored
        prefix, so a run that fails partway resumes without gaps.
        """
        latest_timestamp = await self.transaction_repo.get_latest_timestamp(mint.address)
        if latest_timestamp is None:
            latest_timestamp = 0

        offset = 0
        pending: list[Transaction] = []

        while True:
            events = await self.event_source.fetch_page(mint.address, offset, page_size)
            if not events:
                break

            reached_known = False
            for event in events:
                if event.timestamp <= latest_timestamp:
                    reached_known = True
                    break
                pending.append(build_transaction(mint, event))

            if reached_known or len(events) < page_size:
                break

            offset += page_size
            logger.debug(f"{mint.address}: page done, offset={offset}, {len(pending)} pending")

        pending.sort(key=lambda tx: tx.timestamp)
        new_count = 0
        for tx in pending:
            if await self.transaction_repo.insert_if_absent(tx):
                new_count += 1

        return new_count

    async def ingest_all(self) -> list[IngestResult]:
        """
        Ingest every registered mint.

        A failure on one mint is captured in its result and does not stop
        the others.

        Returns:
            One IngestResult per registered mint

        Raises:
            UpstreamTransientError: if the mint list itself cannot be fetched
        """
        start = time.time()
        mints = await self.directory.list_all()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _worker(mint: Mint) -> IngestResult:
            async with semaphore:
                try:
                    count = await self.ingest_mint(mint)
                    return IngestResult(mint=mint.address, new_transactions=count)
                except UpstreamTransientError as e:
                    record_ingest_failure("upstream")
                    logger.error(f"Failed to fetch data for mint {mint.address}: {e}")
                    return IngestResult(mint=mint.address, error=str(e))
                except StorageError as e:
                    record_ingest_failure("storage")
                    logger.error(f"Failed to store data for mint {mint.address}: {e}")
                    return IngestResult(mint=mint.address, error=str(e))
                except Exception as e:
                    record_ingest_failure("other")
                    logger.error(f"Unexpected error ingesting mint {mint.address}: {type(e).__name__}: {e}")
                    return IngestResult(mint=mint.address, error=str(e))

        results = await asyncio.gather(*[_worker(mint) for mint in mints])

        duration = time.time() - start
        record_sweep("ingest", duration)
        total = sum(r.new_transactions or 0 for r in results)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            f"Ingest sweep complete: {len(results)} mints, {total} new transactions, "
            f"{failed} failed ({duration:.2f}s)"
        )
        return list(results)
