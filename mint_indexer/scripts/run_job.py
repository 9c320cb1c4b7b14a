#!/usr/bin/env python3
"""
Mint Indexer Job Runner

Runs one ingest / aggregate / rebuild pass outside the service, against the
configured database and GraphQL endpoint (same environment variables as the
service).

Usage:
    python -m mint_indexer.scripts.run_job ingest --mint <address>
    python -m mint_indexer.scripts.run_job ingest --all
    python -m mint_indexer.scripts.run_job aggregate --mint <address> --period 1h
    python -m mint_indexer.scripts.run_job rebuild --all
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

from mint_indexer.aggregator import OHLCAggregator
from mint_indexer.app.config import settings
from mint_indexer.core.constants import ALL_RESOLUTIONS
from mint_indexer.core.errors import MintIndexerError
from mint_indexer.ingestion import IngestionService
from mint_indexer.persistence import CandleRepository, DatabasePool, TransactionRepository
from mint_indexer.upstream import GraphQLClient, MintDirectory, MintEventSource


logger = logging.getLogger("mint_indexer.scripts.run_job")


async def run(args: argparse.Namespace) -> dict:
    """Wire the engines, run the requested job, return a JSON-able summary."""
    if not settings.database_url:
        raise SystemExit("DATABASE_URL is required")
    if not settings.graphql_endpoint:
        raise SystemExit("GRAPHQL_ENDPOINT is required")

    pool = DatabasePool()
    client = GraphQLClient(settings.graphql_endpoint, timeout=settings.upstream_timeout_seconds)
    try:
        await pool.connect(
            settings.database_url,
            min_size=1,
            max_size=max(2, args.concurrency),
            command_timeout=settings.db_command_timeout_seconds,
            retries=settings.db_connect_retries,
            retry_delay=settings.db_connect_retry_delay_seconds,
        )
        await pool.initialize_schema()

        directory = MintDirectory(client)
        transaction_repo = TransactionRepository(pool)
        candle_repo = CandleRepository(pool)

        if args.job == "ingest":
            ingestion = IngestionService(
                directory,
                MintEventSource(client),
                transaction_repo,
                page_size=args.page_size,
                max_concurrency=args.concurrency,
            )
            if args.all:
                results = await ingestion.ingest_all()
                return {
                    "job": "ingest",
                    "results": [
                        {"mint": r.mint, "newTransactions": r.new_transactions, "error": r.error}
                        for r in results
                    ],
                }
            count = await ingestion.ingest(args.mint)
            return {"job": "ingest", "mint": args.mint, "newTransactions": count}

        aggregator = OHLCAggregator(
            directory, transaction_repo, candle_repo, max_concurrency=args.concurrency
        )
        if args.all:
            sweep = aggregator.rebuild_all if args.job == "rebuild" else aggregator.aggregate_all
            return {"job": args.job, "buckets": await sweep()}

        single = aggregator.rebuild if args.job == "rebuild" else aggregator.aggregate
        periods = await single(args.mint, args.period)
        return {"job": args.job, "mint": args.mint, "periods": [p.value for p in periods]}

    finally:
        await client.close()
        await pool.close()


def main():
    parser = argparse.ArgumentParser(
        description="Run a single mint indexer job",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m mint_indexer.scripts.run_job ingest --all
  python -m mint_indexer.scripts.run_job aggregate --mint <address> --period 5m
  python -m mint_indexer.scripts.run_job rebuild --mint <address>
        """,
    )

    parser.add_argument(
        "job",
        choices=["ingest", "aggregate", "rebuild"],
        help="Job to run",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--mint", type=str, help="Single mint address")
    target.add_argument("--all", action="store_true", help="Every registered mint")
    parser.add_argument(
        "--period",
        type=str,
        choices=[r.value for r in ALL_RESOLUTIONS],
        help="Single period for aggregate/rebuild (default: all six)",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=settings.ingest_page_size,
        help=f"Upstream page size for ingest (default: {settings.ingest_page_size})",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.sweep_concurrency,
        help=f"Mints processed in parallel for --all (default: {settings.sweep_concurrency})",
    )

    args = parser.parse_args()

    if args.period and args.job == "ingest":
        parser.error("--period only applies to aggregate/rebuild")
    if args.all and args.period:
        parser.error("--period cannot be combined with --all")

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    started = datetime.now(timezone.utc)
    try:
        summary = asyncio.run(run(args))
    except MintIndexerError as e:
        logger.error(f"{args.job} failed: {e}")
        sys.exit(1)

    summary["startedAt"] = started.isoformat()
    summary["durationSeconds"] = round((datetime.now(timezone.utc) - started).total_seconds(), 3)
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
