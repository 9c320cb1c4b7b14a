"""
Prometheus Metrics Endpoint

Exposes /metrics endpoint in Prometheus text format.
"""

from fastapi import APIRouter, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from ...core.metrics import REGISTRY, set_service_info
from ..config import settings


router = APIRouter()


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    """
    Prometheus metrics endpoint.

    Metrics exposed:
    - mint_transactions_ingested_total
    - mint_ingest_failures_total{reason}
    - mint_candles_upserted_total{period, mode}
    - mint_aggregate_failures_total{period, mode}
    - mint_sweep_duration_seconds{job}
    - mint_scheduler_skipped_runs_total{job}
    - mint_db_writes_total{table, status}
    - mint_db_write_latency_seconds{table}
    - mint_indexer_service_info{version, environment}
    """
    # Set service info on each scrape (idempotent)
    set_service_info(settings.service_version, settings.environment)

    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )
