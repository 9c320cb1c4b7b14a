"""
Prometheus Metrics for Mint Indexer

Exposes operational metrics for monitoring and alerting.

Metrics:
- Ingestion counters (transactions stored, per-mint failures)
- Aggregation counters (candles upserted, failures per period)
- Sweep and scheduler metrics (duration, skipped runs)
- Database write latency
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create a custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry()


# =============================================================================
# Ingestion Metrics
# =============================================================================

# New transactions stored (duplicates excluded)
TRANSACTIONS_INGESTED_TOTAL = Counter(
    "mint_transactions_ingested_total",
    "Total new mint transactions stored",
    registry=REGISTRY,
)

# Per-mint ingestion failures
INGEST_FAILURES_TOTAL = Counter(
    "mint_ingest_failures_total",
    "Total per-mint ingestion failures",
    ["reason"],  # upstream, storage, other
    registry=REGISTRY,
)


# =============================================================================
# Aggregation Metrics
# =============================================================================

CANDLES_UPSERTED_TOTAL = Counter(
    "mint_candles_upserted_total",
    "Total candle buckets merge-upserted",
    ["period", "mode"],  # mode: incremental, rebuild
    registry=REGISTRY,
)

AGGREGATE_FAILURES_TOTAL = Counter(
    "mint_aggregate_failures_total",
    "Total per-mint/period aggregation failures",
    ["period", "mode"],
    registry=REGISTRY,
)


# =============================================================================
# Sweep / Scheduler Metrics
# =============================================================================

SWEEP_DURATION = Histogram(
    "mint_sweep_duration_seconds",
    "Duration of all-mint sweeps",
    ["job"],
    buckets=[0.5, 1, 5, 15, 30, 60, 120, 300, 600],
    registry=REGISTRY,
)

SCHEDULER_SKIPPED_TOTAL = Counter(
    "mint_scheduler_skipped_runs_total",
    "Scheduled runs skipped because the previous run was still in flight",
    ["job"],
    registry=REGISTRY,
)


# =============================================================================
# Database Metrics
# =============================================================================

DB_WRITES_TOTAL = Counter(
    "mint_db_writes_total",
    "Total database write operations",
    ["table", "status"],  # status: success, error
    registry=REGISTRY,
)

DB_WRITE_LATENCY = Histogram(
    "mint_db_write_latency_seconds",
    "Database write latency in seconds",
    ["table"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
    registry=REGISTRY,
)


# =============================================================================
# Service Info Metrics
# =============================================================================

SERVICE_INFO = Gauge(
    "mint_indexer_service_info",
    "Service information",
    ["version", "environment"],
    registry=REGISTRY,
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_ingested(count: int) -> None:
    """Record newly stored transactions."""
    if count > 0:
        TRANSACTIONS_INGESTED_TOTAL.inc(count)


def record_ingest_failure(reason: str) -> None:
    """Record a per-mint ingestion failure."""
    INGEST_FAILURES_TOTAL.labels(reason=reason).inc()


def record_candles_upserted(period: str, mode: str, count: int) -> None:
    """Record merge-upserted candle buckets."""
    if count > 0:
        CANDLES_UPSERTED_TOTAL.labels(period=period, mode=mode).inc(count)


def record_aggregate_failure(period: str, mode: str) -> None:
    """Record a per-mint/period aggregation failure."""
    AGGREGATE_FAILURES_TOTAL.labels(period=period, mode=mode).inc()


def record_sweep(job: str, duration_seconds: float) -> None:
    """Record an all-mint sweep duration."""
    SWEEP_DURATION.labels(job=job).observe(duration_seconds)


def record_scheduler_skip(job: str) -> None:
    """Record a skipped scheduled run."""
    SCHEDULER_SKIPPED_TOTAL.labels(job=job).inc()


def record_db_write(table: str, success: bool, latency_seconds: float) -> None:
    """Record database write metrics."""
    status = "success" if success else "error"
    DB_WRITES_TOTAL.labels(table=table, status=status).inc()
    if success:
        DB_WRITE_LATENCY.labels(table=table).observe(latency_seconds)


def set_service_info(version: str, environment: str) -> None:
    """Set service info gauge."""
    SERVICE_INFO.labels(version=version, environment=environment).set(1)
