"""
Mint Indexer Service

Pulls mint events from the upstream GraphQL source and maintains
multi-resolution OHLCV candles (5m, 15m, 30m, 1h, 4h, 1d) per mint.

API Endpoints:
- GET /health - Service health check
- GET /v0/mints - Registered mints
- GET /v0/transactions/{mint} - Stored transactions
- GET /v0/ohlc/{mint} - OHLCV candles
- GET /v0/status/scheduler - Periodic job status
- POST /v0/... - Admin fetch / generate / rebuild
- GET /metrics - Prometheus metrics endpoint
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .routes import health, metrics, v0
from .routes.health import clear_health_checks, register_health_check
from ..aggregator import OHLCAggregator
from ..ingestion import IngestionService
from ..persistence import (
    CandleRepository,
    DatabasePool,
    InMemoryCandleRepository,
    InMemoryTransactionRepository,
    TransactionRepository,
)
from ..scheduler import SchedulerService
from ..upstream import GraphQLClient, MintDirectory, MintEventSource

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances for app state
_db_pool: Optional[DatabasePool] = None
_graphql_client: Optional[GraphQLClient] = None
_scheduler: Optional[SchedulerService] = None


async def _connect_database() -> Optional[DatabasePool]:
    """Connect (with startup retries) and create the schema."""
    pool = DatabasePool()
    try:
        await pool.connect(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout_seconds,
            retries=settings.db_connect_retries,
            retry_delay=settings.db_connect_retry_delay_seconds,
        )
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        return None

    if not await pool.initialize_schema():
        logger.warning("Schema initialization returned False - tables may not exist")
    return pool


async def _database_health() -> dict:
    if _db_pool is None:
        return {"status": "degraded", "message": "In-memory persistence (data is not durable)"}
    if await _db_pool.check_health():
        return {"status": "healthy", "message": "Connected"}
    return {"status": "unhealthy", "message": "Database unreachable"}


async def _scheduler_health() -> dict:
    if _scheduler is None:
        return {"status": "degraded", "message": "Scheduler disabled"}
    if not _scheduler.running:
        return {"status": "unhealthy", "message": "Scheduler jobs not running"}
    failing = [name for name, s in _scheduler.get_status().items() if s["lastError"]]
    if failing:
        return {"status": "degraded", "message": f"Last run failed: {', '.join(failing)}"}
    return {"status": "healthy", "message": "ingest and aggregate jobs scheduled"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of:
    - Database connection pool (or in-memory stores)
    - Upstream GraphQL client
    - Ingestion and aggregation engines
    - Periodic scheduler
    """
    global _db_pool, _graphql_client, _scheduler

    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    # Stores
    transaction_repo = None
    candle_repo = None
    if settings.database_url:
        _db_pool = await _connect_database()
        if _db_pool:
            transaction_repo = TransactionRepository(_db_pool)
            candle_repo = CandleRepository(_db_pool)
            logger.info("Repositories initialized (transactions + ohlc_data)")
        else:
            logger.error("Failed to connect to database - falling back to in-memory stores")
    else:
        logger.warning("No DATABASE_URL configured - using in-memory stores")

    if transaction_repo is None:
        transaction_repo = InMemoryTransactionRepository()
        candle_repo = InMemoryCandleRepository()

    # Engines
    directory = None
    ingestion = None
    aggregator = None
    if settings.graphql_endpoint:
        _graphql_client = GraphQLClient(
            settings.graphql_endpoint,
            timeout=settings.upstream_timeout_seconds,
        )
        directory = MintDirectory(_graphql_client)
        ingestion = IngestionService(
            directory,
            MintEventSource(_graphql_client),
            transaction_repo,
            page_size=settings.ingest_page_size,
            max_concurrency=settings.sweep_concurrency,
        )
        aggregator = OHLCAggregator(
            directory,
            transaction_repo,
            candle_repo,
            max_concurrency=settings.sweep_concurrency,
        )
        logger.info(f"Engines initialized (upstream: {settings.graphql_endpoint})")

        if settings.scheduler_enabled:
            _scheduler = SchedulerService(
                ingestion,
                aggregator,
                ingest_interval=settings.ingest_interval_seconds,
                aggregate_interval=settings.aggregate_interval_seconds,
            )
            _scheduler.start()
    else:
        logger.warning("No GRAPHQL_ENDPOINT configured - ingestion and aggregation disabled")

    register_health_check("database", _database_health)
    register_health_check("scheduler", _scheduler_health)

    logger.info("Service startup complete")

    # Store references on app.state for route access
    app.state.db_pool = _db_pool
    app.state.transaction_repo = transaction_repo
    app.state.candle_repo = candle_repo
    app.state.directory = directory
    app.state.ingestion = ingestion
    app.state.aggregator = aggregator
    app.state.scheduler = _scheduler

    yield

    # Shutdown
    logger.info("Shutting down service...")

    if _scheduler:
        await _scheduler.stop()
        _scheduler = None

    if _graphql_client:
        await _graphql_client.close()
        _graphql_client = None

    if _db_pool:
        await _db_pool.close()
        _db_pool = None

    clear_health_checks()

    logger.info("Service shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Mint Indexer",
    description="Mint transaction ingestion and multi-resolution OHLCV candles",
    version=settings.service_version,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "local" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(v0.router, tags=["v0-api"])
app.include_router(metrics.router, tags=["metrics"])


@app.get("/")
async def root() -> dict:
    """Root endpoint - service info."""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mint_indexer.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "local",
    )
