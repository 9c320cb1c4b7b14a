"""
Mint Indexer V0 API Endpoints

Read endpoints:
- GET /v0/mints - Registered mints
- GET /v0/transactions/{mint} - Stored transactions (newest first)
- GET /v0/ohlc/{mint} - Candles for one period (newest first)
- GET /v0/status/scheduler - Periodic job status

Admin endpoints (X-Admin-Key):
- POST /v0/transactions/fetch/{mint} - Ingest one mint now
  (also served at /v0/transaction/fetch/{mint}, the singular path older admin clients call)
- POST /v0/ohlc/generate/{mint} - Incremental aggregation for one mint
- POST /v0/ohlc/rebuild/{mint} - Delete and replay candles for one mint
- POST /v0/ohlc/generate-all - Incremental aggregation sweep
- POST /v0/ohlc/rebuild-all - Rebuild sweep
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ...core.errors import (
    InvalidResolutionError,
    MintNotFoundError,
    StorageError,
    UpstreamTransientError,
)
from ...core.types import Candle, Mint, Resolution, Transaction, parse_resolution, to_camel
from ..config import settings


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v0", tags=["v0"])

MintAddress = Annotated[
    str,
    Path(min_length=32, max_length=44, description="Mint address"),
]


# =============================================================================
# Response Models
# =============================================================================

class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MintsResponse(_ApiModel):
    """Response for /v0/mints."""

    mints: list[Mint]
    count: int


class TransactionsResponse(_ApiModel):
    """Response for /v0/transactions/{mint}."""

    mint: str
    transactions: list[Transaction]
    count: int


class CandlesResponse(_ApiModel):
    """Response for /v0/ohlc/{mint}."""

    mint: str
    period: Resolution
    candles: list[Candle]
    count: int


class FetchResponse(_ApiModel):
    """Response for /v0/transactions/fetch/{mint}."""

    mint: str
    new_transactions: int


class GenerateResponse(_ApiModel):
    """Response for /v0/ohlc/generate/{mint} and /v0/ohlc/rebuild/{mint}."""

    mint: str
    periods: list[Resolution] = Field(description="Periods that were written")


class SweepResponse(_ApiModel):
    """Response for the all-mints sweeps."""

    mode: str
    buckets: int = Field(description="Buckets written across all mints and periods")


class SchedulerStatusResponse(_ApiModel):
    """Response for /v0/status/scheduler."""

    enabled: bool
    jobs: dict[str, dict]
    timestamp: str


# =============================================================================
# Dependencies
# =============================================================================

def _require_state(request: Request, name: str, label: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{label} not initialized")
    return value


def get_directory(request: Request):
    """Get mint directory from app state."""
    return _require_state(request, "directory", "Mint directory")


def get_ingestion(request: Request):
    """Get ingestion service from app state."""
    return _require_state(request, "ingestion", "Ingestion service")


def get_aggregator(request: Request):
    """Get OHLC aggregator from app state."""
    return _require_state(request, "aggregator", "OHLC aggregator")


def get_transaction_repo(request: Request):
    """Get transaction repository from app state."""
    return _require_state(request, "transaction_repo", "Transaction store")


def get_candle_repo(request: Request):
    """Get candle repository from app state."""
    return _require_state(request, "candle_repo", "Candle store")


def verify_admin_key(
    x_admin_key: Annotated[Optional[str], Header(alias="X-Admin-Key")] = None,
) -> bool:
    """
    Verify admin API key for mutation endpoints.

    Requires X-Admin-Key header matching ADMIN_API_KEY environment variable.
    In non-production environments with no key configured, allows access.

    Raises:
        HTTPException 401 if key is required but missing
        HTTPException 403 if key is invalid
    """
    configured_key = settings.admin_api_key

    if not configured_key:
        if settings.environment == "production":
            logger.error("ADMIN_API_KEY not configured in production - rejecting request")
            raise HTTPException(
                status_code=503,
                detail="Admin API key not configured. Contact administrator."
            )
        logger.debug("Admin key check bypassed (non-production, no key configured)")
        return True

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="X-Admin-Key header required for mutation endpoints"
        )
    if x_admin_key != configured_key:
        logger.warning("Invalid admin key attempt")
        raise HTTPException(status_code=403, detail="Invalid admin key")
    return True


def _to_http_error(e: Exception, action: str) -> HTTPException:
    """Map service errors to HTTP responses."""
    if isinstance(e, MintNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidResolutionError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, UpstreamTransientError):
        logger.error(f"{action} failed (upstream): {e}")
        return HTTPException(status_code=502, detail=f"Upstream error: {e}")
    if isinstance(e, StorageError):
        logger.error(f"{action} failed (storage): {e}")
        return HTTPException(status_code=500, detail=f"Database error: {e}")
    logger.error(f"{action} failed: {type(e).__name__}: {e}")
    return HTTPException(status_code=500, detail="Internal server error")


async def _require_mint(directory, mint_address: str) -> Mint:
    mint = await directory.resolve(mint_address)
    if mint is None:
        raise MintNotFoundError(mint_address.strip())
    return mint


def _check_range(from_time: Optional[int], to_time: Optional[int]) -> None:
    if from_time is not None and to_time is not None and from_time > to_time:
        raise HTTPException(status_code=400, detail="from must not be after to")


# =============================================================================
# GET /v0/mints
# =============================================================================

@router.get("/mints", response_model=MintsResponse)
async def list_mints(directory=Depends(get_directory)) -> MintsResponse:
    """All mints known to the upstream registrar."""
    try:
        mints = await directory.list_all()
    except Exception as e:
        raise _to_http_error(e, "List mints")
    return MintsResponse(mints=mints, count=len(mints))


# =============================================================================
# GET /v0/transactions/{mint}
# =============================================================================

@router.get("/transactions/{mint_address}", response_model=TransactionsResponse)
async def get_transactions(
    mint_address: MintAddress,
    from_time: Annotated[Optional[int], Query(alias="from", ge=0)] = None,
    to_time: Annotated[Optional[int], Query(alias="to", ge=0)] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    directory=Depends(get_directory),
    transaction_repo=Depends(get_transaction_repo),
) -> TransactionsResponse:
    """Stored transactions for a mint, newest first."""
    _check_range(from_time, to_time)
    try:
        mint = await _require_mint(directory, mint_address)
        transactions = await transaction_repo.find_by_mint(
            mint.address, from_time=from_time, to_time=to_time, limit=limit
        )
    except Exception as e:
        raise _to_http_error(e, f"Fetch transactions for {mint_address}")

    return TransactionsResponse(mint=mint.address, transactions=transactions, count=len(transactions))


# =============================================================================
# GET /v0/ohlc/{mint}
# =============================================================================

@router.get("/ohlc/{mint_address}", response_model=CandlesResponse)
async def get_ohlc(
    mint_address: MintAddress,
    period: Annotated[str, Query(description="5m, 15m, 30m, 1h, 4h or 1d")],
    from_time: Annotated[Optional[int], Query(alias="from", ge=0)] = None,
    to_time: Annotated[Optional[int], Query(alias="to", ge=0)] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    directory=Depends(get_directory),
    candle_repo=Depends(get_candle_repo),
) -> CandlesResponse:
    """Candles for a mint and period, newest first."""
    _check_range(from_time, to_time)
    try:
        resolution = parse_resolution(period)
        mint = await _require_mint(directory, mint_address)
        candles = await candle_repo.find_in_range(
            mint.address, resolution, from_time=from_time, to_time=to_time, limit=limit
        )
    except Exception as e:
        raise _to_http_error(e, f"Fetch OHLC for {mint_address}")

    return CandlesResponse(mint=mint.address, period=resolution, candles=candles, count=len(candles))


# =============================================================================
# GET /v0/status/scheduler
# =============================================================================

@router.get("/status/scheduler", response_model=SchedulerStatusResponse)
async def scheduler_status(request: Request) -> SchedulerStatusResponse:
    """Per-job state of the periodic ingest/aggregate sweeps."""
    scheduler = getattr(request.app.state, "scheduler", None)
    return SchedulerStatusResponse(
        enabled=scheduler is not None,
        jobs=scheduler.get_status() if scheduler else {},
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# =============================================================================
# Admin: single mint
# =============================================================================

@router.post("/transactions/fetch/{mint_address}", response_model=FetchResponse)
@router.post("/transaction/fetch/{mint_address}", response_model=FetchResponse, include_in_schema=False)
async def fetch_transactions(
    mint_address: MintAddress,
    ingestion=Depends(get_ingestion),
    _admin_verified: Annotated[bool, Depends(verify_admin_key)] = True,
) -> FetchResponse:
    """
    Ingest new transactions for one mint now.

    Unregistered mints return 0 new transactions rather than 404.
    """
    logger.info(f"Manual data fetch triggered for mint: {mint_address}")
    try:
        count = await ingestion.ingest(mint_address)
    except Exception as e:
        raise _to_http_error(e, f"Fetch data for {mint_address}")
    return FetchResponse(mint=mint_address, new_transactions=count)


@router.post("/ohlc/generate/{mint_address}", response_model=GenerateResponse)
async def generate_ohlc(
    mint_address: MintAddress,
    period: Annotated[Optional[str], Query(description="Single period; all six if omitted")] = None,
    aggregator=Depends(get_aggregator),
    _admin_verified: Annotated[bool, Depends(verify_admin_key)] = True,
) -> GenerateResponse:
    """Incremental candle generation for one mint."""
    logger.info(f"Manual OHLC generation triggered for mint: {mint_address} period={period or 'all'}")
    try:
        periods = await aggregator.aggregate(mint_address, period)
    except Exception as e:
        raise _to_http_error(e, f"Generate OHLC for {mint_address}")
    return GenerateResponse(mint=mint_address, periods=periods)


@router.post("/ohlc/rebuild/{mint_address}", response_model=GenerateResponse)
async def rebuild_ohlc(
    mint_address: MintAddress,
    period: Annotated[Optional[str], Query(description="Single period; all six if omitted")] = None,
    aggregator=Depends(get_aggregator),
    _admin_verified: Annotated[bool, Depends(verify_admin_key)] = True,
) -> GenerateResponse:
    """Delete and replay candles for one mint from its full transaction history."""
    logger.info(f"Manual OHLC rebuild triggered for mint: {mint_address} period={period or 'all'}")
    try:
        periods = await aggregator.rebuild(mint_address, period)
    except Exception as e:
        raise _to_http_error(e, f"Rebuild OHLC for {mint_address}")
    return GenerateResponse(mint=mint_address, periods=periods)


# =============================================================================
# Admin: sweeps
# =============================================================================

@router.post("/ohlc/generate-all", response_model=SweepResponse)
async def generate_all_ohlc(
    aggregator=Depends(get_aggregator),
    _admin_verified: Annotated[bool, Depends(verify_admin_key)] = True,
) -> SweepResponse:
    """Incremental candle generation for every mint and period."""
    try:
        total = await aggregator.aggregate_all()
    except Exception as e:
        raise _to_http_error(e, "Generate OHLC for all mints")
    return SweepResponse(mode="incremental", buckets=total)


@router.post("/ohlc/rebuild-all", response_model=SweepResponse)
async def rebuild_all_ohlc(
    aggregator=Depends(get_aggregator),
    _admin_verified: Annotated[bool, Depends(verify_admin_key)] = True,
) -> SweepResponse:
    """
    Rebuild every mint and period.

    Each series is deleted and replayed under its lock, so running this
    while the scheduler is active does not double count.
    """
    try:
        total = await aggregator.rebuild_all()
    except Exception as e:
        raise _to_http_error(e, "Rebuild OHLC for all mints")
    return SweepResponse(mode="rebuild", buckets=total)
