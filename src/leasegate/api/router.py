"""REST API router."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from leasegate import __version__
from leasegate.api.deps import get_db_session
from leasegate.api.schemas import (
    AllocatedMapping,
    AllocateRequest,
    AllocateResponse,
    ClientDetailsResponse,
    ConfigResponse,
    HealthResponse,
    IdentifierDetailsResponse,
    IdentifierResponse,
    LivenessRequest,
    LivenessResponse,
    MetricsResponse,
    OwnershipConflictResponse,
    ReleaseRequest,
    ReleaseResponse,
    StatsResponse,
)
from leasegate.config import settings
from leasegate.engine import (
    ClientNotFound,
    IdentifierNotFound,
    LeaseManager,
    OwnershipConflict,
    PoolExhausted,
    PoolQueries,
    StoreUnavailable,
)
from leasegate.models import PoolCounts
from leasegate.observability.metrics import metrics

router = APIRouter(prefix="/v1")


def _unavailable(e: StoreUnavailable) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail=e.message,
        headers={"Retry-After": "1"},
    )


def _stats_response(counts: PoolCounts) -> StatsResponse:
    return StatsResponse(
        total_identifiers=counts.total,
        allocated_identifiers=counts.leased,
        available_identifiers=counts.free,
        stale_identifiers=counts.stale,
    )


# ============================================================================
# Health & Config
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/config", response_model=ConfigResponse)
async def get_config():
    """Get server configuration."""
    return ConfigResponse(
        environment=settings.env.value,
        stale_timeout_seconds=settings.stale_timeout_seconds,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        identifier_patterns=settings.identifier_patterns,
        version=__version__,
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(session: AsyncSession = Depends(get_db_session)):
    """Metrics snapshot with fresh pool gauges."""
    try:
        counts = await PoolQueries(session).stats()
    except StoreUnavailable as e:
        raise _unavailable(e)
    return MetricsResponse(metrics=metrics.snapshot(), pool=_stats_response(counts))


# ============================================================================
# Lease lifecycle
# ============================================================================


@router.post("/allocate", response_model=AllocateResponse)
async def allocate(
    request: AllocateRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Allocate an identifier, or return the one the client already holds."""
    try:
        identifier = await LeaseManager(session).allocate(request.client_id)
    except PoolExhausted:
        raise HTTPException(status_code=503, detail="No available identifiers")
    except StoreUnavailable as e:
        raise _unavailable(e)
    return AllocateResponse(identifier=identifier.value)


@router.post(
    "/liveness",
    response_model=LivenessResponse,
    responses={409: {"model": OwnershipConflictResponse}},
)
async def liveness(
    request: LivenessRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Renew the caller's lease."""
    try:
        identifier = await LeaseManager(session).renew(request.client_id, request.identifier)
    except IdentifierNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except OwnershipConflict as e:
        body = OwnershipConflictResponse(expected_id=e.actual_holder, your_id=e.client_id)
        return JSONResponse(status_code=409, content=body.model_dump())
    except StoreUnavailable as e:
        raise _unavailable(e)
    return LivenessResponse(identifier=identifier.value, last_seen=identifier.last_renewed_at)


@router.post("/release", response_model=ReleaseResponse)
async def release(
    request: ReleaseRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Release an identifier. Succeeds even if the caller no longer held it."""
    try:
        await LeaseManager(session).release(request.client_id, request.identifier)
    except StoreUnavailable as e:
        raise _unavailable(e)
    return ReleaseResponse()


# ============================================================================
# Queries
# ============================================================================


@router.get("/identifiers", response_model=list[IdentifierResponse])
async def list_identifiers(session: AsyncSession = Depends(get_db_session)):
    """List every identifier and its allocation status."""
    try:
        identifiers = await PoolQueries(session).list_identifiers()
    except StoreUnavailable as e:
        raise _unavailable(e)
    return [
        IdentifierResponse(
            identifier=i.value,
            locked_by=i.holder,
            last_seen=i.last_renewed_at,
            allocated=i.allocated,
        )
        for i in identifiers
    ]


@router.get("/allocated", response_model=list[AllocatedMapping])
async def list_allocated(session: AsyncSession = Depends(get_db_session)):
    """List leased identifiers and their holders."""
    try:
        leases = await PoolQueries(session).list_allocated()
    except StoreUnavailable as e:
        raise _unavailable(e)
    return [
        AllocatedMapping(
            identifier=lease.identifier,
            locked_by=lease.holder,
            last_seen=lease.last_renewed_at,
        )
        for lease in leases
    ]


@router.get("/client/{client_id}", response_model=ClientDetailsResponse)
async def client_details(
    client_id: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Get the identifier held by a client."""
    try:
        lease = await PoolQueries(session).get_client(client_id)
    except ClientNotFound:
        raise HTTPException(status_code=404, detail="Client not found")
    except StoreUnavailable as e:
        raise _unavailable(e)
    return ClientDetailsResponse(
        client_id=lease.holder,
        identifier=lease.identifier,
        last_seen=lease.last_renewed_at,
    )


@router.get("/identifier/{identifier}", response_model=IdentifierDetailsResponse)
async def identifier_details(
    identifier: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Get the holder of an identifier, if any."""
    try:
        record = await PoolQueries(session).get_identifier(identifier)
    except IdentifierNotFound:
        raise HTTPException(status_code=404, detail="Identifier not found")
    except StoreUnavailable as e:
        raise _unavailable(e)
    return IdentifierDetailsResponse(
        identifier=record.value,
        client_id=record.holder,
        last_seen=record.last_renewed_at,
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(session: AsyncSession = Depends(get_db_session)):
    """Aggregate pool figures."""
    try:
        counts = await PoolQueries(session).stats()
    except StoreUnavailable as e:
        raise _unavailable(e)
    return _stats_response(counts)
