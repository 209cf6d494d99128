"""API request/response schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Lease lifecycle
# ============================================================================


class AllocateRequest(BaseModel):
    """Allocate request."""

    client_id: str = Field(..., min_length=1, description="Client identity, e.g. VM UUID")


class AllocateResponse(BaseModel):
    """Allocate response."""

    identifier: str


class LivenessRequest(BaseModel):
    """Liveness probe request."""

    client_id: str = Field(..., min_length=1)
    identifier: str = Field(..., min_length=1)


class LivenessResponse(BaseModel):
    """Liveness probe response."""

    ok: bool = True
    identifier: str
    last_seen: datetime


class ReleaseRequest(BaseModel):
    """Release request."""

    client_id: str = Field(..., min_length=1)
    identifier: str = Field(..., min_length=1)


class ReleaseResponse(BaseModel):
    """Release response."""

    status: str = "success"
    message: str = "Identifier released successfully"


class OwnershipConflictResponse(BaseModel):
    """Body returned when a client no longer owns its identifier."""

    error: str = "Identifier mismatch"
    expected_id: Optional[str] = Field(None, description="Current holder, null when free")
    your_id: str
    message: str = (
        "Your client_id does not match the current owner of this identifier. "
        "Triggering shutdown is recommended."
    )


# ============================================================================
# Queries
# ============================================================================


class IdentifierResponse(BaseModel):
    """Identifier with allocation status."""

    identifier: str
    locked_by: Optional[str] = None
    last_seen: Optional[datetime] = None
    allocated: bool


class AllocatedMapping(BaseModel):
    """Leased identifier and its holder."""

    identifier: str
    locked_by: str
    last_seen: datetime


class ClientDetailsResponse(BaseModel):
    """Lease held by a client."""

    client_id: str
    identifier: str
    last_seen: datetime


class IdentifierDetailsResponse(BaseModel):
    """Single identifier lookup."""

    identifier: str
    client_id: Optional[str] = None
    last_seen: Optional[datetime] = None


class StatsResponse(BaseModel):
    """Aggregate pool figures."""

    total_identifiers: int
    allocated_identifiers: int
    available_identifiers: int
    stale_identifiers: int


# ============================================================================
# Service
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ConfigResponse(BaseModel):
    """Operational configuration."""

    environment: str
    stale_timeout_seconds: float
    sweep_interval_seconds: float
    identifier_patterns: list[str]
    version: str


class MetricsResponse(BaseModel):
    """Metrics snapshot."""

    metrics: dict[str, Any]
    pool: StatsResponse
