"""Identifier model - one slot in the fixed pool."""

from datetime import datetime, timedelta

from pydantic import BaseModel, model_validator

from leasegate.models.enums import RenewStatus
from leasegate.utils.time import utc_now


class Identifier(BaseModel):
    """An identifier and its current holder, if any."""

    value: str
    holder: str | None = None
    last_renewed_at: datetime | None = None

    @model_validator(mode="after")
    def check_holder_timestamp_pairing(self) -> "Identifier":
        if (self.holder is None) != (self.last_renewed_at is None):
            raise ValueError("holder and last_renewed_at must be set together")
        return self

    @property
    def allocated(self) -> bool:
        return self.holder is not None

    def is_stale(self, stale_timeout: timedelta, now: datetime | None = None) -> bool:
        """Check whether the holder missed its renewal deadline.

        A renewal exactly at ``now - stale_timeout`` is still live.
        """
        if self.last_renewed_at is None:
            return False
        if now is None:
            now = utc_now()
        return self.last_renewed_at < now - stale_timeout

    def to_lease(self) -> "Lease | None":
        if self.holder is None or self.last_renewed_at is None:
            return None
        return Lease(
            holder=self.holder,
            identifier=self.value,
            last_renewed_at=self.last_renewed_at,
        )


class Lease(BaseModel):
    """Derived view of a leased identifier."""

    holder: str
    identifier: str
    last_renewed_at: datetime


class RenewResult(BaseModel):
    """Result of a store-level renewal."""

    status: RenewStatus
    identifier: Identifier | None = None
    actual_holder: str | None = None


class PoolCounts(BaseModel):
    """Aggregate pool figures."""

    total: int
    leased: int
    free: int
    stale: int
