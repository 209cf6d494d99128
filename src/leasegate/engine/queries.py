"""Read-only views over the identifier pool."""

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.config import settings
from leasegate.db.repositories import IdentifierRepository
from leasegate.engine.core import Clock, store_guard
from leasegate.engine.errors import ClientNotFound, IdentifierNotFound
from leasegate.models import Identifier, Lease, PoolCounts
from leasegate.observability.metrics import metrics
from leasegate.utils.time import utc_now


class PoolQueries:
    """Listing, lookups and aggregate counts. Never mutates the store."""

    def __init__(
        self,
        session: AsyncSession,
        stale_timeout: timedelta | None = None,
        clock: Clock = utc_now,
    ):
        self.session = session
        self.store = IdentifierRepository(session)
        self.stale_timeout = stale_timeout if stale_timeout is not None else settings.stale_timeout
        self.clock = clock

    async def list_identifiers(self) -> list[Identifier]:
        async with store_guard(self.session, "list_identifiers"):
            return await self.store.list_all()

    async def list_allocated(self) -> list[Lease]:
        async with store_guard(self.session, "list_allocated"):
            leased = await self.store.list_leased()
        return [identifier.to_lease() for identifier in leased]

    async def get_client(self, client_id: str) -> Lease:
        """Get the lease held by a client."""
        async with store_guard(self.session, "get_client"):
            identifier = await self.store.find_by_holder(client_id)
        if identifier is None:
            raise ClientNotFound(client_id)
        return identifier.to_lease()

    async def get_identifier(self, value: str) -> Identifier:
        """Get an identifier, free or leased."""
        async with store_guard(self.session, "get_identifier"):
            identifier = await self.store.find_by_value(value)
        if identifier is None:
            raise IdentifierNotFound(value)
        return identifier

    async def stats(self) -> PoolCounts:
        """Pool figures; stale is evaluated against the current time."""
        threshold = self.clock() - self.stale_timeout
        async with store_guard(self.session, "stats"):
            counts = await self.store.counts(threshold)

        metrics.set_gauge("pool.total", counts.total)
        metrics.set_gauge("pool.leased", counts.leased)
        metrics.set_gauge("pool.free", counts.free)
        metrics.set_gauge("pool.stale", counts.stale)
        return counts
