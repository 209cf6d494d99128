"""LeaseGate core engine - allocation, renewal, release and reclamation."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.config import settings
from leasegate.db.repositories import IdentifierRepository
from leasegate.engine.errors import (
    HolderAlreadyLeased,
    IdentifierNotFound,
    OwnershipConflict,
    PoolExhausted,
    StoreUnavailable,
)
from leasegate.models import Identifier, RenewStatus
from leasegate.observability.metrics import metrics
from leasegate.utils.time import utc_now

logger = logging.getLogger("leasegate.engine")

Clock = Callable[[], datetime]

# Claims lost to a concurrent request from the same client before giving up
_MAX_CLAIM_ATTEMPTS = 3


@asynccontextmanager
async def store_guard(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Roll back and surface storage failures as StoreUnavailable."""
    try:
        yield
    except SQLAlchemyError as e:
        await session.rollback()
        metrics.inc_counter("store.errors")
        logger.error(f"Lease store failure during {operation}: {e}", exc_info=True)
        raise StoreUnavailable(operation, str(e)) from e


class LeaseManager:
    """
    Client-facing lease state machine.

    Free --allocate--> Leased(holder) --renew(holder)--> Leased(holder)
    Leased(holder) --release(holder) | reclaim--> Free

    Holds no locks of its own: every transition is a single guarded
    statement in IdentifierRepository, committed inside store_guard so a
    failed commit surfaces as StoreUnavailable like any other store error.
    """

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

    async def allocate(self, client_id: str) -> Identifier:
        """
        Lease an identifier to client_id.

        Idempotent per client: a client that already holds an identifier
        gets the same one back and nothing changes.

        Raises:
            PoolExhausted: No free identifier is left.
            StoreUnavailable: The store failed.
        """
        async with store_guard(self.session, "allocate"):
            for _ in range(_MAX_CLAIM_ATTEMPTS):
                existing = await self.store.find_by_holder(client_id)
                if existing:
                    logger.info(
                        f"Client {client_id} already allocated identifier {existing.value}"
                    )
                    metrics.inc_counter("leases.reused")
                    return existing

                try:
                    claimed = await self.store.try_claim_any_free(client_id, self.clock())
                except HolderAlreadyLeased:
                    # A duplicate request for this client committed first
                    await self.session.rollback()
                    continue

                await self.session.commit()

                if claimed is None:
                    logger.warning(
                        f"Allocation failed: No available identifiers for client {client_id}"
                    )
                    metrics.inc_counter("leases.exhausted")
                    raise PoolExhausted(client_id)

                logger.info(
                    f"New identifier allocated: ClientID={client_id}, Identifier={claimed.value}"
                )
                metrics.inc_counter("leases.allocated")
                return claimed

        raise StoreUnavailable("allocate", f"claim contention for client {client_id}")

    async def renew(self, client_id: str, identifier: str) -> Identifier:
        """
        Prove liveness for a held identifier.

        Raises:
            IdentifierNotFound: identifier is not in the pool.
            OwnershipConflict: identifier is free or held by someone else.
                The caller's lease is gone and it should stop using it.
            StoreUnavailable: The store failed.
        """
        async with store_guard(self.session, "renew"):
            result = await self.store.renew(identifier, client_id, self.clock())
            await self.session.commit()

        if result.status == RenewStatus.NOT_FOUND:
            logger.warning(f"Liveness probe failed: Identifier {identifier} not found")
            raise IdentifierNotFound(identifier)

        if result.status == RenewStatus.OWNER_MISMATCH:
            logger.warning(
                f"Liveness probe mismatch: Identifier {identifier} locked by "
                f"{result.actual_holder}, but {client_id} attempted to claim it"
            )
            metrics.inc_counter("leases.conflicts")
            raise OwnershipConflict(identifier, client_id, result.actual_holder)

        logger.debug(f"Liveness updated: Identifier={identifier}, ClientID={client_id}")
        metrics.inc_counter("leases.renewed")
        return result.identifier

    async def release(self, client_id: str, identifier: str) -> bool:
        """
        Voluntarily give an identifier back.

        Succeeds whether or not client_id still held it; the return value
        only reports whether anything changed.
        """
        async with store_guard(self.session, "release"):
            released = await self.store.release(identifier, client_id)
            await self.session.commit()

        if released:
            logger.info(f"Client {client_id} manually released identifier {identifier}")
            metrics.inc_counter("leases.released")
        else:
            logger.info(
                f"Release ignored: Identifier {identifier} is not held by {client_id}"
            )
        return released

    async def reclaim_stale(
        self,
        now: datetime | None = None,
        stale_timeout: timedelta | None = None,
    ) -> int:
        """
        Free every lease not renewed within stale_timeout of now.

        A lease renewed exactly at ``now - stale_timeout`` survives.
        """
        now = now if now is not None else self.clock()
        stale_timeout = stale_timeout if stale_timeout is not None else self.stale_timeout
        threshold = now - stale_timeout

        async with store_guard(self.session, "reclaim_stale"):
            count = await self.store.reclaim_expired(threshold)
            await self.session.commit()

        if count > 0:
            logger.info(f"Expired {count} stale client(s) due to timeout ({stale_timeout})")
            metrics.inc_counter("leases.reclaimed", count)
        return count
