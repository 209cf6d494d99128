"""Database repositories for LeaseGate entities."""

from datetime import datetime
from typing import Iterable

from sqlalchemy import Row, case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.db.tables import IdentifierTable
from leasegate.models import Identifier, PoolCounts, RenewResult, RenewStatus
from leasegate.utils.time import ensure_utc

# Plain column rows, so reads never come from a stale identity map
_COLUMNS = (
    IdentifierTable.value,
    IdentifierTable.holder,
    IdentifierTable.last_renewed_at,
)


class IdentifierRepository:
    """Repository for identifier leases.

    Every mutation is a single guarded statement, so concurrent callers
    never observe an intermediate state and a failed statement leaves
    nothing half-written.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def seed(self, values: Iterable[str]) -> int:
        """Insert identifiers as free, ignoring ones already present.

        Insertion order of new values is preserved; it is also the order
        in which free identifiers are handed out.
        """
        wanted = list(dict.fromkeys(values))
        if not wanted:
            return 0

        result = await self.session.execute(
            select(IdentifierTable.value).where(IdentifierTable.value.in_(wanted))
        )
        existing = set(result.scalars().all())
        missing = [value for value in wanted if value not in existing]
        if not missing:
            return 0

        insert = pg_insert if self.session.bind.dialect.name == "postgresql" else sqlite_insert
        for value in missing:
            await self.session.execute(
                insert(IdentifierTable)
                .values(value=value)
                .on_conflict_do_nothing(index_elements=[IdentifierTable.value])
            )
        return len(missing)

    async def find_by_holder(self, holder: str) -> Identifier | None:
        """Get the identifier currently leased to a holder."""
        result = await self.session.execute(
            select(*_COLUMNS).where(IdentifierTable.holder == holder)
        )
        row = result.one_or_none()
        return self._row_to_model(row) if row else None

    async def find_by_value(self, value: str) -> Identifier | None:
        """Get an identifier by value."""
        result = await self.session.execute(
            select(*_COLUMNS).where(IdentifierTable.value == value)
        )
        row = result.one_or_none()
        return self._row_to_model(row) if row else None

    async def try_claim_any_free(self, holder: str, now: datetime) -> Identifier | None:
        """
        Atomically lease the oldest free identifier to holder.

        The candidate is picked and updated in one statement. On PostgreSQL
        the subquery locks with SKIP LOCKED so concurrent claimers move on
        to the next free row; SQLite serializes writers on the database
        lock. The ``holder IS NULL`` guard is rechecked at update time.

        Raises:
            HolderAlreadyLeased: A concurrent claim for the same holder won.
        """
        free_id = (
            select(IdentifierTable.id)
            .where(IdentifierTable.holder.is_(None))
            .order_by(IdentifierTable.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(IdentifierTable)
            .where(IdentifierTable.id == free_id, IdentifierTable.holder.is_(None))
            .values(holder=holder, last_renewed_at=ensure_utc(now))
            .returning(*_COLUMNS)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.session.execute(stmt)
            row = result.one_or_none()
        except IntegrityError as e:
            # Unique holder index: this client already holds an identifier
            from leasegate.engine.errors import HolderAlreadyLeased
            raise HolderAlreadyLeased(holder) from e

        if row is None:
            return None
        return self._row_to_model(row)

    async def renew(self, value: str, holder: str, now: datetime) -> RenewResult:
        """Refresh last_renewed_at if, and only if, holder owns the identifier."""
        now = ensure_utc(now)
        result = await self.session.execute(
            update(IdentifierTable)
            .where(IdentifierTable.value == value, IdentifierTable.holder == holder)
            .values(last_renewed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount > 0:
            return RenewResult(
                status=RenewStatus.OK,
                identifier=Identifier(value=value, holder=holder, last_renewed_at=now),
                actual_holder=holder,
            )

        current = await self.find_by_value(value)
        if current is None:
            return RenewResult(status=RenewStatus.NOT_FOUND)
        return RenewResult(
            status=RenewStatus.OWNER_MISMATCH,
            identifier=current,
            actual_holder=current.holder,
        )

    async def release(self, value: str, holder: str) -> bool:
        """Free the identifier if holder still owns it."""
        result = await self.session.execute(
            update(IdentifierTable)
            .where(IdentifierTable.value == value, IdentifierTable.holder == holder)
            .values(holder=None, last_renewed_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def reclaim_expired(self, threshold: datetime) -> int:
        """Free every lease last renewed strictly before threshold."""
        result = await self.session.execute(
            update(IdentifierTable)
            .where(
                IdentifierTable.holder.is_not(None),
                IdentifierTable.last_renewed_at < ensure_utc(threshold),
            )
            .values(holder=None, last_renewed_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_all(self) -> list[Identifier]:
        """List every identifier in allocation order."""
        result = await self.session.execute(
            select(*_COLUMNS).order_by(IdentifierTable.id.asc())
        )
        return [self._row_to_model(r) for r in result.all()]

    async def list_leased(self) -> list[Identifier]:
        """List identifiers that currently have a holder."""
        result = await self.session.execute(
            select(*_COLUMNS)
            .where(IdentifierTable.holder.is_not(None))
            .order_by(IdentifierTable.id.asc())
        )
        return [self._row_to_model(r) for r in result.all()]

    async def counts(self, stale_threshold: datetime) -> PoolCounts:
        """Total, leased, free and stale figures in one query."""
        stale = case(
            (
                IdentifierTable.holder.is_not(None)
                & (IdentifierTable.last_renewed_at < ensure_utc(stale_threshold)),
                1,
            ),
        )
        result = await self.session.execute(
            select(
                func.count(IdentifierTable.id),
                func.count(IdentifierTable.holder),
                func.count(stale),
            )
        )
        total, leased, stale_count = result.one()
        return PoolCounts(
            total=total,
            leased=leased,
            free=total - leased,
            stale=stale_count,
        )

    def _row_to_model(self, row: Row) -> Identifier:
        """Convert database row to model."""
        return Identifier(
            value=row.value,
            holder=row.holder,
            last_renewed_at=ensure_utc(row.last_renewed_at),
        )
