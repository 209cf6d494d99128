"""API dependencies."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.db import base as db_base


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session, committed when the request succeeds."""
    async with db_base.async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
