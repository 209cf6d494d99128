"""LeaseGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from leasegate import __version__
from leasegate.api import router
from leasegate.config import settings
from leasegate.db.base import close_db, get_session, init_db
from leasegate.pool import seed_pool
from leasegate.tasks.sweep import start_lease_sweep, stop_lease_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("leasegate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Seeding or database failures here abort startup.
    """
    logger.info("Starting LeaseGate server...")
    logger.info(f"Environment: {settings.env.value}")

    await init_db()
    logger.info("Database initialized and schema verified")

    if not settings.identifier_patterns:
        logger.warning("No identifier patterns configured; the pool may be empty")
    async with get_session() as session:
        await seed_pool(session, settings.identifier_patterns)

    await start_lease_sweep()
    logger.info(
        f"Lease sweep task started (interval {settings.sweep_interval_seconds}s, "
        f"stale timeout {settings.stale_timeout_seconds}s)"
    )

    yield

    logger.info("Shutting down LeaseGate server...")
    await stop_lease_sweep()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="LeaseGate",
    description="Lease manager handing out unique identifiers to ephemeral clients",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "leasegate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
