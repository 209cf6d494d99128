"""Stale lease reclamation background task."""

import asyncio
import logging
from typing import Optional

from leasegate.config import settings
from leasegate.db.base import get_session
from leasegate.engine import LeaseManager
from leasegate.observability.metrics import metrics

logger = logging.getLogger("leasegate.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None
_sweep_lock = asyncio.Lock()


async def sweep_once() -> int:
    """
    Run one reclamation pass in its own session.

    Serialized with every other pass; errors propagate to the caller.
    """
    async with _sweep_lock:
        try:
            with metrics.timed("sweep.duration_ms"):
                async with get_session() as session:
                    return await LeaseManager(session).reclaim_stale()
        finally:
            metrics.inc_counter("sweep.runs")


async def lease_sweep_loop(interval_seconds: float | None = None):
    """
    Background loop that frees identifiers whose holder stopped renewing.

    The wait for the next tick starts after the previous sweep returns, so
    a slow sweep delays the next one rather than overlapping it. Failures
    are logged and retried on the next tick.
    """
    interval = interval_seconds or settings.sweep_interval_seconds
    logger.info(
        f"Lease sweep loop started (interval: {interval}s, "
        f"stale timeout: {settings.stale_timeout_seconds}s)"
    )

    while not _shutdown_event.is_set():
        try:
            reclaimed = await sweep_once()
            if reclaimed > 0:
                logger.info(f"Reclaimed {reclaimed} stale identifiers")
        except Exception as e:
            metrics.inc_counter("sweep.failures")
            logger.error(f"Lease sweep error: {e}", exc_info=True)

        # Wait for next sweep interval or shutdown
        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Lease sweep loop stopped")


async def start_lease_sweep(interval_seconds: float | None = None):
    """Start the lease sweep background task."""
    global _sweep_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(lease_sweep_loop(interval_seconds))


async def stop_lease_sweep():
    """Stop the lease sweep background task."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Lease sweep task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None
