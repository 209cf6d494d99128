"""
Reclamation sweeper: serialized ticks, failures retried on the next tick.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

import leasegate.tasks.sweep as sweep_module
from leasegate.engine import LeaseManager, StoreUnavailable
from leasegate.engine.queries import PoolQueries
from leasegate.observability.metrics import metrics
from leasegate.tasks import start_lease_sweep, stop_lease_sweep, sweep_once
from leasegate.utils.time import utc_now


@pytest.fixture
async def stale_lease(session_factory, seed, clock):
    """vm-a holds id-1 with a renewal an hour in the past; vm-b is fresh."""
    await seed("id-1", "id-2")
    clock.now = utc_now() - timedelta(hours=1)
    async with session_factory() as session:
        await LeaseManager(session, clock=clock).allocate("vm-a")
        await LeaseManager(session).allocate("vm-b")
        await session.commit()


async def _leased(session_factory) -> list[str]:
    async with session_factory() as session:
        return [lease.holder for lease in await PoolQueries(session).list_allocated()]


@pytest.mark.asyncio
async def test_sweep_once_reclaims_stale_leases(session_factory, stale_lease):
    assert await sweep_once() == 1
    assert await _leased(session_factory) == ["vm-b"]
    snapshot = metrics.snapshot()
    assert snapshot["counters"]["sweep.runs"] == 1
    assert snapshot["histograms"]["sweep.duration_ms"]["count"] == 1


@pytest.mark.asyncio
async def test_failed_commit_during_sweep_is_store_unavailable(
    session_factory, stale_lease, monkeypatch
):
    async def _locked(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    with monkeypatch.context() as patched:
        patched.setattr(AsyncSession, "commit", _locked)
        with pytest.raises(StoreUnavailable):
            await sweep_once()

    assert await _leased(session_factory) == ["vm-a", "vm-b"]
    snapshot = metrics.snapshot()
    assert snapshot["counters"]["store.errors"] == 1
    assert snapshot["histograms"]["sweep.duration_ms"]["count"] == 1


@pytest.mark.asyncio
async def test_sweep_loop_runs_until_stopped(session_factory, stale_lease):
    await start_lease_sweep(interval_seconds=0.05)
    try:
        for _ in range(50):
            if await _leased(session_factory) == ["vm-b"]:
                break
            await asyncio.sleep(0.05)
    finally:
        await stop_lease_sweep()

    assert await _leased(session_factory) == ["vm-b"]
    assert sweep_module._sweep_task is None


class _FlakyManager:
    """Fails the first sweep, then delegates to the real manager."""

    calls = 0

    def __init__(self, session):
        self._real = LeaseManager(session)

    async def reclaim_stale(self):
        type(self).calls += 1
        if type(self).calls == 1:
            raise StoreUnavailable("reclaim_stale", "database is locked")
        return await self._real.reclaim_stale()


@pytest.mark.asyncio
async def test_sweep_failure_is_logged_and_retried(
    session_factory, stale_lease, monkeypatch, caplog
):
    _FlakyManager.calls = 0
    monkeypatch.setattr(sweep_module, "LeaseManager", _FlakyManager)

    with caplog.at_level("ERROR", logger="leasegate.sweep"):
        await start_lease_sweep(interval_seconds=0.05)
        try:
            for _ in range(50):
                if _FlakyManager.calls >= 2:
                    break
                await asyncio.sleep(0.05)
        finally:
            await stop_lease_sweep()

    assert _FlakyManager.calls >= 2
    assert metrics.snapshot()["counters"]["sweep.failures"] == 1
    assert "Lease sweep error" in caplog.text
    assert await _leased(session_factory) == ["vm-b"]


@pytest.mark.asyncio
async def test_sweeps_do_not_overlap(engine, monkeypatch):
    active = 0
    peak = 0

    class _SlowManager:
        def __init__(self, session):
            pass

        async def reclaim_stale(self):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return 0

    monkeypatch.setattr(sweep_module, "LeaseManager", _SlowManager)

    await asyncio.gather(sweep_once(), sweep_once(), sweep_once())
    assert peak == 1
