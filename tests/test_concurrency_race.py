"""
Concurrency and race condition tests.
"""

import asyncio

import pytest

from leasegate.engine import LeaseManager, OwnershipConflict, PoolExhausted
from leasegate.engine.queries import PoolQueries


async def _allocate(session_factory, client_id: str):
    async with session_factory() as session:
        try:
            identifier = await LeaseManager(session).allocate(client_id)
        except PoolExhausted as e:
            return e
        await session.commit()
        return identifier.value


@pytest.mark.asyncio
async def test_concurrent_allocations_never_double_claim(session_factory, seed):
    """N distinct clients racing for K < N slots: exactly K win."""
    await seed("id-1", "id-2", "id-3")
    clients = [f"vm-{n}" for n in range(8)]

    results = await asyncio.gather(*(_allocate(session_factory, c) for c in clients))

    winners = [r for r in results if isinstance(r, str)]
    losers = [r for r in results if isinstance(r, PoolExhausted)]
    assert len(winners) == 3
    assert len(losers) == 5
    assert sorted(winners) == ["id-1", "id-2", "id-3"]

    async with session_factory() as session:
        leases = await PoolQueries(session).list_allocated()
    holders = [lease.holder for lease in leases]
    assert len(set(holders)) == 3


@pytest.mark.asyncio
async def test_concurrent_duplicate_allocations_from_one_client(session_factory, seed):
    """Retried allocate calls from the same VM never leak a second identifier."""
    await seed("id-1", "id-2", "id-3")

    results = await asyncio.gather(*(_allocate(session_factory, "vm-a") for _ in range(4)))

    assert set(results) == {"id-1"}
    async with session_factory() as session:
        stats = await PoolQueries(session).stats()
    assert stats.leased == 1


@pytest.mark.asyncio
async def test_sweep_committed_before_renew_causes_conflict(session_factory, seed, clock):
    await seed("id-1")
    async with session_factory() as session:
        await LeaseManager(session, clock=clock).allocate("vm-a")
        await session.commit()

    clock.advance(3600)
    async with session_factory() as sweeper_session:
        assert await LeaseManager(sweeper_session, clock=clock).reclaim_stale() == 1
        await sweeper_session.commit()

    async with session_factory() as session:
        with pytest.raises(OwnershipConflict) as exc_info:
            await LeaseManager(session, clock=clock).renew("vm-a", "id-1")
    assert exc_info.value.actual_holder is None


@pytest.mark.asyncio
async def test_renew_committed_before_sweep_keeps_lease(session_factory, seed, clock):
    await seed("id-1")
    async with session_factory() as session:
        await LeaseManager(session, clock=clock).allocate("vm-a")
        await session.commit()

    clock.advance(3600)
    async with session_factory() as session:
        await LeaseManager(session, clock=clock).renew("vm-a", "id-1")
        await session.commit()

    async with session_factory() as sweeper_session:
        assert await LeaseManager(sweeper_session, clock=clock).reclaim_stale() == 0
        await sweeper_session.commit()
