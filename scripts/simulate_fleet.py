#!/usr/bin/env python3
"""Simulate a fleet of VMs leasing identifiers from LeaseGate.

Each simulated VM allocates an identifier, sends liveness probes and, with
a small probability per probe, goes silent so the server has to reclaim
its identifier.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
from uuid import uuid4

import httpx

from leasegate.client import LeaseClient, LeaseError, LeaseLost, PoolExhaustedError

logger = logging.getLogger("leasegate.simulate")


async def simulate_vm(
    http: httpx.AsyncClient,
    base_url: str,
    heartbeat_interval: float,
    expiration_chance: float,
    stop: asyncio.Event,
) -> str:
    client = LeaseClient(
        base_url,
        client_id=str(uuid4()),
        heartbeat_interval_seconds=heartbeat_interval,
        http_client=http,
    )
    try:
        await client.allocate()
    except PoolExhaustedError:
        return "exhausted"
    except (LeaseError, httpx.HTTPError) as e:
        logger.warning(f"Failed to register client {client.client_id}: {e}")
        return "error"

    while not stop.is_set():
        if random.random() < expiration_chance:
            logger.info(
                f"Client {client.client_id} (Identifier: {client.identifier}) "
                "is letting their identifier expire"
            )
            return "expired"
        try:
            await client.heartbeat()
        except LeaseLost as e:
            logger.warning(e.message)
            return "lost"
        except (LeaseError, httpx.HTTPError) as e:
            logger.warning(f"Failed to send liveness for client {client.client_id}: {e}")
        try:
            await asyncio.wait_for(stop.wait(), timeout=heartbeat_interval)
        except asyncio.TimeoutError:
            pass

    await client.release()
    return "released"


async def run(args: argparse.Namespace) -> None:
    stop = asyncio.Event()
    async with httpx.AsyncClient(timeout=10.0) as http:
        vms = []
        for _ in range(args.clients):
            vms.append(
                asyncio.create_task(
                    simulate_vm(
                        http,
                        args.url,
                        args.heartbeat_interval,
                        args.expiration_chance,
                        stop,
                    )
                )
            )
            await asyncio.sleep(args.spawn_interval)

        await asyncio.sleep(args.duration)
        stop.set()
        outcomes = await asyncio.gather(*vms)

    summary: dict[str, int] = {}
    for outcome in outcomes:
        summary[outcome] = summary.get(outcome, 0) + 1
    logger.info(f"Simulation complete: {summary}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", default="http://localhost:8080")
    parser.add_argument("--clients", type=int, default=100)
    parser.add_argument("--spawn-interval", type=float, default=0.01)
    parser.add_argument("--heartbeat-interval", type=float, default=10.0)
    parser.add_argument("--expiration-chance", type=float, default=0.02)
    parser.add_argument("--duration", type=float, default=300.0)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
