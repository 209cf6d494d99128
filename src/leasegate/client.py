"""Async client for VMs leasing an identifier from LeaseGate."""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger("leasegate.client")


class LeaseError(Exception):
    """LeaseGate request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class PoolExhaustedError(LeaseError):
    """Server had no identifier to hand out."""


class LeaseLost(LeaseError):
    """Identifier now belongs to someone else, or to nobody.

    The holder should stop operating under the identifier.
    """

    def __init__(self, identifier: str, actual_holder: str | None):
        super().__init__(
            f"Lease on {identifier} lost (now held by {actual_holder or 'nobody'})",
            status_code=409,
        )
        self.identifier = identifier
        self.actual_holder = actual_holder


class LeaseClient:
    """
    Allocate an identifier and keep it alive with liveness probes.

    Stopping on a lost lease is the caller's policy: ``run`` returns by
    raising LeaseLost and leaves shutdown to whoever awaited it.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        heartbeat_interval_seconds: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.heartbeat_interval = heartbeat_interval_seconds
        self.identifier: str | None = None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "LeaseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def allocate(self) -> str:
        """Obtain (or re-obtain) this client's identifier."""
        response = await self._client.post(
            f"{self.base_url}/v1/allocate",
            json={"client_id": self.client_id},
        )
        if response.status_code == 503 and "No available" in response.text:
            raise PoolExhaustedError("No available identifiers", 503)
        self._raise_for_status(response, "allocate")

        self.identifier = response.json()["identifier"]
        logger.info(f"Client {self.client_id} allocated identifier {self.identifier}")
        return self.identifier

    async def heartbeat(self) -> None:
        """Send one liveness probe for the held identifier."""
        identifier = self._require_identifier()
        response = await self._client.post(
            f"{self.base_url}/v1/liveness",
            json={"client_id": self.client_id, "identifier": identifier},
        )
        if response.status_code == 409:
            self.identifier = None
            raise LeaseLost(identifier, response.json().get("expected_id"))
        self._raise_for_status(response, "liveness")

    async def release(self) -> None:
        """Give the identifier back."""
        identifier = self._require_identifier()
        response = await self._client.post(
            f"{self.base_url}/v1/release",
            json={"client_id": self.client_id, "identifier": identifier},
        )
        self._raise_for_status(response, "release")
        logger.info(f"Client {self.client_id} released identifier {identifier}")
        self.identifier = None

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Heartbeat until stop is set.

        Transient failures are logged and retried on the next beat;
        LeaseLost propagates.
        """
        if self.identifier is None:
            await self.allocate()
        stop = stop or asyncio.Event()

        while not stop.is_set():
            try:
                await self.heartbeat()
            except LeaseLost:
                logger.error(
                    f"Client {self.client_id} lost identifier; shutting down is recommended"
                )
                raise
            except (LeaseError, httpx.HTTPError) as e:
                logger.warning(f"Failed to send liveness for client {self.client_id}: {e}")

            try:
                await asyncio.wait_for(stop.wait(), timeout=self.heartbeat_interval)
            except asyncio.TimeoutError:
                pass

    def _require_identifier(self) -> str:
        if self.identifier is None:
            raise LeaseError("No identifier allocated")
        return self.identifier

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.status_code >= 400:
            raise LeaseError(
                f"{operation} failed: HTTP {response.status_code}: {response.text}",
                response.status_code,
            )
