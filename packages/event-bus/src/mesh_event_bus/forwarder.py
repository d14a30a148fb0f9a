"""HTTP delivery of bus events to remote domain endpoints.

A domain's event endpoint is the URL of its inbound event channel. The
forwarder POSTs the event as camelCase JSON, retrying transport errors with
exponential backoff via tenacity. An HTTP error status or exhausted retries
become a PublishFailureError — the caller decides what an undelivered event
means.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from mesh_shared.bus_models import NotificationEvent
from mesh_shared.failures import PublishFailureError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class EventForwarder:
    """Delivers events to endpoints over a lazily-created httpx client."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client
        self.timeout = timeout
        self.delivery_count: int = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _post_with_retry(
        self, client: httpx.AsyncClient, target: str, body: dict[str, Any]
    ) -> httpx.Response:
        self.delivery_count += 1
        response = await client.post(
            target,
            json=body,
            headers={"X-Mesh-Detail-Type": body["detailType"]},
        )
        response.raise_for_status()
        return response

    async def deliver(self, target: str, event: NotificationEvent) -> None:
        """POST one event to one endpoint."""
        body = event.model_dump(mode="json", by_alias=True)
        try:
            client = await self._get_client()
            await self._post_with_retry(client, target, body)
        except httpx.HTTPError as e:
            raise PublishFailureError(
                f"Delivering event {event.event_id} ({event.detail_type}) "
                f"to '{target}' failed: {e}",
                resource=target,
            ) from e
        logger.info(f"Delivered event {event.event_id} ({event.detail_type}) to '{target}'")
