"""
HTTP transport to the agent endpoint (httpx).

Responsibility: POST one JSON payload and hand back status, body and headers.
Connection failures and timeouts are classified here; HTTP statuses are
interpreted by the caller.
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from agent_relay.core.errors import QueryTimeoutError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    status: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)


class Transport(Protocol):
    async def send(
        self, endpoint: str, payload: dict[str, Any], headers: dict[str, str], timeout_ms: int
    ) -> TransportResponse: ...


def create_auth_header(project_id: str, api_key: str) -> str:
    """HTTP Basic credentials: base64("<project_id>:<api_key>")."""
    token = base64.b64encode(f"{project_id}:{api_key}".encode()).decode("ascii")
    return f"Basic {token}"


class HttpxTransport:
    """Sends each request on a short-lived httpx.AsyncClient."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        # Injected transport lets tests use httpx.MockTransport
        self._transport = transport

    async def send(
        self, endpoint: str, payload: dict[str, Any], headers: dict[str, str], timeout_ms: int
    ) -> TransportResponse:
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=self._transport) as client:
                response = await client.post(endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            elapsed = int((time.monotonic() - started) * 1000)
            raise QueryTimeoutError(
                f"Query timeout after {elapsed}ms: {e}", duration_ms=elapsed, endpoint=endpoint
            ) from e
        except httpx.TransportError as e:
            raise TransportError(f"Network error: {e}", endpoint=endpoint) from e

        try:
            body = response.json()
        except ValueError:
            logger.warning("[transport:send] non-JSON body status=%s: %s", response.status_code, response.text[:200])
            body = None
        logger.info("[transport:send] OUT status=%s endpoint=%s", response.status_code, endpoint)
        return TransportResponse(
            status=response.status_code,
            body=body,
            headers={k.lower(): v for k, v in response.headers.items()},
        )
