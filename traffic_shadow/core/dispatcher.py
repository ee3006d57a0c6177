# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Side-channel HTTP call to the shadow target.

The captured request is replayed with the same method, path, headers and
body bytes. Two headers are overridden: ``host`` points at the shadow
target and the marker header flags the call as shadow traffic.
"""

import time
from typing import Optional

import httpx
import structlog

from ..config import ShadowConfig
from ..errors import ShadowSaturatedError, ShadowTimeoutError, ShadowUnreachableError
from ..metrics import SHADOW_LATENCY_SECONDS, SHADOW_REQUESTS_TOTAL
from ..models import CapturedExchange, ShadowResponse

logger = structlog.get_logger(__name__)

# Recomputed by the client for the replayed body
FRAMING_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})


class ShadowDispatcher:
    """Replays captured requests against the shadow target.

    - One reusable ``httpx.AsyncClient`` per dispatcher
    - Every call is bounded by ``config.timeout_seconds``
    - At most ``config.max_in_flight`` calls run at once; extra calls are
      refused immediately rather than queued
    - Failures are raised as ``ShadowError`` subclasses and never retried
    """

    def __init__(
        self,
        config: ShadowConfig,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._client = client
        self._transport = transport
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Number of shadow calls currently outstanding."""
        return self._in_flight

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def build_url(self, exchange: CapturedExchange) -> str:
        """Shadow URL: target base + original path (+ query)."""
        return f"{self.config.target.rstrip('/')}{exchange.url_path}"

    def build_headers(self, exchange: CapturedExchange) -> list[tuple[str, str]]:
        """Original headers plus the host and marker overrides."""
        marker = self.config.marker_header.lower()
        headers = [
            (name, value)
            for name, value in exchange.headers
            if name.lower() not in FRAMING_HEADERS and name.lower() != marker
        ]
        headers.append(("host", self.config.target_host))
        headers.append((marker, "true"))
        return headers

    async def dispatch(self, exchange: CapturedExchange) -> ShadowResponse:
        """Send the captured request to the shadow target.

        Raises:
            ShadowSaturatedError: Too many calls already in flight.
            ShadowTimeoutError: The call exceeded the configured timeout.
            ShadowUnreachableError: Connection, DNS, URL or protocol failure.
        """
        if self._in_flight >= self.config.max_in_flight:
            SHADOW_REQUESTS_TOTAL.labels(status="saturated").inc()
            raise ShadowSaturatedError(self.config.max_in_flight)

        url = self.build_url(exchange)
        self._in_flight += 1
        start_time = time.perf_counter()
        try:
            client = await self._get_client()
            response = await client.request(
                method=exchange.method,
                url=url,
                headers=self.build_headers(exchange),
                content=bytes(exchange.request_body),
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            SHADOW_REQUESTS_TOTAL.labels(status="timeout").inc()
            raise ShadowTimeoutError(self.config.target, self.config.timeout_seconds) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            SHADOW_REQUESTS_TOTAL.labels(status="error").inc()
            raise ShadowUnreachableError(self.config.target, type(e).__name__) from e
        finally:
            self._in_flight -= 1

        latency = time.perf_counter() - start_time
        SHADOW_REQUESTS_TOTAL.labels(status="success").inc()
        SHADOW_LATENCY_SECONDS.observe(latency)

        logger.debug(
            "shadow_dispatched",
            url=url,
            method=exchange.method,
            status=response.status_code,
            latency_ms=round(latency * 1000, 2),
        )

        return ShadowResponse(
            status_code=response.status_code,
            body=response.content,
            latency_seconds=latency,
        )
