# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Shadow Traffic Middleware.

Mirrors state-changing requests to a shadow service asynchronously.
The production response is authoritative and streams to the caller
untouched; the shadow response is only compared and logged.

Pure ASGI middleware (no BaseHTTPMiddleware): the request body is observed
as the application reads it and the response body as the application sends
it, so nothing is buffered in front of the caller.
"""

from typing import Any, Iterable, Optional

import structlog
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import ShadowConfig, get_settings
from ..core.capture import RequestTap, ResponseTap
from ..core.pipeline import ShadowPipeline

logger = structlog.get_logger(__name__)


def _decode_headers(raw_headers: Iterable[tuple[bytes, bytes]]) -> list[tuple[str, str]]:
    return [(k.decode("latin-1"), v.decode("latin-1")) for k, v in raw_headers]


class ShadowMiddleware:
    """
    Middleware that mirrors requests to a shadow service.

    - The application handles the actual response (authoritative)
    - The shadow service receives a copy (fire-and-forget)
    - Responses are compared and mismatches logged
    - GET/HEAD/OPTIONS are never shadowed

    Usage:
        app.add_middleware(
            ShadowMiddleware,
            target="http://shadow:4000",
            ignore_keys=["timestamp", "trace_id"],
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        target: Optional[str] = None,
        ignore_keys: Optional[Iterable[str]] = None,
        *,
        config: Optional[ShadowConfig] = None,
        pipeline: Optional[ShadowPipeline] = None,
        **options: Any,
    ):
        self.app = app
        if pipeline is None:
            if config is None:
                if target is None:
                    config = get_settings().to_config()
                else:
                    config = ShadowConfig(
                        target=target,
                        # ShadowConfig normalizes CSV strings and iterables
                        ignore_keys=ignore_keys if ignore_keys is not None else (),
                        **options,
                    )
            pipeline = ShadowPipeline(config)
        self.pipeline = pipeline
        self.config = pipeline.config

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI interface."""
        if scope["type"] != "http" or not self.config.should_shadow(scope["method"]):
            await self.app(scope, receive, send)
            return

        try:
            raw_path = scope.get("raw_path")
            capture = self.pipeline.open(
                method=scope["method"],
                # Some servers leave the query string on raw_path
                path=raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else scope["path"],
                query=scope.get("query_string", b"").decode("latin-1"),
                headers=_decode_headers(scope.get("headers", [])),
            )
        except Exception as e:
            logger.warning(
                "shadow_capture_failed",
                path=scope.get("path"),
                side="request",
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, RequestTap(receive, capture), ResponseTap(send, capture))
        finally:
            # No-op once the response completed
            capture.abort("application returned without completing the response")

    async def aclose(self) -> None:
        """Wait for outstanding shadow work and close the HTTP client."""
        await self.pipeline.aclose()
