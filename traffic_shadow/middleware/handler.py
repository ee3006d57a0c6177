# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Shadow wrapper for individual Starlette-style endpoints.

For handlers that take a ``Request`` and return a finished ``Response``
rather than sitting on the ASGI stream. The request body is read once and
cached on the ``Request``, so the handler and the shadow call see the same
bytes. The response body is copied from ``Response.body``; a
``StreamingResponse`` keeps streaming to the caller through a tee.

Usage:
    @shadowed(ShadowConfig(target="http://shadow:4000", ignore_keys=("timestamp",)))
    async def create_order(request: Request) -> Response:
        ...
"""

import functools
from typing import Awaitable, Callable, Optional

import structlog
from starlette.requests import Request
from starlette.responses import Response

from ..config import ShadowConfig, get_settings
from ..core.capture import ExchangeCapture, tee_body_iterator
from ..core.pipeline import ShadowPipeline

logger = structlog.get_logger(__name__)

Endpoint = Callable[[Request], Awaitable[Response]]


def _open_capture(
    pipeline: ShadowPipeline, request: Request, body: bytes
) -> Optional[ExchangeCapture]:
    try:
        capture = pipeline.open(
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            headers=[(k.decode("latin-1"), v.decode("latin-1")) for k, v in request.headers.raw],
        )
        capture.record_request_chunk(body)
        # Dispatch starts here, before the handler runs
        capture.finish_request()
        return capture
    except Exception as e:
        logger.warning(
            "shadow_capture_failed",
            path=request.url.path,
            side="request",
            error=str(e),
            error_type=type(e).__name__,
        )
        return None


def _capture_response(response: Response, capture: ExchangeCapture) -> None:
    try:
        capture.record_response_start(response.status_code)
        body_iterator = getattr(response, "body_iterator", None)
        if body_iterator is not None:
            response.body_iterator = tee_body_iterator(body_iterator, capture)
            return
        body = getattr(response, "body", None)
        if body is None:
            capture.abort("response body not observable")
            return
        capture.record_response_chunk(body)
        capture.finish_response()
    except Exception as e:
        capture.fail("response", e)


def with_shadow(
    handler: Endpoint,
    config: Optional[ShadowConfig] = None,
    *,
    pipeline: Optional[ShadowPipeline] = None,
) -> Endpoint:
    """Wrap ``handler`` so state-changing requests are mirrored and compared."""
    if pipeline is None:
        pipeline = ShadowPipeline(config or get_settings().to_config())

    @functools.wraps(handler)
    async def endpoint(request: Request) -> Response:
        if not pipeline.should_shadow(request.method):
            return await handler(request)

        body = await request.body()
        capture = _open_capture(pipeline, request, body)

        try:
            response = await handler(request)
        except BaseException:
            if capture is not None:
                capture.abort("handler raised")
            raise

        if capture is not None:
            _capture_response(response, capture)
        return response

    endpoint.shadow_pipeline = pipeline  # type: ignore[attr-defined]
    return endpoint


def shadowed(
    config: Optional[ShadowConfig] = None,
    *,
    pipeline: Optional[ShadowPipeline] = None,
) -> Callable[[Endpoint], Endpoint]:
    """Decorator form of ``with_shadow``."""

    def decorator(handler: Endpoint) -> Endpoint:
        return with_shadow(handler, config, pipeline=pipeline)

    return decorator
