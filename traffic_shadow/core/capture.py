# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Non-destructive capture of request and response bodies.

``RequestTap`` and ``ResponseTap`` decorate the ASGI ``receive`` and
``send`` callables: every message is forwarded unchanged (same object, same
order) while body chunks are appended to the ``CapturedExchange``.
``tee_body_iterator`` does the same for a streaming response body.

Capture is read-only with respect to content. If recording a chunk fails,
capture for that request is abandoned and the original transfer carries on.
"""

import asyncio
from typing import Any, AsyncIterable, AsyncIterator, Callable, Optional

import structlog
from starlette.types import Message, Receive, Send

from ..errors import CaptureError
from ..metrics import SHADOW_CAPTURE_ERRORS_TOTAL
from ..models import CapturedExchange

logger = structlog.get_logger(__name__)


def _to_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


class ExchangeCapture:
    """Capture state for one request.

    The request side completes at most once (triggering ``on_request_complete``)
    and the response side completes at most once (resolving the production
    leg). A response leg that never completes resolves to ``None``.
    """

    def __init__(
        self,
        exchange: CapturedExchange,
        on_request_complete: Optional[Callable[["ExchangeCapture"], None]] = None,
    ):
        self.exchange = exchange
        self._on_request_complete = on_request_complete
        self._request_done = False
        self._response: asyncio.Future = asyncio.get_running_loop().create_future()
        self.failed = False

    @property
    def request_done(self) -> bool:
        return self._request_done

    @property
    def response_done(self) -> bool:
        return self._response.done()

    # Request side

    def record_request_chunk(self, chunk: Any) -> None:
        if self.failed or self._request_done:
            return
        self.exchange.request_body.extend(_to_bytes(chunk))

    def finish_request(self) -> None:
        if self.failed or self._request_done:
            return
        self._request_done = True
        if self._on_request_complete is not None:
            self._on_request_complete(self)

    # Response side

    def record_response_start(self, status_code: int) -> None:
        if self.failed:
            return
        self.exchange.status_code = status_code

    def record_response_chunk(self, chunk: Any) -> None:
        if self.failed or self._response.done():
            return
        self.exchange.response_body.extend(_to_bytes(chunk))

    def finish_response(self) -> None:
        if self._response.done():
            return
        self._response.set_result(None if self.failed else bytes(self.exchange.response_body))

    async def production_body(self, timeout: Optional[float] = None) -> bytes:
        """Wait for the production leg, at most ``timeout`` seconds.

        A response that is never sent (e.g. a streaming body nobody
        iterates) is abandoned when the timeout expires.

        Raises:
            CaptureError: The production response did not complete.
        """
        try:
            body = await asyncio.wait_for(asyncio.shield(self._response), timeout)
        except asyncio.TimeoutError:
            self.abort(f"response not completed within {timeout}s")
            raise CaptureError(self.exchange.path, "response timed out") from None
        if body is None:
            raise CaptureError(self.exchange.path, "response not completed")
        return body

    # Failure handling

    def abort(self, reason: str) -> None:
        """Give up on the production leg; the comparison will be skipped."""
        if not self._response.done():
            logger.debug("shadow_capture_aborted", path=self.exchange.path, reason=reason)
            self._response.set_result(None)

    def fail(self, side: str, error: BaseException) -> None:
        """Abandon capture after an internal error."""
        if self.failed:
            return
        self.failed = True
        SHADOW_CAPTURE_ERRORS_TOTAL.labels(side=side).inc()
        logger.warning(
            "shadow_capture_failed",
            path=self.exchange.path,
            side=side,
            error=str(error),
            error_type=type(error).__name__,
        )
        self.abort(f"{side} capture failed")


class RequestTap:
    """ASGI ``receive`` decorator that records request body chunks."""

    def __init__(self, receive: Receive, capture: ExchangeCapture):
        self._receive = receive
        self._capture = capture

    async def __call__(self) -> Message:
        message = await self._receive()
        if not self._capture.failed:
            try:
                self._observe(message)
            except Exception as e:
                self._capture.fail("request", e)
        return message

    def _observe(self, message: Message) -> None:
        if message["type"] != "http.request":
            return
        body = message.get("body", b"")
        if body:
            self._capture.record_request_chunk(body)
        if not message.get("more_body", False):
            self._capture.finish_request()


class ResponseTap:
    """ASGI ``send`` decorator that records response body chunks.

    The chunk is recorded before it is forwarded; the production leg
    resolves only after the final body message has been forwarded.
    """

    def __init__(self, send: Send, capture: ExchangeCapture):
        self._send = send
        self._capture = capture

    async def __call__(self, message: Message) -> None:
        final = False
        if not self._capture.failed:
            try:
                final = self._observe(message)
            except Exception as e:
                self._capture.fail("response", e)

        await self._send(message)

        if final:
            try:
                self._capture.finish_response()
            except Exception as e:
                self._capture.fail("response", e)

    def _observe(self, message: Message) -> bool:
        if message["type"] == "http.response.start":
            self._capture.record_response_start(message["status"])
            return False
        if message["type"] == "http.response.body":
            body = message.get("body", b"")
            if body:
                self._capture.record_response_chunk(body)
            return not message.get("more_body", False)
        return False


async def tee_body_iterator(
    iterator: AsyncIterable[Any], capture: ExchangeCapture
) -> AsyncIterator[Any]:
    """Yield every chunk of ``iterator`` unchanged while recording a copy."""
    completed = False
    try:
        async for chunk in iterator:
            if not capture.failed:
                try:
                    capture.record_response_chunk(chunk)
                except Exception as e:
                    capture.fail("response", e)
            yield chunk
        completed = True
    finally:
        if completed:
            capture.finish_response()
        else:
            capture.abort("response stream interrupted")
