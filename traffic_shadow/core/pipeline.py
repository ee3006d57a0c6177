# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Capture → dispatch → compare → report.

The shadow call is spawned as a background task the moment the request body
is complete. The task then waits for both the production leg and the shadow
leg; if either fails the comparison is skipped. Nothing here is awaited by
the production path.
"""

import asyncio
from typing import Any, Awaitable, Iterable, Optional

import structlog

from ..config import ShadowConfig
from ..metrics import SHADOW_COMPARISONS_TOTAL
from ..models import CapturedExchange, ComparisonOutcome, ShadowResponse
from .capture import ExchangeCapture
from .comparator import compare
from .dispatcher import ShadowDispatcher
from .reporter import MismatchReporter

logger = structlog.get_logger(__name__)


async def join_legs(
    production: Awaitable[bytes],
    shadow: Awaitable[ShadowResponse],
) -> Optional[tuple[bytes, ShadowResponse]]:
    """Wait for both legs; ``None`` if either one failed.

    Unlike a fail-fast join, a failing leg does not cancel the other one.
    """
    prod_result, shadow_result = await asyncio.gather(
        production, shadow, return_exceptions=True
    )
    for leg, result in (("production", prod_result), ("shadow", shadow_result)):
        if isinstance(result, BaseException):
            logger.info(
                "shadow_comparison_skipped",
                leg=leg,
                reason=str(result),
                error_type=type(result).__name__,
            )
            return None
    return prod_result, shadow_result


class ShadowPipeline:
    """Shared per-middleware pipeline; per-request state lives in captures."""

    def __init__(
        self,
        config: ShadowConfig,
        dispatcher: Optional[ShadowDispatcher] = None,
        reporter: Optional[MismatchReporter] = None,
    ):
        self.config = config
        self.dispatcher = dispatcher or ShadowDispatcher(config)
        self.reporter = reporter or MismatchReporter(preview_length=config.preview_length)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of shadow tasks not yet finished."""
        return len(self._tasks)

    def should_shadow(self, method: str) -> bool:
        return self.config.should_shadow(method)

    def open(
        self,
        method: str,
        path: str,
        query: str = "",
        headers: Iterable[tuple[str, str]] = (),
    ) -> ExchangeCapture:
        """Start capturing one request."""
        exchange = CapturedExchange(
            method=method.upper(),
            path=path,
            query=query,
            headers=list(headers),
        )
        return ExchangeCapture(exchange, on_request_complete=self._launch)

    def _launch(self, capture: ExchangeCapture) -> None:
        # Strong reference until done, so the task is not garbage collected
        task = asyncio.create_task(self._run(capture))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, capture: ExchangeCapture) -> Optional[ComparisonOutcome]:
        exchange = capture.exchange
        try:
            legs = await join_legs(
                capture.production_body(self.config.capture_timeout_seconds),
                self.dispatcher.dispatch(exchange),
            )
            if legs is None:
                SHADOW_COMPARISONS_TOTAL.labels(result="skipped").inc()
                return None

            prod_body, shadow = legs
            outcome = compare(prod_body, shadow.body, self.config.ignore_keys)

            if outcome.is_match:
                SHADOW_COMPARISONS_TOTAL.labels(result="match").inc()
                logger.debug(
                    "shadow_match",
                    path=exchange.path,
                    method=exchange.method,
                    shadow_latency_ms=round(shadow.latency_seconds * 1000, 2),
                )
            else:
                SHADOW_COMPARISONS_TOTAL.labels(result="mismatch").inc()
                self.reporter.report(exchange, outcome, shadow)
            return outcome

        except Exception as e:
            SHADOW_COMPARISONS_TOTAL.labels(result="skipped").inc()
            logger.warning(
                "shadow_pipeline_failed",
                path=exchange.path,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def drain(self) -> None:
        """Wait until every launched shadow task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain outstanding tasks and close the dispatcher's client."""
        await self.drain()
        await self.dispatcher.aclose()

    def describe(self) -> dict[str, Any]:
        return {
            "target": self.config.target,
            "ignore_keys": list(self.config.ignore_keys),
            "pending": self.pending,
            "in_flight": self.dispatcher.in_flight,
        }
