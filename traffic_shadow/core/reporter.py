# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Mismatch reporting."""

from typing import Any, Optional

import structlog

from ..models import CapturedExchange, ComparisonOutcome, ShadowResponse

logger = structlog.get_logger(__name__)


class MismatchReporter:
    """Emits one ``shadow_mismatch`` record per divergent request.

    Previews are cut from the raw (unsanitized) bodies. Emission failures
    are swallowed: reporting never affects the request path.
    """

    def __init__(self, preview_length: int = 100, log: Optional[Any] = None):
        self.preview_length = preview_length
        self._log = log or logger

    def build_record(
        self,
        exchange: CapturedExchange,
        outcome: ComparisonOutcome,
        shadow: Optional[ShadowResponse] = None,
    ) -> dict[str, Any]:
        """Fields of the mismatch record."""
        return {
            "path": exchange.url_path,
            "method": exchange.method,
            "prod_body_preview": outcome.prod_body[: self.preview_length],
            "shadow_body_preview": outcome.shadow_body[: self.preview_length],
            "ignored_keys": list(outcome.ignored_keys),
            "structural": outcome.structural,
            # Informational only, status codes are not compared
            "prod_status": exchange.status_code,
            "shadow_status": shadow.status_code if shadow else None,
        }

    def report(
        self,
        exchange: CapturedExchange,
        outcome: ComparisonOutcome,
        shadow: Optional[ShadowResponse] = None,
    ) -> bool:
        """Emit the record if ``outcome`` is a mismatch.

        Returns True when a record was emitted.
        """
        if outcome.is_match:
            return False
        try:
            self._log.warning("shadow_mismatch", **self.build_record(exchange, outcome, shadow))
        except Exception:
            return False
        return True
