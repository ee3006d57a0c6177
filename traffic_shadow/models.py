# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Per-request shadow data model.

Nothing here is persisted. A ``CapturedExchange`` lives from the moment a
request enters the middleware until its comparison completes or is skipped.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CapturedExchange:
    """Request and production response bytes observed for one request.

    Request-side fields fill in as body chunks arrive; response-side fields
    fill in as the production handler writes output. Chunks are appended in
    transmission order.
    """

    method: str
    path: str
    query: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    request_body: bytearray = field(default_factory=bytearray)
    response_body: bytearray = field(default_factory=bytearray)
    status_code: Optional[int] = None

    @property
    def url_path(self) -> str:
        """Path with query string, as the original caller sent it."""
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path


@dataclass(frozen=True)
class ShadowResponse:
    """Result of a successful shadow call.

    ``body`` is kept as raw bytes so both legs are decoded the same way,
    whatever charset the shadow declares.
    """

    status_code: int
    body: bytes
    latency_seconds: float = 0.0


@dataclass(frozen=True)
class ComparisonOutcome:
    """Verdict of comparing a production body with a shadow body."""

    is_match: bool
    prod_body: str
    shadow_body: str
    ignored_keys: tuple[str, ...] = ()
    structural: bool = True  # False when raw equality fallback was used
