"""Shadow core: capture, dispatch, compare, report."""

from ..models import CapturedExchange, ComparisonOutcome, ShadowResponse
from .capture import ExchangeCapture, RequestTap, ResponseTap, tee_body_iterator
from .comparator import canonical_dumps, compare, decode_document
from .dispatcher import ShadowDispatcher
from .pipeline import ShadowPipeline, join_legs
from .reporter import MismatchReporter
from .sanitizer import sanitize

__all__ = [
    "CapturedExchange",
    "ComparisonOutcome",
    "ShadowResponse",
    "ExchangeCapture",
    "RequestTap",
    "ResponseTap",
    "tee_body_iterator",
    "canonical_dumps",
    "compare",
    "decode_document",
    "ShadowDispatcher",
    "ShadowPipeline",
    "join_legs",
    "MismatchReporter",
    "sanitize",
]
