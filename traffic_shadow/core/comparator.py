# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Structural comparison of production and shadow response bodies.

Both bodies are decoded as JSON and compared after sanitizing. If either
side is not valid UTF-8 JSON, the raw bytes are compared for exact equality
and the ignore keys play no part. Decoded text is only used for previews.
"""

import json
from typing import Any, Iterable

from ..models import ComparisonOutcome
from .sanitizer import sanitize


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def as_text(body: bytes | bytearray | str | None) -> str:
    """Decode a body to text (UTF-8, undecodable bytes replaced)."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    return bytes(body).decode("utf-8", errors="replace")


def as_bytes(body: bytes | bytearray | str | None) -> bytes:
    """Raw bytes of a body; text is encoded as UTF-8."""
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)


def decode_document(text: str) -> tuple[bool, Any]:
    """Decode strict JSON.

    Returns ``(True, document)`` on success and ``(False, None)`` otherwise.
    ``NaN``/``Infinity`` literals are rejected. A document that decodes to
    ``null``, ``false``, ``0`` or ``""`` is still a successful decode.
    Nesting too deep to decode counts as a failure.
    """
    try:
        return True, json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError, TypeError, RecursionError):
        return False, None


def _decode_body(body: bytes | bytearray | str | None) -> tuple[bool, Any]:
    # Bytes that are not valid UTF-8 are not JSON
    try:
        text = body if isinstance(body, str) else as_bytes(body).decode("utf-8")
    except UnicodeDecodeError:
        return False, None
    return decode_document(text)


def _normalize_numbers(value: Any) -> Any:
    # JSON has one number type: 1 and 1.0 are the same value.
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _normalize_numbers(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_numbers(item) for item in value]
    return value


def canonical_dumps(document: Any) -> str:
    """Serialize a document so that key order does not matter."""
    return json.dumps(
        _normalize_numbers(document),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compare(
    prod_body: bytes | bytearray | str | None,
    shadow_body: bytes | bytearray | str | None,
    ignore_keys: Iterable[str] = (),
) -> ComparisonOutcome:
    """Decide whether the shadow body matches the production body.

    Args:
        prod_body: Production response body (bytes or text).
        shadow_body: Shadow response body (bytes or text).
        ignore_keys: Field names excluded from structural comparison.

    Returns:
        ComparisonOutcome carrying the raw (unsanitized) texts.
    """
    keys = tuple(ignore_keys)
    prod_text = as_text(prod_body)
    shadow_text = as_text(shadow_body)

    prod_ok, prod_doc = _decode_body(prod_body)
    shadow_ok, shadow_doc = _decode_body(shadow_body)

    is_match = None
    structural = False
    if prod_ok and shadow_ok:
        key_set = frozenset(keys)
        try:
            is_match = canonical_dumps(sanitize(prod_doc, key_set)) == canonical_dumps(
                sanitize(shadow_doc, key_set)
            )
            structural = True
        except RecursionError:
            # Too deep to canonicalize, compare raw bytes instead
            pass

    if is_match is None:
        is_match = as_bytes(prod_body) == as_bytes(shadow_body)

    return ComparisonOutcome(
        is_match=is_match,
        prod_body=prod_text,
        shadow_body=shadow_text,
        ignored_keys=keys,
        structural=structural,
    )
