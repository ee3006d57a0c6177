# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Strip ignored fields from decoded JSON documents before comparison."""

from typing import AbstractSet, Any, Iterable


def sanitize(document: Any, ignore_keys: Iterable[str]) -> Any:
    """Return a copy of ``document`` without any key in ``ignore_keys``.

    Keys are matched by exact name at any depth: an ignored ``timestamp`` is
    dropped at the top level and inside nested objects and arrays alike.
    Scalars and ``None`` pass through unchanged. The input is never mutated.

    Args:
        document: Value produced by ``json.loads`` (dict, list, str, int,
            float, bool or None). Cyclic structures are not supported.
        ignore_keys: Field names to remove.

    Returns:
        The sanitized projection of ``document``.
    """
    keys = ignore_keys if isinstance(ignore_keys, (set, frozenset)) else frozenset(ignore_keys)
    return _sanitize(document, keys)


def _sanitize(value: Any, keys: AbstractSet[str]) -> Any:
    if isinstance(value, dict):
        return {k: _sanitize(v, keys) for k, v in value.items() if k not in keys}
    if isinstance(value, list):
        return [_sanitize(item, keys) for item in value]
    return value
