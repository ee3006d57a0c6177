# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Shadow traffic error codes and exception classes.

None of these ever reach the real caller. Only ``ShadowConfigError`` is
raised to user code, at setup time; every other error is raised and caught
inside the shadow side-channel, where it turns into "no comparison for this
request".

Error dict shape:
```json
{
  "error": {
    "code": "SHADOW_UNREACHABLE",
    "message": "Shadow target http://shadow:4000 unreachable: ConnectError",
    "details": {"target": "http://shadow:4000", "reason": "ConnectError"}
  }
}
```
"""

from enum import Enum
from typing import Any


class ShadowErrorCode(str, Enum):
    """Standard shadow error codes."""

    # Setup
    INVALID_CONFIG = "INVALID_CONFIG"

    # Shadow leg
    SHADOW_UNREACHABLE = "SHADOW_UNREACHABLE"
    SHADOW_TIMEOUT = "SHADOW_TIMEOUT"
    SHADOW_SATURATED = "SHADOW_SATURATED"

    # Production leg
    CAPTURE_FAILED = "CAPTURE_FAILED"


class ShadowError(Exception):
    """Base exception for shadow errors.

    Usage:
        raise ShadowError(
            code=ShadowErrorCode.SHADOW_UNREACHABLE,
            message=f"Shadow target '{target}' unreachable",
            details={"target": target},
        )
    """

    def __init__(
        self,
        code: ShadowErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, ShadowErrorCode) else ShadowErrorCode(code)
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Specific Error Classes
# =============================================================================


class ShadowConfigError(ShadowError):
    """Raised when the shadow configuration is invalid."""

    def __init__(self, field: str, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ShadowErrorCode.INVALID_CONFIG,
            message=f"Invalid shadow configuration: '{field}' {reason}",
            details=details or {"field": field, "reason": reason},
        )
        self.field = field


class ShadowUnreachableError(ShadowError):
    """Raised when the shadow call fails at the network level."""

    def __init__(self, target: str, reason: str, message: str | None = None):
        super().__init__(
            code=ShadowErrorCode.SHADOW_UNREACHABLE,
            message=message or f"Shadow target {target} unreachable: {reason}",
            details={"target": target, "reason": reason},
        )


class ShadowTimeoutError(ShadowError):
    """Raised when the shadow call exceeds the configured timeout."""

    def __init__(self, target: str, timeout_seconds: float):
        super().__init__(
            code=ShadowErrorCode.SHADOW_TIMEOUT,
            message=f"Shadow target {target} timed out after {timeout_seconds}s",
            details={"target": target, "timeout_seconds": timeout_seconds},
        )


class ShadowSaturatedError(ShadowError):
    """Raised when too many shadow calls are already in flight."""

    def __init__(self, max_in_flight: int):
        super().__init__(
            code=ShadowErrorCode.SHADOW_SATURATED,
            message=f"Shadow dispatcher saturated ({max_in_flight} calls in flight)",
            details={"max_in_flight": max_in_flight},
        )


class CaptureError(ShadowError):
    """Raised when the production leg of an exchange did not complete."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            code=ShadowErrorCode.CAPTURE_FAILED,
            message=f"Production response for {path} was not captured: {reason}",
            details={"path": path, "reason": reason},
        )
