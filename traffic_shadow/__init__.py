# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Traffic shadowing: mirror state-changing requests to a shadow service and
compare its responses with production."""

from .config import ShadowConfig, ShadowSettings, get_settings
from .core import (
    ComparisonOutcome,
    MismatchReporter,
    ShadowDispatcher,
    ShadowPipeline,
    compare,
    sanitize,
)
from .middleware import ShadowMiddleware, shadowed, with_shadow

__version__ = "0.1.0"

__all__ = [
    "ShadowConfig",
    "ShadowSettings",
    "get_settings",
    "ComparisonOutcome",
    "MismatchReporter",
    "ShadowDispatcher",
    "ShadowPipeline",
    "compare",
    "sanitize",
    "ShadowMiddleware",
    "shadowed",
    "with_shadow",
]
