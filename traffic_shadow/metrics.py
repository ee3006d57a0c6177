# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Prometheus metrics for shadow traffic."""

from prometheus_client import Counter, Histogram

from .config import get_settings

prefix = get_settings().metrics_prefix

SHADOW_REQUESTS_TOTAL = Counter(
    f"{prefix}_shadow_requests_total",
    "Total shadow requests sent to the shadow target",
    ["status"],  # success, error, timeout, saturated
)

SHADOW_LATENCY_SECONDS = Histogram(
    f"{prefix}_shadow_latency_seconds",
    "Latency of shadow requests",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

SHADOW_COMPARISONS_TOTAL = Counter(
    f"{prefix}_shadow_comparisons_total",
    "Shadow comparison results",
    ["result"],  # match, mismatch, skipped
)

SHADOW_CAPTURE_ERRORS_TOTAL = Counter(
    f"{prefix}_shadow_capture_errors_total",
    "Errors raised while capturing request/response bodies",
    ["side"],  # request, response
)
