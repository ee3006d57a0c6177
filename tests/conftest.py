# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pytest configuration and shared fixtures."""

from typing import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from traffic_shadow.config import ShadowConfig, clear_settings_cache
from traffic_shadow.core.dispatcher import ShadowDispatcher
from traffic_shadow.core.pipeline import ShadowPipeline
from traffic_shadow.core.reporter import MismatchReporter

SHADOW_TARGET = "http://shadow.test:4000"


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def shadow_config() -> ShadowConfig:
    """Config used by most tests: ignore timestamps."""
    return ShadowConfig(target=SHADOW_TARGET, ignore_keys=("timestamp",))


class RecordingShadow:
    """Fake shadow service behind ``httpx.MockTransport``.

    Records every request it receives and answers with ``body``/``status``,
    or raises ``error`` to simulate a network failure.
    """

    def __init__(
        self,
        body: str | bytes = "{}",
        status: int = 200,
        error: Exception | None = None,
        content_type: str = "application/json",
    ):
        self.body = body
        self.status = status
        self.error = error
        self.content_type = content_type
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        content = self.body.encode("utf-8") if isinstance(self.body, str) else self.body
        return httpx.Response(
            self.status,
            content=content,
            headers={"content-type": self.content_type},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def make_shadow() -> Callable[..., RecordingShadow]:
    """Factory for fake shadow services."""
    return RecordingShadow


@pytest.fixture
def recording_shadow() -> RecordingShadow:
    return RecordingShadow()


@pytest.fixture
def mock_reporter() -> MagicMock:
    return MagicMock(spec=MismatchReporter)


@pytest.fixture
def make_pipeline(shadow_config, mock_reporter) -> Callable[..., ShadowPipeline]:
    """Build a pipeline whose shadow calls go to a RecordingShadow."""

    def _make(shadow: RecordingShadow, config: ShadowConfig | None = None) -> ShadowPipeline:
        config = config or shadow_config
        dispatcher = ShadowDispatcher(config, transport=shadow.transport)
        return ShadowPipeline(config, dispatcher=dispatcher, reporter=mock_reporter)

    return _make
