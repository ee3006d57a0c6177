# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""End-to-end tests for the two-server demo, wired in-process."""

import httpx
import pytest

from traffic_shadow.config import ShadowConfig
from traffic_shadow.core.dispatcher import ShadowDispatcher
from traffic_shadow.core.pipeline import ShadowPipeline
from traffic_shadow.demo import create_production_app, create_shadow_app

PAYLOAD = {"user_id": 101, "action": "update_profile"}


def _pipeline(mock_reporter, ignore_keys=()) -> ShadowPipeline:
    config = ShadowConfig(target="http://shadow.test:4000", ignore_keys=ignore_keys)
    dispatcher = ShadowDispatcher(config, transport=httpx.ASGITransport(app=create_shadow_app()))
    return ShadowPipeline(config, dispatcher=dispatcher, reporter=mock_reporter)


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://prod.test")


class TestDemo:
    """Production and shadow apps differ only in timestamp and trace_id."""

    @pytest.mark.asyncio
    async def test_match_when_volatile_keys_ignored(self, mock_reporter):
        pipeline = _pipeline(mock_reporter, ignore_keys=("timestamp", "trace_id"))

        async with _client(create_production_app(pipeline=pipeline)) as client:
            response = await client.post("/api/data", json=PAYLOAD)
        await pipeline.drain()

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == PAYLOAD
        assert body["trace_id"] == "prod-999"
        mock_reporter.report.assert_not_called()

    @pytest.mark.asyncio
    async def test_mismatch_without_ignore_keys(self, mock_reporter):
        pipeline = _pipeline(mock_reporter)

        async with _client(create_production_app(pipeline=pipeline)) as client:
            await client.post("/api/data", json=PAYLOAD)
        await pipeline.drain()

        mock_reporter.report.assert_called_once()
        exchange, outcome, shadow = mock_reporter.report.call_args[0]
        assert exchange.path == "/api/data"
        assert '"trace_id":"shadow-123"' in outcome.shadow_body
        assert shadow.status_code == 200

    @pytest.mark.asyncio
    async def test_health_not_shadowed(self, mock_reporter):
        pipeline = _pipeline(mock_reporter)

        async with _client(create_production_app(pipeline=pipeline)) as client:
            response = await client.get("/health")
        await pipeline.drain()

        assert response.status_code == 200
        assert response.json()["shadow"]["target"] == "http://shadow.test:4000"
        assert pipeline.pending == 0

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, mock_reporter):
        pipeline = _pipeline(mock_reporter, ignore_keys=("timestamp", "trace_id"))

        async with _client(create_production_app(pipeline=pipeline)) as client:
            await client.post("/api/data", json=PAYLOAD)
            await pipeline.drain()
            response = await client.get("/metrics")

        assert response.status_code == 200
        assert "traffic_shadow_comparisons_total" in response.text
