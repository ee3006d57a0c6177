# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for Shadow Traffic Middleware."""

from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.responses import PlainTextResponse, StreamingResponse

from traffic_shadow.config import ShadowConfig
from traffic_shadow.middleware.shadow import ShadowMiddleware


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.post("/api/data")
    async def create(request: Request):
        payload = await request.json()
        return {"status": "success", "data": payload, "timestamp": 1000}

    @app.put("/api/text")
    async def text(request: Request):
        await request.body()
        return PlainTextResponse("plain text A", headers={"x-custom": "yes"})

    @app.post("/api/stream")
    async def stream(request: Request):
        await request.body()

        async def chunks():
            yield b'{"items":['
            yield b"1,2"
            yield b"]}"

        return StreamingResponse(chunks(), media_type="application/json")

    @app.post("/api/fail")
    async def fail(request: Request):
        await request.body()
        raise RuntimeError("handler crashed")

    @app.post("/api/ignore-body")
    async def ignore_body():
        return {"ok": True}

    @app.get("/api/data")
    async def read():
        return {"status": "success"}

    return app


def app_with_shadow(pipeline) -> FastAPI:
    app = _build_app()
    app.add_middleware(ShadowMiddleware, pipeline=pipeline)
    return app


def _client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://prod.test")


class TestShadowMiddleware:
    """Tests for ShadowMiddleware class."""

    @pytest.mark.asyncio
    async def test_response_unchanged_by_shadowing(self, make_pipeline, make_shadow):
        """The caller gets the same status, headers and bytes with or without shadowing."""
        pipeline = make_pipeline(make_shadow(body='{"unrelated": true}'))

        async with _client(_build_app()) as plain, _client(app_with_shadow(pipeline)) as shadowed:
            for method, url, kwargs in [
                ("POST", "/api/data", {"json": {"user_id": 101}}),
                ("PUT", "/api/text", {}),
                ("POST", "/api/stream", {"content": b"x"}),
            ]:
                expected = await plain.request(method, url, **kwargs)
                actual = await shadowed.request(method, url, **kwargs)

                assert actual.status_code == expected.status_code
                assert actual.content == expected.content
                assert actual.headers == expected.headers

        await pipeline.drain()

    @pytest.mark.asyncio
    async def test_shadow_receives_mirrored_request(self, make_pipeline, make_shadow):
        shadow = make_shadow()
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            await client.post(
                "/api/data?debug=1",
                content=b'{"user_id": 101}',
                headers={"content-type": "application/json", "x-request-id": "abc"},
            )
        await pipeline.drain()

        assert len(shadow.requests) == 1
        sent = shadow.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "http://shadow.test:4000/api/data?debug=1"
        assert sent.content == b'{"user_id": 101}'
        assert sent.headers["x-request-id"] == "abc"
        assert sent.headers["x-shadow-traffic"] == "true"
        assert sent.headers["host"] == "shadow.test:4000"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    async def test_safe_methods_not_shadowed(self, make_pipeline, make_shadow, method):
        shadow = make_shadow()
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            await client.request(method, "/api/data")
        await pipeline.drain()

        assert shadow.requests == []

    @pytest.mark.asyncio
    async def test_ignored_keys_match(self, make_pipeline, make_shadow, mock_reporter):
        shadow = make_shadow(body='{"status":"success","data":{"id":1},"timestamp":2000}')
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            await client.post("/api/data", json={"id": 1})
        await pipeline.drain()

        mock_reporter.report.assert_not_called()

    @pytest.mark.asyncio
    async def test_mismatch_reported(self, make_pipeline, make_shadow, mock_reporter):
        shadow = make_shadow(body='{"status":"success","data":{"id":1},"timestamp":2000}')
        pipeline = make_pipeline(shadow, ShadowConfig(target="http://shadow.test:4000"))

        async with _client(app_with_shadow(pipeline)) as client:
            await client.post("/api/data", json={"id": 1})
        await pipeline.drain()

        mock_reporter.report.assert_called_once()
        exchange, outcome, _ = mock_reporter.report.call_args[0]
        assert exchange.path == "/api/data"
        assert exchange.status_code == 200
        assert outcome.ignored_keys == ()

    @pytest.mark.asyncio
    async def test_streaming_response_captured_in_order(self, make_pipeline, make_shadow, mock_reporter):
        shadow = make_shadow(body='{"items":[1,2]}')
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            response = await client.post("/api/stream", content=b"go")
        await pipeline.drain()

        assert response.content == b'{"items":[1,2]}'
        mock_reporter.report.assert_not_called()

    @pytest.mark.asyncio
    async def test_plain_text_fallback(self, make_pipeline, make_shadow, mock_reporter):
        shadow = make_shadow(body="plain text B")
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            await client.put("/api/text", content=b"")
        await pipeline.drain()

        mock_reporter.report.assert_called_once()
        _, outcome, _ = mock_reporter.report.call_args[0]
        assert outcome.structural is False

    @pytest.mark.asyncio
    async def test_shadow_unreachable(self, make_pipeline, make_shadow, mock_reporter):
        """Production response delivered, no mismatch reported."""
        shadow = make_shadow(error=httpx.ConnectError("connection refused"))
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            response = await client.post("/api/data", json={"id": 1})
        await pipeline.drain()

        assert response.status_code == 200
        assert response.json() == {"status": "success", "data": {"id": 1}, "timestamp": 1000}
        mock_reporter.report.assert_not_called()

    @pytest.mark.asyncio
    async def test_handler_error_propagates_and_skips(self, make_pipeline, make_shadow, mock_reporter):
        shadow = make_shadow(body="anything")
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            with pytest.raises(RuntimeError, match="handler crashed"):
                await client.post("/api/fail", content=b"{}")
        await pipeline.drain()

        mock_reporter.report.assert_not_called()
        assert pipeline.pending == 0

    @pytest.mark.asyncio
    async def test_unread_request_body_not_shadowed(self, make_pipeline, make_shadow):
        shadow = make_shadow()
        pipeline = make_pipeline(shadow)

        async with _client(app_with_shadow(pipeline)) as client:
            response = await client.post("/api/ignore-body", content=b"unused")
        await pipeline.drain()

        assert response.json() == {"ok": True}
        assert shadow.requests == []

    @pytest.mark.asyncio
    async def test_non_http_scope_passes_through(self, shadow_config):
        inner = MagicMock()

        async def app(scope, receive, send):
            inner(scope, receive, send)

        middleware = ShadowMiddleware(app, config=shadow_config)
        scope = {"type": "lifespan"}
        receive, send = object(), object()

        await middleware(scope, receive, send)

        inner.assert_called_once_with(scope, receive, send)

    def test_shadow_middleware_disabled(self, make_shadow):
        """Middleware should pass through when disabled."""
        app = _build_app()
        app.add_middleware(
            ShadowMiddleware,
            target="http://shadow.test:4000",
            enabled=False,
        )

        client = TestClient(app)
        response = client.post("/api/data", json={"id": 1})
        assert response.status_code == 200
        assert response.json()["data"] == {"id": 1}


class TestConstruction:
    """Configuration sources for the middleware."""

    def test_from_target_and_keys(self):
        middleware = ShadowMiddleware(
            app=MagicMock(),
            target="http://shadow:4000",
            ignore_keys=["timestamp", "trace_id"],
            timeout_seconds=2.0,
        )

        assert middleware.config.target == "http://shadow:4000"
        assert middleware.config.ignore_keys == ("timestamp", "trace_id")
        assert middleware.config.timeout_seconds == 2.0

    @pytest.mark.parametrize(
        "ignore_keys,expected",
        [
            ("timestamp", ("timestamp",)),
            ("timestamp, trace_id", ("timestamp", "trace_id")),
            (None, ()),
        ],
    )
    def test_ignore_keys_string_kept_whole(self, ignore_keys, expected):
        middleware = ShadowMiddleware(
            app=MagicMock(),
            target="http://shadow:4000",
            ignore_keys=ignore_keys,
        )

        assert middleware.config.ignore_keys == expected

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("SHADOW_TARGET", "http://env-shadow:9000")
        monkeypatch.setenv("SHADOW_IGNORE_KEYS", "timestamp, _id")

        middleware = ShadowMiddleware(app=MagicMock())

        assert middleware.config.target == "http://env-shadow:9000"
        assert middleware.config.ignore_keys == ("timestamp", "_id")
