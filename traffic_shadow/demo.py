# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Two-server shadow traffic demo.

Runs a production app (port ``SHADOW_PROD_PORT``, default 3000) with the
shadow middleware attached, and a shadow app (``SHADOW_SHADOW_PORT``,
default 4000). Both echo posted JSON with a different ``timestamp`` and
``trace_id``; with ``SHADOW_IGNORE_KEYS=timestamp,trace_id`` they match.

    SHADOW_IGNORE_KEYS=timestamp,trace_id python -m traffic_shadow.demo
    curl -X POST localhost:3000/api/data -H 'content-type: application/json' \\
        -d '{"user_id": 101, "action": "update_profile"}'
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import ShadowConfig, ShadowSettings, get_settings
from .core.pipeline import ShadowPipeline
from .logging_config import configure_logging, get_logger
from .middleware import ShadowMiddleware

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_shadow_app() -> FastAPI:
    """Shadow (staging) service."""
    app = FastAPI(title="Shadow Service")

    @app.post("/api/data")
    async def receive_data(payload: dict[str, Any]) -> dict[str, Any]:
        logger.info("shadow_received", payload=payload)
        return {
            "status": "success",
            "data": payload,
            "timestamp": _now_ms(),
            "trace_id": "shadow-123",
        }

    return app


def create_production_app(
    config: Optional[ShadowConfig] = None,
    pipeline: Optional[ShadowPipeline] = None,
) -> FastAPI:
    """Production service with the shadow middleware attached first."""
    if pipeline is None:
        pipeline = ShadowPipeline(config or get_settings().to_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting production service", **pipeline.describe())
        yield
        await pipeline.aclose()
        logger.info("Shut down production service")

    app = FastAPI(title="Production Service", lifespan=lifespan)
    app.state.shadow_pipeline = pipeline
    app.add_middleware(ShadowMiddleware, pipeline=pipeline)

    @app.post("/api/data")
    async def process_data(payload: dict[str, Any]) -> dict[str, Any]:
        logger.info("production_processed", payload=payload)
        return {
            "status": "success",
            "data": payload,
            "timestamp": _now_ms() + 500,
            "trace_id": "prod-999",
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "healthy", "shadow": pipeline.describe()}

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


async def serve(settings: ShadowSettings) -> None:
    """Serve the shadow and production apps side by side."""
    config = settings.to_config()
    shadow = uvicorn.Server(
        uvicorn.Config(create_shadow_app(), host=settings.host, port=settings.shadow_port, log_config=None)
    )
    production = uvicorn.Server(
        uvicorn.Config(
            create_production_app(config),
            host=settings.host,
            port=settings.prod_port,
            log_config=None,
        )
    )
    logger.info(
        "Starting demo servers",
        prod_port=settings.prod_port,
        shadow_port=settings.shadow_port,
        target=config.target,
        ignore_keys=list(config.ignore_keys),
    )
    await asyncio.gather(shadow.serve(), production.serve())


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
