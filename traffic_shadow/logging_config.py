# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Structured logging for the shadow side-channel.

Every record carries the service identity and the shadow target it mirrors
to. Events emitted by the shadow pipeline (``shadow_*``) are tagged with
``channel="shadow"`` so they can be filtered apart from the host
application's own logs in Loki.
"""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from structlog.typing import EventDict, WrappedLogger

from .config import ShadowSettings, get_settings

SERVICE_NAME = "traffic-shadow"
SHADOW_EVENT_PREFIX = "shadow_"

# Loggers that would otherwise log every mirrored request
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


class ShadowContext:
    """Processor adding service identity and shadow target to each entry."""

    def __init__(self, settings: ShadowSettings):
        self._fields = {
            "service": SERVICE_NAME,
            "version": settings.app_version,
            "environment": settings.environment,
            "shadow_target": settings.target,
        }

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in self._fields.items():
            event_dict.setdefault(key, value)
        return event_dict


def tag_shadow_events(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag records emitted by the shadow pipeline."""
    event = event_dict.get("event")
    if isinstance(event, str) and event.startswith(SHADOW_EVENT_PREFIX):
        event_dict["channel"] = "shadow"
    return event_dict


def configure_logging(
    settings: Optional[ShadowSettings] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Route structlog and stdlib logging through one renderer.

    ``log_format="json"`` renders one JSON object per line; ``"console"``
    renders colored key/value output for local runs.
    """
    settings = settings or get_settings()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        ShadowContext(settings),
        tag_shadow_events,
    ]

    if settings.log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None and sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.stdlib.get_logger(name)
