# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Shadow settings using Pydantic Settings.

``ShadowSettings`` is read from the environment (``SHADOW_*``) and turned
into an immutable ``ShadowConfig`` that governs one middleware instance.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Literal

import httpx
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ShadowConfigError

DEFAULT_SKIP_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
DEFAULT_MARKER_HEADER = "x-shadow-traffic"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return tuple(seen)


@dataclass(frozen=True)
class ShadowConfig:
    """Immutable configuration for one shadow middleware instance.

    ``target`` is the shadow service base URL. ``ignore_keys`` are the field
    names stripped (at any depth) before structural comparison.
    ``capture_timeout_seconds`` bounds how long a comparison waits for the
    production response after the request body completed.
    """

    target: str
    ignore_keys: tuple[str, ...] = ()
    enabled: bool = True
    timeout_seconds: float = 5.0
    capture_timeout_seconds: float = 60.0
    max_in_flight: int = 100
    marker_header: str = DEFAULT_MARKER_HEADER
    skip_methods: frozenset[str] = field(default=DEFAULT_SKIP_METHODS)
    preview_length: int = 100

    def __post_init__(self) -> None:
        if not self.target:
            raise ShadowConfigError("target", "is required")
        try:
            url = httpx.URL(self.target)
        except (httpx.InvalidURL, TypeError) as e:
            raise ShadowConfigError("target", f"is not a valid URL ({e})") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ShadowConfigError(
                "target",
                "must be an absolute http(s) URL",
                details={"field": "target", "value": self.target},
            )

        keys = self.ignore_keys
        if isinstance(keys, str):
            keys = _split_csv(keys)
        object.__setattr__(self, "ignore_keys", _unique(keys))
        object.__setattr__(
            self, "skip_methods", frozenset(m.upper() for m in self.skip_methods)
        )

        if self.timeout_seconds <= 0:
            raise ShadowConfigError("timeout_seconds", "must be positive")
        if self.capture_timeout_seconds <= 0:
            raise ShadowConfigError("capture_timeout_seconds", "must be positive")
        if self.max_in_flight < 1:
            raise ShadowConfigError("max_in_flight", "must be at least 1")
        if self.preview_length < 0:
            raise ShadowConfigError("preview_length", "must not be negative")

    @property
    def ignore_key_set(self) -> frozenset[str]:
        """Ignore keys as a set for membership tests."""
        return frozenset(self.ignore_keys)

    @property
    def target_host(self) -> str:
        """Host header value for the shadow target (host[:port])."""
        url = httpx.URL(self.target)
        return url.netloc.decode("ascii")

    def should_shadow(self, method: str) -> bool:
        """Whether requests with this method are mirrored."""
        return self.enabled and method.upper() not in self.skip_methods


class ShadowSettings(BaseSettings):
    """Shadow traffic configuration settings.

    All settings can be overridden via ``SHADOW_*`` environment variables.
    List values are comma-separated strings.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHADOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Traffic Shadow"
    app_version: str = "0.1.0"
    environment: Literal["dev", "staging", "prod"] = "dev"

    # Shadow target
    enabled: bool = True
    target: str = "http://localhost:4000"
    ignore_keys: str = ""  # e.g. "timestamp,trace_id,_id"
    skip_methods: str = "GET,HEAD,OPTIONS"
    marker_header: str = DEFAULT_MARKER_HEADER

    # Hardening
    timeout_seconds: float = 5.0
    capture_timeout_seconds: float = 60.0
    max_in_flight: int = 100

    # Reporting
    preview_length: int = 100

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Observability
    metrics_prefix: str = "traffic"

    # Demo servers
    host: str = "0.0.0.0"
    prod_port: int = 3000
    shadow_port: int = 4000

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @property
    def ignore_keys_list(self) -> list[str]:
        """Return ignore keys as a list."""
        return _split_csv(self.ignore_keys)

    @property
    def skip_methods_list(self) -> list[str]:
        """Return skipped HTTP methods as an upper-case list."""
        return [m.upper() for m in _split_csv(self.skip_methods)]

    def to_config(self) -> ShadowConfig:
        """Build the immutable middleware configuration."""
        return ShadowConfig(
            target=self.target,
            ignore_keys=tuple(self.ignore_keys_list),
            enabled=self.enabled,
            timeout_seconds=self.timeout_seconds,
            capture_timeout_seconds=self.capture_timeout_seconds,
            max_in_flight=self.max_in_flight,
            marker_header=self.marker_header,
            skip_methods=frozenset(self.skip_methods_list),
            preview_length=self.preview_length,
        )


@lru_cache
def get_settings() -> ShadowSettings:
    """Get cached settings instance."""
    return ShadowSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
