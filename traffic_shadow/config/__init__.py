"""Configuration module."""

from .settings import (
    ShadowConfig,
    ShadowSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = ["ShadowConfig", "ShadowSettings", "get_settings", "clear_settings_cache"]
