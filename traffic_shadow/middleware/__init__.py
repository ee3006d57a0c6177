"""Middleware components."""

from .handler import shadowed, with_shadow
from .shadow import ShadowMiddleware

__all__ = [
    # Stream interception (ASGI)
    "ShadowMiddleware",
    # Endpoint wrapper (request/response duplication)
    "with_shadow",
    "shadowed",
]
