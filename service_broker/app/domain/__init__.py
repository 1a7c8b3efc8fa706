"""
Domain utilities for the broker service.

Includes cross-cutting middleware and request processing helpers that do
not belong to the JWKS, OBO or OData layers.
"""

from .auth_middleware import AuthMiddleware

__all__ = [
    "AuthMiddleware",
]
