"""
Authentication middleware for the broker.
"""

import re
from typing import Awaitable, Callable, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.logging import get_logger, set_user_context
from shared.errors import (
    AuthenticationError,
    MalformedHeaderError,
    MissingHeaderError,
    MissingTokenError,
)
from ..context import request_context
from ..validation.token_validator import JWTValidator

BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

INVALID_TOKEN_MESSAGE = "Unauthorized - Invalid or expired token"


def rejection(message: str) -> JSONResponse:
    """Rejections use a 200 status; callers branch on ``isSuccess``."""
    return JSONResponse(status_code=200, content={"isSuccess": False, "message": message})


class AuthMiddleware:
    """Validates bearer assertions and binds them to the request context."""

    def __init__(self, validator: JWTValidator, protected_prefixes: Tuple[str, ...] = ("/api/d365",)):
        self.validator = validator
        self.protected_prefixes = protected_prefixes
        self.logger = get_logger("broker.auth_middleware")

    def is_protected(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.protected_prefixes)

    def extract_token(self, request: Request) -> str:
        """Pull the bearer token out of the Authorization header."""
        values = request.headers.getlist("authorization")
        if len(values) != 1 or not values[0]:
            raise MissingHeaderError()

        match = BEARER_PATTERN.match(values[0])
        if not match:
            raise MalformedHeaderError()

        token = match.group(1).strip()
        if not token:
            raise MissingTokenError()
        return token

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if not self.is_protected(request.url.path):
            return await call_next(request)

        try:
            token = self.extract_token(request)
        except AuthenticationError as e:
            self.logger.warning("Authorization header rejected", code=e.code, path=request.url.path)
            return rejection(e.message)

        try:
            assertion = await self.validator.authenticate(token)
        except AuthenticationError as e:
            self.logger.error("JWT validation failed", code=e.code, details=e.details)
            return rejection(INVALID_TOKEN_MESSAGE)

        set_user_context(user_id=assertion.object_id or assertion.subject)
        self.logger.info("Request authenticated with JWT", issuer=assertion.issuer)
        with request_context(assertion):
            return await call_next(request)
