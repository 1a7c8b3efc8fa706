"""
Shared error handling for the OBO token broker.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class BrokerError(Exception):
    """Base exception for broker services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(BrokerError):
    """Authentication-related errors.

    Every subclass is reported to the caller with the same rejection payload;
    the variant only shows up in logs.
    """

    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(self.code, message, details)


class MissingHeaderError(AuthenticationError):
    """Authorization header absent, empty or multi-valued."""

    code = "MISSING_HEADER"

    def __init__(self, message: str = "Missing Authorization header", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class MalformedHeaderError(AuthenticationError):
    """Authorization header does not use the Bearer scheme."""

    code = "MALFORMED_HEADER"

    def __init__(self, message: str = "Invalid Authorization header", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class MissingTokenError(AuthenticationError):
    """Bearer scheme present but the token is blank."""

    code = "MISSING_TOKEN"

    def __init__(self, message: str = "Missing token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class SignatureInvalidError(AuthenticationError):
    """No configured key-set could verify the token."""

    code = "SIGNATURE_INVALID"

    def __init__(self, message: str = "Token signature could not be verified", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class UnexpectedIssuerError(AuthenticationError):
    """Token verified but its issuer is not on the allow-list."""

    code = "UNEXPECTED_ISSUER"

    def __init__(self, message: str = "Unexpected issuer", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ExchangeError(BrokerError):
    """On-behalf-of token exchange failed."""

    def __init__(self, status: Optional[int], body: str):
        self.status = status
        self.body = body
        super().__init__(
            "EXCHANGE_ERROR",
            f"OBO token exchange failed: {status} {body}",
            {"status": status}
        )


class NetworkError(BrokerError):
    """Downstream ERP call returned a non-success status."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(
            "NETWORK_ERROR",
            f"Network error calling F&O: {status} {body}",
            {"status": status}
        )


class MissingAssertionError(BrokerError):
    """No user assertion is bound to the current request."""

    def __init__(self, message: str = "Missing user assertion for OBO"):
        super().__init__("MISSING_ASSERTION", message)
