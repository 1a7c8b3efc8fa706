"""
Token validation package.

Validates Entra ID assertions presented by callers: signature, expiry and
audience are checked by the key-sets in the issuer registry, and the issuer
claim is checked here against the fixed allow-list.
"""

from .token_validator import InboundAssertion, JWTValidator

__all__ = [
    "InboundAssertion",
    "JWTValidator",
]
