"""
On-behalf-of token exchange package.

The exchanger trades a caller's validated assertion for an access token
scoped to the downstream ERP and keeps the result in a cache keyed by a
SHA-256 fingerprint of (assertion, resource).
"""

from .exchanger import OBOExchanger
from .token_cache import CachedToken, TokenCache, fingerprint

__all__ = [
    "CachedToken",
    "OBOExchanger",
    "TokenCache",
    "fingerprint",
]
