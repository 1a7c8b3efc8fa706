"""
JWKS client package.

Contains logic for retrieving and caching the JSON Web Key Sets used to
verify inbound Entra ID assertions, and the registry pairing each key-set
with the issuer URL it belongs to.

Key points:
- Entra ID publishes two token formats (v1 and v2) with separate key-sets;
  both are registered and v2 is always tried first.
- Keys are cached for a TTL; an unknown kid triggers one forced refresh.
- A failed refresh falls back to the stale key-set when one exists.
"""

from .client import RemoteKeySet
from .registry import IssuerConfig, IssuerRegistry

__all__ = [
    "IssuerConfig",
    "IssuerRegistry",
    "RemoteKeySet",
]
