"""
JWKS client for Entra ID signing keys.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx
from jose import jwt
from jose.exceptions import JWTError

from shared.logging import get_logger


class RemoteKeySet:
    """Fetches and caches a remote JSON Web Key Set."""

    def __init__(
        self,
        jwks_url: str,
        cache_ttl: int = 3600,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        algorithms: tuple = ("RS256",),
    ):
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self.algorithms = list(algorithms)
        self.logger = get_logger("broker.jwks")

        self._jwks_cache: Optional[Dict[str, Any]] = None
        self._cache_timestamp: float = 0
        self._lock = asyncio.Lock()

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        """Close the underlying HTTP client if this key-set created it."""
        if self._owns_client:
            await self._client.aclose()

    def _is_fresh(self) -> bool:
        return (
            self._jwks_cache is not None
            and time.time() - self._cache_timestamp < self.cache_ttl
        )

    async def get_jwks(self, *, force: bool = False) -> Dict[str, Any]:
        """Get JWKS from cache or fetch it from the identity provider."""
        if not force and self._is_fresh():
            return self._jwks_cache

        async with self._lock:
            if not force and self._is_fresh():
                return self._jwks_cache

            try:
                response = await self._client.get(self.jwks_url)
                response.raise_for_status()
                jwks_data = response.json()
                if not isinstance(jwks_data.get("keys"), list):
                    raise JWTError("JWKS response missing 'keys' array")
            except (httpx.HTTPError, ValueError, JWTError) as e:
                self.logger.error("Failed to fetch JWKS", jwks_url=self.jwks_url, error=str(e))
                # Serve stale keys rather than failing every request
                if self._jwks_cache is not None:
                    self.logger.warning("Using stale JWKS cache due to fetch failure", jwks_url=self.jwks_url)
                    return self._jwks_cache
                raise

            self._jwks_cache = jwks_data
            self._cache_timestamp = time.time()

            self.logger.info(
                "JWKS refreshed successfully",
                jwks_url=self.jwks_url,
                keys_count=len(jwks_data["keys"])
            )
            return self._jwks_cache

    async def get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Get a specific key by key ID."""
        jwks = await self.get_jwks()
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return key

        # Unknown kid; the key-set may have been republished since the last fetch.
        jwks = await self.get_jwks(force=True)
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return key

        self.logger.warning("Key not found", kid=kid, jwks_url=self.jwks_url)
        return None

    async def verify(self, token: str, audience: str) -> Dict[str, Any]:
        """Verify signature, expiry and audience; the issuer is left to the caller."""
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")
        if not kid:
            raise JWTError("Token missing key ID")

        key_data = await self.get_key(kid)
        if not key_data:
            raise JWTError(f"Key not found: {kid}")

        return jwt.decode(
            token,
            key_data,
            algorithms=self.algorithms,
            audience=audience,
            options={"verify_aud": True, "verify_iss": False},
        )

    async def check_health(self) -> str:
        """Return 'ok' if the JWKS endpoint responds correctly, otherwise 'error'."""
        try:
            await self.get_jwks()
            return "ok"
        except Exception as exc:
            self.logger.error("JWKS health check failed", jwks_url=self.jwks_url, error=str(exc))
            return "error"
