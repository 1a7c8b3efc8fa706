"""
On-behalf-of token exchange against the Entra ID token endpoint.
"""

import asyncio
import time
from typing import Dict, Optional

import httpx

from shared.errors import ExchangeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .token_cache import TokenCache, fingerprint

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_EXPIRES_IN = 3600


class OBOExchanger:
    """Exchanges user assertions for downstream access tokens, caching the results.

    With ``single_flight`` disabled, concurrent callers that miss the cache for
    the same fingerprint each perform an exchange and the last store wins.
    Enabling it makes them share one in-flight exchange.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        cache: Optional[TokenCache] = None,
        *,
        authority_host: str = "https://login.microsoftonline.com",
        http_client: Optional[httpx.AsyncClient] = None,
        single_flight: bool = False,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.cache = cache if cache is not None else TokenCache()
        self.authority_host = authority_host
        self.single_flight = single_flight
        self.metrics = metrics
        self.logger = get_logger("broker.obo")

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=None)
        self._inflight: Dict[str, "asyncio.Future[str]"] = {}

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority_host}/{self.tenant_id}/oauth2/v2.0/token"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_or_exchange(self, assertion: str, resource: str) -> str:
        """Return a downstream access token for ``resource`` on behalf of ``assertion``."""
        key = fingerprint(assertion, resource)
        cached = self.cache.get(key)
        if cached is not None:
            self._record_lookup("hit")
            return cached.access_token

        self._record_lookup("miss")
        if not self.single_flight:
            return await self._exchange_and_store(key, assertion, resource)

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._exchange_and_store(key, assertion, resource))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            self.logger.debug("Joining in-flight OBO exchange", fingerprint=key[:12])
        return await asyncio.shield(pending)

    async def _exchange_and_store(self, key: str, assertion: str, resource: str) -> str:
        now = self.cache.clock()
        payload = await self._exchange(assertion, resource)

        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
        entry = self.cache.put(key, payload["access_token"], now + int(expires_in))

        self.logger.info(
            "OBO token exchanged",
            resource=resource,
            fingerprint=key[:12],
            expires_at=entry.expires_at
        )
        return entry.access_token

    async def _exchange(self, assertion: str, resource: str) -> Dict:
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": JWT_BEARER_GRANT_TYPE,
            "requested_token_use": "on_behalf_of",
            "scope": f"{resource}/.default",
            "assertion": assertion,
        }

        start_time = time.time()
        try:
            response = await self._client.post(
                self.token_endpoint,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            self._record_exchange("transport_error", start_time)
            self.logger.error("OBO token exchange transport failure", error=str(e))
            raise ExchangeError(None, str(e)) from e

        if not response.is_success:
            self._record_exchange(str(response.status_code), start_time)
            self.logger.error(
                "OBO token exchange failed",
                status_code=response.status_code,
                body=response.text
            )
            raise ExchangeError(response.status_code, response.text)

        self._record_exchange(str(response.status_code), start_time)
        try:
            payload = response.json()
        except ValueError as e:
            raise ExchangeError(response.status_code, response.text) from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ExchangeError(response.status_code, "Token response missing access_token")
        return payload

    def _record_lookup(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_lookup(result)

    def _record_exchange(self, status: str, start_time: float) -> None:
        if self.metrics is not None:
            self.metrics.record_token_exchange(status, time.time() - start_time)
