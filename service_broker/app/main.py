"""
OBO token broker service.
"""

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import ExchangeError, MissingAssertionError, NetworkError
from .context import current_assertion
from .domain.auth_middleware import AuthMiddleware
from .jwks.registry import IssuerRegistry
from .obo.exchanger import OBOExchanger
from .obo.token_cache import TokenCache
from .odata.client import ODataProxy
from .validation.token_validator import JWTValidator


def _epoch_to_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


class BrokerService(BaseService):
    """Broker service implementation."""

    def __init__(self, **config_overrides):
        super().__init__("broker", 3000, **config_overrides)

        missing = self.config.missing_identity_settings()
        if missing:
            self.logger.warning(
                "Missing required settings for Entra ID OBO and F&O",
                missing=missing
            )

        self.registry = IssuerRegistry.for_tenant(
            self.config.tenant_id,
            authority_host=self.config.authority_host,
            legacy_issuer_host=self.config.legacy_issuer_host,
            cache_ttl=self.config.jwks_cache_ttl,
        )
        self.validator = JWTValidator(self.registry, self.config.audience, metrics=self.metrics)
        self.token_cache = TokenCache()
        self.exchanger = OBOExchanger(
            self.config.tenant_id,
            self.config.client_id,
            self.config.client_secret,
            self.token_cache,
            authority_host=self.config.authority_host,
            single_flight=self.config.obo_single_flight,
            metrics=self.metrics,
        )
        self.proxy = ODataProxy(self.config.fo_url, self.exchanger, metrics=self.metrics)
        self.auth_middleware = AuthMiddleware(
            self.validator,
            protected_prefixes=(self.config.protected_path_prefix,),
        )
        self._sweep_task: Optional[asyncio.Task] = None

        @self.app.on_event("startup")
        async def _startup():
            interval = self.config.obo_cache_sweep_interval
            if interval > 0:
                self._sweep_task = asyncio.create_task(self._sweep_token_cache(interval))

        @self.app.on_event("shutdown")
        async def _shutdown():
            if self._sweep_task is not None:
                self._sweep_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._sweep_task
                self._sweep_task = None
            await self.proxy.close()
            await self.exchanger.close()
            await self.registry.close()

        self._setup_broker_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.broker_service = self

    def _setup_middleware(self):
        """Register auth before the shared middleware so timing wraps it."""

        @self.app.middleware("http")
        async def authenticate(request: Request, call_next):
            return await self.auth_middleware.dispatch(request, call_next)

        super()._setup_middleware()

    def _setup_broker_routes(self):
        """Set up broker-specific routes."""
        prefix = self.config.protected_path_prefix

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "broker",
                "message": "OBO Token Broker",
                "version": "1.0.0"
            }

        @self.app.get("/api/auth/config")
        async def auth_config():
            """Public identity settings for the login page."""
            return {
                "tenantId": self.config.tenant_id,
                "clientId": self.config.public_client_id,
                "apiAppId": self.config.client_id,
            }

        @self.app.get(f"{prefix}/verify-token")
        async def verify_token():
            """Summarise the validated caller assertion."""
            assertion = current_assertion()
            if assertion is None:
                raise MissingAssertionError()

            claims = assertion.claims
            return {
                "valid": True,
                "name": assertion.name,
                "email": assertion.email,
                "oid": assertion.object_id,
                "appid": claims.get("appid") or claims.get("azp"),
                "upn": claims.get("upn"),
                "aud": assertion.audience,
                "iss": assertion.issuer,
                "exp": _epoch_to_iso(claims.get("exp")),
                "iat": _epoch_to_iso(claims.get("iat")),
            }

        @self.app.get(f"{prefix}/records/{{entity_name}}")
        async def read_records(entity_name: str, query: Optional[str] = None):
            """Read records from an F&O entity."""
            try:
                return await self.proxy.read(entity_name, query)
            except (NetworkError, ExchangeError) as e:
                self.logger.error("Error reading record", entity=entity_name, code=e.code)
                return JSONResponse(status_code=500, content={"error": e.message})

        @self.app.post(f"{prefix}/records/{{entity_name}}")
        async def create_record(entity_name: str, data: Dict[str, Any] = Body(...)):
            """Create a record in an F&O entity."""
            try:
                return await self.proxy.create(entity_name, data)
            except ExchangeError as e:
                self.logger.error("Error creating record", entity=entity_name, code=e.code)
                return JSONResponse(status_code=500, content={"error": e.message})

        @self.app.patch(f"{prefix}/records/{{entity_name}}")
        async def update_record(entity_name: str, key: Optional[str] = None,
                                data: Dict[str, Any] = Body(...)):
            """Update the record identified by ``key``."""
            if not key:
                return JSONResponse(status_code=400, content={"error": "Record key is required"})
            try:
                return await self.proxy.update(entity_name, key, data)
            except ExchangeError as e:
                self.logger.error("Error updating record", entity=entity_name, code=e.code)
                return JSONResponse(status_code=500, content={"error": e.message})

        @self.app.delete(f"{prefix}/records/{{entity_name}}")
        async def delete_record(entity_name: str, key: Optional[str] = None):
            """Delete the record identified by ``key``."""
            if not key:
                return JSONResponse(status_code=400, content={"error": "Record key is required"})
            try:
                return await self.proxy.delete(entity_name, key)
            except ExchangeError as e:
                self.logger.error("Error deleting record", entity=entity_name, code=e.code)
                return JSONResponse(status_code=500, content={"error": e.message})

    async def _sweep_token_cache(self, interval: int):
        while True:
            await asyncio.sleep(interval)
            removed = self.token_cache.sweep()
            if removed:
                self.logger.info("Swept expired OBO tokens", removed=removed, remaining=len(self.token_cache))

    async def _check_dependencies(self):
        """Check the identity provider key-sets."""
        return await self.registry.check_health()


def create_app(**config_overrides):
    """Create FastAPI application."""
    service = BrokerService(**config_overrides)
    return service.app


if __name__ == "__main__":
    service = BrokerService()
    service.run()
