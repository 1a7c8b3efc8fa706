"""
Shared configuration management for the OBO token broker.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACCESS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Identity provider (Entra ID)
    tenant_id: str = Field(default="")
    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    public_client_id: str = Field(default="")
    expected_audience: Optional[str] = Field(default=None)
    authority_host: str = Field(default="https://login.microsoftonline.com")
    legacy_issuer_host: str = Field(default="https://sts.windows.net")
    jwks_cache_ttl: int = Field(default=3600)

    # Downstream ERP (Finance & Operations OData endpoint)
    fo_url: str = Field(default="")

    # OBO token cache
    obo_single_flight: bool = Field(default=False)
    obo_cache_sweep_interval: int = Field(default=0)

    # Routing
    protected_path_prefix: str = Field(default="/api/d365")

    @field_validator("fo_url", "authority_host", "legacy_issuer_host")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def audience(self) -> str:
        """Audience inbound assertions must carry."""
        return self.expected_audience or f"api://{self.client_id}"

    def missing_identity_settings(self) -> List[str]:
        """Names of the settings required for validation and OBO that are unset."""
        required = {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "fo_url": self.fo_url,
        }
        return [name for name, value in required.items() if not value]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
