"""
Issuer/key-set registry for the two Entra ID token formats.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

import httpx

from .client import RemoteKeySet


@dataclass(frozen=True)
class IssuerConfig:
    """An issuer URL paired with the key-set that signs its tokens."""

    name: str
    issuer: str
    key_set: RemoteKeySet


class IssuerRegistry:
    """Holds the v2 and v1 issuer configurations, v2 first."""

    def __init__(self, v2: IssuerConfig, v1: IssuerConfig):
        self._configs: Tuple[IssuerConfig, IssuerConfig] = (v2, v1)

    @classmethod
    def for_tenant(
        cls,
        tenant_id: str,
        *,
        authority_host: str = "https://login.microsoftonline.com",
        legacy_issuer_host: str = "https://sts.windows.net",
        cache_ttl: int = 3600,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "IssuerRegistry":
        issuer_v2 = f"{authority_host}/{tenant_id}/v2.0"
        issuer_v1 = f"{legacy_issuer_host}/{tenant_id}/"
        return cls(
            IssuerConfig(
                name="v2",
                issuer=issuer_v2,
                key_set=RemoteKeySet(
                    f"{issuer_v2}/discovery/v2.0/keys",
                    cache_ttl=cache_ttl,
                    http_client=http_client,
                ),
            ),
            IssuerConfig(
                name="v1",
                issuer=issuer_v1,
                key_set=RemoteKeySet(
                    f"{authority_host}/{tenant_id}/discovery/keys",
                    cache_ttl=cache_ttl,
                    http_client=http_client,
                ),
            ),
        )

    @property
    def v2(self) -> IssuerConfig:
        return self._configs[0]

    @property
    def v1(self) -> IssuerConfig:
        return self._configs[1]

    @property
    def allowed_issuers(self) -> FrozenSet[str]:
        return frozenset(config.issuer for config in self._configs)

    def ordered(self) -> Tuple[IssuerConfig, ...]:
        """Configurations in the order verification should try them."""
        return self._configs

    async def check_health(self) -> Dict[str, str]:
        return {
            f"jwks_{config.name}": await config.key_set.check_health()
            for config in self._configs
        }

    async def close(self) -> None:
        for config in self._configs:
            await config.key_set.close()
