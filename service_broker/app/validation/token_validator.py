"""
Inbound assertion validation against the issuer registry.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from shared.errors import SignatureInvalidError, UnexpectedIssuerError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..jwks.registry import IssuerRegistry


@dataclass(frozen=True)
class InboundAssertion:
    """A validated bearer assertion and the claims it carried."""

    token: str
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def issuer(self) -> Optional[str]:
        return self.claims.get("iss")

    @property
    def audience(self) -> Any:
        return self.claims.get("aud")

    @property
    def subject(self) -> Optional[str]:
        return self.claims.get("sub")

    @property
    def object_id(self) -> Optional[str]:
        return self.claims.get("oid")

    @property
    def expires_at(self) -> Optional[int]:
        return self.claims.get("exp")

    @property
    def name(self) -> Optional[str]:
        return self.claims.get("name") or self.claims.get("unique_name")

    @property
    def email(self) -> Optional[str]:
        return self.claims.get("email")


class JWTValidator:
    """Validates assertions against the v2 key-set, then the v1 key-set.

    Either key-set may verify the signature, but the ``iss`` claim must be one
    of the registry's issuers regardless of which key-set matched.
    """

    def __init__(self, registry: IssuerRegistry, audience: str, metrics: Optional[MetricsCollector] = None):
        self.registry = registry
        self.audience = audience
        self.metrics = metrics
        self.logger = get_logger("broker.validator")

    async def validate(self, token: str) -> Dict[str, Any]:
        """Return the verified claims or raise an AuthenticationError."""
        allowed_issuers = self.registry.allowed_issuers
        rejected_issuer: Optional[str] = None
        last_error: Optional[str] = None

        for config in self.registry.ordered():
            try:
                claims = await config.key_set.verify(token, self.audience)
            except Exception as e:
                last_error = str(e)
                self.logger.debug(
                    "Token verification attempt failed",
                    key_set=config.name,
                    error=last_error
                )
                continue

            issuer = claims.get("iss")
            if issuer in allowed_issuers:
                self._record("valid")
                return claims

            rejected_issuer = str(issuer)
            self.logger.debug(
                "Token verified with unexpected issuer",
                key_set=config.name,
                issuer=rejected_issuer
            )

        self._record("invalid")
        if rejected_issuer is not None:
            raise UnexpectedIssuerError(details={"issuer": rejected_issuer})
        raise SignatureInvalidError(details={"error": last_error})

    async def authenticate(self, token: str) -> InboundAssertion:
        claims = await self.validate(token)
        return InboundAssertion(token=token, claims=claims)

    def _record(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_token_validation(status)
