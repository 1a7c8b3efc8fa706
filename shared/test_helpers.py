"""
Test helper functions and factory methods for the OBO token broker.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

TEST_TENANT_ID = "11111111-2222-3333-4444-555555555555"
TEST_CLIENT_ID = "api-client-id"
TEST_AUDIENCE = f"api://{TEST_CLIENT_ID}"
TEST_ISSUER_V2 = f"https://login.microsoftonline.com/{TEST_TENANT_ID}/v2.0"
TEST_ISSUER_V1 = f"https://sts.windows.net/{TEST_TENANT_ID}/"
TEST_JWKS_V2_URL = f"{TEST_ISSUER_V2}/discovery/v2.0/keys"
TEST_JWKS_V1_URL = f"https://login.microsoftonline.com/{TEST_TENANT_ID}/discovery/keys"
TEST_TOKEN_ENDPOINT = f"https://login.microsoftonline.com/{TEST_TENANT_ID}/oauth2/v2.0/token"
TEST_FO_URL = "https://fo.example.com"


@dataclass
class SigningKey:
    """RSA key pair that can sign tokens and publish itself as a JWK."""

    kid: str
    private_pem: str = field(repr=False)
    public_jwk: Dict[str, Any]

    @classmethod
    def generate(cls, kid: str) -> "SigningKey":
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")

        public_jwk = jwk.construct(public_pem, "RS256").to_dict()
        public_jwk.update({"kid": kid, "use": "sig"})
        return cls(kid=kid, private_pem=private_pem, public_jwk=public_jwk)

    def jwks(self) -> Dict[str, List[Dict[str, Any]]]:
        return {"keys": [self.public_jwk]}

    def issue(self, claims: Optional[Dict[str, Any]] = None, **overrides: Any) -> str:
        now = int(time.time())
        payload = {
            "aud": TEST_AUDIENCE,
            "iss": TEST_ISSUER_V2,
            "sub": "subject-1",
            "oid": "00000000-0000-0000-0000-000000000001",
            "name": "John Doe",
            "email": "john.doe@contoso.com",
            "iat": now,
            "nbf": now,
            "exp": now + 3600,
        }
        payload.update(claims or {})
        payload.update(overrides)
        return jwt.encode(payload, self.private_pem, algorithm="RS256", headers={"kid": self.kid})


def json_response(status_code: int, payload: Any) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


def jwks_transport(key_sets: Dict[str, Dict[str, Any]], calls: Optional[List[str]] = None) -> httpx.MockTransport:
    """Serve ``key_sets`` (url -> JWKS document); unknown URLs answer 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        if url in key_sets:
            return json_response(200, key_sets[url])
        return httpx.Response(404, text="not found")

    return httpx.MockTransport(handler)


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
