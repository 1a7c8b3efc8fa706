"""
Tests for the broker HTTP surface.
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from service_broker.app.main import BrokerService
from service_broker.app.obo.exchanger import OBOExchanger
from service_broker.app.odata.client import ODataProxy
from service_broker.app.validation.token_validator import InboundAssertion, JWTValidator
from shared.errors import ExchangeError, SignatureInvalidError
from shared.test_helpers import TEST_CLIENT_ID, TEST_FO_URL, TEST_TENANT_ID, json_response

AUTH_HEADERS = {"Authorization": "Bearer user-assertion"}

USER_CLAIMS = {
    "oid": "oid-1",
    "sub": "sub-1",
    "name": "Jane Roe",
    "upn": "jane@contoso.com",
    "appid": "spa-client-id",
    "aud": f"api://{TEST_CLIENT_ID}",
    "iss": f"https://login.microsoftonline.com/{TEST_TENANT_ID}/v2.0",
    "iat": 1700000000,
    "exp": 1700003600,
}


class FakeERP:
    """Records outbound requests and answers with the configured response."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.payload = {}
        self.text = None

    def respond(self, status_code, payload=None, text=None):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        if self.payload is None:
            return httpx.Response(self.status_code)
        return json_response(self.status_code, self.payload)


@pytest.fixture
def service():
    return BrokerService(
        tenant_id=TEST_TENANT_ID,
        client_id=TEST_CLIENT_ID,
        client_secret="secret",
        public_client_id="spa-client-id",
        fo_url=TEST_FO_URL,
    )


@pytest.fixture
def validator(service):
    validator = MagicMock(spec=JWTValidator)
    validator.authenticate = AsyncMock(
        side_effect=lambda token: InboundAssertion(token=token, claims=dict(USER_CLAIMS))
    )
    service.auth_middleware.validator = validator
    return validator


@pytest.fixture
def exchanger():
    exchanger = MagicMock(spec=OBOExchanger)
    exchanger.get_or_exchange = AsyncMock(return_value="fo-token")
    return exchanger


@pytest.fixture
def erp(service, exchanger):
    fake = FakeERP()
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    service.proxy = ODataProxy(TEST_FO_URL, exchanger, http_client=client)
    return fake


@pytest.fixture
def client(service, validator, erp):
    return TestClient(service.app)


class TestPublicRoutes:
    """Routes outside the protected prefix."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "broker"

    def test_auth_config(self, client):
        response = client.get("/api/auth/config")

        assert response.json() == {
            "tenantId": TEST_TENANT_ID,
            "clientId": "spa-client-id",
            "apiAppId": TEST_CLIENT_ID,
        }

    def test_health(self, client, service):
        with patch.object(service, "_check_dependencies",
                          new=AsyncMock(return_value={"jwks_v2": "ok", "jwks_v1": "ok"})):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"jwks_v2": "ok", "jwks_v1": "ok"}

    def test_health_failure(self, client, service):
        with patch.object(service, "_check_dependencies",
                          new=AsyncMock(side_effect=RuntimeError("idp down"))):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_metrics_exports_broker_counters(self, client, service):
        service.metrics.record_cache_lookup("hit")
        service.metrics.record_downstream_request("GET", 200)

        response = client.get("/metrics")

        assert 'obo_cache_lookups_total{result="hit"}' in response.text
        assert 'downstream_requests_total{method="GET",status_code="200"}' in response.text

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_logging_context_cleared_after_request(self, client):
        with patch("shared.base_service.clear_context") as clear_context:
            client.get("/")

        clear_context.assert_called_once_with()


class TestServiceWiring:
    """Components built by BrokerService share state."""

    def test_exchanger_uses_service_token_cache(self, service):
        assert service.exchanger.cache is service.token_cache

    def test_proxy_uses_service_exchanger(self):
        service = BrokerService(
            tenant_id=TEST_TENANT_ID,
            client_id=TEST_CLIENT_ID,
            client_secret="secret",
            fo_url=TEST_FO_URL,
        )

        assert service.proxy.exchanger is service.exchanger
        assert service.proxy.base_url == TEST_FO_URL


class TestAuthentication:
    """Protected routes reject callers before any handler runs."""

    def test_missing_header_rejected(self, client, erp):
        response = client.get("/api/d365/records/EmployeesV2")

        assert response.status_code == 200
        assert response.json() == {"isSuccess": False, "message": "Missing Authorization header"}
        assert erp.requests == []

    def test_invalid_token_rejected(self, client, validator, erp, exchanger):
        validator.authenticate = AsyncMock(side_effect=SignatureInvalidError())

        response = client.get("/api/d365/records/EmployeesV2", headers=AUTH_HEADERS)

        assert response.json() == {
            "isSuccess": False,
            "message": "Unauthorized - Invalid or expired token",
        }
        exchanger.get_or_exchange.assert_not_called()

    def test_verify_token(self, client):
        response = client.get("/api/d365/verify-token", headers=AUTH_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["name"] == "Jane Roe"
        assert data["oid"] == "oid-1"
        assert data["appid"] == "spa-client-id"
        assert data["upn"] == "jane@contoso.com"
        assert data["exp"] == "2023-11-14T23:13:20+00:00"
        assert data["iat"] == "2023-11-14T22:13:20+00:00"


class TestRecordRoutes:
    """CRUD routes forwarded to the ERP."""

    def test_read(self, client, erp, exchanger):
        erp.respond(200, {"value": [{"PersonnelNumber": "123"}]})

        response = client.get(
            "/api/d365/records/EmployeesV2",
            params={"query": "$top=5"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"value": [{"PersonnelNumber": "123"}]}
        request = erp.requests[0]
        assert request.url.path == "/data/EmployeesV2"
        assert request.url.params["$top"] == "5"
        assert request.headers["Authorization"] == "Bearer fo-token"
        exchanger.get_or_exchange.assert_awaited_once_with("user-assertion", TEST_FO_URL)

    def test_read_empty_body(self, client, erp):
        erp.respond(200)

        response = client.get("/api/d365/records/EmployeesV2", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json() == {}

    def test_read_failure_returns_500(self, client, erp):
        erp.respond(400, text="bad filter")

        response = client.get("/api/d365/records/EmployeesV2", headers=AUTH_HEADERS)

        assert response.status_code == 500
        assert response.json() == {"error": "Network error calling F&O: 400 bad filter"}

    def test_read_exchange_failure_returns_500(self, client, exchanger):
        exchanger.get_or_exchange = AsyncMock(side_effect=ExchangeError(400, "invalid_grant"))

        response = client.get("/api/d365/records/EmployeesV2", headers=AUTH_HEADERS)

        assert response.status_code == 500
        assert response.json() == {"error": "OBO token exchange failed: 400 invalid_grant"}

    def test_create(self, client, erp):
        erp.respond(201, {"PersonnelNumber": "123"})

        response = client.post(
            "/api/d365/records/EmployeesV2",
            json={"PersonnelNumber": "123"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"PersonnelNumber": "123"}
        request = erp.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"PersonnelNumber": "123"}

    def test_create_failure_returns_error_value(self, client, erp):
        erp.respond(400, text="validation failed")

        response = client.post(
            "/api/d365/records/EmployeesV2",
            json={"PersonnelNumber": "123"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"error": "Create failed: 400"}

    def test_update(self, client, erp):
        erp.respond(204)

        response = client.patch(
            "/api/d365/records/EmployeesV2",
            params={"key": "PersonnelNumber='123'"},
            json={"WorkerName": "Jane Doe"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {}
        request = erp.requests[0]
        assert request.method == "PATCH"
        assert request.url.path == "/data/EmployeesV2(PersonnelNumber='123')"

    def test_update_requires_key(self, client, erp):
        response = client.patch(
            "/api/d365/records/EmployeesV2",
            json={"WorkerName": "Jane Doe"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Record key is required"}
        assert erp.requests == []

    def test_delete(self, client, erp):
        erp.respond(204)

        response = client.delete(
            "/api/d365/records/EmployeesV2",
            params={"key": "PersonnelNumber='123'"},
            headers=AUTH_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {}
        assert erp.requests[0].method == "DELETE"

    def test_delete_failure_returns_error_value(self, client, erp):
        erp.respond(404, text="not found")

        response = client.delete(
            "/api/d365/records/EmployeesV2",
            params={"key": "PersonnelNumber='999'"},
            headers=AUTH_HEADERS,
        )

        assert response.json() == {"error": "Delete failed: 404"}

    def test_delete_requires_key(self, client, erp):
        response = client.delete("/api/d365/records/EmployeesV2", headers=AUTH_HEADERS)

        assert response.status_code == 400
        assert erp.requests == []
