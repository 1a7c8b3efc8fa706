"""
CRUD proxy for the Finance & Operations OData endpoint.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from shared.errors import MissingAssertionError, NetworkError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..context import current_assertion
from ..obo.exchanger import OBOExchanger


def escape_odata_literal(value: str) -> str:
    """Double single quotes so ``value`` can sit inside an OData string literal."""
    return value.replace("'", "''")


@dataclass(frozen=True)
class ODataEntityReference:
    """Entity set, optional key predicate and optional query string."""

    entity: str
    key: Optional[str] = None
    query: Optional[str] = None

    @property
    def path(self) -> str:
        path = f"/data/{self.entity}"
        if self.key is not None:
            path += f"({self.key})"
        if self.query:
            path += f"?{self.query}"
        return path


class ODataProxy:
    """Issues downstream calls with an OBO token for the current request's assertion.

    Reads raise ``NetworkError`` on a non-success status. Creates, updates and
    deletes log the failure and return ``{"error": "<Op> failed: <status>"}``
    instead of raising.
    """

    def __init__(
        self,
        base_url: str,
        exchanger: OBOExchanger,
        http_client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.exchanger = exchanger
        self.metrics = metrics
        self.logger = get_logger("broker.odata")

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=None)

    escape = staticmethod(escape_odata_literal)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def create(self, entity: str, body: Any) -> Dict[str, Any]:
        response = await self._send("POST", ODataEntityReference(entity), body)
        return self._write_result("Create", response)

    async def read(self, entity: str, query: Optional[str] = None) -> Any:
        response = await self._send("GET", ODataEntityReference(entity, query=query))
        if not response.is_success:
            raise NetworkError(response.status_code, response.text)
        if not response.content:
            return {}
        return response.json()

    async def update(self, entity: str, key: str, body: Any) -> Dict[str, Any]:
        response = await self._send("PATCH", ODataEntityReference(entity, key=key), body)
        return self._write_result("Update", response)

    async def delete(self, entity: str, key: str) -> Dict[str, Any]:
        response = await self._send("DELETE", ODataEntityReference(entity, key=key))
        return self._write_result("Delete", response)

    async def _send(self, method: str, reference: ODataEntityReference, body: Any = None) -> httpx.Response:
        assertion = current_assertion()
        if assertion is None or not assertion.token:
            raise MissingAssertionError()

        access_token = await self.exchanger.get_or_exchange(assertion.token, self.base_url)

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        kwargs: Dict[str, Any] = {}
        if body is not None:
            headers["Content-Type"] = "application/json"
            kwargs["json"] = body

        response = await self._client.request(
            method,
            f"{self.base_url}{reference.path}",
            headers=headers,
            **kwargs
        )

        if self.metrics is not None:
            self.metrics.record_downstream_request(method, response.status_code)
        self.logger.debug(
            "Downstream request",
            method=method,
            entity=reference.entity,
            status_code=response.status_code
        )
        return response

    def _write_result(self, operation: str, response: httpx.Response) -> Dict[str, Any]:
        if not response.is_success:
            self.logger.error(
                f"{operation} failed",
                status_code=response.status_code,
                body=response.text
            )
            return {"error": f"{operation} failed: {response.status_code}"}

        # 204 No Content is the usual answer to PATCH and DELETE
        if not response.content:
            return {}
        return response.json()
