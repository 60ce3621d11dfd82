"""Shared pytest fixtures: an in-memory Frappe backend behind httpx.MockTransport."""

from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from services.frappe_client import FrappeClient

BASE_URL = "http://frappe.test"


class FakeFrappe:
    """
    Answers requests from a routing table keyed by (method, path) and records
    every request it sees. Unrouted requests get Frappe's 404 shape.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Any] = {}

    def on(self, method: str, path: str, status: int = 200, body: Optional[Dict[str, Any]] = None) -> None:
        self.routes[(method, path)] = (status, body if body is not None else {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"exc_type": "DoesNotExistError", "message": "Not found"})
        status, body = route
        if callable(body):
            return body(request)
        return httpx.Response(status, json=body)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]


@pytest.fixture
def frappe() -> FakeFrappe:
    return FakeFrappe()


@pytest.fixture
def client(frappe: FakeFrappe) -> FrappeClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(frappe.handler))
    return FrappeClient(base_url=BASE_URL, api_key="key", api_secret="secret", http_client=http_client)
