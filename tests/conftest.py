import asyncio
import os
from typing import Any, Callable, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from marketgraph.core.client import MarketplaceClient
from marketgraph.domain.interfaces.transport import Transport
from marketgraph.domain.models.envelope import ApiRequest, RawResponse
from marketgraph.infrastructure.config.settings import clear_test_config

# Fast buckets so tests that exhaust a bucket wait milliseconds, not seconds.
FAST_LIMITER = {
    "bucket_initial": 10,
    "bucket_increase_interval": 10,
    "bucket_increase_amount": 10,
    "bucket_maximum": 10,
}
FAST_BACKOFF = {"max_retries": 3, "initial_delay": 0.001, "factor": 2.0, "max_delay": 0.01}


def json_response(status: int = 200, body: Any = None, status_text: str = "") -> RawResponse:
    return RawResponse(
        status=status,
        status_text=status_text or {200: "OK", 401: "Unauthorized", 404: "Not Found",
                                    409: "Conflict", 429: "Too Many Requests", 503: "Service Unavailable"}.get(status, ""),
        headers={"content-type": "application/json"},
        body=body,
    )


def error_body(status: int, title: str, code: Optional[str] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"status": status, "title": title}
    if code:
        error["code"] = code
    return {"errors": [error]}


def resource(type_: str, id_: str, attributes: Optional[Dict[str, Any]] = None, **relationships: Any) -> Dict[str, Any]:
    """Builds a resource object; relationship values are (type, id) tuples, lists of them, or None."""
    rels: Dict[str, Any] = {}
    for name, value in relationships.items():
        if value is None:
            rels[name] = {"data": None}
        elif isinstance(value, list):
            rels[name] = {"data": [{"id": {"uuid": i}, "type": t} for t, i in value]}
        else:
            rels[name] = {"data": {"id": {"uuid": value[1]}, "type": value[0]}}
    raw: Dict[str, Any] = {"id": {"uuid": id_}, "type": type_, "attributes": attributes or {}}
    if rels:
        raw["relationships"] = rels
    return raw


class FakeTransport(Transport):
    """In-memory transport.

    Token requests are answered automatically with a fresh access token
    ('token-1', 'token-2', ...). Other requests are answered from `responses`
    in order, or by `handler(request)` once the queue is empty.
    """

    def __init__(self, handler: Optional[Callable[[ApiRequest], RawResponse]] = None, token_delay: float = 0.0):
        self.handler = handler
        self.token_delay = token_delay
        self.responses: List[RawResponse] = []
        self.requests: List[ApiRequest] = []
        self.token_requests: List[ApiRequest] = []
        self.closed = False

    def queue(self, *responses: RawResponse) -> "FakeTransport":
        self.responses.extend(responses)
        return self

    @property
    def api_requests(self) -> List[ApiRequest]:
        return [r for r in self.requests if "/auth/" not in r.path]

    async def send(self, request: ApiRequest) -> RawResponse:
        self.requests.append(request)
        if request.path.endswith("/auth/token"):
            self.token_requests.append(request)
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            n = len(self.token_requests)
            return json_response(200, {
                "access_token": f"token-{n}",
                "refresh_token": f"refresh-{n}",
                "token_type": "bearer",
                "expires_in": 3600,
                "scope": "integ",
            })
        if request.path.endswith("/auth/revoke"):
            return json_response(200, {"action": "revoked"})
        if self.responses:
            return self.responses.pop(0)
        if self.handler is not None:
            return self.handler(request)
        return json_response(200, {"data": None})

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def make_client(fake_transport):
    """Factory for clients wired to `fake_transport` with fast limiter and backoff settings."""
    def _make(**overrides: Any) -> MarketplaceClient:
        kwargs: Dict[str, Any] = {
            "client_id": "test-client",
            "client_secret": "test-secret",
            "transport": fake_transport,
            "query_limiter": FAST_LIMITER,
            "command_limiter": FAST_LIMITER,
            "backoff_policy": FAST_BACKOFF,
        }
        kwargs.update(overrides)
        return MarketplaceClient(**kwargs)
    return _make


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch):
    """Keeps tests independent of the developer's environment and config files."""
    for key in list(os.environ):
        if key.startswith("MARKETGRAPH_"):
            monkeypatch.delenv(key, raising=False)
    yield
    clear_test_config()
