"""Shared test fixtures — fake transport injection and settings."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import pytest

from drip_mcp.clients.drip import DripClient, DripResponse, DripTransport
from drip_mcp.config import DripSettings
from drip_mcp.errors import DripAPIError, format_api_error
from drip_mcp.server import set_client_override

ACCOUNT_ID = "9999999"
BASE_URL = f"https://api.getdrip.com/v2/{ACCOUNT_ID}"


@dataclass
class RecordedCall:
    method: str
    url: str
    params: dict[str, str] | None
    json_body: Any

    @property
    def path(self) -> str:
        if self.url.startswith(BASE_URL):
            return self.url[len(BASE_URL):]
        return self.url


Route = Callable[[RecordedCall], DripResponse]


class FakeTransport(DripTransport):
    """Records every request and answers from routes keyed by ``"METHOD path"``.

    Unrouted GETs answer 200 ``{}``; unrouted POST/DELETE answer 204.
    """

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self.routes: dict[str, Route] = {}
        self.opened = 0
        self.closed = 0

    def on(self, method: str, path: str, response: DripResponse | Route) -> FakeTransport:
        if isinstance(response, DripResponse):
            self.routes[f"{method.upper()} {path}"] = lambda _call: response
        else:
            self.routes[f"{method.upper()} {path}"] = response
        return self

    def fail(self, method: str, path: str, status: int, body: Any) -> FakeTransport:
        def _raise(_call: RecordedCall) -> DripResponse:
            raise DripAPIError(
                format_api_error(status, body),
                code="DRIP_HTTP_ERROR",
                status=status,
                details={"response": body},
            )

        self.routes[f"{method.upper()} {path}"] = _raise
        return self

    async def open(self) -> None:
        self.opened += 1

    async def close(self) -> None:
        self.closed += 1

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> DripResponse:
        call = RecordedCall(method, url, dict(params) if params else None, json_body)
        self.calls.append(call)
        route = self.routes.get(f"{method} {call.path}")
        if route is not None:
            return route(call)
        if method == "GET":
            return DripResponse(status=200, data={})
        return DripResponse(status=204, data={})

    def last(self, method: str | None = None) -> RecordedCall:
        calls = [c for c in self.calls if method is None or c.method == method]
        assert calls, f"no {method or 'any'} calls recorded"
        return calls[-1]


@pytest.fixture()
def settings() -> DripSettings:
    return DripSettings(api_key="test-api-key-123456", account_id=ACCOUNT_ID)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def client(settings: DripSettings, transport: FakeTransport) -> DripClient:
    return DripClient(settings, transport=transport)


@pytest.fixture(autouse=True)
def _inject_client(client: DripClient):
    """Route server tool calls through the fake-transport client for every test."""
    set_client_override(client)
    yield
    set_client_override(None)
