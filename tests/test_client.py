"""Tests for the Drip client plumbing — settings, retries and error formatting."""

from __future__ import annotations

import asyncio
import base64
import os

import pytest
from aiohttp import test_utils, web

from drip_mcp.clients.drip import (
    AiohttpTransport,
    DripClient,
    DripResponse,
    RetryingTransport,
    RetryPolicy,
)
from drip_mcp.config import DripSettings, load_env_file
from drip_mcp.errors import ConfigurationError, DripAPIError, format_api_error

from conftest import ACCOUNT_ID, BASE_URL, FakeTransport


class TestSettings:
    def test_from_env(self):
        settings = DripSettings.from_env(
            {
                "DRIP_API_KEY": " key ",
                "DRIP_ACCOUNT_ID": "123",
                "DRIP_TIMEOUT_SECONDS": "12.5",
                "DRIP_MAX_ATTEMPTS": "5",
            }
        )
        assert settings.api_key == "key"
        assert settings.base_url == "https://api.getdrip.com/v2/123"
        assert settings.accounts_url == "https://api.getdrip.com/v2/accounts"
        assert settings.timeout_seconds == 12.5
        assert settings.max_attempts == 5

    def test_defaults(self):
        settings = DripSettings.from_env({"DRIP_API_KEY": "k", "DRIP_ACCOUNT_ID": "1"})
        assert settings.timeout_seconds == 30.0
        assert settings.max_attempts == 3
        assert settings.user_agent.startswith("drip-mcp/")

    def test_custom_host(self):
        settings = DripSettings.from_env(
            {"DRIP_API_KEY": "k", "DRIP_ACCOUNT_ID": "1", "DRIP_API_HOST": "localhost:8080"}
        )
        assert settings.base_url == "https://localhost:8080/v2/1"

    def test_missing_credentials_listed(self):
        with pytest.raises(ConfigurationError) as exc_info:
            DripSettings.from_env({})
        message = str(exc_info.value)
        assert "DRIP_API_KEY" in message
        assert "DRIP_ACCOUNT_ID" in message

    def test_missing_account_only(self):
        with pytest.raises(ConfigurationError, match="DRIP_ACCOUNT_ID"):
            DripSettings.from_env({"DRIP_API_KEY": "k"})

    @pytest.mark.parametrize("raw", ["soon", "0", "-3"])
    def test_bad_timeout(self, raw):
        with pytest.raises(ConfigurationError, match="DRIP_TIMEOUT_SECONDS"):
            DripSettings.from_env(
                {"DRIP_API_KEY": "k", "DRIP_ACCOUNT_ID": "1", "DRIP_TIMEOUT_SECONDS": raw}
            )

    def test_direct_construction_validates(self):
        with pytest.raises(ConfigurationError):
            DripSettings(api_key="", account_id="1")
        with pytest.raises(ConfigurationError):
            DripSettings(api_key="k", account_id=" ")

    def test_api_key_not_in_repr(self, settings):
        assert settings.api_key not in repr(settings)

    def test_env_file_does_not_override(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\nDRIP_API_KEY='from-file'\nDRIP_ACCOUNT_ID=42\n"
        )
        monkeypatch.setenv("DRIP_API_KEY", "from-env")
        monkeypatch.setenv("DRIP_ACCOUNT_ID", "placeholder")
        monkeypatch.delenv("DRIP_ACCOUNT_ID")
        load_env_file(env_file)
        assert os.environ["DRIP_API_KEY"] == "from-env"
        assert os.environ["DRIP_ACCOUNT_ID"] == "42"

    def test_missing_env_file_ignored(self, tmp_path):
        load_env_file(tmp_path / "absent.env")


class TestClientConstruction:
    def test_rejects_non_settings(self):
        with pytest.raises(ConfigurationError):
            DripClient(None)  # type: ignore[arg-type]

    def test_from_env_fails_fast(self):
        with pytest.raises(ConfigurationError):
            DripClient.from_env({"DRIP_ACCOUNT_ID": "1"})

    def test_default_transport_wraps_aiohttp_with_retries(self, settings):
        client = DripClient(settings)
        assert isinstance(client.transport, RetryingTransport)
        assert isinstance(client.transport.inner, AiohttpTransport)
        assert client.transport.policy.max_attempts == settings.max_attempts

    async def test_context_manager_opens_and_closes(self, settings):
        transport = FakeTransport()
        async with DripClient(settings, transport=transport) as client:
            assert isinstance(client, DripClient)
            assert transport.opened == 1
        assert transport.closed == 1

    async def test_requests_prefixed_with_account_url(self, client, transport):
        await client.list_custom_fields()
        assert transport.last().url == f"{BASE_URL}/custom_field_identifiers"

    async def test_aiohttp_transport_requires_open(self, settings):
        transport = AiohttpTransport(settings)
        with pytest.raises(RuntimeError, match="context manager"):
            await transport.request("GET", f"{BASE_URL}/forms")


class TestAiohttpTransport:
    """Runs the real transport against a local aiohttp app standing in for Drip."""

    @pytest.fixture()
    async def drip_stub(self):
        state = {"flaky_calls": 0}

        async def create_subscriber(request):
            return web.json_response(
                {"errors": [{"code": "presence_error", "message": "Email is required"}]},
                status=422,
            )

        async def delete_subscriber(request):
            return web.Response(status=204)

        async def rate_limited(request):
            return web.json_response(
                {"message": "Too many requests"}, status=429, headers={"Retry-After": "3"}
            )

        async def slow(request):
            await asyncio.sleep(1)
            return web.json_response({})

        async def echo(request):
            return web.json_response(
                {
                    "authorization": request.headers.get("Authorization"),
                    "user_agent": request.headers.get("User-Agent"),
                    "query": dict(request.query),
                    "body": await request.json() if request.can_read_body else None,
                }
            )

        async def flaky(request):
            state["flaky_calls"] += 1
            if state["flaky_calls"] == 1:
                return web.json_response({"message": "unavailable"}, status=503)
            return web.json_response({"forms": []})

        app = web.Application()
        app.router.add_post("/v2/1/subscribers", create_subscriber)
        app.router.add_delete("/v2/1/subscribers/z1", delete_subscriber)
        app.router.add_get("/v2/1/campaigns", rate_limited)
        app.router.add_get("/v2/1/slow", slow)
        app.router.add_route("*", "/v2/1/echo", echo)
        app.router.add_get("/v2/1/forms", flaky)

        server = test_utils.TestServer(app)
        await server.start_server()
        server.state = state
        yield server
        await server.close()

    @staticmethod
    def _url(server, path):
        return str(server.make_url(f"/v2/1{path}"))

    async def test_validation_error_translated(self, settings, drip_stub):
        transport = AiohttpTransport(settings)
        await transport.open()
        try:
            with pytest.raises(DripAPIError) as exc_info:
                await transport.request(
                    "POST", self._url(drip_stub, "/subscribers"), json_body={"subscribers": [{}]}
                )
        finally:
            await transport.close()
        error = exc_info.value
        assert "Email is required" in str(error)
        assert str(error) == "API Error (422): Email is required"
        assert error.status == 422
        assert error.code == "DRIP_HTTP_ERROR"
        assert error.details["response"]["errors"][0]["code"] == "presence_error"

    async def test_no_content_decodes_to_empty_mapping(self, settings, drip_stub):
        transport = AiohttpTransport(settings)
        await transport.open()
        try:
            response = await transport.request("DELETE", self._url(drip_stub, "/subscribers/z1"))
        finally:
            await transport.close()
        assert response == DripResponse(status=204, data={})

    async def test_retry_after_captured(self, settings, drip_stub):
        transport = AiohttpTransport(settings)
        await transport.open()
        try:
            with pytest.raises(DripAPIError) as exc_info:
                await transport.request("GET", self._url(drip_stub, "/campaigns"))
        finally:
            await transport.close()
        assert exc_info.value.status == 429
        assert exc_info.value.details["retry_after"] == "3"
        assert str(exc_info.value) == "API Error (429): Too many requests"

    async def test_timeout_mapped(self, drip_stub):
        settings = DripSettings(api_key="test-api-key-123456", account_id="1", timeout_seconds=0.1)
        transport = AiohttpTransport(settings)
        await transport.open()
        try:
            with pytest.raises(DripAPIError) as exc_info:
                await transport.request("GET", self._url(drip_stub, "/slow"))
        finally:
            await transport.close()
        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.status is None

    async def test_auth_headers_query_and_body(self, settings, drip_stub):
        transport = AiohttpTransport(settings)
        await transport.open()
        try:
            response = await transport.request(
                "POST",
                self._url(drip_stub, "/echo"),
                params={"page": "2"},
                json_body={"tags": ["vip"]},
            )
        finally:
            await transport.close()
        expected = base64.b64encode(b"test-api-key-123456:").decode()
        assert response.status == 200
        assert response.data["authorization"] == f"Basic {expected}"
        assert response.data["user_agent"] == settings.user_agent
        assert response.data["query"] == {"page": "2"}
        assert response.data["body"] == {"tags": ["vip"]}

    async def test_retrying_transport_recovers_from_503(self, settings, drip_stub):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        transport = RetryingTransport(AiohttpTransport(settings), RetryPolicy(), sleep=fake_sleep)
        await transport.open()
        try:
            response = await transport.request("GET", self._url(drip_stub, "/forms"))
        finally:
            await transport.close()
        assert response.data == {"forms": []}
        assert drip_stub.state["flaky_calls"] == 2
        assert sleeps == [0.5]


class TestFormatApiError:
    def test_error_list_messages(self):
        body = {"errors": [{"code": "presence_error", "message": "Email is required"}]}
        assert format_api_error(422, body) == "API Error (422): Email is required"

    def test_error_list_mixed(self):
        body = {"errors": [{"message": "a"}, "b"]}
        assert format_api_error(422, body) == "API Error (422): a, b"

    def test_error_mapping(self):
        body = {"errors": {"email": ["is invalid", "is taken"], "tags": "too many"}}
        assert format_api_error(422, body) == (
            "API Error (422): email: is invalid, is taken; tags: too many"
        )

    def test_error_string(self):
        assert format_api_error(400, {"errors": "bad"}) == "API Error (400): bad"

    def test_message_field(self):
        assert format_api_error(401, {"message": "Unauthorized"}) == (
            "API Error (401): Unauthorized"
        )

    def test_unknown(self):
        assert format_api_error(500, {}) == "API Error (500): Unknown error occurred"
        assert format_api_error(502, "<html>") == "API Error (502): Unknown error occurred"


def _http_error(status: int, retry_after: str | None = None) -> DripAPIError:
    details = {"retry_after": retry_after} if retry_after else {}
    return DripAPIError(
        format_api_error(status, {}), code="DRIP_HTTP_ERROR", status=status, details=details
    )


class _ScriptedTransport(FakeTransport):
    def __init__(self, outcomes):
        super().__init__()
        self.outcomes = list(outcomes)

    async def request(self, method, url, *, params=None, json_body=None):
        await super().request(method, url, params=params, json_body=json_body)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestRetryingTransport:
    @pytest.fixture()
    def sleeps(self):
        return []

    @pytest.fixture()
    def fake_sleep(self, sleeps):
        async def _sleep(delay):
            sleeps.append(delay)

        return _sleep

    async def test_retries_server_errors_then_succeeds(self, fake_sleep, sleeps):
        inner = _ScriptedTransport(
            [_http_error(503), _http_error(502), DripResponse(status=200, data={"ok": True})]
        )
        transport = RetryingTransport(inner, RetryPolicy(), sleep=fake_sleep)
        response = await transport.request("GET", f"{BASE_URL}/forms")
        assert response.data == {"ok": True}
        assert len(inner.calls) == 3
        assert sleeps == [0.5, 1.0]

    async def test_honors_retry_after(self, fake_sleep, sleeps):
        inner = _ScriptedTransport(
            [_http_error(429, retry_after="2"), DripResponse(status=200, data={})]
        )
        transport = RetryingTransport(inner, RetryPolicy(), sleep=fake_sleep)
        await transport.request("GET", f"{BASE_URL}/forms")
        assert sleeps == [2.0]

    async def test_retry_after_capped(self, fake_sleep, sleeps):
        inner = _ScriptedTransport(
            [_http_error(429, retry_after="120"), DripResponse(status=200, data={})]
        )
        transport = RetryingTransport(inner, RetryPolicy(), sleep=fake_sleep)
        await transport.request("GET", f"{BASE_URL}/forms")
        assert sleeps == [8.0]

    async def test_gives_up_after_max_attempts(self, fake_sleep):
        inner = _ScriptedTransport([_http_error(500)] * 3)
        transport = RetryingTransport(inner, RetryPolicy(max_attempts=3), sleep=fake_sleep)
        with pytest.raises(DripAPIError) as exc_info:
            await transport.request("GET", f"{BASE_URL}/forms")
        assert exc_info.value.status == 500
        assert len(inner.calls) == 3

    async def test_validation_errors_not_retried(self, fake_sleep, sleeps):
        inner = _ScriptedTransport([_http_error(422)])
        transport = RetryingTransport(inner, RetryPolicy(), sleep=fake_sleep)
        with pytest.raises(DripAPIError):
            await transport.request("POST", f"{BASE_URL}/subscribers")
        assert len(inner.calls) == 1
        assert sleeps == []

    async def test_network_errors_not_retried(self, fake_sleep):
        error = DripAPIError("Drip request failed", code="NETWORK_ERROR")
        inner = _ScriptedTransport([error])
        transport = RetryingTransport(inner, RetryPolicy(), sleep=fake_sleep)
        with pytest.raises(DripAPIError):
            await transport.request("GET", f"{BASE_URL}/forms")
        assert len(inner.calls) == 1

    async def test_open_close_delegate(self):
        inner = FakeTransport()
        transport = RetryingTransport(inner)
        await transport.open()
        await transport.close()
        assert (inner.opened, inner.closed) == (1, 1)


async def test_account_lookup_uses_unscoped_url(client, transport):
    transport.on(
        "GET",
        "https://api.getdrip.com/v2/accounts",
        DripResponse(
            status=200,
            data={
                "accounts": [
                    {"id": "1", "name": "Other"},
                    {"id": int(ACCOUNT_ID), "name": "Mine"},
                ]
            },
        ),
    )
    result = await client.get_account()
    assert result == {"account": {"id": int(ACCOUNT_ID), "name": "Mine"}}
    assert transport.last().url == "https://api.getdrip.com/v2/accounts"


async def test_account_lookup_without_match_returns_listing(client, transport):
    listing = {"accounts": [{"id": "1", "name": "Other"}]}
    transport.on("GET", "https://api.getdrip.com/v2/accounts", DripResponse(200, listing))
    assert await client.get_account() == listing
