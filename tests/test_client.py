"""Tests for the ProviderClient HTTP transport.

Runs a local aiohttp server so status-code mapping, timeouts and body
encoding are exercised against a real socket.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from src.smm.api.client import ProviderClient
from src.smm.api.exceptions import (
    APIError,
    ConnectionError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
)


async def handle_echo(request: web.Request) -> web.Response:
    form = dict(await request.post()) if request.content_type == "application/x-www-form-urlencoded" else None
    body = await request.json() if request.content_type == "application/json" else None
    return web.json_response({
        "method": request.method,
        "query": dict(request.query),
        "form": form,
        "json": body,
        "auth": request.headers.get("X-Api-Key"),
    })


async def handle_empty(request: web.Request) -> web.Response:
    return web.Response(text="")


async def handle_status(request: web.Request) -> web.Response:
    code = int(request.match_info["code"])
    headers = {"Retry-After": "7"} if code == 429 else None
    return web.Response(status=code, text=f"error {code}", headers=headers)


async def handle_slow(request: web.Request) -> web.Response:
    await asyncio.sleep(2)
    return web.json_response({"status": "Completed"})


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app.router.add_route("*", "/echo", handle_echo)
    app.router.add_get("/empty", handle_empty)
    app.router.add_get("/status/{code}", handle_status)
    app.router.add_get("/slow", handle_slow)

    test_server = test_utils.TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest_asyncio.fixture
async def client():
    async with ProviderClient() as provider_client:
        yield provider_client


class TestProviderClient:

    async def test_requires_open(self):
        with pytest.raises(RuntimeError):
            await ProviderClient().request("GET", "http://localhost/")

    async def test_context_manager_lifecycle(self):
        provider_client = ProviderClient()
        assert not provider_client.is_open

        async with provider_client:
            assert provider_client.is_open

        assert not provider_client.is_open

    async def test_form_post(self, server, client):
        text = await client.request(
            "POST",
            str(server.make_url("/echo")),
            data={"key": "k", "action": "status", "order": "12"},
        )

        payload = json.loads(text)
        assert payload["method"] == "POST"
        assert payload["form"] == {"key": "k", "action": "status", "order": "12"}

    async def test_json_post_with_header(self, server, client):
        text = await client.request(
            "POST",
            str(server.make_url("/echo")),
            headers={"X-Api-Key": "k"},
            json_body={"action": "status", "order": "12"},
        )

        payload = json.loads(text)
        assert payload["json"] == {"action": "status", "order": "12"}
        assert payload["auth"] == "k"

    async def test_get_with_params(self, server, client):
        text = await client.request(
            "GET",
            str(server.make_url("/echo")),
            params={"key": "k", "order": "12"},
        )

        assert json.loads(text)["query"] == {"key": "k", "order": "12"}

    async def test_empty_body_is_returned(self, server, client):
        assert await client.request("GET", str(server.make_url("/empty"))) == ""

    async def test_not_found(self, server, client):
        with pytest.raises(NotFoundError) as exc_info:
            await client.request("GET", str(server.make_url("/status/404")))
        assert exc_info.value.status_code == 404
        assert exc_info.value.recoverable is False

    async def test_rate_limited(self, server, client):
        with pytest.raises(RateLimitError) as exc_info:
            await client.request("GET", str(server.make_url("/status/429")))
        assert exc_info.value.retry_after == 7

    async def test_server_error(self, server, client):
        with pytest.raises(ServerError) as exc_info:
            await client.request("GET", str(server.make_url("/status/502")))
        assert exc_info.value.status_code == 502
        assert exc_info.value.response_body == "error 502"

    async def test_other_client_error(self, server, client):
        with pytest.raises(APIError) as exc_info:
            await client.request("GET", str(server.make_url("/status/403")))
        assert exc_info.value.status_code == 403
        assert not isinstance(exc_info.value, (NotFoundError, ServerError))

    async def test_timeout(self, server, client):
        with pytest.raises(TimeoutError) as exc_info:
            await client.request("GET", str(server.make_url("/slow")), timeout_seconds=0.2)
        assert exc_info.value.timeout_seconds == 0.2
        assert exc_info.value.recoverable

    async def test_connection_refused(self, client):
        with pytest.raises(ConnectionError):
            await client.request("GET", "http://127.0.0.1:1/api", timeout_seconds=5)
