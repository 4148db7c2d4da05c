from __future__ import annotations

import asyncio
import socket
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from geoflow._transport import HttpTransport
from geoflow.exceptions import GeoflowTransportError, NetworkErrorKind


_PUSHED = web.AppKey("pushed", list)


async def _history(request: web.Request) -> web.Response:
    identity = request.match_info["identity"]
    if identity == "taken_user":
        return web.json_response([{"id": 1}, {"id": 2}, {"id": 3}])
    return web.json_response([])


async def _push(request: web.Request) -> web.Response:
    body = await request.json()
    request.app[_PUSHED].append((request.headers.copy(), body))
    return web.json_response({"id": "srv-1"}, status=201)


async def _broken(_request: web.Request) -> web.Response:
    return web.Response(status=503, text="maintenance")


async def _garbage(_request: web.Request) -> web.Response:
    return web.Response(status=200, text="<html>oops</html>", content_type="text/html")


async def _undecodable(_request: web.Request) -> web.Response:
    return web.Response(status=200, body=b"\xff\xfe[1]", content_type="application/json")


async def _empty(_request: web.Request) -> web.Response:
    return web.Response(status=204)


async def _slow(_request: web.Request) -> web.Response:
    await asyncio.sleep(0.5)
    return web.json_response({"id": "late"})


@pytest_asyncio.fixture
async def collector() -> AsyncIterator[TestServer]:
    app = web.Application()
    app[_PUSHED] = []
    app.router.add_get("/api/history/{identity}", _history)
    app.router.add_post("/api/push", _push)
    app.router.add_get("/api/broken", _broken)
    app.router.add_get("/api/garbage", _garbage)
    app.router.add_get("/api/undecodable", _undecodable)
    app.router.add_get("/api/empty", _empty)
    app.router.add_post("/api/slow", _slow)
    async with TestServer(app) as server:
        yield server


@pytest_asyncio.fixture
async def transport() -> AsyncIterator[HttpTransport]:
    async with aiohttp.ClientSession() as http:
        yield HttpTransport(http)


def _url(server: TestServer, path: str) -> str:
    return str(server.make_url(path))


@pytest.mark.asyncio
async def test_get_json_returns_parsed_body(collector: TestServer, transport: HttpTransport) -> None:
    data = await transport.get_json(_url(collector, "/api/history/taken_user"))

    assert isinstance(data, list)
    assert len(data) == 3


@pytest.mark.asyncio
async def test_post_json_sends_json_headers(collector: TestServer, transport: HttpTransport) -> None:
    payload: dict[str, Any] = {"user_id": "walker", "latitude": 37.5}

    data = await transport.post_json(_url(collector, "/api/push"), payload, timeout=5)

    assert data == {"id": "srv-1"}
    headers, body = collector.app[_PUSHED][0]
    assert body == payload
    assert headers["Content-Type"] == "application/json"
    assert headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_non_2xx_is_bad_status(collector: TestServer, transport: HttpTransport) -> None:
    url = _url(collector, "/api/broken")

    with pytest.raises(GeoflowTransportError) as exc_info:
        await transport.get_json(url)

    assert exc_info.value.kind is NetworkErrorKind.BAD_STATUS
    assert exc_info.value.status_code == 503
    assert exc_info.value.endpoint == url


@pytest.mark.asyncio
async def test_invalid_json_is_malformed(collector: TestServer, transport: HttpTransport) -> None:
    with pytest.raises(GeoflowTransportError) as exc_info:
        await transport.get_json(_url(collector, "/api/garbage"))

    assert exc_info.value.kind is NetworkErrorKind.MALFORMED_RESPONSE


@pytest.mark.asyncio
async def test_non_utf8_body_is_malformed(collector: TestServer, transport: HttpTransport) -> None:
    url = _url(collector, "/api/undecodable")

    with pytest.raises(GeoflowTransportError) as exc_info:
        await transport.get_json(url)

    assert exc_info.value.kind is NetworkErrorKind.MALFORMED_RESPONSE
    assert exc_info.value.endpoint == url


@pytest.mark.asyncio
async def test_empty_body_is_none(collector: TestServer, transport: HttpTransport) -> None:
    assert await transport.get_json(_url(collector, "/api/empty")) is None


@pytest.mark.asyncio
async def test_slow_response_times_out(collector: TestServer, transport: HttpTransport) -> None:
    with pytest.raises(GeoflowTransportError) as exc_info:
        await transport.post_json(_url(collector, "/api/slow"), {}, timeout=0.05)

    assert exc_info.value.kind is NetworkErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_closed_port_is_unreachable(transport: HttpTransport) -> None:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    url = f"http://127.0.0.1:{port}/api/push"

    with pytest.raises(GeoflowTransportError) as exc_info:
        await transport.post_json(url, {"user_id": "walker"})

    assert exc_info.value.kind is NetworkErrorKind.UNREACHABLE
    assert exc_info.value.endpoint == url
