#!/usr/bin/env python

# pylint: disable=redefined-outer-name

"""Transport tests."""

import json
import socket

from typing import Generator

import pytest

from aiohttp import ThreadedResolver, web
from aiohttp.test_utils import TestServer

from oci_registry_client_async import AiohttpTransport, NetworkError

pytestmark = [pytest.mark.asyncio]

CHUNKS = [b"chunk0-", b"chunk1-", b"chunk2"]


async def handle_chunks(request: web.Request) -> web.StreamResponse:
    # pylint: disable=missing-function-docstring
    response = web.StreamResponse(
        headers={"Content-Type": "application/octet-stream"}
    )
    response.content_length = sum(len(chunk) for chunk in CHUNKS)
    await response.prepare(request)
    for chunk in CHUNKS:
        await response.write(chunk)
    await response.write_eof()
    return response


async def handle_echo(request: web.Request) -> web.Response:
    # pylint: disable=missing-function-docstring
    return web.json_response(
        {
            "headers": dict(request.headers),
            "method": request.method,
            "query": dict(request.query),
        }
    )


async def handle_missing(request: web.Request) -> web.Response:
    # pylint: disable=missing-function-docstring,unused-argument
    return web.json_response(
        {"errors": [{"code": "BLOB_UNKNOWN", "message": "blob unknown"}]}, status=404
    )


async def handle_redirect(request: web.Request) -> web.Response:
    # pylint: disable=missing-function-docstring,unused-argument
    raise web.HTTPFound("/chunks")


async def handle_truncated(request: web.Request) -> web.StreamResponse:
    # pylint: disable=missing-function-docstring
    response = web.StreamResponse()
    response.content_length = 1024
    await response.prepare(request)
    await response.write(b"x" * 16)
    request.transport.close()
    return response


@pytest.fixture()
async def server() -> Generator[TestServer, None, None]:
    """Provides a local HTTP server."""
    app = web.Application()
    app.router.add_get("/chunks", handle_chunks)
    app.router.add_route("*", "/echo", handle_echo)
    app.router.add_get("/missing", handle_missing)
    app.router.add_get("/redirect", handle_redirect)
    app.router.add_get("/truncated", handle_truncated)
    async with TestServer(app) as test_server:
        yield test_server


@pytest.fixture()
async def transport() -> Generator[AiohttpTransport, None, None]:
    """Provides an AiohttpTransport instance."""
    aiohttp_transport = AiohttpTransport(
        no_proxy="127.0.0.1", tcp_connector_kwargs={"resolver": ThreadedResolver()}
    )
    yield aiohttp_transport
    await aiohttp_transport.close()


def get_unused_port() -> int:
    """Returns a local port that nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def test_request(server: TestServer, transport: AiohttpTransport):
    """Test that headers and query parameters are sent."""
    response = await transport.request(
        "GET",
        str(server.make_url("/echo")),
        headers={"Accept": "application/json", "X-Test": "1"},
        params={"scope": "repository:library/busybox:pull"},
    )
    assert response.status == 200
    assert response.content_type == "application/json"
    payload = json.loads(await response.read())
    response.release()
    assert response.closed
    assert payload["headers"]["X-Test"] == "1"
    assert payload["method"] == "GET"
    assert payload["query"] == {"scope": "repository:library/busybox:pull"}


async def test_iter_chunks(server: TestServer, transport: AiohttpTransport):
    """Test that the body is streamed in order."""
    response = await transport.request("GET", str(server.make_url("/chunks")))
    assert response.status == 200
    assert response.content_length == len(b"".join(CHUNKS))
    assert response.content_type == "application/octet-stream"
    data = b"".join([chunk async for chunk in response.iter_chunks()])
    response.release()
    assert data == b"".join(CHUNKS)


async def test_redirect(server: TestServer, transport: AiohttpTransport):
    """Test that redirects are followed transparently."""
    response = await transport.request("GET", str(server.make_url("/redirect")))
    assert response.status == 200
    assert response.url.endswith("/chunks")
    assert await response.read() == b"".join(CHUNKS)
    response.release()

    response = await transport.request(
        "GET", str(server.make_url("/redirect")), allow_redirects=False
    )
    assert response.status == 302
    response.release()


async def test_error_status(server: TestServer, transport: AiohttpTransport):
    """Test that error statuses are returned, not raised."""
    response = await transport.request("GET", str(server.make_url("/missing")))
    assert response.status == 404
    assert b"BLOB_UNKNOWN" in await response.read()
    response.release()


async def test_close(server: TestServer, transport: AiohttpTransport):
    """Test that a response can be abandoned before its body was read."""
    response = await transport.request("GET", str(server.make_url("/chunks")))
    response.close()
    assert response.closed


async def test_truncated(server: TestServer, transport: AiohttpTransport):
    """Test that a transfer failure surfaces as a network error."""
    response = await transport.request("GET", str(server.make_url("/truncated")))
    assert response.status == 200
    with pytest.raises(NetworkError):
        async for _ in response.iter_chunks():
            pass
    response.close()


async def test_connection_refused(transport: AiohttpTransport):
    """Test that a connection failure surfaces as a network error."""
    with pytest.raises(NetworkError):
        await transport.request("GET", f"http://127.0.0.1:{get_unused_port()}/v2/")


async def test__get_proxy(monkeypatch):
    """Test that proxies are selected per scheme and host."""
    for name in ["HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy"]:
        monkeypatch.delenv(name, raising=False)
    aiohttp_transport = AiohttpTransport(
        no_proxy="localhost,registry:5000",
        proxies={"http": "http://proxy:3128"},
    )
    # pylint: disable=protected-access
    assert (
        await aiohttp_transport._get_proxy(url="http://example.com/v2/")
        == "http://proxy:3128"
    )
    assert await aiohttp_transport._get_proxy(url="https://example.com/v2/") is None
    assert await aiohttp_transport._get_proxy(url="http://localhost:5000/v2/") is None
    assert await aiohttp_transport._get_proxy(url="http://registry:5000/v2/") is None


async def test_proxy_environment(monkeypatch):
    """Test that proxies are retrieved from the environment."""
    monkeypatch.setenv("HTTPS_PROXY", "http://proxy:3128")
    monkeypatch.setenv("NO_PROXY", "registry.example.com")
    aiohttp_transport = AiohttpTransport()
    # pylint: disable=protected-access
    assert (
        await aiohttp_transport._get_proxy(url="https://example.com/v2/")
        == "http://proxy:3128"
    )
    assert (
        await aiohttp_transport._get_proxy(url="https://registry.example.com/v2/")
        is None
    )
