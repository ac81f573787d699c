#!/usr/bin/env python

"""Utility classes."""

import asyncio
import hashlib

from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Union

import aiofiles

from multidict import CIMultiDict

from oci_registry_client_async import FormattedDigest, Transport
from oci_registry_client_async.errors import NetworkError


def get_test_data_path(request, name) -> Path:
    """Helper method to retrieve the path of test data."""
    return Path(request.fspath).parent.joinpath("data").joinpath(name)


def get_test_data(request, name, mode: str = "rb"):
    """Helper method to retrieve test data."""
    with get_test_data_path(request, name).open(mode) as file:
        return file.read()


async def hash_file(path: Path) -> FormattedDigest:
    """Returns the sha256 digest value for the content of a given file."""
    hasher = hashlib.sha256()
    async with aiofiles.open(path, mode="rb") as file:
        while True:
            data = await file.read(1024)
            if not data:
                break
            hasher.update(data)
    return FormattedDigest(f"sha256:{hasher.hexdigest()}")


class FakeRequest(NamedTuple):
    # pylint: disable=missing-class-docstring
    method: str
    url: str
    allow_redirects: bool
    headers: Dict[str, str]
    params: Dict[str, str]


class FakeResponse:
    """In-memory stand-in for a TransportResponse."""

    def __init__(
        self,
        *,
        body: bytes = b"",
        chunks: List[bytes] = None,
        delay: float = 0,
        error_after: int = None,
        headers: Dict[str, str] = None,
        status: int = 200,
        url: str = None,
    ):
        """
        Args:
            body: The response body; ignored if chunks are given.
            chunks: The response body, as delivered by the network.
            delay: Seconds to wait before each chunk is delivered.
            error_after: If set, a NetworkError is raised after this many chunks were delivered.
            headers: The response headers.
            status: The HTTP status code.
            url: The final URL; defaults to the requested URL.
        """
        self.chunks = list(chunks) if chunks is not None else [body]
        self.delay = delay
        self.error_after = error_after
        self.headers = CIMultiDict(headers or {})
        self.status = status
        self.url = url

        self.closed = False
        self.delivered = 0
        self.released = False

    @property
    def content_length(self) -> Optional[int]:
        # pylint: disable=missing-function-docstring
        if "Content-Length" not in self.headers:
            return None
        return int(self.headers["Content-Length"])

    @property
    def content_type(self) -> Optional[str]:
        # pylint: disable=missing-function-docstring
        if "Content-Type" not in self.headers:
            return None
        return self.headers["Content-Type"].split(";")[0].strip()

    def close(self):
        # pylint: disable=missing-function-docstring
        self.closed = True

    async def iter_chunks(self):
        # pylint: disable=missing-function-docstring
        for i, chunk in enumerate(self.chunks):
            if self.error_after is not None and i >= self.error_after:
                raise NetworkError(f"Transfer failed: {self.url}: connection reset")
            if self.delay:
                await asyncio.sleep(self.delay)
            self.delivered += 1
            yield chunk
        if self.error_after is not None and self.error_after >= len(self.chunks):
            raise NetworkError(f"Transfer failed: {self.url}: connection reset")

    async def read(self) -> bytes:
        # pylint: disable=missing-function-docstring
        return b"".join([chunk async for chunk in self.iter_chunks()])

    def release(self):
        # pylint: disable=missing-function-docstring
        self.closed = self.released = True


Route = Union[FakeResponse, List[FakeResponse], Callable[[FakeRequest], FakeResponse]]


class FakeTransport(Transport):
    """
    Transport that answers from a routing table and records every request.

    Routes are keyed by (method, url); a route is a response, a list of responses consumed in order, or a callable
    that receives the request. Unknown routes answer 404.
    """

    def __init__(self, routes: Dict[tuple, Route] = None):
        self.calls = []  # type: List[FakeRequest]
        self.closed = False
        self.responses = []  # type: List[FakeResponse]
        self.routes = dict(routes or {})

    def add(self, method: str, url: str, route: Route):
        """Registers a route."""
        self.routes[(method, url)] = route

    async def close(self):
        self.closed = True

    async def request(
        self,
        method: str,
        url: str,
        *,
        allow_redirects: bool = True,
        headers: Dict[str, str] = None,
        params: Dict[str, str] = None,
    ) -> FakeResponse:
        request = FakeRequest(
            allow_redirects=allow_redirects,
            headers=dict(headers or {}),
            method=method,
            params=dict(params or {}),
            url=url,
        )
        self.calls.append(request)

        route = self.routes.get((method, url))
        if route is None:
            response = FakeResponse(status=404)
        elif isinstance(route, list):
            response = route.pop(0)
        elif callable(route):
            response = route(request)
        else:
            response = route
        if response.url is None:
            response.url = url
        self.responses.append(response)
        return response
