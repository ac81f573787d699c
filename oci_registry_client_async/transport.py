#!/usr/bin/env python

"""HTTP transport used by the registry client; no knowledge of the registry protocol lives here."""

import asyncio
import logging
import os

from ssl import create_default_context, SSLContext
from typing import AsyncIterator, Dict, Optional, Union
from urllib.parse import urlparse

from aiohttp import (
    AsyncResolver,
    ClientError,
    ClientResponse,
    ClientSession,
    Fingerprint,
    TCPConnector,
)
from aiohttp.helpers import BasicAuth

from .errors import NetworkError
from .utils import CHUNK_SIZE

LOGGER = logging.getLogger(__name__)


class TransportResponse:
    """
    Status, headers and an incrementally readable body of a single response.
    """

    def __init__(self, client_response: ClientResponse):
        """
        Args:
            client_response: The underlying client response.
        """
        self.client_response = client_response

    @property
    def closed(self) -> bool:
        """True once the underlying connection has been released or closed."""
        return self.client_response.closed

    @property
    def content_length(self) -> Optional[int]:
        """The value of the "Content-Length" header, if any."""
        return self.client_response.content_length

    @property
    def content_type(self) -> Optional[str]:
        """The value of the "Content-Type" header, without parameters."""
        if "Content-Type" not in self.client_response.headers:
            return None
        return self.client_response.content_type

    @property
    def headers(self):
        """The response headers (case-insensitive)."""
        return self.client_response.headers

    @property
    def status(self) -> int:
        """The HTTP status code."""
        return self.client_response.status

    @property
    def url(self) -> str:
        """The final URL, after redirects."""
        return str(self.client_response.url)

    def close(self):
        """Closes the underlying connection; used when the body is abandoned before it was fully read."""
        self.client_response.close()

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yields the body in chunks of at most CHUNK_SIZE bytes, as they are received from the network."""
        # https://docs.aiohttp.org/en/stable/streams.html
        try:
            async for chunk in self.client_response.content.iter_chunked(CHUNK_SIZE):
                yield chunk
        except (ClientError, asyncio.TimeoutError) as exception:
            raise NetworkError(
                f"Transfer failed: {self.url}: {exception}"
            ) from exception

    async def read(self) -> bytes:
        """Reads the whole body."""
        try:
            return await self.client_response.read()
        except (ClientError, asyncio.TimeoutError) as exception:
            raise NetworkError(
                f"Transfer failed: {self.url}: {exception}"
            ) from exception

    def release(self):
        """Returns the underlying connection to the pool; used after the body was fully read."""
        self.client_response.release()


class Transport:
    """
    Interface of an asynchronous HTTP transport.
    """

    async def close(self):
        """Gracefully closes this instance."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        allow_redirects: bool = True,
        headers: Dict[str, str] = None,
        params: Dict[str, str] = None,
    ) -> TransportResponse:
        """
        Issues a request and returns as soon as the response headers are available.

        Args:
            method: The HTTP method.
            url: The URL to request.
            allow_redirects: If True, redirects are followed transparently.
            headers: The request headers.
            params: The query parameters.

        Returns:
            The response, with the body not yet read.
        """
        raise NotImplementedError


class AiohttpTransport(Transport):
    # pylint: disable=too-many-instance-attributes
    """
    AIOHTTP based transport.
    """

    DEBUG = os.environ.get("ORCA_DEBUG", "")

    def __init__(
        self,
        *,
        client_session: ClientSession = None,
        client_session_kwargs: Dict = None,
        no_proxy: str = None,
        proxies: Dict[str, str] = None,
        proxy_auth: BasicAuth = None,
        resolver_kwargs: Dict = None,
        ssl: Union[None, bool, Fingerprint, SSLContext] = None,
        tcp_connector_kwargs: Dict = None,
    ):
        """
        Args:
            client_session: The underlying client session to use when making connections.
            client_session_kwargs: Arguments to be passed to the client session (i.e. timeout).
            no_proxy: A comma separated list of domains to exclude from proxying.
            proxies: Mapping of protocols to proxy urls, optionally including credentials.
            proxy_auth: The credentials to use when proxying.
            resolver_kwargs: Arguments to be passed to the resolver
            ssl: SSL context.
            tcp_connector_kwargs: Arguments to be passed to the TCP connector.
        """
        if not client_session_kwargs:
            client_session_kwargs = {}
        if not proxies:
            proxies = {}
        http_proxy = os.environ.get("HTTP_PROXY", os.environ.get("http_proxy"))
        if http_proxy and "http" not in proxies:
            proxies["http"] = http_proxy
        https_proxy = os.environ.get("HTTPS_PROXY", os.environ.get("https_proxy"))
        if https_proxy and "https" not in proxies:
            proxies["https"] = https_proxy
        if not no_proxy:
            no_proxy = os.environ.get("NO_PROXY", os.environ.get("no_proxy"))
        no_proxy = no_proxy.split(",") if no_proxy else []
        if not resolver_kwargs:
            resolver_kwargs = {}
        if ssl is None:
            cacerts = os.environ.get("ORCA_CACERTS", None)
            if cacerts:
                if AiohttpTransport.DEBUG:
                    LOGGER.debug("Using cacerts: %s", cacerts)
                ssl = create_default_context(cafile=str(cacerts))
        if not tcp_connector_kwargs:
            tcp_connector_kwargs = {}

        self.client_session = client_session
        self.client_session_kwargs = client_session_kwargs
        self.proxies = proxies
        self.proxy_auth = proxy_auth
        self.proxy_no = no_proxy
        self.resolver_kwargs = resolver_kwargs
        self.ssl = ssl
        self.tcp_connector_kwargs = tcp_connector_kwargs

    async def close(self):
        if self.client_session:
            await self.client_session.close()
        self.client_session = None

    async def _get_client_session(self) -> ClientSession:
        """
        Initializes and / or retrieves an AIOHTTP client session.

        Returns:
            The AIOHTTP client session.
        """
        if not self.client_session:
            if "resolver" not in self.tcp_connector_kwargs:
                self.tcp_connector_kwargs["resolver"] = AsyncResolver(
                    **self.resolver_kwargs
                )
            if "ssl" not in self.tcp_connector_kwargs and self.ssl is not None:
                self.tcp_connector_kwargs["ssl"] = self.ssl
            if "connector" not in self.client_session_kwargs:
                self.client_session_kwargs["connector"] = TCPConnector(
                    **self.tcp_connector_kwargs
                )
            self.client_session = ClientSession(**self.client_session_kwargs)

        return self.client_session

    async def _get_proxy(self, *, url: str) -> Optional[str]:
        """
        Retrieves the proxy configuration for a given URL.

        Args:
            url: The URL for which to retrieve the proxy configuration.
        """
        parts = urlparse(url)
        result = None
        if parts.hostname not in self.proxy_no and parts.netloc not in self.proxy_no:
            result = self.proxies.get(parts.scheme)
        return result

    async def request(
        self,
        method: str,
        url: str,
        *,
        allow_redirects: bool = True,
        headers: Dict[str, str] = None,
        params: Dict[str, str] = None,
    ) -> TransportResponse:
        client_session = await self._get_client_session()
        proxy = await self._get_proxy(url=url)
        kwargs = {}
        if self.ssl is not None:
            kwargs["ssl"] = self.ssl
        if AiohttpTransport.DEBUG:
            LOGGER.debug("%s %s (proxy=%s)", method, url, proxy)
        try:
            client_response = await client_session.request(
                method,
                url,
                allow_redirects=allow_redirects,
                headers=headers,
                params=params,
                proxy=proxy,
                proxy_auth=self.proxy_auth,
                raise_for_status=False,
                **kwargs,
            )
        except (ClientError, asyncio.TimeoutError) as exception:
            raise NetworkError(
                f"Request failed: {method} {url}: {exception}"
            ) from exception
        return TransportResponse(client_response)
