#!/usr/bin/env python

"""Asynchronous OCI Registry Client."""

import json
import logging
import os

from http import HTTPStatus
from pathlib import Path
from typing import Optional, Tuple, Union
from urllib.parse import urlparse

from .authmanager import AuthManager
from .blobstream import BlobStream
from .blobstreamer import BlobStreamer
from .errors import AuthFailed, InvalidInput, MalformedResponse
from .formatteddigest import FormattedDigest
from .manifest import ImageConfig
from .manifestresolver import ManifestResolver
from .specs import DockerHub, MediaTypes
from .transport import AiohttpTransport, Transport
from .typing import (
    AuthChallenge,
    AuthToken,
    ManifestVariant,
    OCIRegistryClientAsyncGetTags,
    OCIRegistryClientAsyncHeadBlob,
    OCIRegistryClientAsyncHeadManifest,
    OCIRegistryClientAsyncVersion,
    RegistryEndpoint,
    RequestContext,
    Scope,
)
from .utils import (
    get_request_headers,
    parse_challenge,
    raise_for_status,
    validate_repository,
)

LOGGER = logging.getLogger(__name__)


class OCIRegistryClientAsync:
    # pylint: disable=too-many-instance-attributes
    """
    AIOHTTP based Python REST client for OCI / Docker V2 registries.

    The client holds the registry endpoint and, at most, one active token. Tokens are never acquired, refreshed or
    replaced implicitly: call auth() (or auth_challenge()) and hand the result to set_token(). A request captures
    the token that is active when it is issued; replacing the token does not affect requests already in flight.
    """

    DEBUG = os.environ.get("ORCA_DEBUG", "")

    def __init__(
        self,
        service: Optional[str],
        api_url: str,
        auth_url: str = None,
        *,
        credentials: str = None,
        credentials_endpoint: str = None,
        credentials_store: Path = None,
        token: AuthToken = None,
        transport: Transport = None,
        **kwargs,
    ):
        """
        Args:
            service: Name of the registry service (i.e. registry.docker.io), as known to the authorization service.
            api_url: Base URL of the registry (i.e. https://registry-1.docker.io).
            auth_url: URL of the authorization service (i.e. https://auth.docker.io/token); if omitted, it is
                      discovered from the challenge returned by the registry.
            credentials: Base64 encoded "<username>:<password>" sent to the authorization service.
            credentials_endpoint: Key under which credentials are looked up in the credentials store; defaults to the
                                  registry host.
            credentials_store: Path to the docker registry credentials store.
            token: The initially active token.
            transport: The transport to use; defaults to an AiohttpTransport constructed from the remaining keyword
                       arguments.
        """
        if not api_url or "://" not in api_url:
            raise InvalidInput(f"Invalid registry URL: {api_url}")
        api_url = api_url.rstrip("/")
        host = urlparse(api_url).netloc

        if transport is None:
            transport = AiohttpTransport(**kwargs)
        elif kwargs:
            raise TypeError(f"Unexpected arguments: {', '.join(kwargs)}")

        self.auth_manager = AuthManager(transport, credentials_store=credentials_store)
        self.blob_streamer = BlobStreamer(transport)
        self.credentials = credentials
        self.credentials_endpoint = credentials_endpoint or host
        self.endpoint = RegistryEndpoint(
            api_url=api_url, auth_url=auth_url, host=host, service=service
        )
        self.manifest_resolver = ManifestResolver(transport)
        self.token = token
        self.transport = transport

    async def __aenter__(self) -> "OCIRegistryClientAsync":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @classmethod
    def dockerhub(cls, **kwargs) -> "OCIRegistryClientAsync":
        """Initializes a client for Docker Hub."""
        kwargs.setdefault("credentials_endpoint", DockerHub.INDEX)
        return cls(DockerHub.SERVICE, DockerHub.API_URL, DockerHub.AUTH_URL, **kwargs)

    async def close(self):
        """Gracefully closes this instance."""
        await self.transport.close()

    def clear_token(self):
        """Deactivates the active token; subsequent requests are anonymous."""
        self.set_token(None)

    def get_context(self) -> RequestContext:
        """Captures the endpoint and the active token for a single request."""
        return RequestContext(endpoint=self.endpoint, token=self.token)

    def set_token(self, token: Optional[AuthToken]):
        """
        Activates a token for all subsequent requests.

        Args:
            token: The token to activate, or None to send subsequent requests anonymously.
        """
        if token is not None and not isinstance(token, AuthToken):
            token = AuthToken(token=str(token))
        self.token = token

    async def _get_credentials(self) -> Optional[str]:
        if self.credentials:
            return self.credentials
        return await self.auth_manager.get_credentials(
            endpoint=self.credentials_endpoint
        )

    # Authorization

    async def auth(
        self, scope_type: str, name: str, action: Union[str, Tuple[str, ...]]
    ) -> AuthToken:
        """
        Requests a token from the authorization service. The token is returned, not activated.

        Args:
            scope_type: Resource type of the scope (i.e. "repository").
            name: Resource name of the scope (i.e. "library/ubuntu").
            action: Action(s) of the scope (i.e. "pull" or ("pull", "push")).

        Returns:
            The issued token.
        """
        if not scope_type or not name or not action:
            raise InvalidInput(f"Invalid scope: {scope_type}:{name}:{action}")
        actions = (action,) if isinstance(action, str) else tuple(action)
        scope = Scope(resource_name=name, resource_type=scope_type, actions=actions)

        realm = self.endpoint.auth_url
        service = self.endpoint.service
        if not realm:
            challenge = (await self.version()).challenge
            if not challenge:
                raise AuthFailed(
                    f"Registry did not issue a bearer challenge: {self.endpoint.api_url}"
                )
            realm = challenge.realm
            service = service or challenge.service

        if OCIRegistryClientAsync.DEBUG:
            LOGGER.debug("Authenticating: %s (%s)", self.endpoint.host, scope)
        return await self.auth_manager.get_token(
            credentials=await self._get_credentials(),
            realm=realm,
            scope=scope,
            service=service,
        )

    async def auth_challenge(
        self, challenge: AuthChallenge, *, scope: Union[Scope, str] = None
    ) -> AuthToken:
        """
        Requests a token as directed by a challenge (i.e. Unauthorized.challenge). The token is returned, not
        activated.

        Args:
            challenge: The challenge returned by the registry.
            scope: Overrides the scope requested by the challenge.

        Returns:
            The issued token.
        """
        return await self.auth_manager.get_token_for_challenge(
            challenge, credentials=await self._get_credentials(), scope=scope
        )

    # OCI Distribution / Docker Registry V2 API methods

    async def blob(
        self,
        repository: str,
        digest: Union[FormattedDigest, str],
        *,
        verify: bool = False,
    ) -> BlobStream:
        """
        Retrieves the blob identified by digest as a lazily consumed stream.

        Args:
            repository: The repository name.
            digest: Digest of the blob.
            verify: If True, the final read fails with DigestMismatch when the content does not match the digest.

        Returns:
            The blob stream; it must be consumed or closed.
        """
        return await self.blob_streamer.open(
            self.get_context(), repository, digest, verify=verify
        )

    async def config(
        self, repository: str, digest: Union[FormattedDigest, str]
    ) -> ImageConfig:
        """
        Retrieves the image configuration referenced by a manifest.

        Args:
            repository: The repository name.
            digest: Digest of the image configuration (ImageManifest.config.digest).

        Returns:
            The verified image configuration.
        """
        return await self.blob_streamer.read_config(
            self.get_context(), repository, digest
        )

    async def head_blob(
        self, repository: str, digest: Union[FormattedDigest, str]
    ) -> OCIRegistryClientAsyncHeadBlob:
        """
        Checks a blob for existence.

        Args:
            repository: The repository name.
            digest: Digest of the blob.

        Returns:
            dict:
                content_length: The size of the blob, if reported.
                digest: The digest of the blob, if it exists.
                result: True if the blob exists, False otherwise.
        """
        return await self.blob_streamer.head(self.get_context(), repository, digest)

    async def head_manifest(
        self, repository: str, reference: str
    ) -> OCIRegistryClientAsyncHeadManifest:
        """
        Checks a manifest for existence.

        Args:
            repository: The repository name.
            reference: A tag or a digest.

        Returns:
            dict:
                content_length: The size of the manifest, if reported.
                digest: The digest of the manifest, if reported.
                media_type: The media type of the manifest, if reported.
                result: True if the manifest exists, False otherwise.
        """
        return await self.manifest_resolver.head(
            self.get_context(), repository, reference
        )

    async def manifest(
        self, repository: str, reference: str, *, media_types: Tuple[str, ...] = None
    ) -> ManifestVariant:
        """
        Fetches the manifest identified by repository and reference.

        Args:
            repository: The repository name.
            reference: A tag or a digest.
            media_types: Accepted media types, in descending preference.

        Returns:
            An ImageManifest, or a ManifestIndex for multi-platform images. Selecting a platform from a ManifestIndex
            is left to the caller.
        """
        return await self.manifest_resolver.resolve(
            self.get_context(), repository, reference, media_types=media_types
        )

    async def tags(
        self, repository: str, *, last: str = None, n: int = None
    ) -> OCIRegistryClientAsyncGetTags:
        """
        Fetches the tags under the repository identified by name.

        Args:
            repository: The repository name.
            last: Result set will include values lexically after last.
            n: Limit the number of entries in the response.

        Returns:
            dict:
                name: The repository name, as reported by the registry.
                tags: The corresponding list of image tags.
        """
        validate_repository(repository)
        params = {}
        if last is not None:
            params["last"] = last
        if n is not None:
            params["n"] = str(n)
        headers = get_request_headers(
            self.get_context(), {"Accept": MediaTypes.APPLICATION_JSON}
        )
        url = f"{self.endpoint.api_url}/v2/{repository}/tags/list"
        transport_response = await self.transport.request(
            "GET", url, headers=headers, params=params
        )
        await raise_for_status(transport_response)
        try:
            data = await transport_response.read()
        finally:
            transport_response.release()
        try:
            payload = json.loads(data)
            return OCIRegistryClientAsyncGetTags(
                name=payload.get("name", repository), tags=payload.get("tags") or []
            )
        except (AttributeError, UnicodeDecodeError, ValueError) as exception:
            raise MalformedResponse(
                f"Invalid tag list: {url}: {exception}"
            ) from exception

    async def version(self) -> OCIRegistryClientAsyncVersion:
        """
        Checks that the endpoint implements the registry API V2.

        Returns:
            dict:
                api_version: The value of the "Docker-Distribution-API-Version" header, if any.
                challenge: The bearer challenge, if the registry requires authorization.
                result: True if the v2 API is implemented and accessible, False otherwise.
        """
        headers = get_request_headers(self.get_context())
        url = f"{self.endpoint.api_url}/v2/"
        transport_response = await self.transport.request("GET", url, headers=headers)
        try:
            await transport_response.read()
        finally:
            transport_response.release()
        challenge = None
        if transport_response.status == HTTPStatus.UNAUTHORIZED:
            challenge = parse_challenge(
                transport_response.headers.get("Www-Authenticate")
            )
        return OCIRegistryClientAsyncVersion(
            api_version=transport_response.headers.get(
                "Docker-Distribution-API-Version"
            ),
            challenge=challenge,
            result=(transport_response.status == HTTPStatus.OK),
        )
