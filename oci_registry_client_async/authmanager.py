#!/usr/bin/env python

"""Bearer token acquisition against a registry authorization service."""

import json
import logging
import os
import re

from datetime import datetime, timezone
from pathlib import Path
from re import Pattern
from typing import Dict, Optional, Union
from urllib.parse import urlparse

import aiofiles

from .errors import AuthFailed, MalformedResponse, TokenMissing
from .specs import OAUTH2_CLIENT_ID, MediaTypes
from .transport import Transport
from .typing import AuthChallenge, AuthToken, Scope
from .utils import raise_for_status

LOGGER = logging.getLogger(__name__)

# Fractional seconds beyond microseconds, and a trailing "Z", are not understood by datetime.fromisoformat() on all
# supported interpreters.
ISSUED_AT_PATTERN = re.compile(r"^(?P<base>[^.]+?)(?:\.(?P<fraction>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$")


def parse_issued_at(issued_at: Optional[str]) -> Optional[datetime]:
    """
    Parses the "issued_at" field of a token response.

    Args:
        issued_at: An RFC3339 timestamp.

    Returns:
        The corresponding timezone aware datetime, or None if it cannot be parsed.
    """
    if not isinstance(issued_at, str):
        return None
    match = ISSUED_AT_PATTERN.match(issued_at.strip())
    if not match:
        return None
    value = match.group("base")
    if match.group("fraction"):
        value += "." + match.group("fraction")[:6].ljust(6, "0")
    tz = match.group("tz")
    value += "+00:00" if tz in (None, "Z") else tz
    try:
        return datetime.fromisoformat(value).astimezone(timezone.utc)
    except ValueError:
        return None


class AuthManager:
    """
    Implements the token exchange handshake:
    https://github.com/docker/distribution/blob/master/docs/spec/auth/token.md

    Issued tokens are handed back to the caller; nothing is cached or refreshed here.
    """

    DEBUG = os.environ.get("ORCA_DEBUG", "")
    DEFAULT_CREDENTIALS_STORE = Path.home().joinpath(".docker/config.json")

    def __init__(self, transport: Transport, *, credentials_store: Path = None):
        """
        Args:
            transport: The transport used to reach the authorization service.
            credentials_store: Path to the docker registry credentials store.
        """
        if not credentials_store:
            credentials_store = Path(
                os.environ.get(
                    "ORCA_CREDENTIALS_STORE", AuthManager.DEFAULT_CREDENTIALS_STORE
                )
            )

        self.transport = transport
        self.credentials_store = credentials_store
        # Endpoint Pattern -> credentials
        self.credentials = None  # type: Optional[Dict[Pattern, str]]

    async def add_credentials(self, *, credentials: str, endpoint: Union[Pattern, str]):
        """
        Assigns registry credentials in memory for a given endpoint.

        Args:
            credentials: The base64 encoded "<username>:<password>" credentials to be assigned.
            endpoint: Registry endpoint (<hostname>:[<port>]) for which to assign the credentials.
        """
        # Don't shadow self.credentials_store by flagging that credentials have been loaded
        if self.credentials is None:
            await self._load_credentials()
        if not isinstance(endpoint, Pattern):
            endpoint = AuthManager.get_endpoint_pattern(endpoint=endpoint)
        self.credentials[endpoint] = credentials

    async def get_credentials(self, *, endpoint: str) -> Optional[str]:
        """
        Retrieves the registry credentials for a given endpoint.

        Args:
            endpoint: Registry endpoint for which to retrieve the credentials.

        Returns:
            The corresponding base64 encoded registry credentials, or None.
        """
        result = None

        if self.credentials is None:
            await self._load_credentials()

        for pattern, credentials in self.credentials.items():
            if pattern.fullmatch(endpoint):
                result = credentials
                break

        return result

    @staticmethod
    def get_endpoint_pattern(*, endpoint: str) -> Pattern:
        """Converts a given endpoint to a regular expression pattern that matches the endpoint."""

        # Legacy endpoint formats included the protocol and path segments; convert them to netloc / address ...
        # Note: urlparse handles many edge-cases, but stores 'netloc' in 'path' if not protocol is specified.
        if "://" not in endpoint:
            endpoint = f"proto://{endpoint}"
        endpoint = urlparse(endpoint).netloc
        return re.compile(f"^{re.escape(endpoint)}$")

    async def get_token(
        self,
        *,
        credentials: str = None,
        realm: str,
        scope: Union[Scope, str],
        service: Optional[str],
    ) -> AuthToken:
        """
        Requests a bearer token from the authorization service.

        Args:
            credentials: Optional base64 encoded credentials sent as basic authentication.
            realm: The URL of the authorization service.
            scope: The scope of the token.
            service: The name of the registry service the token is intended for.

        Returns:
            The issued token.
        """
        params = {"client_id": OAUTH2_CLIENT_ID, "scope": str(scope)}
        if service:
            params["service"] = service
        headers = {"Accept": MediaTypes.APPLICATION_JSON}
        if credentials:
            headers["Authorization"] = f"Basic {credentials}"

        if AuthManager.DEBUG:
            LOGGER.debug(
                "Requesting token: %s (service=%s, scope=%s, basic=%s)",
                realm,
                service,
                scope,
                bool(credentials),
            )
        transport_response = await self.transport.request(
            "GET", realm, headers=headers, params=params
        )
        await raise_for_status(transport_response, error_type=AuthFailed)
        try:
            data = await transport_response.read()
        finally:
            transport_response.release()

        try:
            payload = json.loads(data)
        except (UnicodeDecodeError, ValueError) as exception:
            raise MalformedResponse(
                f"Invalid token response from {realm}: {exception}"
            ) from exception
        if not isinstance(payload, dict):
            raise MalformedResponse(f"Invalid token response from {realm}")

        # Note: "access_token" is the OAuth2 compatible name; registries may return either, or both.
        token = payload.get("token") or payload.get("access_token")
        if not token or not isinstance(token, str):
            raise TokenMissing(
                f"Token response from {realm} does not contain a token",
                status=transport_response.status,
                url=transport_response.url,
            )

        expires_in = payload.get("expires_in")
        if not isinstance(expires_in, int) or isinstance(expires_in, bool):
            expires_in = None
        issued_at = parse_issued_at(payload.get("issued_at"))
        if expires_in is not None and issued_at is None:
            issued_at = datetime.now(timezone.utc)

        return AuthToken(expires_in=expires_in, issued_at=issued_at, token=token)

    async def get_token_for_challenge(
        self,
        challenge: AuthChallenge,
        *,
        credentials: str = None,
        scope: Union[Scope, str] = None,
    ) -> AuthToken:
        """
        Requests a bearer token as directed by a "WWW-Authenticate" challenge.

        Args:
            challenge: The challenge returned by the registry.
            credentials: Optional base64 encoded credentials sent as basic authentication.
            scope: Overrides the scope requested by the challenge.

        Returns:
            The issued token.
        """
        if scope and isinstance(scope, str):
            scope = Scope.parse(scope)
        # Challenges may name several space separated scopes; they are passed through as issued.
        scope = scope or challenge.scope
        if not scope:
            raise AuthFailed(f"Challenge from {challenge.realm} does not carry a scope")
        return await self.get_token(
            credentials=credentials,
            realm=challenge.realm,
            scope=scope,
            service=challenge.service,
        )

    async def _load_credentials(self):
        """Retrieves the registry credentials from the docker registry credentials store."""
        if self.credentials is None:
            self.credentials = {}

        if self.credentials_store:
            if AuthManager.DEBUG:
                LOGGER.debug(
                    "Loading credentials from store: %s", self.credentials_store
                )

            # TODO: Add support for credential helpers ("credsStore" / "credHelpers").
            if self.credentials_store.is_file():
                async with aiofiles.open(self.credentials_store, mode="rb") as file:
                    credentials = json.loads(await file.read()).get("auths", {})
                for endpoint, auth in credentials.items():
                    if "auth" not in auth:
                        continue
                    endpoint = AuthManager.get_endpoint_pattern(endpoint=endpoint)
                    await self.add_credentials(
                        endpoint=endpoint, credentials=auth["auth"]
                    )
