#!/usr/bin/env python

# pylint: disable=missing-class-docstring,too-few-public-methods

"""Typing classes."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, NamedTuple, Optional, Tuple, Union

from .errors import InvalidInput
from .formatteddigest import FormattedDigest
from .manifest import Manifest
from .specs import DockerAuthentication


class RegistryEndpoint(NamedTuple):
    """Where a registry and its authorization service live."""

    service: Optional[str]
    api_url: str
    auth_url: Optional[str]
    host: str


class AuthToken(NamedTuple):
    """
    A bearer token issued by an authorization service.

    The expiry information is informational only; the client never refreshes a token on its own.
    """

    token: str
    expires_in: Optional[int] = None
    issued_at: Optional[datetime] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        """Returns the time at which the token expires, if known."""
        if self.expires_in is None or self.issued_at is None:
            return None
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime = None) -> bool:
        """Returns True if the token is known to be expired."""
        expires_at = self.expires_at
        if expires_at is None:
            return False
        if now is None:
            now = datetime.now(timezone.utc)
        return now >= expires_at


class AuthChallenge(NamedTuple):
    """A parsed "WWW-Authenticate: Bearer ..." challenge."""

    realm: str
    service: Optional[str] = None
    scope: Optional[str] = None


class Scope(NamedTuple):
    resource_type: str
    resource_name: str
    actions: Tuple[str, ...]

    def __str__(self) -> str:
        return DockerAuthentication.SCOPE_PATTERN.format(
            self.resource_type, self.resource_name, ",".join(self.actions)
        )

    @staticmethod
    def parse(scope: str) -> "Scope":
        """
        Initializes a Scope from its string form.

        Args:
            scope: A scope value in form <type>:<name>:<action>[,<action>...].

        Returns:
            The newly initialized object.
        """
        # Resource names may contain a port (registry:5000/name), actions never contain a colon.
        if not scope or scope.count(":") < 2:
            raise InvalidInput(f"Invalid scope: {scope}")
        resource_type, remainder = scope.split(":", 1)
        resource_name, actions = remainder.rsplit(":", 1)
        if not resource_type or not resource_name or not actions:
            raise InvalidInput(f"Invalid scope: {scope}")
        return Scope(
            resource_type=resource_type,
            resource_name=resource_name,
            actions=tuple(actions.split(",")),
        )


class Platform(NamedTuple):
    architecture: str
    os: str
    os_version: Optional[str] = None
    os_features: Tuple[str, ...] = ()
    variant: Optional[str] = None
    features: Tuple[str, ...] = ()


class Descriptor(NamedTuple):
    media_type: str
    digest: FormattedDigest
    size: int
    urls: Tuple[str, ...] = ()
    annotations: Optional[Dict[str, str]] = None
    platform: Optional[Platform] = None


class ImageManifest(NamedTuple):
    """A single image: a config descriptor and layer descriptors in application order."""

    media_type: str
    schema_version: int
    config: Descriptor
    layers: Tuple[Descriptor, ...]
    annotations: Optional[Dict[str, str]]
    digest: FormattedDigest
    document: Manifest


class ManifestIndex(NamedTuple):
    """A manifest list / image index; platform selection is left to the caller."""

    media_type: str
    schema_version: int
    manifests: Tuple[Descriptor, ...]
    annotations: Optional[Dict[str, str]]
    digest: FormattedDigest
    document: Manifest


ManifestVariant = Union[ImageManifest, ManifestIndex]


class RequestContext(NamedTuple):
    """Snapshot of the endpoint configuration and token used for a single request."""

    endpoint: RegistryEndpoint
    token: Optional[AuthToken] = None


class OCIRegistryClientAsyncHeadBlob(NamedTuple):
    content_length: Optional[int]
    digest: Optional[FormattedDigest]
    result: bool


class OCIRegistryClientAsyncHeadManifest(NamedTuple):
    content_length: Optional[int]
    digest: Optional[FormattedDigest]
    media_type: Optional[str]
    result: bool


class OCIRegistryClientAsyncGetTags(NamedTuple):
    name: str
    tags: Any


class OCIRegistryClientAsyncVersion(NamedTuple):
    api_version: Optional[str]
    challenge: Optional[AuthChallenge]
    result: bool


class UtilsChunkToFile(NamedTuple):
    digest: FormattedDigest
    size: int
