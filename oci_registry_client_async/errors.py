#!/usr/bin/env python

# pylint: disable=too-few-public-methods

"""Exceptions raised by the OCI registry client."""

from typing import Any, List, NamedTuple, Optional


class ErrorDetail(NamedTuple):
    """A single entry of a registry "errors" response body."""

    code: str
    message: str
    detail: Any = None


class OCIRegistryClientError(Exception):
    """Base class for all client errors."""


class InvalidInput(OCIRegistryClientError, ValueError):
    """A caller supplied value (digest, reference, repository) is malformed."""


class NetworkError(OCIRegistryClientError):
    """The transport failed to complete a request or a body transfer."""


class MalformedResponse(OCIRegistryClientError):
    """The registry returned a response that cannot be interpreted."""


class UnsupportedMediaType(OCIRegistryClientError):
    """The registry returned a manifest type that cannot be parsed."""

    def __init__(self, msg: str, *, media_type: Optional[str] = None):
        super().__init__(msg)
        self.media_type = media_type


class DigestMismatch(OCIRegistryClientError):
    """Content does not hash to the digest it was identified by."""

    def __init__(self, msg: str, *, expected: str, actual: str):
        super().__init__(f"{msg}: {actual} != {expected}")
        self.actual = actual
        self.expected = expected


class StreamClosed(OCIRegistryClientError):
    """A blob stream was read after it was closed or failed."""


class RegistryAPIError(OCIRegistryClientError):
    """The registry (or authorization service) answered with an error status."""

    def __init__(
        self,
        msg: str,
        *,
        errors: List[ErrorDetail] = None,
        status: int = None,
        url: str = None,
    ):
        super().__init__(msg)
        self.errors = errors or []
        self.status = status
        self.url = url

    def __str__(self):
        result = super().__str__()
        for error in self.errors:
            result += f"\n  {error.code}: {error.message}"
        return result


class AuthFailed(RegistryAPIError):
    """The authorization service refused to issue a token."""


class NotFound(RegistryAPIError):
    """The requested resource does not exist (404)."""


class Unauthorized(RegistryAPIError):
    """
    The request was not authorized (401).

    The bearer challenge returned by the registry, if any, is available as `challenge` and can be handed to
    OCIRegistryClientAsync.auth_challenge() to obtain a token with the scope the registry asked for.
    """

    def __init__(self, msg: str, *, challenge=None, **kwargs):
        super().__init__(msg, **kwargs)
        self.challenge = challenge


class TokenMissing(AuthFailed, MalformedResponse):
    """The authorization service answered successfully, but without a token."""
