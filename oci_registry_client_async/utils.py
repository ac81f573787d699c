#!/usr/bin/env python

"""Utility classes."""

import hashlib
import json
import logging
import os

from functools import wraps, partial
from http import HTTPStatus
from typing import List, Optional

import asyncio
import www_authenticate

from .errors import (
    ErrorDetail,
    InvalidInput,
    NotFound,
    RegistryAPIError,
    Unauthorized,
)
from .formatteddigest import FormattedDigest
from .typing import AuthChallenge, RequestContext, UtilsChunkToFile

LOGGER = logging.getLogger(__name__)

# https://github.com/docker/docker-py/blob/master/docker/constants.py
CHUNK_SIZE = int(os.environ.get("ORCA_CHUNK_SIZE", 2097152))


def async_wrap(func):
    """Decorates a given function for execution via an executor."""
    # https://dev.to/0xbf/turn-sync-function-to-async-python-tips-58nn
    @wraps(func)
    async def run_in_executor(*args, loop=None, executor=None, **kwargs):
        if loop is None:
            loop = asyncio.get_event_loop()
        partial_func = partial(func, *args, **kwargs)
        return await loop.run_in_executor(executor, partial_func)

    return run_in_executor


async def be_kind_rewind(file, *, file_is_async: bool = True):
    """
    Reset the file position (offset) to the absolute beginning.
    Args:
        file: The file for which to reset the offset.
        file_is_async: If True, all file IO operations will be awaited.
    """
    if file_is_async:
        coroutine = file.seek(0)
    else:
        coroutine = async_wrap(file.seek)(0)
    await coroutine


async def chunk_to_file(
    chunks, file, *, algorithm: str = "sha256", file_is_async: bool = True
) -> UtilsChunkToFile:
    """
    Asynchronously stores chunks to a given file.

    Args:
        chunks: Asynchronous iterable (i.e. a BlobStream) from which to read the chunks.
        file: The file to which to store the chunks.
        algorithm: The digest algorithm to use.
        file_is_async: If True, all file IO operations will be awaited.

    Returns:
        dict:
            digest: The digest value of the chunked data.
            size: The byte size of the chunked data in bytes.
    """
    hasher = hashlib.new(algorithm)
    size = 0
    coroutine = file.write if file_is_async else async_wrap(file.write)
    async for chunk in chunks:
        await coroutine(chunk)
        hasher.update(chunk)
        size += len(chunk)

    await be_kind_rewind(file, file_is_async=file_is_async)

    return UtilsChunkToFile(
        digest=FormattedDigest(f"{algorithm}:{hasher.hexdigest()}"), size=size
    )


def get_request_headers(context: RequestContext, headers: dict = None) -> dict:
    """
    Generates request headers that carry the token captured in a given request context.

    Args:
        context: The request context from which to retrieve the token.
        headers: Optional supplemental request headers to be returned.

    Returns:
        The generated request headers.
    """
    headers = dict(headers) if headers else {}

    if "User-Agent" not in headers:
        # Note: This cannot be imported above, as it causes a circular import!
        from . import __version__  # pylint: disable=import-outside-toplevel

        headers["User-Agent"] = f"oci-registry-client-async/{__version__}"

    if context.token:
        headers["Authorization"] = f"Bearer {context.token.token}"

    return headers


def parse_challenge(header: Optional[str]) -> Optional[AuthChallenge]:
    """
    Parses a "WWW-Authenticate" response header.

    Args:
        header: The value of the header.

    Returns:
        The bearer challenge, or None if the header does not carry one.
    """
    if not header:
        return None
    try:
        auth_params = www_authenticate.parse(header)
    except ValueError:
        LOGGER.debug("Unable to parse challenge: %s", header)
        return None
    # Note: Www-Authenticate can also specify "basic".
    if "bearer" not in auth_params:
        return None
    bearer = auth_params["bearer"]
    # Note: A token68 style challenge is parsed to a bare string.
    if not bearer or isinstance(bearer, str) or "realm" not in bearer:
        return None
    return AuthChallenge(
        realm=bearer["realm"],
        scope=bearer["scope"] if "scope" in bearer else None,
        service=bearer["service"] if "service" in bearer else None,
    )


def parse_errors(data: bytes) -> List[ErrorDetail]:
    """
    Parses the body of an error response.

    Args:
        data: The raw response body.

    Returns:
        The list of errors reported by the registry; empty if the body is not an errors document.
    """
    try:
        errors = json.loads(data).get("errors", [])
    except (AttributeError, UnicodeDecodeError, ValueError):
        return []
    if not isinstance(errors, list):
        return []
    return [
        ErrorDetail(
            code=str(error.get("code", "")),
            detail=error.get("detail"),
            message=str(error.get("message", "")),
        )
        for error in errors
        if isinstance(error, dict)
    ]


async def raise_for_status(transport_response, *, error_type=RegistryAPIError):
    """
    Raises an exception describing a non-success response; releases the response before raising.

    Args:
        transport_response: The transport response to be checked.
        error_type: The type of exception to be raised for statuses without a dedicated type.
    """
    status = transport_response.status
    if 200 <= status < 300:
        return

    url = str(transport_response.url)
    try:
        data = await transport_response.read()
    finally:
        transport_response.release()
    errors = parse_errors(data)
    msg = f"{status} {_reason(status)}: {url}"

    if status == HTTPStatus.UNAUTHORIZED and error_type is RegistryAPIError:
        raise Unauthorized(
            msg,
            challenge=parse_challenge(transport_response.headers.get("Www-Authenticate")),
            errors=errors,
            status=status,
            url=url,
        )
    if status == HTTPStatus.NOT_FOUND and error_type is RegistryAPIError:
        raise NotFound(msg, errors=errors, status=status, url=url)
    raise error_type(msg, errors=errors, status=status, url=url)


def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


def validate_repository(repository: str):
    """Rejects repository names that can never resolve."""
    if (
        not isinstance(repository, str)
        or not repository
        or repository.startswith("/")
        or repository.endswith("/")
        or "//" in repository
    ):
        raise InvalidInput(f"Invalid repository: {repository}")


def validate_reference(reference: str) -> Optional[FormattedDigest]:
    """
    Rejects references that can never resolve.

    Args:
        reference: A tag or a digest.

    Returns:
        The reference as a digest, or None if the reference is a tag.
    """
    if not isinstance(reference, str) or not reference:
        raise InvalidInput(f"Invalid reference: {reference}")
    # Tags cannot contain a colon; anything that does must be a digest.
    if ":" in reference:
        return FormattedDigest(reference)
    return None

