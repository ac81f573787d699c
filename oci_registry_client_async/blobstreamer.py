#!/usr/bin/env python

"""Blob retrieval by repository and digest."""

import logging
import os

from .blobstream import BlobStream
from .errors import MalformedResponse, NotFound
from .formatteddigest import FormattedDigest
from .manifest import ImageConfig
from .specs import MediaTypes
from .transport import Transport
from .typing import OCIRegistryClientAsyncHeadBlob, RequestContext
from .utils import get_request_headers, raise_for_status, validate_repository

LOGGER = logging.getLogger(__name__)


class BlobStreamer:
    """
    Retrieves blobs as lazily consumed streams.
    """

    DEBUG = os.environ.get("ORCA_DEBUG", "")
    DEFAULT_MEDIA_TYPES_BLOB = MediaTypes.ANY_ANY

    def __init__(self, transport: Transport):
        """
        Args:
            transport: The transport used to reach the registry (and any blob storage it redirects to).
        """
        self.transport = transport

    @staticmethod
    def get_url(context: RequestContext, repository: str, digest: FormattedDigest) -> str:
        """Builds the blob URL for a given repository and digest."""
        return f"{context.endpoint.api_url}/v2/{repository}/blobs/{digest}"

    async def head(
        self, context: RequestContext, repository: str, digest: FormattedDigest
    ) -> OCIRegistryClientAsyncHeadBlob:
        """
        Checks a blob for existence.

        Args:
            context: The request context (endpoint and token).
            repository: The repository name.
            digest: Digest of the blob.

        Returns:
            dict:
                content_length: The size of the blob, if reported.
                digest: The digest of the blob, if reported.
                result: True if the blob exists, False otherwise.
        """
        validate_repository(repository)
        digest = FormattedDigest.parse(digest)
        headers = get_request_headers(context)
        url = BlobStreamer.get_url(context, repository, digest)
        transport_response = await self.transport.request("HEAD", url, headers=headers)
        try:
            await raise_for_status(transport_response)
        except NotFound:
            return OCIRegistryClientAsyncHeadBlob(
                content_length=None, digest=None, result=False
            )
        transport_response.release()
        return OCIRegistryClientAsyncHeadBlob(
            content_length=transport_response.content_length,
            digest=digest,
            result=True,
        )

    async def open(
        self,
        context: RequestContext,
        repository: str,
        digest: FormattedDigest,
        *,
        verify: bool = False,
    ) -> BlobStream:
        """
        Starts retrieving the blob identified by digest; the body is not read.

        Args:
            context: The request context (endpoint and token).
            repository: The repository name.
            digest: Digest of the blob.
            verify: If True, the final read fails with DigestMismatch when the content does not match the digest.

        Returns:
            The blob stream.
        """
        # A malformed digest can never resolve; reject it before touching the network.
        validate_repository(repository)
        digest = FormattedDigest.parse(digest)
        headers = get_request_headers(
            context, {"Accept": BlobStreamer.DEFAULT_MEDIA_TYPES_BLOB}
        )
        url = BlobStreamer.get_url(context, repository, digest)

        if BlobStreamer.DEBUG:
            LOGGER.debug("Retrieving blob: %s", url)
        # Note: Registries commonly redirect to external blob storage; the transport follows transparently.
        transport_response = await self.transport.request(
            "GET", url, allow_redirects=True, headers=headers
        )
        await raise_for_status(transport_response)
        return BlobStream(transport_response, digest=digest, verify=verify)

    async def read_config(
        self, context: RequestContext, repository: str, digest: FormattedDigest
    ) -> ImageConfig:
        """
        Retrieves and verifies an image configuration blob.

        Args:
            context: The request context (endpoint and token).
            repository: The repository name.
            digest: Digest of the image configuration.

        Returns:
            The image configuration.
        """
        digest = FormattedDigest.parse(digest)
        async with await self.open(
            context, repository, digest, verify=True
        ) as blob_stream:
            data = b"".join([chunk async for chunk in blob_stream])
        image_config = ImageConfig(data)
        if not isinstance(image_config.json, dict):
            raise MalformedResponse(f"Image configuration is not an object: {digest}")
        return image_config
