#!/usr/bin/env python

"""Manifest retrieval, content negotiation and digest validation."""

import logging
import os

from typing import Any, Dict, Tuple
from urllib.parse import quote

from .errors import (
    DigestMismatch,
    InvalidInput,
    MalformedResponse,
    NotFound,
    UnsupportedMediaType,
)
from .formatteddigest import FormattedDigest
from .manifest import Manifest
from .specs import (
    DockerMediaTypes,
    IMAGE_MANIFEST_MEDIA_TYPES,
    MANIFEST_INDEX_MEDIA_TYPES,
    OCIMediaTypes,
)
from .transport import Transport
from .typing import (
    Descriptor,
    ImageManifest,
    ManifestIndex,
    ManifestVariant,
    OCIRegistryClientAsyncHeadManifest,
    Platform,
    RequestContext,
)
from .utils import (
    get_request_headers,
    raise_for_status,
    validate_reference,
    validate_repository,
)

LOGGER = logging.getLogger(__name__)

DOCKER_CONTENT_DIGEST = "Docker-Content-Digest"


def parse_descriptor(_json: Any, *, where: str) -> Descriptor:
    """
    Converts a descriptor JSON object into a Descriptor.

    Args:
        _json: The descriptor JSON object.
        where: Location of the descriptor within the document, for error messages.

    Returns:
        The corresponding descriptor.
    """
    if not isinstance(_json, dict):
        raise MalformedResponse(f"Descriptor {where} is not an object")
    media_type = _json.get("mediaType")
    if not isinstance(media_type, str) or not media_type:
        raise MalformedResponse(f"Descriptor {where} has no media type")
    size = _json.get("size")
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        raise MalformedResponse(f"Descriptor {where} has an invalid size: {size}")
    try:
        digest = FormattedDigest(_json.get("digest"))
    except InvalidInput as exception:
        raise MalformedResponse(
            f"Descriptor {where} has an invalid digest: {exception}"
        ) from exception

    platform = None
    if isinstance(_json.get("platform"), dict):
        platform = parse_platform(_json["platform"], where=where)

    return Descriptor(
        annotations=_json.get("annotations"),
        digest=digest,
        media_type=media_type,
        platform=platform,
        size=size,
        urls=tuple(_json.get("urls") or ()),
    )


def parse_platform(_json: Dict, *, where: str) -> Platform:
    """Converts a platform JSON object into a Platform."""
    architecture = _json.get("architecture")
    _os = _json.get("os")
    if not isinstance(architecture, str) or not isinstance(_os, str):
        raise MalformedResponse(f"Descriptor {where} has an invalid platform")
    return Platform(
        architecture=architecture,
        features=tuple(_json.get("features") or ()),
        os=_os,
        os_features=tuple(_json.get("os.features") or _json.get("osFeatures") or ()),
        os_version=_json.get("os.version") or _json.get("osVersion"),
        variant=_json.get("variant"),
    )


def parse_manifest(
    manifest: Manifest, *, digest: FormattedDigest, media_type: str
) -> ManifestVariant:
    """
    Converts a raw manifest document into the variant selected by a media type.

    Args:
        manifest: The raw manifest document.
        digest: The digest of the document.
        media_type: The (negotiated or detected) media type of the document.

    Returns:
        An ImageManifest or a ManifestIndex.
    """
    _json = manifest.json
    if not isinstance(_json, dict):
        raise MalformedResponse("Manifest is not an object")
    schema_version = _json.get("schemaVersion")
    if schema_version != 2:
        raise MalformedResponse(f"Unsupported manifest schema version: {schema_version}")
    annotations = _json.get("annotations")

    if media_type in IMAGE_MANIFEST_MEDIA_TYPES:
        if "config" not in _json or not isinstance(_json.get("layers"), list):
            raise MalformedResponse("Image manifest has no config or layers")
        # Layer order is the filesystem application order; it is preserved as-is.
        layers = tuple(
            parse_descriptor(layer, where=f"layers[{i}]")
            for i, layer in enumerate(_json["layers"])
        )
        return ImageManifest(
            annotations=annotations,
            config=parse_descriptor(_json["config"], where="config"),
            digest=digest,
            document=manifest,
            layers=layers,
            media_type=media_type,
            schema_version=schema_version,
        )

    if media_type in MANIFEST_INDEX_MEDIA_TYPES:
        if not isinstance(_json.get("manifests"), list):
            raise MalformedResponse("Manifest index has no manifests")
        manifests = tuple(
            parse_descriptor(entry, where=f"manifests[{i}]")
            for i, entry in enumerate(_json["manifests"])
        )
        return ManifestIndex(
            annotations=annotations,
            digest=digest,
            document=manifest,
            manifests=manifests,
            media_type=media_type,
            schema_version=schema_version,
        )

    raise UnsupportedMediaType(
        f"Unsupported manifest media type: {media_type}", media_type=media_type
    )


class ManifestResolver:
    """
    Retrieves manifests by repository and reference (tag or digest).
    """

    DEBUG = os.environ.get("ORCA_DEBUG", "")
    # Descending preference; manifest lists / indices are accepted but never resolved to a platform here.
    DEFAULT_MEDIA_TYPES_MANIFEST = (
        OCIMediaTypes.IMAGE_MANIFEST_V1,
        DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
        OCIMediaTypes.IMAGE_INDEX_V1,
        DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
    )

    def __init__(self, transport: Transport):
        """
        Args:
            transport: The transport used to reach the registry.
        """
        self.transport = transport

    @staticmethod
    def get_accept(media_types: Tuple[str, ...]) -> str:
        """Renders media types, in descending preference, as an "Accept" header value."""
        values = []
        for i, media_type in enumerate(media_types):
            quality = max(1.0 - i * 0.1, 0.1)
            values.append(f"{media_type};q={quality:.1f}")
        return ",".join(values)

    @staticmethod
    def get_url(context: RequestContext, repository: str, reference: str) -> str:
        """Builds the manifest URL for a given repository and reference."""
        return (
            f"{context.endpoint.api_url}/v2/{repository}/manifests/"
            f"{quote(reference, safe=':')}"
        )

    async def head(
        self,
        context: RequestContext,
        repository: str,
        reference: str,
        *,
        media_types: Tuple[str, ...] = None,
    ) -> OCIRegistryClientAsyncHeadManifest:
        """
        Checks a manifest for existence.

        Args:
            context: The request context (endpoint and token).
            repository: The repository name.
            reference: A tag or a digest.
            media_types: Accepted media types, in descending preference.

        Returns:
            dict:
                content_length: The size of the manifest, if reported.
                digest: The digest of the manifest, if reported.
                media_type: The media type of the manifest, if reported.
                result: True if the manifest exists, False otherwise.
        """
        validate_repository(repository)
        validate_reference(reference)
        media_types = media_types or ManifestResolver.DEFAULT_MEDIA_TYPES_MANIFEST
        headers = get_request_headers(
            context, {"Accept": ManifestResolver.get_accept(media_types)}
        )
        url = ManifestResolver.get_url(context, repository, reference)
        transport_response = await self.transport.request(
            "HEAD", url, headers=headers
        )
        try:
            await raise_for_status(transport_response)
        except NotFound:
            return OCIRegistryClientAsyncHeadManifest(
                content_length=None, digest=None, media_type=None, result=False
            )
        transport_response.release()

        digest = None
        if DOCKER_CONTENT_DIGEST in transport_response.headers:
            header = transport_response.headers[DOCKER_CONTENT_DIGEST]
            try:
                digest = FormattedDigest(header.strip())
            except InvalidInput as exception:
                raise MalformedResponse(
                    f"Invalid {DOCKER_CONTENT_DIGEST} header: {header}"
                ) from exception
        return OCIRegistryClientAsyncHeadManifest(
            content_length=transport_response.content_length,
            digest=digest,
            media_type=transport_response.content_type,
            result=True,
        )

    async def resolve(
        self,
        context: RequestContext,
        repository: str,
        reference: str,
        *,
        media_types: Tuple[str, ...] = None,
    ) -> ManifestVariant:
        """
        Fetches the manifest identified by repository and reference.

        Args:
            context: The request context (endpoint and token).
            repository: The repository name.
            reference: A tag or a digest.
            media_types: Accepted media types, in descending preference.

        Returns:
            An ImageManifest or, for multi-platform images, a ManifestIndex.
        """
        validate_repository(repository)
        reference_digest = validate_reference(reference)
        media_types = media_types or ManifestResolver.DEFAULT_MEDIA_TYPES_MANIFEST
        headers = get_request_headers(
            context, {"Accept": ManifestResolver.get_accept(media_types)}
        )
        url = ManifestResolver.get_url(context, repository, reference)

        if ManifestResolver.DEBUG:
            LOGGER.debug("Retrieving manifest: %s", url)
        transport_response = await self.transport.request("GET", url, headers=headers)
        await raise_for_status(transport_response)
        try:
            data = await transport_response.read()
        finally:
            transport_response.release()

        # Trust boundary: manifests drive blob retrieval, so the body must hash to what the registry claims ...
        digest = FormattedDigest.calculate(data)
        header = transport_response.headers.get(DOCKER_CONTENT_DIGEST)
        if header:
            try:
                expected = FormattedDigest(header.strip())
            except InvalidInput as exception:
                raise MalformedResponse(
                    f"Invalid {DOCKER_CONTENT_DIGEST} header: {header}"
                ) from exception
            digest = FormattedDigest.calculate(data, expected.algorithm)
            if digest != expected:
                raise DigestMismatch(
                    "Manifest digest mismatch", actual=digest, expected=expected
                )

        # ... and to what the caller asked for.
        if reference_digest:
            actual = FormattedDigest.calculate(data, reference_digest.algorithm)
            if actual != reference_digest:
                raise DigestMismatch(
                    "Manifest digest mismatch", actual=actual, expected=reference_digest
                )
            digest = reference_digest

        content_type = transport_response.content_type
        if content_type in media_types:
            manifest = Manifest(data, media_type=content_type)
        else:
            # Registries may answer with a generic type (i.e. application/json); fall back to detection.
            try:
                manifest = Manifest(data)
            except MalformedResponse as exception:
                raise UnsupportedMediaType(
                    f"Unsupported manifest media type: {content_type}",
                    media_type=content_type,
                ) from exception
            if ManifestResolver.DEBUG:
                LOGGER.debug(
                    "Unexpected content type '%s'; detected '%s'",
                    content_type,
                    manifest.get_media_type(),
                )
            if manifest.get_media_type() not in media_types:
                raise UnsupportedMediaType(
                    f"Unsupported manifest media type: {content_type} ({manifest.get_media_type()})",
                    media_type=content_type,
                )

        return parse_manifest(
            manifest, digest=digest, media_type=manifest.get_media_type()
        )
