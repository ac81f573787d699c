#!/usr/bin/env python

"""
Abstraction of raw image manifests and image configurations, as defined in:

* https://github.com/docker/distribution/tree/master/docs/spec
* https://github.com/opencontainers/image-spec/blob/master/media-types.md
"""

from typing import List, Optional

from .jsonbytes import JsonBytes
from .specs import DockerMediaTypes, MediaTypes, OCIMediaTypes


class Manifest(JsonBytes):
    """
    Raw image manifest document.
    """

    def __init__(self, manifest: bytes, *, media_type: str = None):
        """
        Args:
            manifest: The raw image manifest value.
            media_type: The media type of the image manifest, as negotiated with the registry.
        """
        self.media_type = media_type
        super().__init__(manifest)
        if not self.media_type:
            self._detect_media_type()

    def _detect_media_type(self):
        """
        Attempts to detect the media type of the image manifest.
        """
        _json = self.json if isinstance(self.json, dict) else {}

        # Is there a declared media type (applies to all of Docker manifest v2.2)?
        if isinstance(_json.get("mediaType"), str):
            self.media_type = _json["mediaType"]

        # Is this an OCI image index?
        elif "manifests" in _json:
            self.media_type = OCIMediaTypes.IMAGE_INDEX_V1

        # Is this an OCI image manifest?
        elif "layers" in _json:
            self.media_type = OCIMediaTypes.IMAGE_MANIFEST_V1

        # Is this a Docker manifest v2.1?
        elif "fsLayers" in _json:
            self.media_type = DockerMediaTypes.DISTRIBUTION_MANIFEST_V1_SIGNED

        # Give up
        else:
            self.media_type = MediaTypes.APPLICATION_JSON

    def get_media_type(self) -> str:
        """
        Retrieves the media type of the image manifest.

        Returns:
            The media type of the image manifest.
        """
        return self.media_type


class ImageConfig(JsonBytes):
    """
    Raw image configuration document (the blob referenced by a manifest's config descriptor).
    """

    def get_architecture(self) -> Optional[str]:
        """Retrieves the CPU architecture the image was built for."""
        return self.json.get("architecture")

    def get_config(self) -> dict:
        """Retrieves the execution parameters of the image (entrypoint, env, ...)."""
        return self.get_json().get("config") or {}

    def get_os(self) -> Optional[str]:
        """Retrieves the operating system the image was built for."""
        return self.json.get("os")

    def get_rootfs_diff_ids(self) -> List[str]:
        """Retrieves the uncompressed layer digests, in layer application order."""
        return list((self.json.get("rootfs") or {}).get("diff_ids") or [])
