#!/usr/bin/env python

# pylint: disable=too-few-public-methods

"""Reusable string literals."""

OAUTH2_CLIENT_ID = "oci-registry-client-async"


class DockerAuthentication:
    """
    https://docs.docker.com/registry/spec/auth/token/
    https://github.com/docker/distribution/blob/master/docs/spec/auth/token.md
    https://github.com/docker/distribution/blob/master/docs/spec/auth/scope.md
    """

    SCOPE_PATTERN = "{0}:{1}:{2}"


class DockerMediaTypes:
    """https://github.com/docker/distribution/blob/master/docs/spec/manifest-v2-2.md#manifest-list"""

    CONTAINER_IMAGE_V1 = "application/vnd.docker.container.image.v1+json"
    DISTRIBUTION_MANIFEST_LIST_V2 = (
        "application/vnd.docker.distribution.manifest.list.v2+json"
    )
    DISTRIBUTION_MANIFEST_V1_SIGNED = (
        "application/vnd.docker.distribution.manifest.v1+prettyjws"
    )
    DISTRIBUTION_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"


class DockerHub:
    """Well-known Docker Hub endpoints."""

    API_URL = "https://registry-1.docker.io"
    AUTH_URL = "https://auth.docker.io/token"
    # Key used for Docker Hub in the docker credentials store.
    INDEX = "index.docker.io"
    SERVICE = "registry.docker.io"


class MediaTypes:
    """Generic mime types."""

    ANY_ANY = "*/*"
    APPLICATION_JSON = "application/json"


class OCIMediaTypes:
    """https://github.com/opencontainers/image-spec/blob/master/media-types.md"""

    IMAGE_CONFIG_V1 = "application/vnd.oci.image.config.v1+json"
    IMAGE_INDEX_V1 = "application/vnd.oci.image.index.v1+json"
    IMAGE_LAYER_GZIP_V1 = "application/vnd.oci.image.layer.v1.tar+gzip"
    IMAGE_LAYER_ZSTD_V1 = "application/vnd.oci.image.layer.v1.tar+zstd"
    IMAGE_MANIFEST_V1 = "application/vnd.oci.image.manifest.v1+json"


# Media types that describe a single image (config + layers).
IMAGE_MANIFEST_MEDIA_TYPES = (
    OCIMediaTypes.IMAGE_MANIFEST_V1,
    DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
)

# Media types that describe a list of platform specific manifests.
MANIFEST_INDEX_MEDIA_TYPES = (
    OCIMediaTypes.IMAGE_INDEX_V1,
    DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
)
