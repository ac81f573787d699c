#!/usr/bin/env python

"""An AIOHTTP based Python client for OCI Distribution / Docker Registry V2 registries."""

from .blobstream import BlobStream
from .errors import (
    AuthFailed,
    DigestMismatch,
    ErrorDetail,
    InvalidInput,
    MalformedResponse,
    NetworkError,
    NotFound,
    OCIRegistryClientError,
    RegistryAPIError,
    StreamClosed,
    TokenMissing,
    Unauthorized,
    UnsupportedMediaType,
)
from .formatteddigest import FormattedDigest
from .jsonbytes import JsonBytes
from .manifest import ImageConfig, Manifest
from .ociregistryclientasync import OCIRegistryClientAsync
from .specs import (
    DockerAuthentication,
    DockerHub,
    DockerMediaTypes,
    MediaTypes,
    OCIMediaTypes,
)
from .transport import AiohttpTransport, Transport, TransportResponse
from .typing import (
    AuthChallenge,
    AuthToken,
    Descriptor,
    ImageManifest,
    ManifestIndex,
    Platform,
    RegistryEndpoint,
    Scope,
)

__version__ = "0.1.0"
