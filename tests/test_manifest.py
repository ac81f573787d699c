#!/usr/bin/env python

# pylint: disable=redefined-outer-name

"""Manifest tests."""

import pytest

from oci_registry_client_async import (
    DockerMediaTypes,
    ImageConfig,
    Manifest,
    MediaTypes,
    OCIMediaTypes,
)

from .testutils import get_test_data


@pytest.fixture(
    params=[
        DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
        DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
        OCIMediaTypes.IMAGE_INDEX_V1,
        OCIMediaTypes.IMAGE_MANIFEST_V1,
    ]
)
def media_type(request) -> str:
    """Provides media types with a corresponding raw manifest."""
    return request.param


def get_manifest_name(media_type: str) -> str:
    """Maps a media type to the name of its test data."""
    return f"manifest.{media_type.replace('application/', '').replace('+json', '.json')}"


def test___init__(request, media_type: str):
    """Test that a manifest can be instantiated."""
    data = get_test_data(request, get_manifest_name(media_type))
    manifest = Manifest(data)
    assert manifest.get_bytes() == data
    assert manifest.get_media_type() == media_type


def test___init___media_type(request):
    """Test that a negotiated media type takes precedence over detection."""
    data = get_test_data(request, get_manifest_name(OCIMediaTypes.IMAGE_MANIFEST_V1))
    manifest = Manifest(data, media_type=DockerMediaTypes.DISTRIBUTION_MANIFEST_V2)
    assert manifest.get_media_type() == DockerMediaTypes.DISTRIBUTION_MANIFEST_V2


@pytest.mark.parametrize(
    "data,expected",
    [
        (b'{"schemaVersion": 2, "manifests": []}', OCIMediaTypes.IMAGE_INDEX_V1),
        (
            b'{"schemaVersion": 2, "config": {}, "layers": []}',
            OCIMediaTypes.IMAGE_MANIFEST_V1,
        ),
        (b'{"schemaVersion": 2}', MediaTypes.APPLICATION_JSON),
        (b"[]", MediaTypes.APPLICATION_JSON),
    ],
)
def test__detect_media_type(data: bytes, expected: str):
    """Test media type detection for documents without a declared media type."""
    assert Manifest(data).get_media_type() == expected


def test__detect_media_type_v1(request):
    """Test that legacy manifests are recognized."""
    data = get_test_data(request, "manifest.vnd.docker.distribution.manifest.v1.json")
    assert (
        Manifest(data).get_media_type()
        == DockerMediaTypes.DISTRIBUTION_MANIFEST_V1_SIGNED
    )


def test_image_config(request):
    """Test image configuration accessors."""
    image_config = ImageConfig(get_test_data(request, "image.config.json"))
    assert image_config.get_architecture() == "amd64"
    assert image_config.get_os() == "linux"
    assert image_config.get_config()["Cmd"] == ["sh"]
    diff_ids = image_config.get_rootfs_diff_ids()
    assert len(diff_ids) == 2
    assert diff_ids[0].startswith("sha256:95cf1a2e")


@pytest.mark.parametrize(
    "data",
    [
        b"{}",
        b'{"config": null, "rootfs": null}',
        b'{"config": null, "rootfs": {"type": "layers"}}',
        b'{"rootfs": {"type": "layers", "diff_ids": null}}',
    ],
)
def test_image_config_sparse(data: bytes):
    """Test that absent and null image configuration members are tolerated."""
    image_config = ImageConfig(data)
    assert image_config.get_architecture() is None
    assert image_config.get_config() == {}
    assert image_config.get_os() is None
    assert image_config.get_rootfs_diff_ids() == []
