#!/usr/bin/env python

"""HashingGenerator tests."""

from typing import AsyncIterator, List

import pytest

from oci_registry_client_async import DigestMismatch, FormattedDigest
from oci_registry_client_async.hashinggenerator import HashingGenerator

pytestmark = [pytest.mark.asyncio]

CHUNKS = [b"lay", b"er", b"0"]
DIGEST = FormattedDigest.calculate(b"layer0")


async def aiter_chunks(chunks: List[bytes]) -> AsyncIterator[bytes]:
    """Relays a list of chunks asynchronously."""
    for chunk in chunks:
        yield chunk


async def test_relay():
    """Test that chunks are relayed unmodified and in order."""
    hashing_generator = HashingGenerator(aiter_chunks(CHUNKS), digest=DIGEST)
    assert [chunk async for chunk in hashing_generator] == CHUNKS
    assert hashing_generator.get_digest() == DIGEST
    assert hashing_generator.get_size() == len(b"layer0")


async def test_mismatch():
    """Test that a digest mismatch is raised on the final iteration."""
    hashing_generator = HashingGenerator(aiter_chunks(CHUNKS[:2]), digest=DIGEST)
    chunks = []
    with pytest.raises(DigestMismatch) as exc_info:
        async for chunk in hashing_generator:
            chunks.append(chunk)
    assert chunks == CHUNKS[:2]
    assert exc_info.value.expected == DIGEST
    assert exc_info.value.actual == FormattedDigest.calculate(b"layer")


async def test_no_verify():
    """Test that verification can be disabled."""
    hashing_generator = HashingGenerator(
        aiter_chunks(CHUNKS[:2]), digest=DIGEST, verify=False
    )
    assert [chunk async for chunk in hashing_generator] == CHUNKS[:2]
    assert hashing_generator.get_digest() == FormattedDigest.calculate(b"layer")


async def test_sha512():
    """Test that the algorithm of the expected digest is used."""
    digest = FormattedDigest.calculate(b"layer0", "sha512")
    hashing_generator = HashingGenerator(aiter_chunks(CHUNKS), digest=digest)
    async for _ in hashing_generator:
        pass
    assert hashing_generator.get_digest() == digest
