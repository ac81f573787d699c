#!/usr/bin/env python

"""Generators that hash the data they relay."""

from typing import AsyncIterable

from .errors import DigestMismatch
from .formatteddigest import FormattedDigest


class HashingGenerator:
    """
    Asynchronous generator that hashes the chunks it relays.

    When verification is enabled the running digest is compared against the expected digest once the source is
    exhausted; on disagreement the final iteration raises DigestMismatch instead of ending cleanly.
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes],
        *,
        digest: FormattedDigest,
        verify: bool = True,
    ):
        """
        Args:
            chunks: The source of the chunks to be relayed.
            digest: The expected digest value; its algorithm selects the hash function.
            verify: If True, the calculated digest must match the expected digest.
        """
        self.chunks = chunks
        self.digest = FormattedDigest.parse(digest)
        self.hasher = self.digest.hasher()
        self.size = 0
        self.verify = verify

    async def __aiter__(self):
        async for chunk in self.chunks:
            self.hasher.update(chunk)
            self.size += len(chunk)
            yield chunk

        if self.verify:
            actual = self.get_digest()
            if actual != self.digest:
                raise DigestMismatch(
                    "Blob digest mismatch", actual=actual, expected=self.digest
                )

    def get_digest(self) -> FormattedDigest:
        """Retrieves the digest value of the relayed data."""
        return FormattedDigest(f"{self.digest.algorithm}:{self.hasher.hexdigest()}")

    def get_size(self) -> int:
        """Retrieves the size (length) of the relayed data."""
        return self.size
