#!/usr/bin/env python

"""Utility classes."""

import hashlib
import re

from .errors import InvalidInput

# https://github.com/opencontainers/image-spec/blob/main/descriptor.md#digests
DIGEST_PATTERN = re.compile(
    r"^(?P<algorithm>[a-z0-9]+(?:[.+_-][a-z0-9]+)*):(?P<encoded>[a-zA-Z0-9=_-]+)$"
)

# Algorithm -> length of the hex encoded value
SUPPORTED_ALGORITHMS = {"sha256": 64, "sha512": 128}

HEX_PATTERN = re.compile(r"^[a-f0-9]+$")


class FormattedDigest(str):
    """An algorithm prefixed digest value (<algorithm>:<hex>)."""

    def __new__(cls, digest: str):
        if not isinstance(digest, str):
            raise InvalidInput(f"Invalid digest: {digest}")
        match = DIGEST_PATTERN.match(digest)
        if not match:
            raise InvalidInput(f"Invalid digest: {digest}")
        algorithm = match.group("algorithm")
        encoded = match.group("encoded")
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise InvalidInput(f"Unsupported digest algorithm: {digest}")
        if (
            len(encoded) != SUPPORTED_ALGORITHMS[algorithm]
            or not HEX_PATTERN.match(encoded)
        ):
            raise InvalidInput(f"Invalid {algorithm} digest: {digest}")
        obj = super().__new__(cls, digest)
        obj.algorithm = algorithm
        obj.encoded = encoded
        return obj

    @staticmethod
    def parse(digest: str) -> "FormattedDigest":
        """
        Initializes a FormattedDigest from a given digest value.

        Args:
            digest: A digest value in form <algorithm>:<hex>.

        Returns:
            The newly initialized object.
        """
        if isinstance(digest, FormattedDigest):
            return digest
        return FormattedDigest(digest)

    @staticmethod
    def calculate(data: bytes, algorithm: str = "sha256") -> "FormattedDigest":
        """
        Calculates the digest value for given data.

        Args:
            data: The data for which to calculate the digest value.
            algorithm: The digest algorithm to use.

        Returns:
            The FormattedDigest containing the corresponding digest value.
        """
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise InvalidInput(f"Unsupported digest algorithm: {algorithm}")
        return FormattedDigest(f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}")

    def hasher(self):
        """Returns a new hashlib object for the algorithm of this digest."""
        return hashlib.new(self.algorithm)
