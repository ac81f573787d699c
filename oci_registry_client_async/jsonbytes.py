#!/usr/bin/env python

"""
JSON that remembers the bytes it came from.
"""

import json

from copy import deepcopy

from .errors import MalformedResponse
from .formatteddigest import FormattedDigest


class JsonBytes:
    """
    Base class to track a JSON document together with its raw bytes representation.

    Digests are always calculated over the raw bytes, never over a re-encoding of the document.
    """

    def __init__(self, _bytes: bytes):
        """
        Args:
            _bytes: The raw bytes value.
        """
        self.bytes = self.json = None
        self._set_bytes(_bytes)

    def __bytes__(self):
        return self.get_bytes()

    def __str__(self):
        return self.get_bytes().decode("utf-8")

    def _set_bytes(self, _bytes: bytes):
        """
        Assigns the raw bytes and updates the internal JSON object.

        Args:
            _bytes: The raw bytes value.
        """
        try:
            _json = json.loads(_bytes)
        except (TypeError, UnicodeDecodeError, ValueError) as exception:
            raise MalformedResponse(f"Invalid JSON document: {exception}") from exception
        self.bytes = _bytes
        self.json = _json

    def get_bytes(self) -> bytes:
        """
        Retrieves the raw bytes.

        Returns:
            The raw bytes.
        """
        return self.bytes

    def get_digest(self, algorithm: str = "sha256") -> FormattedDigest:
        """
        Retrieves the digest value of the raw bytes value.

        Args:
            algorithm: The digest algorithm to use.

        Returns:
            The digest value of the raw bytes.
        """
        return FormattedDigest.calculate(self.get_bytes(), algorithm)

    def get_json(self):
        """
        Retrieves a copy of the bytes in JSON form.

        Returns:
            The bytes in JSON form.
        """
        return deepcopy(self.json)
