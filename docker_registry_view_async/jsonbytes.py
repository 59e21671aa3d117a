#!/usr/bin/env python

"""
JSON that remembers the exact bytes it was parsed from.
"""

import json

from copy import deepcopy

from .exceptions import ManifestError
from .formatteddigest import FormattedDigest


class JsonBytes:
    """
    Base class to parse JSON while tracking the raw bytes representation.

    The raw bytes are never re-serialized, so that digests can be derived from exactly what the registry returned.
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
        except ValueError as exception:
            raise ManifestError(f"Invalid JSON: {exception}") from exception
        if not isinstance(_json, dict):
            raise ManifestError(f"Expected a JSON object, got: {type(_json).__name__}")
        self.bytes = _bytes
        self.json = _json

    def get_bytes(self) -> bytes:
        """
        Retrieves the raw bytes.

        Returns:
            The raw bytes.
        """
        return self.bytes

    def get_digest(self) -> FormattedDigest:
        """
        Retrieves the SHA256 digest value of the raw bytes value.

        Returns:
            The SHA256 digest value of the raw bytes.
        """
        return FormattedDigest.calculate(self.get_bytes())

    def get_json(self):
        """
        Retrieves a copy of the bytes in JSON form.

        Returns:
            The bytes in JSON form.
        """
        return deepcopy(self.json)
