#!/usr/bin/env python

"""Content-addressable digest values."""

import hashlib
import re

DIGEST_PATTERN = re.compile(
    r"^(?P<algorithm>sha256|sha384|sha512):(?P<hex>[a-f0-9]+)$"
)

DIGEST_LENGTHS = {"sha256": 64, "sha384": 96, "sha512": 128}


class FormattedDigest(str):
    """An algorithm prefixed digest value (e.g. sha256:<hex>)."""

    def __new__(cls, digest: str, *, algorithm: str = "sha256"):
        if digest and ":" not in digest:
            digest = f"{algorithm}:{digest}"
        match = DIGEST_PATTERN.match(digest or "")
        if (
            not match
            or len(match.group("hex")) != DIGEST_LENGTHS[match.group("algorithm")]
        ):
            raise ValueError(digest)
        obj = super().__new__(cls, digest)
        obj.algorithm = match.group("algorithm")
        obj.hex = match.group("hex")
        return obj

    @staticmethod
    def parse(digest: str) -> "FormattedDigest":
        """
        Initializes a FormattedDigest from a given, algorithm prefixed, digest value.

        Args:
            digest: A digest value in form <algorithm>:<digest value>.

        Returns:
            The newly initialized object.
        """
        if not digest or ":" not in digest:
            raise ValueError(digest)
        return FormattedDigest(digest)

    @staticmethod
    def calculate(data: bytes) -> "FormattedDigest":
        """
        Calculates the sha256 digest value for given data.

        Args:
            data: The data for which to calculate the digest value.

        Returns:
            The FormattedDigest containing the corresponding digest value.
        """
        return FormattedDigest(hashlib.sha256(data).hexdigest())

    @staticmethod
    def is_digest(reference: str) -> bool:
        """Returns True if a given manifest reference is a digest rather than a tag."""
        return reference is not None and ":" in reference

    def short(self, length: int = 12) -> str:
        """Retrieves the truncated hex value, as shown for image identifiers."""
        return self.hex[:length]
