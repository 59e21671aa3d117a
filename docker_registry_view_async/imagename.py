#!/usr/bin/env python

"""Class that provides parsing and formatting of registry targets."""

import os
import re

from typing import Optional, Pattern, Tuple

from .formatteddigest import FormattedDigest
from .typing import ImageNameParseString
from .utils import glob_to_regex, is_glob

PROTOCOL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class ImageName:
    """
    Registry target abstraction: REGISTRY[/REPOSITORY[:TAG|@DIGEST]].

    The repository and tag may instead be shell glob patterns: REGISTRY/REPO-PATTERN[:TAG-PATTERN].
    """

    DEFAULT_TAG = os.environ.get("DRVA_DEFAULT_TAG", "latest")

    def __init__(
        self,
        endpoint: str,
        *,
        digest: Optional[FormattedDigest] = None,
        image: Optional[str] = None,
        tag: Optional[str] = None,
    ):
        """
        Args:
            endpoint: Registry endpoint address (<hostname>[:<port>]).
        Keyword Args:
            digest: Optional digest value.
            image: Optional name of the repository, or a repository pattern.
            tag: Optional tag name, or a tag pattern.
        """
        self.digest = digest
        self.endpoint = endpoint.strip("/")
        self.image = image.strip("/") if image else None
        self.tag = tag

    def __eq__(self, other):
        """
        Args:
            other: The instance to which "self" is compared.
        """
        return str(self) == str(other)

    def __hash__(self):
        """Hash according to our string value"""
        return hash(str(self))

    def __str__(self):
        """Does not resolve component parts."""
        result = self.endpoint
        if self.image:
            result = f"{result}/{self.image}"
            if self.tag:
                result = f"{result}:{self.tag}"
            if self.digest:
                result = f"{result}@{self.digest}"
        return result

    @staticmethod
    def _parse_string(string: str) -> ImageNameParseString:
        """
        Parses the endpoint, image, tag and digest from a given string.

        Args:
            string: The string to be parsed.

        Returns:
            dict:
                digest: The digest value.
                endpoint: The registry endpoint; address with optional port.
                image: The name of the repository.
                tag: The tag name.
        """
        digest = None
        image = None
        tag = None

        string = PROTOCOL_PATTERN.sub("", string.strip())
        endpoint, _, path = string.partition("/")
        if not endpoint:
            raise ValueError(f"Unable to parse string: {string}")

        path = path.strip("/")
        if path:
            if "@" in path:
                # image@sha256:digest OR image:tag@sha256:digest
                path, _, _digest = path.partition("@")
                digest = FormattedDigest.parse(_digest)
            image, _, tag = path.partition(":")
            if not image:
                raise ValueError(f"Unable to parse string: {string}")

        return ImageNameParseString(
            digest=digest, endpoint=endpoint, image=image, tag=tag or None
        )

    @staticmethod
    def parse(image_name: str) -> "ImageName":
        """
        Initializes an ImageName from a given string.

        Args:
            image_name: String containing the target to be parsed.

        Returns:
            The newly initialized object.
        """
        parsed = ImageName._parse_string(image_name)
        return ImageName(
            parsed.endpoint, digest=parsed.digest, image=parsed.image, tag=parsed.tag
        )

    def get_patterns(self) -> Tuple[Optional[Pattern], Optional[Pattern]]:
        """
        Converts the repository and tag patterns into regular expressions.

        Returns:
            tuple:
                The repository regular expression, or None to match all repositories.
                The tag regular expression, or None to match all tags.
        """
        repo_regex = glob_to_regex(self.image) if self.image else None
        tag_regex = glob_to_regex(self.tag) if self.tag else None
        return repo_regex, tag_regex

    def is_pattern(self) -> bool:
        """Returns True if this target selects (possibly) many images, rather than a single image."""
        if not self.image:
            return True
        if self.digest:
            return False
        return is_glob(self.image) or is_glob(self.tag or "")

    def resolve_ref(self) -> str:
        """
        Resolves the manifest reference.

        Returns:
            The digest, if present, otherwise the tag name.
        """
        if self.digest:
            return self.digest
        return self.tag if self.tag else ImageName.DEFAULT_TAG
