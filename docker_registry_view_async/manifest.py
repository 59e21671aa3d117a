#!/usr/bin/env python

"""
Abstraction of docker image manifests and manifest lists, as defined in:

* https://github.com/docker/distribution/tree/master/docs/spec
* https://github.com/opencontainers/image-spec/blob/master/media-types.md
"""

from typing import List, NamedTuple, Optional

from .exceptions import ManifestError
from .formatteddigest import FormattedDigest
from .jsonbytes import JsonBytes
from .specs import (
    DockerMediaTypes,
    MANIFEST_LIST_MEDIA_TYPES,
    MediaTypes,
    OCIMediaTypes,
)
from .utils import must_be_equal


class Platform(NamedTuple):
    # pylint: disable=missing-class-docstring
    architecture: str
    os: str
    variant: Optional[str] = None

    def __str__(self):
        result = f"{self.os}/{self.architecture}"
        if self.variant:
            result = f"{result}/{self.variant}"
        return result


class Descriptor(NamedTuple):
    # pylint: disable=missing-class-docstring
    digest: FormattedDigest
    size: int
    media_type: Optional[str] = None
    platform: Optional[Platform] = None

    @staticmethod
    def from_json(_json: dict) -> "Descriptor":
        """
        Initializes a Descriptor from its JSON representation.

        Args:
            _json: The descriptor as parsed from a manifest or manifest list.

        Returns:
            The newly initialized descriptor.
        """
        try:
            digest = FormattedDigest.parse(_json.get("digest"))
            platform = None
            if _json.get("platform"):
                platform = Platform(
                    architecture=_json["platform"].get("architecture", ""),
                    os=_json["platform"].get("os", ""),
                    variant=_json["platform"].get("variant"),
                )
            return Descriptor(
                digest=digest,
                media_type=_json.get("mediaType"),
                platform=platform,
                size=int(_json.get("size", 0)),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exception:
            raise ManifestError(f"Invalid descriptor: {_json}") from exception


class Manifest(JsonBytes):
    """
    Image manifest; a config descriptor and an ordered sequence of layer descriptors.
    """

    def __init__(self, manifest: bytes, *, media_type: str = None):
        """
        Args:
            manifest: The raw image manifest value.
            media_type: The media type of the image manifest.
        """
        self.media_type = media_type
        super().__init__(manifest)
        if not self.media_type:
            self._detect_media_type()

    @staticmethod
    def parse(manifest: bytes, *, media_type: str = None) -> "Manifest":
        """
        Initializes either a Manifest or a ManifestList, depending on the (declared or detected) media type.

        Args:
            manifest: The raw manifest value.
            media_type: The media type as reported by the registry (Content-Type), if any.

        Returns:
            The newly initialized manifest.
        """
        if media_type in MANIFEST_LIST_MEDIA_TYPES:
            return ManifestList(manifest, media_type=media_type)
        result = Manifest(manifest, media_type=media_type)
        if result.is_list():
            result = ManifestList(manifest, media_type=result.get_media_type())
        return result

    def _detect_media_type(self):
        """
        Attempts to detect the media type of the image manifest.
        """
        # Is there a declared media type (applies to all of Docker manifest v2.2)?
        if "mediaType" in self.json:
            self.media_type = self.json["mediaType"]

        # Is this an OCI image index?
        elif "manifests" in self.json:
            self.media_type = OCIMediaTypes.IMAGE_INDEX_V1

        # Is this an OCI image manifest?
        elif "layers" in self.json:
            self.media_type = OCIMediaTypes.IMAGE_MANIFEST_V1

        # Is this a Docker manifest v2.1?
        elif "fsLayers" in self.json:
            self.media_type = DockerMediaTypes.DISTRIBUTION_MANIFEST_V1_SIGNED

        # Give up
        else:
            self.media_type = MediaTypes.APPLICATION_JSON

    def get_config(self) -> Descriptor:
        """
        Retrieves the descriptor of the image configuration.

        Returns:
            The image configuration descriptor.
        """
        if not isinstance(self.json.get("config"), dict):
            raise ManifestError("Manifest does not contain a config descriptor")
        return Descriptor.from_json(self.json["config"])

    def get_layers(self) -> List[Descriptor]:
        """
        Retrieves the ordered layer descriptors.

        Returns:
            The layer descriptors.
        """
        layers = self.json.get("layers") or []
        if not isinstance(layers, list):
            raise ManifestError("Manifest layers are not a list")
        return [Descriptor.from_json(layer) for layer in layers]

    def get_media_type(self) -> str:
        """
        Retrieves the media type of the image manifest.

        Returns:
            The media type of the image manifest.
        """
        return self.media_type

    def get_schema_version(self) -> Optional[int]:
        """Retrieves the declared schema version."""
        return self.json.get("schemaVersion")

    def get_size(self) -> int:
        """Retrieves the total size of all layers, in bytes."""
        return sum(layer.size for layer in self.get_layers())

    def is_list(self) -> bool:
        """Returns True if this is a manifest list or image index."""
        return self.media_type in MANIFEST_LIST_MEDIA_TYPES

    def validate(self) -> "Manifest":
        """
        Verifies that the manifest can be interpreted.

        Returns:
            This instance.
        """
        must_be_equal(
            2,
            self.get_schema_version(),
            "Invalid schema version",
            error_type=ManifestError,
        )
        return self


class ManifestList(Manifest):
    """
    Manifest list / image index; per-platform manifest descriptors, in registry order.
    """

    def get_manifests(self) -> List[Descriptor]:
        """
        Retrieves the per-platform manifest descriptors.

        Returns:
            The manifest descriptors, in the order returned by the registry.
        """
        manifests = self.json.get("manifests") or []
        if not isinstance(manifests, list):
            raise ManifestError("Manifest list entries are not a list")
        return [Descriptor.from_json(manifest) for manifest in manifests]
