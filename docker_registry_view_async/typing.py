#!/usr/bin/env python

# pylint: disable=missing-class-docstring,too-few-public-methods

"""Typing classes."""

from typing import NamedTuple, Optional

from aiohttp import ClientResponse

from .formatteddigest import FormattedDigest
from .imageconfig import ImageConfig
from .manifest import Manifest, Platform


class ImageInfo(NamedTuple):
    repo: str
    ref: str
    # Digest of the platform specific manifest
    digest: Optional[FormattedDigest]
    # Digest of the manifest list, or the same as digest for single manifests
    digest_all: Optional[FormattedDigest]
    # Digest of the image configuration blob
    id: FormattedDigest
    size: int
    image: Optional[ImageConfig] = None
    platform: Optional[Platform] = None


class ImageNameParseString(NamedTuple):
    digest: Optional[FormattedDigest]
    endpoint: str
    image: Optional[str]
    tag: Optional[str]


class RegistryCredentials(NamedTuple):
    username: Optional[str]
    password: Optional[str]
    server_address: str


class RegistryClientAsyncGetManifest(NamedTuple):
    client_response: ClientResponse
    manifest: Manifest


class RegistryClientAsyncResult(NamedTuple):
    client_response: Optional[ClientResponse]
    result: bool
