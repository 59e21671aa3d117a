#!/usr/bin/env python

"""An AIOHTTP based viewer, and cleaner, of Docker Registry V2 / OCI Distribution registries."""

from .blobcache import BlobCache
from .deleter import Deleter
from .enumerator import Enumerator
from .exceptions import (
    ManifestError,
    RECOVERABLE_ERRORS,
    RegistryAuthError,
    RegistryError,
    RegistryResponseError,
)
from .formatteddigest import FormattedDigest
from .imageconfig import ImageConfig
from .imagename import ImageName
from .jsonbytes import JsonBytes
from .manifest import Descriptor, Manifest, ManifestList, Platform
from .registryclientasync import RegistryClientAsync
from .specs import (
    DockerAuthentication,
    DockerMediaTypes,
    Indices,
    MediaTypes,
    OCIMediaTypes,
    RegistryErrorCodes,
)
from .typing import ImageInfo, RegistryCredentials

__version__ = "0.1.0"
