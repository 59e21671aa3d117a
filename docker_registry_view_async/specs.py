#!/usr/bin/env python

# pylint: disable=too-few-public-methods

"""Reusable string literals."""


class DockerAuthentication:
    """
    https://docs.docker.com/registry/spec/auth/token/
    https://github.com/docker/distribution/blob/master/docs/spec/auth/scope.md
    """

    SCOPE_REGISTRY_CATALOG = "registry:catalog:*"
    SCOPE_REPOSITORY_PULL_PATTERN = "repository:{0}:pull"
    SCOPE_REPOSITORY_DELETE_PATTERN = "repository:{0}:delete"


class DockerMediaTypes:
    """https://github.com/docker/distribution/blob/master/docs/spec/manifest-v2-2.md#manifest-list"""

    CONTAINER_IMAGE_V1 = "application/vnd.docker.container.image.v1+json"
    DISTRIBUTION_MANIFEST_LIST_V2 = (
        "application/vnd.docker.distribution.manifest.list.v2+json"
    )
    DISTRIBUTION_MANIFEST_V1_SIGNED = (
        "application/vnd.docker.distribution.manifest.v1+prettyjws"
    )
    DISTRIBUTION_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"


class Headers:
    """HTTP headers consumed by the registry client."""

    ACCEPT = "Accept"
    AUTHORIZATION = "Authorization"
    DOCKER_CONTENT_DIGEST = "Docker-Content-Digest"
    USER_AGENT = "User-Agent"
    WWW_AUTHENTICATE = "Www-Authenticate"


class Indices:
    """Common registry indices."""

    DOCKERHUB = "docker.io"
    DOCKERHUB_REGISTRY = "registry-1.docker.io"


class MediaTypes:
    """Generic mime types."""

    ANY_ANY = "*/*"
    APPLICATION_JSON = "application/json"


class OCIMediaTypes:
    """https://github.com/opencontainers/image-spec/blob/master/media-types.md"""

    IMAGE_INDEX_V1 = "application/vnd.oci.image.index.v1+json"
    IMAGE_MANIFEST_V1 = "application/vnd.oci.image.manifest.v1+json"


class RegistryErrorCodes:
    """https://github.com/opencontainers/distribution-spec/blob/main/spec.md#error-codes"""

    BLOB_UNKNOWN = "BLOB_UNKNOWN"
    MANIFEST_UNKNOWN = "MANIFEST_UNKNOWN"
    NAME_UNKNOWN = "NAME_UNKNOWN"
    UNAUTHORIZED = "UNAUTHORIZED"


MANIFEST_LIST_MEDIA_TYPES = (
    DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
    OCIMediaTypes.IMAGE_INDEX_V1,
)

MANIFEST_MEDIA_TYPES = (
    DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
    OCIMediaTypes.IMAGE_MANIFEST_V1,
)

# Platform value advertised by manifest list entries that cannot satisfy an explicit platform filter.
UNKNOWN_PLATFORM = "unknown"
