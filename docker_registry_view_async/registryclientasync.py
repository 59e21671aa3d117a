#!/usr/bin/env python

# pylint: disable=too-many-instance-attributes

"""Asynchronous Docker Registry V2 / OCI Distribution client."""

import asyncio
import logging
import os
import re

from http import HTTPStatus
from typing import Dict, List, Optional

from .blobcache import BlobCache
from .exceptions import RECOVERABLE_ERRORS, RegistryResponseError
from .formatteddigest import FormattedDigest
from .imageconfig import ImageConfig
from .manifest import Descriptor, Manifest, ManifestList, Platform
from .pager import Pager
from .specs import (
    DockerMediaTypes,
    Headers,
    Indices,
    MANIFEST_LIST_MEDIA_TYPES,
    MANIFEST_MEDIA_TYPES,
    MediaTypes,
    OCIMediaTypes,
    UNKNOWN_PLATFORM,
)
from .transport import (
    BasicTransport,
    CustomTransport,
    ErrorTransport,
    HTTPTransport,
    RequestHeaders,
    TokenTransport,
    Transport,
)
from .typing import (
    ImageInfo,
    RegistryClientAsyncGetManifest,
    RegistryClientAsyncResult,
    RegistryCredentials,
)
from .utils import log_unit_error

LOGGER = logging.getLogger(__name__)

PROTOCOL_PATTERN = re.compile(r"^https?://")


class RegistryClientAsync:
    """
    AIOHTTP based client that resolves registry references into image information.
    """

    DEFAULT_PROTOCOL = os.environ.get("DRVA_DEFAULT_PROTOCOL", "https")
    DEFAULT_TIMEOUT = float(os.environ.get("DRVA_TIMEOUT", 0))

    MEDIA_TYPES_MANIFEST = [
        DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
        OCIMediaTypes.IMAGE_MANIFEST_V1,
    ]
    MEDIA_TYPES_MANIFEST_ALL = [
        DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
        OCIMediaTypes.IMAGE_INDEX_V1,
        DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
        OCIMediaTypes.IMAGE_MANIFEST_V1,
    ]

    def __init__(
        self,
        *,
        blob_cache: BlobCache = None,
        cacert: str = None,
        cert: str = None,
        credentials: RegistryCredentials = None,
        digests: bool = False,
        domain: str = None,
        headers: Dict[str, str] = None,
        insecure: bool = False,
        key: str = None,
        non_ssl: bool = False,
        passphrase: str = None,
        timeout: float = None,
        transport: Transport = None,
        **kwargs,
    ):
        # pylint: disable=too-many-arguments,too-many-locals
        """
        Args:
            blob_cache: Cache of image configurations; a new cache is created if not provided.
            cacert: Path to the CA bundle to trust.
            cert: Path to the client certificate.
            credentials: Registry credentials, and the address of the authorization service.
            digests: If True, digests that are not reported by the registry are derived locally.
            domain: Registry domain (<hostname>[:<port>]), optionally including the protocol.
            headers: Static headers to be added to every request.
            insecure: If True, server certificates are not verified.
            key: Path to the client certificate key.
            non_ssl: If True, domains without a protocol are accessed via http.
            passphrase: Passphrase of the client certificate key.
            timeout: Total timeout, in seconds, applied to every request.
            transport: Innermost transport; an HTTPTransport is created if not provided.
        Keyword Args:
            client_session: The underlying client session to use when making connections.
            client_session_kwargs: Arguments to be passed to the client session.
            no_proxy: A comma separated list of domains to exclude from proxying.
            proxies: Mapping of protocols to proxy urls, optionally including credentials.
            proxy_auth: The credentials to use when proxying.
            resolver_kwargs: Arguments to be passed to the resolver.
            tcp_connector_kwargs: Arguments to be passed to the TCP connector.
        """
        if not credentials:
            credentials = RegistryCredentials(
                username=None, password=None, server_address=domain or ""
            )
        if not domain or domain == Indices.DOCKERHUB:
            domain = credentials.server_address
        if not domain:
            raise ValueError("A registry domain is required!")
        if domain == Indices.DOCKERHUB:
            domain = Indices.DOCKERHUB_REGISTRY
        if timeout is None:
            timeout = RegistryClientAsync.DEFAULT_TIMEOUT

        url = RegistryClientAsync._add_protocol(domain.rstrip("/"), non_ssl=non_ssl)
        auth_address = credentials.server_address
        if not auth_address or auth_address == Indices.DOCKERHUB:
            auth_address = domain
        auth_url = RegistryClientAsync._add_protocol(
            auth_address.rstrip("/"), non_ssl=non_ssl
        )

        if transport is None:
            transport = HTTPTransport(
                ssl=HTTPTransport.create_ssl_context(
                    cacert=cacert,
                    cert=cert,
                    insecure=insecure,
                    key=key,
                    passphrase=passphrase,
                ),
                timeout=timeout,
                **kwargs,
            )
        transport = TokenTransport(
            transport, username=credentials.username, password=credentials.password
        )
        transport = BasicTransport(
            transport,
            url=auth_url,
            username=credentials.username,
            password=credentials.password,
        )
        transport = ErrorTransport(transport)
        transport = CustomTransport(transport, headers=headers)

        self.auth_url = auth_url
        self.blob_cache = blob_cache if blob_cache is not None else BlobCache()
        self.credentials = credentials
        self.digests = digests
        self.domain = PROTOCOL_PATTERN.sub("", url)
        # Some registries only report digests in response to HEAD; cleared on the first failure
        self.supports_head_digest = True
        self.transport = transport
        self.url = url

    async def __aenter__(self) -> "RegistryClientAsync":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @staticmethod
    def _add_protocol(domain: str, *, non_ssl: bool = False) -> str:
        """Prefixes a given domain with a protocol, if it does not already have one."""
        if PROTOCOL_PATTERN.match(domain):
            return domain
        protocol = "http" if non_ssl else RegistryClientAsync.DEFAULT_PROTOCOL
        return f"{protocol}://{domain}"

    @staticmethod
    def _get_content_digest(client_response) -> Optional[FormattedDigest]:
        """Retrieves the digest reported by the registry, if any."""
        try:
            return FormattedDigest.parse(
                client_response.headers.get(Headers.DOCKER_CONTENT_DIGEST)
            )
        except ValueError:
            return None

    @staticmethod
    def _platform_matches(
        platform: Optional[Platform], arches: List[str], oses: List[str]
    ) -> bool:
        """
        Decides if a manifest list entry satisfies the requested platform filters.

        Entries without a platform, or with an "unknown" platform, are only retained when no filter is given.
        """
        if not arches and not oses:
            return True
        if platform is None or UNKNOWN_PLATFORM in (platform.architecture, platform.os):
            return False
        if arches and platform.architecture not in arches:
            return False
        if oses and platform.os not in oses:
            return False
        return True

    def _url(self, path_template: str, *args) -> str:
        """Returns a registry url with the given arguments substituted into the path template."""
        return f"{self.url}{path_template.format(*args)}"

    async def close(self):
        """Gracefully closes this instance."""
        await self.transport.close()

    # Docker Registry V2 API methods

    async def delete(self, repo: str, ref: str) -> RegistryClientAsyncResult:
        """
        Deletes a manifest, by digest, or a tag, by name.

        Args:
            repo: The name of the repository.
            ref: The digest or tag to be deleted.

        Returns:
            dict:
                client_response: The underlying client response.
                result: True if the reference was deleted, or did not exist.
        """
        url = self._url("/v2/{0}/manifests/{1}", repo, ref)
        try:
            client_response = await self.transport.request("DELETE", url)
        except RegistryResponseError as exception:
            if exception.status == HTTPStatus.NOT_FOUND:
                return RegistryClientAsyncResult(
                    client_response=exception.client_response, result=True
                )
            raise
        if client_response.status not in [HTTPStatus.ACCEPTED, HTTPStatus.NOT_FOUND]:
            raise RegistryResponseError(
                client_response.status,
                client_response=client_response,
                reason=client_response.reason,
            )
        return RegistryClientAsyncResult(client_response=client_response, result=True)

    async def get_blob(self, repo: str, digest: FormattedDigest) -> ImageConfig:
        """
        Retrieves an image configuration, via the blob cache.

        Args:
            repo: The name of the repository.
            digest: The digest of the image configuration.

        Returns:
            The image configuration.
        """

        async def fetch(_digest: FormattedDigest) -> ImageConfig:
            url = self._url("/v2/{0}/blobs/{1}", repo, _digest)
            client_response = await self.transport.request(
                "GET",
                url,
                headers=[
                    (Headers.ACCEPT, MediaTypes.APPLICATION_JSON),
                    (Headers.ACCEPT, MediaTypes.ANY_ANY),
                ],
            )
            return ImageConfig(await client_response.read())

        return await self.blob_cache.get(digest, fetch)

    async def get_catalog(self) -> List[str]:
        """
        Retrieves all repositories in the registry, following pagination.

        Returns:
            The repository names, in registry order.
        """
        pager = Pager(self.transport, self.url, "repositories")
        return await pager.get_all(self._url("/v2/_catalog"))

    async def get_manifest(
        self, repo: str, ref: str, *, accept: List[str] = None
    ) -> RegistryClientAsyncGetManifest:
        """
        Fetches the manifest identified by repository and reference, where reference can be a tag or digest.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.
            accept: The media types to advertise, in order of preference.

        Returns:
            dict:
                client_response: The underlying client response.
                manifest: The corresponding Manifest, or ManifestList.
        """
        if accept is None:
            accept = RegistryClientAsync.MEDIA_TYPES_MANIFEST_ALL
        headers = [(Headers.ACCEPT, media_type) for media_type in accept]
        url = self._url("/v2/{0}/manifests/{1}", repo, ref)
        client_response = await self.transport.request("GET", url, headers=headers)

        media_type = None
        if client_response.content_type in [
            *MANIFEST_LIST_MEDIA_TYPES,
            *MANIFEST_MEDIA_TYPES,
        ]:
            media_type = client_response.content_type
        manifest = Manifest.parse(await client_response.read(), media_type=media_type)
        return RegistryClientAsyncGetManifest(
            client_response=client_response, manifest=manifest
        )

    async def get_tags(self, repo: str) -> List[str]:
        """
        Retrieves all tags of a repository, following pagination.

        Args:
            repo: The name of the repository.

        Returns:
            The tag names, in registry order.
        """
        pager = Pager(self.transport, self.url, "tags")
        return await pager.get_all(self._url("/v2/{0}/tags/list", repo))

    async def get_version(self) -> RegistryClientAsyncResult:
        """
        Checks that the endpoint implements Docker Registry API V2.

        Returns:
            dict:
                client_response: The underlying client response.
                result: True if the v2 API is implemented, False otherwise.
        """
        try:
            client_response = await self.transport.request("GET", self._url("/v2/"))
        except RegistryResponseError as exception:
            return RegistryClientAsyncResult(
                client_response=exception.client_response, result=False
            )
        return RegistryClientAsyncResult(
            client_response=client_response,
            result=(client_response.status == HTTPStatus.OK),
        )

    async def head_manifest(self, repo: str, ref: str) -> Optional[FormattedDigest]:
        """
        Retrieves the digest of a manifest without retrieving the manifest.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.

        Returns:
            The digest reported by the registry, or None.
        """
        url = self._url("/v2/{0}/manifests/{1}", repo, ref)
        headers = [(Headers.ACCEPT, DockerMediaTypes.DISTRIBUTION_MANIFEST_V2)]
        client_response = await self.transport.request("HEAD", url, headers=headers)
        return RegistryClientAsync._get_content_digest(client_response)

    # Resolution

    async def resolve_digest(self, repo: str, ref: str, data: bytes) -> FormattedDigest:
        """
        Derives the digest of a manifest when the registry did not report it.

        Some registries only report digests in response to HEAD; others never report them, in which case the digest is
        calculated from the exact manifest bytes.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.
            data: The raw manifest bytes.

        Returns:
            The digest of the manifest.
        """
        if self.supports_head_digest:
            try:
                digest = await self.head_manifest(repo, ref)
            except RECOVERABLE_ERRORS as exception:
                LOGGER.debug("%s:%s: HEAD failed: %s", repo, ref, exception)
                digest = None
            if digest:
                return digest
            LOGGER.debug("Disabling HEAD digest retrieval for: %s", self.domain)
            self.supports_head_digest = False

        return FormattedDigest.calculate(data)

    async def _get_info(
        self,
        repo: str,
        ref: str,
        client_response,
        manifest: Manifest,
        *,
        more: bool = False,
    ) -> ImageInfo:
        """
        Folds a single manifest into image information.

        Args:
            repo: The name of the repository.
            ref: The tag or digest that was requested.
            client_response: The client response that returned the manifest.
            manifest: The manifest.
            more: If True, the image configuration is retrieved and attached.

        Returns:
            The image information.
        """
        manifest.validate()
        config = manifest.get_config()

        if FormattedDigest.is_digest(ref):
            digest = FormattedDigest.parse(ref)
        else:
            digest = RegistryClientAsync._get_content_digest(client_response)
        if not digest and self.digests:
            digest = await self.resolve_digest(repo, ref, manifest.get_bytes())

        image = None
        if more:
            image = await self.get_blob(repo, config.digest)

        return ImageInfo(
            digest=digest,
            digest_all=digest,
            id=config.digest,
            image=image,
            ref=ref,
            repo=repo,
            size=manifest.get_size(),
        )

    async def resolve_one(
        self, repo: str, ref: str, *, more: bool = False
    ) -> ImageInfo:
        """
        Resolves a reference that is expected to be a single (platform specific) manifest.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.
            more: If True, the image configuration is retrieved and attached.

        Returns:
            The image information.
        """
        response = await self.get_manifest(
            repo, ref, accept=RegistryClientAsync.MEDIA_TYPES_MANIFEST
        )
        return await self._get_info(
            repo, ref, response.client_response, response.manifest, more=more
        )

    async def _resolve_entry(
        self,
        repo: str,
        ref: str,
        descriptor: Descriptor,
        digest_all: Optional[FormattedDigest],
        *,
        more: bool = False,
    ) -> Optional[ImageInfo]:
        """Resolves a single manifest list entry; failures are logged and yield None."""
        try:
            info = await self.resolve_one(repo, descriptor.digest, more=more)
        except RECOVERABLE_ERRORS as exception:
            log_unit_error(LOGGER, f"{repo}@{descriptor.digest}", exception)
            return None
        return info._replace(
            digest_all=digest_all, platform=descriptor.platform, ref=ref
        )

    async def resolve_all(
        self,
        repo: str,
        ref: str,
        *,
        arches: List[str] = None,
        more: bool = False,
        oses: List[str] = None,
    ) -> List[ImageInfo]:
        # pylint: disable=too-many-arguments
        """
        Resolves a reference that may be a manifest list, resolving every entry that satisfies the platform filters.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.
            arches: Architectures to retain; all are retained if empty.
            more: If True, image configurations are retrieved and attached.
            oses: Operating systems to retain; all are retained if empty.

        Returns:
            The image information of every entry that resolved successfully; in no particular order.
        """
        arches = arches or []
        oses = oses or []
        response = await self.get_manifest(repo, ref)
        if not isinstance(response.manifest, ManifestList):
            info = await self._get_info(
                repo, ref, response.client_response, response.manifest, more=more
            )
            return [info]

        digest_all = RegistryClientAsync._get_content_digest(response.client_response)
        if not digest_all and FormattedDigest.is_digest(ref):
            digest_all = FormattedDigest.parse(ref)
        if not digest_all and self.digests:
            digest_all = await self.resolve_digest(
                repo, ref, response.manifest.get_bytes()
            )

        descriptors = [
            descriptor
            for descriptor in response.manifest.get_manifests()
            if RegistryClientAsync._platform_matches(descriptor.platform, arches, oses)
        ]
        infos = await asyncio.gather(
            *[
                self._resolve_entry(repo, ref, descriptor, digest_all, more=more)
                for descriptor in descriptors
            ]
        )
        return [info for info in infos if info is not None]
