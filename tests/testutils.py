#!/usr/bin/env python

# pylint: disable=too-many-instance-attributes

"""Utility classes for tests."""

import asyncio
import base64
import json

from collections import Counter
from http import HTTPStatus
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from aiohttp import web
from aiohttp.test_utils import TestServer

from docker_registry_view_async import DockerMediaTypes, FormattedDigest


def make_config(
    *,
    architecture: str = "amd64",
    created: str = "2021-06-01T12:34:56.123456789Z",
    os_: str = "linux",
    **config,
) -> bytes:
    """Creates the raw bytes of an image configuration."""
    return json.dumps(
        {
            "architecture": architecture,
            "config": config,
            "created": created,
            "history": [{"created_by": "/bin/sh -c #(nop) ADD file:abc in / "}],
            "os": os_,
            "rootfs": {"type": "layers", "diff_ids": []},
        }
    ).encode("utf-8")


def make_manifest(
    config: bytes,
    layer_sizes: Sequence[int] = (100, 200),
    *,
    media_type: str = DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
) -> bytes:
    """Creates the raw bytes of an image manifest referencing a given configuration."""
    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": media_type,
            "config": {
                "mediaType": DockerMediaTypes.CONTAINER_IMAGE_V1,
                "size": len(config),
                "digest": FormattedDigest.calculate(config),
            },
            "layers": [
                {
                    "mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
                    "size": size,
                    "digest": FormattedDigest.calculate(str(i).encode("utf-8")),
                }
                for i, size in enumerate(layer_sizes)
            ],
        },
        indent=3,
    ).encode("utf-8")


def make_manifest_list(entries: List[Tuple[bytes, Optional[dict]]]) -> bytes:
    """Creates the raw bytes of a manifest list referencing the given (manifest, platform) entries."""
    manifests = []
    for manifest, platform in entries:
        descriptor = {
            "mediaType": DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
            "size": len(manifest),
            "digest": FormattedDigest.calculate(manifest),
        }
        if platform is not None:
            descriptor["platform"] = platform
        manifests.append(descriptor)
    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
            "manifests": manifests,
        },
        indent=3,
    ).encode("utf-8")


class FakeRegistry:
    """
    In-process Docker Registry V2 API, served by aiohttp.web, that counts the requests it receives.
    """

    DEFAULT_TOKEN = "fake-token"

    def __init__(self):
        # Repository -> digest -> (raw manifest, media type)
        self.manifests = {}  # type: Dict[str, Dict[str, Tuple[bytes, str]]]
        # Repository -> tag -> digest
        self.tags = {}  # type: Dict[str, Dict[str, str]]
        self.blobs = {}  # type: Dict[str, bytes]

        # Behavior knobs
        self.auth = None  # None, "basic" or "bearer"
        self.credentials = None  # type: Optional[Tuple[str, str]]
        self.delete_status = HTTPStatus.ACCEPTED
        self.failures = {}  # type: Dict[Tuple[str, str], Tuple[int, Optional[str]]]
        self.head_status = None  # type: Optional[int]
        self.page_size = 0
        self.report_digest = True
        # When set, manifest requests wait for the event
        self.blocked = None  # type: Optional[asyncio.Event]
        self.token = FakeRegistry.DEFAULT_TOKEN

        # Observations
        self.deleted = []  # type: List[str]
        self.requests = Counter()  # type: Counter
        self.request_headers = []  # type: List[Dict[str, str]]
        self.token_requests = []  # type: List[Dict[str, str]]
        self.waiting = 0

        self.app = web.Application(middlewares=[self.middleware])
        self.app.router.add_get("/token", self.handle_token)
        self.app.router.add_get("/v2/", self.handle_version)
        self.app.router.add_get("/v2/_catalog", self.handle_catalog)
        self.app.router.add_get("/v2/{name:.+}/tags/list", self.handle_tags)
        self.app.router.add_route(
            "*", "/v2/{name:.+}/manifests/{ref}", self.handle_manifest
        )
        self.app.router.add_get("/v2/{name:.+}/blobs/{digest}", self.handle_blob)
        self.server = TestServer(self.app)

    @property
    def domain(self) -> str:
        """Address (<host>:<port>) of the running server."""
        return f"{self.server.host}:{self.server.port}"

    async def start(self):
        """Starts serving."""
        await self.server.start_server()

    async def close(self):
        """Stops serving."""
        await self.server.close()

    def count(self, method: str, path: str) -> int:
        """Returns the number of requests received for a given method and path."""
        return self.requests[(method, path)]

    # Content

    def add_blob(self, data: bytes) -> FormattedDigest:
        """Stores a blob."""
        digest = FormattedDigest.calculate(data)
        self.blobs[digest] = data
        return digest

    def add_manifest(
        self,
        repo: str,
        data: bytes,
        *,
        media_type: str = DockerMediaTypes.DISTRIBUTION_MANIFEST_V2,
        tag: str = None,
    ) -> FormattedDigest:
        """Stores a manifest, optionally tagging it."""
        digest = FormattedDigest.calculate(data)
        self.manifests.setdefault(repo, {})[digest] = (data, media_type)
        self.tags.setdefault(repo, {})
        if tag:
            self.tags[repo][tag] = digest
        return digest

    def add_image(
        self,
        repo: str,
        tag: str = None,
        *,
        architecture: str = "amd64",
        layer_sizes: Sequence[int] = (100, 200),
        os_: str = "linux",
    ) -> Tuple[FormattedDigest, FormattedDigest]:
        """
        Stores an image configuration and a manifest referencing it.

        Returns:
            tuple:
                The digest of the manifest.
                The digest of the image configuration.
        """
        config = make_config(architecture=architecture, os_=os_)
        config_digest = self.add_blob(config)
        manifest = make_manifest(config, layer_sizes)
        return self.add_manifest(repo, manifest, tag=tag), config_digest

    def add_manifest_list(
        self, repo: str, tag: str, platforms: List[Tuple[str, str]]
    ) -> Tuple[FormattedDigest, List[Tuple[FormattedDigest, FormattedDigest]]]:
        """
        Stores a manifest list with an image for each of the given (architecture, os) platforms.

        Returns:
            tuple:
                The digest of the manifest list.
                The digests of each (manifest, image configuration), in platform order.
        """
        entries = []
        images = []
        for architecture, os_ in platforms:
            config = make_config(architecture=architecture, os_=os_)
            config_digest = self.add_blob(config)
            manifest = make_manifest(config)
            images.append((self.add_manifest(repo, manifest), config_digest))
            entries.append((manifest, {"architecture": architecture, "os": os_}))
        digest = self.add_manifest(
            repo,
            make_manifest_list(entries),
            media_type=DockerMediaTypes.DISTRIBUTION_MANIFEST_LIST_V2,
            tag=tag,
        )
        return digest, images

    # Responses

    @staticmethod
    def error(status: int, code: str = None, message: str = None) -> web.Response:
        """Creates a registry error response."""
        if not code:
            return web.Response(status=status)
        return web.json_response(
            {"errors": [{"code": code, "message": message or "", "detail": None}]},
            status=status,
        )

    def paginate(
        self, request: web.Request, items: List[str], field: str
    ) -> web.Response:
        """Creates a (possibly) paginated listing response."""
        size = int(request.query.get("n", self.page_size))
        start = 0
        last = request.query.get("last")
        if last in items:
            start = items.index(last) + 1
        page = items[start : start + size] if size else items[start:]
        headers = {}
        if size and start + size < len(items):
            query = urlencode({"last": page[-1], "n": size})
            headers["Link"] = f'<{request.path}?{query}>; rel="next"'
        return web.json_response({field: page}, headers=headers)

    def authorized(self, request: web.Request) -> bool:
        """Decides if a request carries the required credentials."""
        authorization = request.headers.get("Authorization", "")
        if self.auth == "bearer":
            return authorization == f"Bearer {self.token}"
        if self.auth == "basic":
            return authorization == self.basic_authorization()
        return True

    def basic_authorization(self) -> str:
        """Returns the expected value of a basic Authorization header."""
        username, password = self.credentials
        encoded = base64.b64encode(f"{username}:{password}".encode("utf-8"))
        return f"Basic {encoded.decode('utf-8')}"

    @web.middleware
    async def middleware(self, request: web.Request, handler):
        """Counts requests, and enforces authentication."""
        self.requests[(request.method, request.path)] += 1
        self.request_headers.append(dict(request.headers))
        if self.blocked is not None and "/manifests/" in request.path:
            self.waiting += 1
            await self.blocked.wait()
        if request.path.startswith("/v2/") and not self.authorized(request):
            if self.auth == "bearer":
                match = request.match_info.get("name")
                scope = f'scope="repository:{match}:pull",' if match else ""
                challenge = (
                    f'Bearer realm="{request.url.origin()}/token",'
                    f'{scope}service="fake-registry"'
                )
            else:
                challenge = 'Basic realm="fake-registry"'
            errors = [{"code": "UNAUTHORIZED", "message": "authentication required"}]
            return web.json_response(
                {"errors": errors},
                headers={"WWW-Authenticate": challenge},
                status=HTTPStatus.UNAUTHORIZED,
            )
        return await handler(request)

    # Handlers

    async def handle_token(self, request: web.Request) -> web.Response:
        """GET /token"""
        self.token_requests.append(dict(request.query))
        if self.credentials and request.headers.get(
            "Authorization"
        ) != self.basic_authorization():
            return FakeRegistry.error(HTTPStatus.UNAUTHORIZED, "UNAUTHORIZED")
        return web.json_response({"token": self.token, "expires_in": 300})

    async def handle_version(self, _: web.Request) -> web.Response:
        """GET /v2/"""
        return web.json_response({})

    async def handle_catalog(self, request: web.Request) -> web.Response:
        """GET /v2/_catalog"""
        return self.paginate(request, sorted(self.tags), "repositories")

    async def handle_tags(self, request: web.Request) -> web.Response:
        """GET /v2/<name>/tags/list"""
        name = request.match_info["name"]
        failure = self.failures.get((name, "tags/list"))
        if failure:
            return FakeRegistry.error(*failure)
        if name not in self.tags:
            return FakeRegistry.error(HTTPStatus.NOT_FOUND, "NAME_UNKNOWN")
        return self.paginate(request, list(self.tags[name]), "tags")

    async def handle_blob(self, request: web.Request) -> web.Response:
        """GET /v2/<name>/blobs/<digest>"""
        data = self.blobs.get(request.match_info["digest"])
        if data is None:
            return FakeRegistry.error(HTTPStatus.NOT_FOUND, "BLOB_UNKNOWN")
        return web.Response(body=data, content_type="application/octet-stream")

    async def handle_manifest(self, request: web.Request) -> web.Response:
        """GET, HEAD and DELETE /v2/<name>/manifests/<ref>"""
        name = request.match_info["name"]
        ref = request.match_info["ref"]

        failure = self.failures.get((name, ref))
        if failure:
            return FakeRegistry.error(*failure)

        digest = ref if ":" in ref else self.tags.get(name, {}).get(ref)
        manifests = self.manifests.get(name, {})
        if request.method == "DELETE":
            separator = "@" if ":" in ref else ":"
            self.deleted.append(f"{name}{separator}{ref}")
            if digest not in manifests:
                return FakeRegistry.error(HTTPStatus.NOT_FOUND, "MANIFEST_UNKNOWN")
            return web.Response(status=self.delete_status)

        if digest not in manifests:
            return FakeRegistry.error(
                HTTPStatus.NOT_FOUND, "MANIFEST_UNKNOWN", "manifest unknown"
            )
        data, media_type = manifests[digest]

        if request.method == "HEAD":
            if self.head_status:
                return web.Response(status=self.head_status)
            return web.Response(
                headers={
                    "Content-Type": media_type,
                    "Docker-Content-Digest": digest,
                }
            )

        headers = {"Content-Type": media_type}
        if self.report_digest:
            headers["Docker-Content-Digest"] = digest
        return web.Response(body=data, headers=headers)
