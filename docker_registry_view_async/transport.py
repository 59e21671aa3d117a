#!/usr/bin/env python

"""
Composable request decorators; each transport wraps, and delegates to, an inner transport.

From the outermost to the innermost:

* CustomTransport: injects static (operator supplied) headers.
* ErrorTransport: raises RegistryResponseError for any response with a status >= 400.
* BasicTransport: sends HTTP Basic credentials to the authorization service.
* TokenTransport: answers bearer challenges (WWW-Authenticate) with a token from the indicated realm.
* HTTPTransport: TLS configuration, proxies, and the underlying AIOHTTP client session.
"""

import asyncio
import logging
import os
import re

from http import HTTPStatus
from ssl import CERT_NONE, create_default_context, SSLContext
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlencode, urlparse

import www_authenticate

from aiohttp import (
    AsyncResolver,
    BasicAuth,
    ClientResponse,
    ClientSession,
    ClientTimeout,
    Fingerprint,
    TCPConnector,
)

from .exceptions import RegistryAuthError, RegistryResponseError
from .specs import DockerAuthentication, Headers

LOGGER = logging.getLogger(__name__)

RequestHeaders = List[Tuple[str, str]]

RESOURCE_PATTERN = re.compile(r"/v2/(?P<name>.+?)/(?:blobs|manifests|tags)/")


def get_header(headers: Optional[RequestHeaders], name: str) -> Optional[str]:
    """
    Retrieves the first value of a (case insensitive) header from an ordered list of request headers.

    Args:
        headers: The ordered request headers.
        name: The name of the header.

    Returns:
        The header value, or None.
    """
    for key, value in headers or []:
        if key.lower() == name.lower():
            return value
    return None


def set_header(
    headers: Optional[RequestHeaders], name: str, value: str
) -> RequestHeaders:
    """
    Replaces all values of a (case insensitive) header in an ordered list of request headers.

    Args:
        headers: The ordered request headers.
        name: The name of the header.
        value: The header value.

    Returns:
        A new list of request headers.
    """
    result = [(key, val) for key, val in headers or [] if key.lower() != name.lower()]
    result.append((name, value))
    return result


class Transport:
    """
    Base request decorator; delegates every request to the wrapped transport.
    """

    DEBUG = os.environ.get("DRVA_DEBUG", "")

    def __init__(self, transport: "Transport" = None):
        """
        Args:
            transport: The inner transport to which requests are delegated.
        """
        self.transport = transport

    async def close(self):
        """Gracefully closes this transport, and all inner transports."""
        if self.transport:
            await self.transport.close()

    async def request(
        self, method: str, url: str, *, headers: RequestHeaders = None
    ) -> ClientResponse:
        """
        Issues a request, returning a client response whose body has already been read.

        Args:
            method: The HTTP method.
            url: The absolute request url.
            headers: Optional ordered request headers; repeated names (e.g. "Accept") are retained.

        Returns:
            The underlying client response.
        """
        return await self.transport.request(method, url, headers=headers)


class HTTPTransport(Transport):
    # pylint: disable=too-many-instance-attributes
    """
    Innermost transport; owns the AIOHTTP client session.
    """

    def __init__(
        self,
        *,
        client_session: ClientSession = None,
        client_session_kwargs: Dict = None,
        no_proxy: str = None,
        proxies: Dict[str, str] = None,
        proxy_auth: BasicAuth = None,
        resolver_kwargs: Dict = None,
        ssl: Union[None, bool, Fingerprint, SSLContext] = None,
        tcp_connector_kwargs: Dict = None,
        timeout: float = None,
    ):
        """
        Args:
            client_session: The underlying client session to use when making connections.
            client_session_kwargs: Arguments to be passed to the client session.
            no_proxy: A comma separated list of domains to exclude from proxying.
            proxies: Mapping of protocols to proxy urls, optionally including credentials.
            proxy_auth: The credentials to use when proxying.
            resolver_kwargs: Arguments to be passed to the resolver.
            ssl: SSL context.
            tcp_connector_kwargs: Arguments to be passed to the TCP connector.
            timeout: Total timeout, in seconds, applied to every request.
        """
        super().__init__()
        if not client_session_kwargs:
            client_session_kwargs = {}
        if not proxies:
            proxies = {}
        http_proxy = os.environ.get("HTTP_PROXY", os.environ.get("http_proxy"))
        if http_proxy and "http" not in proxies:
            proxies["http"] = http_proxy
        https_proxy = os.environ.get("HTTPS_PROXY", os.environ.get("https_proxy"))
        if https_proxy and "https" not in proxies:
            proxies["https"] = https_proxy
        if not no_proxy:
            no_proxy = os.environ.get("NO_PROXY", os.environ.get("no_proxy"))
        no_proxy = no_proxy.split(",") if no_proxy else []
        if not resolver_kwargs:
            resolver_kwargs = {}
        if ssl is None:
            ssl = True
        if not tcp_connector_kwargs:
            tcp_connector_kwargs = {}
        if "timeout" not in client_session_kwargs:
            # A timeout of 0 disables the (default) total timeout
            client_session_kwargs["timeout"] = ClientTimeout(total=timeout or None)

        self.client_session = client_session
        self.client_session_kwargs = client_session_kwargs
        self.proxies = proxies
        self.proxy_auth = proxy_auth
        self.proxy_no = no_proxy
        self.resolver_kwargs = resolver_kwargs
        self.ssl = ssl
        self.tcp_connector_kwargs = tcp_connector_kwargs

    @staticmethod
    def create_ssl_context(
        *,
        cacert: str = None,
        cert: str = None,
        insecure: bool = False,
        key: str = None,
        passphrase: str = None,
    ) -> Optional[SSLContext]:
        """
        Creates an SSL context from the given TLS options.

        Args:
            cacert: Path to the CA bundle to trust; defaults to $DRVA_CACERTS, then the system trust store.
            cert: Path to the client certificate.
            insecure: If True, server certificates are not verified.
            key: Path to the client certificate key.
            passphrase: Passphrase of the client certificate key.

        Returns:
            The SSL context, or None if the defaults apply.
        """
        if not cacert:
            cacert = os.environ.get("DRVA_CACERTS", None)
        if not any([cacert, cert, insecure]):
            return None

        if Transport.DEBUG and cacert:
            LOGGER.debug("Using cacerts: %s", cacert)
        result = create_default_context(cafile=str(cacert) if cacert else None)
        if cert:
            result.load_cert_chain(certfile=cert, keyfile=key, password=passphrase)
        if insecure:
            result.check_hostname = False
            result.verify_mode = CERT_NONE
        return result

    async def close(self):
        if self.client_session:
            await self.client_session.close()
        self.client_session = None

    async def _get_client_session(self) -> ClientSession:
        """
        Initializes and / or retrieves an AIOHTTP client session.

        Returns:
            The AIOHTTP client session.
        """
        if not self.client_session:
            if "resolver" not in self.tcp_connector_kwargs:
                self.tcp_connector_kwargs["resolver"] = AsyncResolver(
                    **self.resolver_kwargs
                )
            if "ssl" not in self.tcp_connector_kwargs:
                self.tcp_connector_kwargs["ssl"] = self.ssl
            if "connector" not in self.client_session_kwargs:
                self.client_session_kwargs["connector"] = TCPConnector(
                    **self.tcp_connector_kwargs
                )
            self.client_session = ClientSession(**self.client_session_kwargs)

        return self.client_session

    def _get_proxy(self, url: str) -> Optional[str]:
        """
        Retrieves the proxy configuration for a given url.

        Args:
            url: The url for which to retrieve the proxy configuration.
        """
        parts = urlparse(url)
        result = None
        if parts.netloc not in self.proxy_no and parts.scheme in self.proxies:
            result = self.proxies[parts.scheme]
        return result

    async def request(
        self, method: str, url: str, *, headers: RequestHeaders = None
    ) -> ClientResponse:
        client_session = await self._get_client_session()
        if Transport.DEBUG:
            LOGGER.debug(
                "%s %s %s",
                method,
                url,
                [
                    (key, "***" if key.lower() == "authorization" else value)
                    for key, value in headers or []
                ],
            )
        # Not a context manager: the cached body must outlive the request
        client_response = await client_session.request(
            method,
            url,
            allow_redirects=True,
            headers=headers or [],
            proxy=self._get_proxy(url),
            proxy_auth=self.proxy_auth,
        )
        body = await client_response.read()
        if Transport.DEBUG:
            LOGGER.debug(
                "%s %s: %s %s\n%s",
                method,
                url,
                client_response.status,
                dict(client_response.headers),
                body[:4096],
            )
        return client_response


class TokenTransport(Transport):
    """
    Answers bearer challenges: https://docs.docker.com/registry/spec/auth/token/
    """

    def __init__(
        self, transport: Transport, *, username: str = None, password: str = None
    ):
        """
        Args:
            transport: The inner transport to which requests are delegated.
            username: Optional username to present to the token service.
            password: Optional password to present to the token service.
        """
        super().__init__(transport)
        self.auth = None
        if username and password:
            self.auth = BasicAuth(username, password)
        # (realm, service, scope) -> lock serializing token retrieval
        self.locks = {}  # type: Dict[Tuple[str, str, str], asyncio.Lock]
        # Resource -> (realm, service, scope)
        self.challenges = {}  # type: Dict[str, Tuple[str, str, str]]
        # (realm, service, scope) -> token
        self.tokens = {}  # type: Dict[Tuple[str, str, str], str]

    @staticmethod
    def _get_bearer_challenge(client_response: ClientResponse) -> Optional[Dict]:
        """Retrieves the parameters of a bearer challenge, if any."""
        if Headers.WWW_AUTHENTICATE not in client_response.headers:
            return None
        challenges = www_authenticate.parse(
            client_response.headers[Headers.WWW_AUTHENTICATE]
        )
        bearer = challenges.get("bearer")
        if not isinstance(bearer, dict) or "realm" not in bearer:
            return None
        return bearer

    @staticmethod
    def _get_resource(method: str, url: str) -> str:
        """
        Derives the resource, for which a token can be reused, from a given request.

        Args:
            method: The HTTP method.
            url: The request url.

        Returns:
            The resource identifier; e.g. "repository:library/busybox:pull".
        """
        path = urlparse(url).path
        action = "delete" if method.upper() == "DELETE" else "pull"
        match = RESOURCE_PATTERN.search(path)
        if match:
            return f"repository:{match.group('name')}:{action}"
        if path.endswith("/_catalog"):
            return DockerAuthentication.SCOPE_REGISTRY_CATALOG
        return path

    @staticmethod
    def _get_default_scope(resource: str) -> str:
        """Derives the scope to request when the challenge does not specify one."""
        if resource.startswith("repository:"):
            _, name, action = resource.split(":")
            if action == "delete":
                pattern = DockerAuthentication.SCOPE_REPOSITORY_DELETE_PATTERN
            else:
                pattern = DockerAuthentication.SCOPE_REPOSITORY_PULL_PATTERN
            return pattern.format(name)
        if resource == DockerAuthentication.SCOPE_REGISTRY_CATALOG:
            return resource
        return ""

    async def _fetch_token(self, realm: str, service: str, scope: str) -> str:
        """
        Retrieves a bearer token from the authorization service.

        Args:
            realm: The url of the authorization service.
            service: The name of the service hosting the resource.
            scope: The scope(s) of access, space separated.

        Returns:
            The bearer token.
        """
        params = []
        if service:
            params.append(("service", service))
        params.extend(("scope", value) for value in scope.split())
        url = realm
        if params:
            url = f"{realm}{'&' if '?' in realm else '?'}{urlencode(params)}"
        headers = []
        if self.auth:
            headers.append((Headers.AUTHORIZATION, self.auth.encode()))

        client_response = await self.transport.request("GET", url, headers=headers)
        if client_response.status >= 400:
            error = RegistryResponseError.from_response(
                client_response, await client_response.read()
            )
            raise RegistryAuthError(f"Unable to retrieve token from {realm}: {error}")
        payload = await client_response.json(content_type=None)
        token = payload.get("access_token") or payload.get("token")
        if not token:
            raise RegistryAuthError(f"No token returned by: {realm}")
        return token

    def _get_lock(self, key: Tuple[str, str, str]) -> asyncio.Lock:
        """Retrieves the lock guarding the token of a given challenge."""
        lock = self.locks.get(key)
        if lock is None:
            lock = self.locks[key] = asyncio.Lock()
        return lock

    async def _get_token(self, key: Tuple[str, str, str], stale: str = None) -> str:
        """
        Retrieves a cached bearer token, or a new one if the cached token is absent or was rejected.

        Args:
            key: The (realm, service, scope) from the challenge.
            stale: A token that was rejected by the registry, if any.

        Returns:
            The bearer token.
        """
        async with self._get_lock(key):
            token = self.tokens.get(key)
            if token is None or token == stale:
                token = await self._fetch_token(*key)
                self.tokens[key] = token
            return token

    async def request(
        self, method: str, url: str, *, headers: RequestHeaders = None
    ) -> ClientResponse:
        resource = TokenTransport._get_resource(method, url)
        key = self.challenges.get(resource)
        token = self.tokens.get(key) if key else None
        if token:
            headers = set_header(headers, Headers.AUTHORIZATION, f"Bearer {token}")

        client_response = await self.transport.request(method, url, headers=headers)
        if client_response.status != HTTPStatus.UNAUTHORIZED:
            return client_response

        challenge = TokenTransport._get_bearer_challenge(client_response)
        if challenge is None:
            return client_response

        key = (
            challenge["realm"],
            challenge.get("service", ""),
            challenge.get("scope") or TokenTransport._get_default_scope(resource),
        )
        token = await self._get_token(key, stale=token)
        self.challenges[resource] = key
        return await self.transport.request(
            method,
            url,
            headers=set_header(headers, Headers.AUTHORIZATION, f"Bearer {token}"),
        )


class BasicTransport(Transport):
    """
    Sends HTTP Basic credentials to the authorization service.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        url: str,
        username: str = None,
        password: str = None,
    ):
        """
        Args:
            transport: The inner transport to which requests are delegated.
            url: The url of the authorization service; requests below it carry the credentials.
            username: Optional username.
            password: Optional password.
        """
        super().__init__(transport)
        self.auth = None
        if username and password:
            self.auth = BasicAuth(username, password)
        self.url = url

    async def request(
        self, method: str, url: str, *, headers: RequestHeaders = None
    ) -> ClientResponse:
        authorized = False
        if (
            self.auth
            and url.startswith(self.url)
            and get_header(headers, Headers.AUTHORIZATION) is None
        ):
            headers = set_header(headers, Headers.AUTHORIZATION, self.auth.encode())
            authorized = True

        client_response = await self.transport.request(method, url, headers=headers)
        if (
            self.auth
            and not authorized
            and client_response.status == HTTPStatus.UNAUTHORIZED
            and get_header(headers, Headers.AUTHORIZATION) is None
            and "basic"
            in client_response.headers.get(Headers.WWW_AUTHENTICATE, "").lower()
        ):
            client_response = await self.transport.request(
                method,
                url,
                headers=set_header(
                    headers, Headers.AUTHORIZATION, self.auth.encode()
                ),
            )
        return client_response


class ErrorTransport(Transport):
    """
    Raises RegistryResponseError for any response with a status >= 400.
    """

    async def request(
        self, method: str, url: str, *, headers: RequestHeaders = None
    ) -> ClientResponse:
        client_response = await self.transport.request(method, url, headers=headers)
        if client_response.status >= 400:
            raise RegistryResponseError.from_response(
                client_response, await client_response.read()
            )
        return client_response


class CustomTransport(Transport):
    """
    Injects static headers into every request.
    """

    def __init__(self, transport: Transport, *, headers: Dict[str, str] = None):
        """
        Args:
            transport: The inner transport to which requests are delegated.
            headers: Static headers to be added to every request.
        """
        super().__init__(transport)
        headers = dict(headers or {})
        if Headers.USER_AGENT not in headers:
            # Note: This cannot be imported above, as it causes a circular import!
            from . import __version__  # pylint: disable=import-outside-toplevel

            headers[Headers.USER_AGENT] = f"docker-registry-view-async/{__version__}"
        self.headers = headers

    async def request(
        self, method: str, url: str, *, headers: RequestHeaders = None
    ) -> ClientResponse:
        headers = list(headers or [])
        for key, value in self.headers.items():
            if get_header(headers, key) is None:
                headers.append((key, value))
        return await self.transport.request(method, url, headers=headers)
