#!/usr/bin/env python

"""Accumulates paginated registry listings."""

import logging

from typing import List
from urllib.parse import unquote, urljoin

from .exceptions import ManifestError
from .specs import Headers, MediaTypes
from .transport import Transport

LOGGER = logging.getLogger(__name__)


class Pager:
    """
    Follows 'Link: <url>; rel="next"' response headers, concatenating the listed values of every page.
    """

    def __init__(self, transport: Transport, base_url: str, field: str):
        """
        Args:
            transport: The transport with which to retrieve the pages.
            base_url: The registry url against which relative "next" links are resolved.
            field: The name of the array field listed by each page; e.g. "repositories" or "tags".
        """
        self.base_url = base_url
        self.field = field
        self.transport = transport

    async def get_all(self, url: str) -> List[str]:
        """
        Retrieves all pages, starting with a given url.

        Args:
            url: The url of the first page.

        Returns:
            The concatenated values of all pages, in page order. Any page failure aborts the pagination.
        """
        result = []
        while url:
            client_response = await self.transport.request(
                "GET", url, headers=[(Headers.ACCEPT, MediaTypes.APPLICATION_JSON)]
            )
            try:
                payload = await client_response.json(content_type=None)
            except ValueError as exception:
                raise ManifestError(f"Invalid page: {url}: {exception}") from exception
            if not isinstance(payload, dict):
                raise ManifestError(f"Invalid page: {url}")
            result.extend(payload.get(self.field) or [])

            url = None
            link = client_response.links.get("next")
            if link:
                url = urljoin(self.base_url, unquote(str(link["url"])))
                LOGGER.debug("Following next page: %s", url)
        return result
