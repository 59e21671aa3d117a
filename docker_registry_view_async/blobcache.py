#!/usr/bin/env python

"""Least-recently-used cache of image configuration blobs."""

import asyncio
import logging
import os

from collections import OrderedDict
from typing import Awaitable, Callable, Dict

from .formatteddigest import FormattedDigest
from .imageconfig import ImageConfig

LOGGER = logging.getLogger(__name__)


class BlobCache:
    """
    Read-through cache mapping config digests to image configurations, shared by concurrent resolutions.

    Concurrent misses for the same digest share a single retrieval.
    """

    DEFAULT_CAPACITY = int(os.environ.get("DRVA_BLOB_CACHE_SIZE", 128))

    def __init__(self, capacity: int = None):
        """
        Args:
            capacity: The maximum number of cached image configurations.
        """
        if capacity is None:
            capacity = BlobCache.DEFAULT_CAPACITY
        if capacity < 1:
            raise ValueError(f"Invalid capacity: {capacity}")

        self.blobs = OrderedDict()  # type: OrderedDict[FormattedDigest, ImageConfig]
        self.capacity = capacity
        self.lock = asyncio.Lock()
        self.pending = {}  # type: Dict[FormattedDigest, asyncio.Future]

    def __contains__(self, digest: FormattedDigest) -> bool:
        return digest in self.blobs

    def __len__(self) -> int:
        return len(self.blobs)

    def _put(self, digest: FormattedDigest, image_config: ImageConfig):
        """Inserts, or refreshes, an entry; evicting the least-recently-used entry when at capacity."""
        if digest in self.blobs:
            self.blobs.move_to_end(digest)
            return
        while len(self.blobs) >= self.capacity:
            evicted, _ = self.blobs.popitem(last=False)
            LOGGER.debug("Evicted blob: %s", evicted)
        self.blobs[digest] = image_config

    def _retire(self, digest: FormattedDigest, future: asyncio.Future):
        """Removes a completed retrieval from the pending retrievals."""
        if self.pending.get(digest) is future:
            del self.pending[digest]
        # Mark the exception as retrieved, in case every waiter was cancelled
        if not future.cancelled():
            future.exception()

    async def clear(self):
        """Removes all cached image configurations."""
        async with self.lock:
            self.blobs.clear()

    async def get(
        self,
        digest: FormattedDigest,
        fetch: Callable[[FormattedDigest], Awaitable[ImageConfig]],
    ) -> ImageConfig:
        """
        Retrieves an image configuration, fetching and caching it on a miss.

        Args:
            digest: The digest of the image configuration.
            fetch: Coroutine function that retrieves the image configuration from the registry.

        Returns:
            The cached image configuration; the same object for every hit of a given digest.
        """
        async with self.lock:
            if digest in self.blobs:
                self.blobs.move_to_end(digest)
                return self.blobs[digest]
            future = self.pending.get(digest)
            if future is None:
                future = asyncio.ensure_future(fetch(digest))
                future.add_done_callback(
                    lambda _future: self._retire(digest, _future)
                )
                self.pending[digest] = future

        image_config = await asyncio.shield(future)
        async with self.lock:
            self._put(digest, image_config)
            # Another waiter may have inserted first; hand out the cached object
            return self.blobs.get(digest, image_config)

    async def put(self, digest: FormattedDigest, image_config: ImageConfig):
        """
        Inserts an image configuration.

        Args:
            digest: The digest of the image configuration.
            image_config: The image configuration.
        """
        async with self.lock:
            self._put(digest, image_config)
