#!/usr/bin/env python

"""Concurrent enumeration of registry repositories and tags."""

import asyncio
import logging
import os

from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    List,
    Optional,
    Pattern,
    Tuple,
    TypeVar,
)

from .exceptions import RECOVERABLE_ERRORS
from .registryclientasync import RegistryClientAsync
from .typing import ImageInfo
from .utils import filter_regex, log_unit_error

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Enumerator:
    """
    Resolves every tag of every (matching) repository, using a bounded pool of workers.
    """

    DEFAULT_WORKERS = int(os.environ.get("DRVA_WORKERS", 10))

    def __init__(
        self,
        client: RegistryClientAsync,
        *,
        all_platforms: bool = False,
        arches: List[str] = None,
        more: bool = False,
        oses: List[str] = None,
        workers: int = None,
    ):
        """
        Args:
            client: The registry client.
            all_platforms: If True, manifest lists are resolved into all (matching) platforms.
            arches: Architectures to retain; implies all_platforms.
            more: If True, image configurations are retrieved and attached.
            oses: Operating systems to retain; implies all_platforms.
            workers: The maximum number of concurrent repositories, and of concurrent tags.
        """
        if workers is None:
            workers = Enumerator.DEFAULT_WORKERS
        if workers < 1:
            raise ValueError(f"Invalid number of workers: {workers}")
        arches = arches or []
        oses = oses or []
        if arches or oses:
            all_platforms = True

        self.all_platforms = all_platforms
        self.arches = arches
        self.client = client
        self.more = more or all_platforms
        self.oses = oses
        self.repository_semaphore = asyncio.Semaphore(workers)
        self.tag_semaphore = asyncio.Semaphore(workers)
        self.workers = workers

    def _image_matches(self, info: ImageInfo) -> bool:
        """
        Applies the platform filters to resolved image information.

        Some registries return all platforms of a manifest list regardless of the requested platform.
        """
        architecture = os_ = None
        if info.image is not None:
            architecture = info.image.get_architecture()
            os_ = info.image.get_os()
        elif info.platform is not None:
            architecture = info.platform.architecture
            os_ = info.platform.os
        if self.arches and architecture is not None and architecture not in self.arches:
            return False
        if self.oses and os_ is not None and os_ not in self.oses:
            return False
        return True

    async def _walk_repository(
        self,
        repo: str,
        tag_regex: Optional[Pattern],
        func: Callable[[str, str], Awaitable[List[T]]],
    ) -> Tuple[str, List[T]]:
        """Lists, filters and sorts the tags of a repository, then applies a function to each tag."""
        async with self.repository_semaphore:
            try:
                tags = await self.client.get_tags(repo)
            except RECOVERABLE_ERRORS as exception:
                LOGGER.error("Get tags of [%s] error: %s", repo, exception)
                return repo, []
            tags = sorted(filter_regex(tags, tag_regex))
            results = await asyncio.gather(
                *[self._walk_tag(repo, tag, func) for tag in tags]
            )
        return repo, [item for result in results for item in result]

    async def _walk_tag(
        self, repo: str, tag: str, func: Callable[[str, str], Awaitable[List[T]]]
    ) -> List[T]:
        """Applies a function to a single tag; failures are logged and yield no results."""
        async with self.tag_semaphore:
            try:
                return await func(repo, tag)
            except RECOVERABLE_ERRORS as exception:
                log_unit_error(LOGGER, f"{repo}:{tag}", exception)
                return []

    async def get_all(
        self, repo_regex: Pattern = None, tag_regex: Pattern = None
    ) -> List[ImageInfo]:
        """
        Resolves every tag of every matching repository.

        Args:
            repo_regex: Optional regular expression that repository names must match.
            tag_regex: Optional regular expression that tag names must match.

        Returns:
            The image information, grouped by repository.
        """
        result = []
        async for infos in self.iterate(repo_regex, tag_regex):
            result.extend(infos)
        return result

    async def get_infos(self, repo: str, ref: str) -> List[ImageInfo]:
        """
        Resolves a single reference, according to the platform options.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.

        Returns:
            The image information of every (matching) platform.
        """
        if self.all_platforms:
            infos = await self.client.resolve_all(
                repo, ref, arches=self.arches, more=self.more, oses=self.oses
            )
        else:
            infos = [await self.client.resolve_one(repo, ref, more=self.more)]
        return [info for info in infos if self._image_matches(info)]

    async def get_repositories(self, repo_regex: Pattern = None) -> List[str]:
        """
        Retrieves the sorted names of all matching repositories; any failure is fatal.

        Args:
            repo_regex: Optional regular expression that repository names must match.

        Returns:
            The repository names.
        """
        repos = await self.client.get_catalog()
        return sorted(filter_regex(repos, repo_regex))

    async def iterate(
        self,
        repo_regex: Pattern = None,
        tag_regex: Pattern = None,
        *,
        repos: List[str] = None,
    ) -> AsyncIterator[List[ImageInfo]]:
        """
        Resolves every tag of every matching repository, yielding the image information of each repository as soon
        as all of its tags are resolved.

        Args:
            repo_regex: Optional regular expression that repository names must match.
            tag_regex: Optional regular expression that tag names must match.
            repos: Repository names, previously retrieved via get_repositories(); retrieved if not provided.

        Yields:
            The image information of a single repository, in tag order.
        """
        async for _, infos in self.walk(
            self.get_infos, repo_regex, tag_regex, repos=repos
        ):
            if infos:
                yield infos

    async def walk(
        self,
        func: Callable[[str, str], Awaitable[List[T]]],
        repo_regex: Pattern = None,
        tag_regex: Pattern = None,
        *,
        repos: List[str] = None,
    ) -> AsyncIterator[Tuple[str, List[T]]]:
        """
        Applies a function to every tag of every matching repository.

        The catalog is retrieved first, and any failure to do so is fatal. Failures to list the tags of a
        repository, or of the function for a single tag, are logged and skipped.

        Args:
            func: Coroutine function, accepting a repository and a tag, that returns a list of results.
            repo_regex: Optional regular expression that repository names must match.
            tag_regex: Optional regular expression that tag names must match.
            repos: Repository names, previously retrieved via get_repositories(); retrieved if not provided.

        Yields:
            tuple:
                The name of a repository.
                The results of all of its tags, in tag order.
        """
        if repos is None:
            repos = await self.get_repositories(repo_regex)
        tasks = [
            asyncio.ensure_future(self._walk_repository(repo, tag_regex, func))
            for repo in repos
        ]
        try:
            for task in asyncio.as_completed(tasks):
                yield await task
        finally:
            for task in tasks:
                task.cancel()
