#!/usr/bin/env python

"""Deletion of manifests and tags."""

import logging

from typing import List, Pattern

from .enumerator import Enumerator
from .formatteddigest import FormattedDigest

LOGGER = logging.getLogger(__name__)


class Deleter:
    """
    Resolves references into digests, and deletes them.
    """

    def __init__(self, enumerator: Enumerator, *, dry_run: bool = False):
        """
        Args:
            enumerator: The enumerator used to resolve references and to walk the registry.
            dry_run: If True, references are resolved and logged, but not deleted.
        """
        self.client = enumerator.client
        self.dry_run = dry_run
        self.enumerator = enumerator

        # Manifests can only be deleted by digest
        self.client.digests = True

    async def _delete(self, repo: str, ref: str, separator: str) -> str:
        """Deletes a single reference, unless this is a dry run."""
        name = f"{repo}{separator}{ref}"
        LOGGER.info("Deleting %s%s", name, " (dry run)" if self.dry_run else "")
        if not self.dry_run:
            await self.client.delete(repo, ref)
        return name

    async def delete(self, repo: str, ref: str) -> List[str]:
        """
        Deletes every manifest a reference resolves to.

        When the reference is a manifest list, the manifest list itself is deleted after its entries, followed by the
        tag.

        Args:
            repo: The name of the repository.
            ref: The tag or digest.

        Returns:
            The deleted references; e.g. <repo>@<digest> or <repo>:<tag>.
        """
        infos = await self.enumerator.get_infos(repo, ref)

        digests = []  # type: List[FormattedDigest]
        for info in infos:
            if not info.digest:
                LOGGER.error("%s:%s: Unable to determine digest", repo, ref)
            elif info.digest not in digests:
                digests.append(info.digest)

        result = []
        for digest in digests:
            result.append(await self._delete(repo, digest, "@"))

        aggregates = []  # type: List[FormattedDigest]
        for info in infos:
            if (
                info.digest_all
                and info.digest_all not in digests
                and info.digest_all not in aggregates
            ):
                aggregates.append(info.digest_all)
        if aggregates:
            for digest in aggregates:
                result.append(await self._delete(repo, digest, "@"))
            if not FormattedDigest.is_digest(ref):
                result.append(await self._delete(repo, ref, ":"))

        return result

    async def delete_all(
        self, repo_regex: Pattern = None, tag_regex: Pattern = None
    ) -> List[str]:
        """
        Deletes every tag of every matching repository.

        Args:
            repo_regex: Optional regular expression that repository names must match.
            tag_regex: Optional regular expression that tag names must match.

        Returns:
            The deleted references.
        """
        result = []
        async for _, deleted in self.enumerator.walk(
            self.delete, repo_regex, tag_regex
        ):
            result.extend(deleted)
        return result
