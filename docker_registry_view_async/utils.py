#!/usr/bin/env python

"""Utility classes."""

import asyncio
import re

from functools import wraps, partial
from logging import Logger
from typing import Iterable, List, Optional, Pattern

from .specs import RegistryErrorCodes

GLOB_CHARACTERS = "*?["


def async_wrap(func):
    """Decorates a given function for execution via an executor."""
    # https://dev.to/0xbf/turn-sync-function-to-async-python-tips-58nn
    @wraps(func)
    async def run_in_executor(*args, loop=None, executor=None, **kwargs):
        if loop is None:
            loop = asyncio.get_event_loop()
        partial_func = partial(func, *args, **kwargs)
        return await loop.run_in_executor(executor, partial_func)

    return run_in_executor


def filter_regex(names: Iterable[str], regex: Optional[Pattern]) -> List[str]:
    """
    Filters a sequence of names by a given regular expression.

    Args:
        names: The names to be filtered.
        regex: The regular expression the names must match, or None to retain all names.

    Returns:
        The matching names, in their original order.
    """
    if regex is None:
        return list(names)
    return [name for name in names if regex.match(name)]


def glob_to_regex(pattern: str) -> Pattern:
    # pylint: disable=too-many-branches
    """
    Converts a shell glob pattern into an anchored regular expression.

    "*" matches any sequence of characters, including "/", "?" matches any single character, and "[...]" matches a
    character class, negated by a leading "!" or "^". A backslash escapes the following character.

    Args:
        pattern: The shell glob pattern.

    Returns:
        The compiled regular expression.
    """
    result = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        i += 1
        if char == "*":
            result.append(".*")
        elif char == "?":
            result.append(".")
        elif char == "\\" and i < len(pattern):
            result.append(re.escape(pattern[i]))
            i += 1
        elif char == "[":
            end = i
            if end < len(pattern) and pattern[end] in "!^":
                end += 1
            if end < len(pattern) and pattern[end] == "]":
                end += 1
            end = pattern.find("]", end)
            if end < 0:
                raise ValueError(f"Unterminated character class: {pattern}")
            members = pattern[i:end]
            i = end + 1
            negate = ""
            if members[0] in "!^":
                negate = "^"
                members = members[1:]
            members = members.replace("\\", "\\\\")
            result.append(f"[{negate}{members}]")
        else:
            result.append(re.escape(char))
    return re.compile(f"^{''.join(result)}$")


def is_glob(string: str) -> bool:
    """Returns True if a given string contains shell glob characters."""
    return any(char in string for char in GLOB_CHARACTERS)


def must_be_equal(
    expected,
    actual,
    msg: str = "Actual value does not match expected value",
    *,
    error_type=RuntimeError,
):
    """
    Compares two values and raises an exception if they are not equal.

    Args:
        expected: The expected value.
        actual: The actual value.
        msg: Message describing the context of the comparison.
        error_type: The type of exception to be raised if not equal.
    """
    if actual != expected:
        raise error_type(f"{msg}: {actual} != {expected}")


def log_unit_error(logger: Logger, context: str, exception: Exception):
    """
    Logs the failure of a single unit of work.

    Args:
        logger: The logger of the calling module.
        context: The unit of work; e.g. <repo>:<tag> or <repo>@<digest>.
        exception: The error that terminated the unit of work.
    """
    # Manifest lists may advertise manifests that are not available
    if getattr(exception, "code", None) == RegistryErrorCodes.MANIFEST_UNKNOWN:
        logger.debug("%s: %s", context, exception)
    else:
        logger.error("%s: %s", context, exception)
