#!/usr/bin/env python

"""Utilities tests."""

import logging

from typing import Any, List, Optional

import pytest

from docker_registry_view_async import RegistryResponseError
from docker_registry_view_async.utils import (
    async_wrap,
    filter_regex,
    glob_to_regex,
    is_glob,
    log_unit_error,
    must_be_equal,
)

LOGGER = logging.getLogger(__name__)


async def test_async_wrap():
    """Tests that a synchronous function can be executed in an asynchronous event loop."""

    keyword_default = "default_keyword_value"
    function_result_pattern = (
        "function result argument=[{0}] args=[{1}] keyword=[{2}] kwargs=[{3}]"
    )

    @async_wrap
    def sync_func1(argument, *args, keyword=keyword_default, **kwargs):
        return function_result_pattern.format(argument, args, keyword, kwargs)

    def sync_func2(argument, *args, keyword=keyword_default, **kwargs):
        return function_result_pattern.format(argument, args, keyword, kwargs)

    argument_expected = "expected_argument_value"
    keyword_expected = "expected_keyword_value"
    args_expected = ("argument1", "argument2")
    kwargs_expected = {"keyword1": "value1", "keyword2": "value2"}
    result = await sync_func1(
        argument_expected, *args_expected, keyword=keyword_expected, **kwargs_expected
    )
    assert all(
        x in result
        for x in [
            argument_expected,
            str(args_expected),
            keyword_expected,
            str(kwargs_expected),
        ]
    )

    coroutine = async_wrap(sync_func2)
    result = await coroutine(argument_expected)
    assert argument_expected in result
    assert keyword_default in result


@pytest.mark.parametrize(
    "names,pattern,expected",
    [
        (["a", "b"], None, ["a", "b"]),
        (["library/busybox", "library/python", "other/busybox"], "library/*", None),
        (["1.0", "1.1", "2.0", "latest"], "1.?", ["1.0", "1.1"]),
        (["a", "b", "c"], "[!b]", ["a", "c"]),
        (["a", "b", "c"], "[a-b]", ["a", "b"]),
        (["ab", "abc"], "ab", ["ab"]),
        ([], "*", []),
    ],
)
def test_filter_regex(names: List[str], pattern: Optional[str], expected: List[str]):
    """Test that names can be filtered by a glob pattern."""
    regex = glob_to_regex(pattern) if pattern else None
    result = filter_regex(names, regex)
    if expected is None:
        expected = ["library/busybox", "library/python"]
    assert result == expected


@pytest.mark.parametrize(
    "pattern,matches,mismatches",
    [
        ("*", ["", "a", "a/b/c"], []),
        ("library/*", ["library/a", "library/a/b"], ["library", "other/a"]),
        ("*busybox", ["busybox", "library/busybox"], ["busybox2"]),
        ("1.?", ["1.0", "1.a"], ["1.", "1.10", "120"]),
        ("[^a]", ["b"], ["a"]),
        (r"a\*", ["a*"], ["ab"]),
        ("a+b(c)", ["a+b(c)"], ["aab(c)", "a+bc"]),
        ("[]]", ["]"], ["a"]),
    ],
)
def test_glob_to_regex(pattern: str, matches: List[str], mismatches: List[str]):
    """Test that glob patterns are converted into anchored regular expressions."""
    regex = glob_to_regex(pattern)
    for string in matches:
        assert regex.match(string), string
    for string in mismatches:
        assert not regex.match(string), string


def test_glob_to_regex_invalid():
    """Test that unterminated character classes are rejected."""
    with pytest.raises(ValueError) as exc_info:
        glob_to_regex("a[bc")
    assert "a[bc" in str(exc_info.value)


@pytest.mark.parametrize(
    "string,result",
    [("busybox", False), ("busy*", True), ("1.?", True), ("[ab]", True), ("", False)],
)
def test_is_glob(string: str, result: bool):
    """Test that glob characters are detected."""
    assert is_glob(string) == result


def test_log_unit_error(caplog):
    """Test that unknown manifests are only logged at debug level."""
    caplog.set_level(logging.DEBUG)

    log_unit_error(
        LOGGER, "repo@sha256:abc", RegistryResponseError(404, code="MANIFEST_UNKNOWN")
    )
    assert caplog.records[-1].levelno == logging.DEBUG
    assert "repo@sha256:abc: MANIFEST_UNKNOWN" in caplog.text

    log_unit_error(LOGGER, "repo:tag", RegistryResponseError(500, reason="Oops"))
    assert caplog.records[-1].levelno == logging.ERROR
    assert "repo:tag: status 500 Oops" in caplog.text


@pytest.mark.parametrize(
    "expected,actual,result",
    [
        ("1", "1", True),
        ("1", "0", False),
        ("1", 1, False),
        (1, 1, True),
        (1, 0, False),
        ("1", None, False),
        (1, None, False),
        (None, None, True),
    ],
)
def test_must_be_equal(expected: Any, actual: Any, result: bool):
    """Test that equality can be determined."""
    if not result:
        with pytest.raises(RuntimeError) as exc_info:
            must_be_equal(expected, actual)
        assert str(expected) in str(exc_info.value)
        assert str(actual) in str(exc_info.value)
        assert "does not match" in str(exc_info.value)
    else:
        must_be_equal(expected, actual)


def test_must_be_equal_msg(expected: Any = "bar", actual: Any = "foo"):
    """Test that an custom error message, and error type, can be used."""
    message = "custom message here"
    with pytest.raises(ValueError) as exc_info:
        must_be_equal(expected, actual, message, error_type=ValueError)
    assert str(expected) in str(exc_info.value)
    assert str(actual) in str(exc_info.value)
    assert message in str(exc_info.value)
