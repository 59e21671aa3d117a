#!/usr/bin/env python

# pylint: disable=redefined-outer-name

"""JsonBytes tests."""

from typing import TypedDict

import pytest

from docker_registry_view_async import FormattedDigest, JsonBytes, ManifestError


class TypingJsonBytesData(TypedDict):
    # pylint: disable=missing-class-docstring
    bytes: bytes
    json_bytes: JsonBytes


@pytest.fixture()
def json_bytes_data() -> TypingJsonBytesData:
    """Provides an JsonBytes instance."""
    _bytes = b'{"x":   "1"}'
    return {"bytes": _bytes, "json_bytes": JsonBytes(_bytes)}


def test___init__(json_bytes_data: TypingJsonBytesData):
    """Test that an json_bytes can be instantiated."""
    json_bytes = json_bytes_data["json_bytes"]
    assert json_bytes
    assert json_bytes.bytes == json_bytes_data["bytes"]
    assert json_bytes.json == {"x": "1"}


@pytest.mark.parametrize("_bytes", [b"", b"{", b"[]", b'"string"', b"not json"])
def test___init___invalid(_bytes: bytes):
    """Test that invalid, or non-object, JSON is rejected."""
    with pytest.raises(ManifestError):
        JsonBytes(_bytes)


def test___bytes__(json_bytes_data: TypingJsonBytesData):
    """Test __bytes__ pass-through."""
    assert bytes(json_bytes_data["json_bytes"]) == json_bytes_data["bytes"]


def test___str__(json_bytes_data: TypingJsonBytesData):
    """Test __str__ pass-through."""
    assert str(json_bytes_data["json_bytes"]) == json_bytes_data["bytes"].decode()


def test_get_bytes(json_bytes_data: TypingJsonBytesData):
    """Test that the exact raw bytes are retained."""
    assert json_bytes_data["json_bytes"].get_bytes() == json_bytes_data["bytes"]


def test_get_digest(json_bytes_data: TypingJsonBytesData):
    """Test that the digest is derived from the raw bytes, not a re-serialization."""
    digest = json_bytes_data["json_bytes"].get_digest()
    assert digest == FormattedDigest.calculate(json_bytes_data["bytes"])
    assert digest != FormattedDigest.calculate(b'{"x":"1"}')


def test_get_json(json_bytes_data: TypingJsonBytesData):
    """Test that a copy of the parsed JSON is returned."""
    json_bytes = json_bytes_data["json_bytes"]
    _json = json_bytes.get_json()
    assert _json == {"x": "1"}
    _json["x"] = "2"
    assert json_bytes.get_json() == {"x": "1"}
