#!/usr/bin/env python

# pylint: disable=redefined-outer-name

"""Configures execution of pytest."""

import pytest

from docker_registry_view_async import RegistryClientAsync

from .testutils import FakeRegistry


def pytest_addoption(parser):
    """pytest add option."""
    parser.addoption(
        "--allow-online",
        action="store_true",
        default=False,
        help="Allow execution of online tests.",
    )


def pytest_collection_modifyitems(config, items):
    """pytest collection modifier."""

    skip_online = pytest.mark.skip(
        reason="Execution of online tests requires --allow-online option."
    )
    for item in items:
        if "online" in item.keywords and not config.getoption("--allow-online"):
            item.add_marker(skip_online)


def pytest_configure(config):
    """pytest configuration hook."""
    config.addinivalue_line("markers", "online: allow execution of online tests.")


@pytest.fixture
async def fake_registry() -> FakeRegistry:
    """Provides a running, in-process, registry."""
    registry = FakeRegistry()
    await registry.start()
    yield registry
    await registry.close()


@pytest.fixture
async def registry_client(fake_registry: FakeRegistry) -> RegistryClientAsync:
    """Provides a RegistryClientAsync instance bound to the in-process registry."""
    async with RegistryClientAsync(
        domain=fake_registry.domain, non_ssl=True
    ) as registry_client:
        yield registry_client
