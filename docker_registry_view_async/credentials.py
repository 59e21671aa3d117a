#!/usr/bin/env python

"""Registry credential resolution."""

import base64
import binascii
import json
import logging
import os

from pathlib import Path
from typing import Dict, Optional

import aiofiles

from .typing import RegistryCredentials

LOGGER = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_STORE = Path.home().joinpath(".docker/config.json")


async def load_credentials_store(credentials_store: Path = None) -> Dict[str, dict]:
    """
    Retrieves the registry credentials from the docker registry credentials store.

    Args:
        credentials_store: Path to the docker registry credentials store.

    Returns:
        Mapping of registry addresses to credentials entries.
    """
    if not credentials_store:
        credentials_store = Path(
            os.environ.get("DRVA_CREDENTIALS_STORE", DEFAULT_CREDENTIALS_STORE)
        )
    if not credentials_store.is_file():
        return {}

    LOGGER.debug("Loading credentials from store: %s", credentials_store)
    # TODO: Add support for secure providers (credsStore / credHelpers):
    #       https://docs.docker.com/engine/reference/commandline/login/#credentials-store
    async with aiofiles.open(credentials_store, mode="rb") as file:
        return json.loads(await file.read()).get("auths", {})


def _decode_auth(server_address: str, entry: dict) -> Optional[RegistryCredentials]:
    """Converts a credentials store entry into registry credentials."""
    username = entry.get("username")
    password = entry.get("password")
    if entry.get("auth"):
        try:
            decoded = base64.b64decode(entry["auth"]).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exception:
            LOGGER.warning("Invalid credentials for %s: %s", server_address, exception)
            return None
        username, _, password = decoded.partition(":")
    if not username:
        return None
    return RegistryCredentials(
        username=username,
        password=password,
        server_address=entry.get("serveraddress") or server_address,
    )


async def get_credentials(
    username: str = None,
    password: str = None,
    registry: str = None,
    *,
    credentials_store: Path = None,
) -> RegistryCredentials:
    """
    Resolves the credentials for a given registry.

    Explicit credentials are used as-is; otherwise the docker credentials store is consulted.

    Args:
        username: Optional explicit username.
        password: Optional explicit password.
        registry: The registry address (<hostname>[:<port>]), optionally including the protocol.
        credentials_store: Path to the docker registry credentials store.

    Returns:
        The credentials; anonymous if none could be found.
    """
    if username and password and registry:
        return RegistryCredentials(
            username=username, password=password, server_address=registry
        )

    if registry:
        if registry.startswith("https://"):
            candidates = [registry[len("https://") :]]
        elif registry.startswith("http://"):
            candidates = [registry[len("http://") :]]
        else:
            candidates = [registry, f"https://{registry}"]

        auths = await load_credentials_store(credentials_store)
        for candidate in candidates:
            if candidate in auths:
                credentials = _decode_auth(candidate, auths[candidate])
                if credentials:
                    return credentials

    LOGGER.debug("Not using any authentication")
    return RegistryCredentials(
        username=None, password=None, server_address=registry or ""
    )
