#!/usr/bin/env python

"""
Abstraction of a docker image configuration, as defined in:

* https://github.com/opencontainers/image-spec/blob/master/config.md
"""

import re

from datetime import datetime
from typing import Dict, List, Optional

from .jsonbytes import JsonBytes

# RFC 3339, as emitted by the docker daemon, with optional (nanosecond) fractional seconds.
CREATED_PATTERN = re.compile(
    r"^(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?"
    r"(?P<timezone>Z|[+-]\d{2}:\d{2})$"
)


class ImageConfig(JsonBytes):
    """
    Image configuration; identified by the digest of the config descriptor that references it.
    """

    def _get_config(self) -> dict:
        return self.json.get("config") or {}

    def get_architecture(self) -> str:
        """Retrieves the CPU architecture the image was built for."""
        return self.json.get("architecture", "")

    def get_author(self) -> str:
        """Retrieves the author of the image."""
        return self.json.get("author", "")

    def get_cmd(self) -> List[str]:
        """Retrieves the default command of the image."""
        return self._get_config().get("Cmd") or []

    def get_created(self) -> Optional[datetime]:
        """
        Retrieves the creation timestamp of the image.

        Returns:
            The timezone aware creation timestamp, or None if absent or unparsable.
        """
        match = CREATED_PATTERN.match(self.json.get("created") or "")
        if not match:
            return None
        fraction = (match.group("fraction") or "0")[:6].ljust(6, "0")
        timezone = match.group("timezone").replace("Z", "+00:00")
        return datetime.fromisoformat(
            f"{match.group('timestamp')}.{fraction}{timezone}"
        )

    def get_entrypoint(self) -> List[str]:
        """Retrieves the entrypoint of the image."""
        return self._get_config().get("Entrypoint") or []

    def get_exposed_ports(self) -> List[str]:
        """Retrieves the sorted exposed ports (e.g. 80/tcp)."""
        return sorted(self._get_config().get("ExposedPorts") or {})

    def get_history(self) -> List[str]:
        """Retrieves the "created by" strings of the image history, oldest first."""
        return [
            entry.get("created_by", "") for entry in self.json.get("history") or []
        ]

    def get_labels(self) -> Dict[str, str]:
        """Retrieves the labels of the image."""
        return self._get_config().get("Labels") or {}

    def get_os(self) -> str:
        """Retrieves the operating system the image was built for."""
        return self.json.get("os", "")

    def get_stop_signal(self) -> str:
        """Retrieves the stop signal of the image."""
        return self._get_config().get("StopSignal", "")

    def get_user(self) -> str:
        """Retrieves the user the image runs as."""
        return self._get_config().get("User", "")

    def get_volumes(self) -> List[str]:
        """Retrieves the sorted volume mount points of the image."""
        return sorted(self._get_config().get("Volumes") or {})

    def get_working_dir(self) -> str:
        """Retrieves the working directory of the image."""
        return self._get_config().get("WorkingDir", "")
