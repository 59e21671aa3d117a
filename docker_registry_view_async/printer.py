#!/usr/bin/env python

"""Human readable rendering of image information."""

import json
import sys

from datetime import datetime
from typing import Any, List, TextIO

from .typing import ImageInfo

SIZE_UNITS = ["B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


def pretty_size(size: float) -> str:
    """
    Formats a size using decimal units, with four significant digits; e.g. 1.5MB.

    Args:
        size: The size, in bytes.

    Returns:
        The formatted size.
    """
    i = 0
    while size >= 1000.0 and i < len(SIZE_UNITS) - 1:
        size /= 1000.0
        i += 1
    return f"{size:.4g}{SIZE_UNITS[i]}"


def pretty_time(timestamp: datetime) -> str:
    """
    Formats a timestamp in the local timezone; e.g. Mon Jan  2 15:04:05 MST 2006.

    Args:
        timestamp: The timezone aware timestamp.

    Returns:
        The formatted timestamp.
    """
    local = timestamp.astimezone()
    return f"{local:%a %b} {local.day:2d} {local:%H:%M:%S %Z %Y}"


class ImagePrinter:
    # pylint: disable=too-many-instance-attributes
    """
    Renders image information as table rows, or as detailed key / value pairs.
    """

    def __init__(
        self,
        *,
        all_platforms: bool = False,
        digests: bool = False,
        file: TextIO = None,
        no_trunc: bool = False,
        raw: bool = False,
        repo_width: int = 0,
        verbose: bool = False,
    ):
        """
        Args:
            all_platforms: If True, the OS and ARCH columns are rendered.
            digests: If True, the DIGEST column is rendered.
            file: The stream to which to render; defaults to stdout.
            no_trunc: If True, image identifiers are not truncated.
            raw: If True, sizes and dates are rendered as raw values.
            repo_width: The width of the longest repository name.
            verbose: If True, the CREATED column, and configuration details, are rendered.
        """
        self.all_platforms = all_platforms
        self.digests = digests
        self.file = file if file else sys.stdout
        self.no_trunc = no_trunc
        self.raw = raw
        self.repo_width = repo_width
        self.verbose = verbose

    def _print(self, string: str = ""):
        print(string, file=self.file)

    def _print_value(self, name: str, value: Any):
        """Prints a single key / value pair; empty values are omitted."""
        if value is None or (not isinstance(value, (int, float)) and not value):
            return
        if not isinstance(value, str):
            value = json.dumps(value)
        self._print(f"{name:<20}\t{value}")

    def _get_created(self, info: ImageInfo) -> str:
        created = info.image.get_created() if info.image else None
        if created is None:
            return "-"
        return created.isoformat() if self.raw else pretty_time(created)

    def print_header(self):
        """Prints the table header."""
        line = f"{'REPOSITORY:TAG':<{self.repo_width + 20}}"
        if self.digests:
            line += f"  {'DIGEST':<72}"
        line += f"  {'IMAGE ID':<72}" if self.no_trunc else f"  {'IMAGE ID':<12}"
        if self.verbose:
            line += f"  {'CREATED':<31}"
        if self.all_platforms:
            line += f"  {'OS':<8}  ARCH"
        self._print(line.rstrip())

    def print_info(self, info: ImageInfo):
        """
        Prints a single table row.

        Args:
            info: The image information to be printed.
        """
        line = f"{info.repo + ':' + info.ref:<{self.repo_width + 20}}"
        if self.digests:
            line += f"  {info.digest or '-':<72}"
        if self.no_trunc:
            line += f"  {info.id:<72}"
        else:
            line += f"  {info.id.short():<12}"
        if self.verbose:
            line += f"  {self._get_created(info):<31}"
        if self.all_platforms:
            if info.image:
                os_, architecture = info.image.get_os(), info.image.get_architecture()
            elif info.platform:
                os_, architecture = info.platform.os, info.platform.architecture
            else:
                os_ = architecture = "-"
            line += f"  {os_:<8}  {architecture}"
        self._print(line.rstrip())

    def print_infos(self, infos: List[ImageInfo]):
        """Prints a table row for each of the given image information."""
        for info in infos:
            self.print_info(info)

    def print_details(self, info: ImageInfo):
        """
        Prints the detailed key / value pairs of a single image.

        Args:
            info: The image information to be printed.
        """
        image = info.image
        if image:
            self._print_value("Author", image.get_author())
            self._print_value("Architecture", image.get_architecture())
            self._print_value("OS", image.get_os())
        self._print_value("Digest", info.digest)
        if info.digest_all != info.digest:
            self._print_value("DigestAll", info.digest_all)
        self._print_value("Id", info.id)
        self._print_value("Size", info.size if self.raw else pretty_size(info.size))
        if image:
            if image.get_created():
                self._print_value("Created", self._get_created(info))
            if self.verbose:
                self._print_value("Cmd", image.get_cmd())
                self._print_value("Entrypoint", image.get_entrypoint())
                self._print_value("ExposedPorts", image.get_exposed_ports())
                self._print_value("Labels", image.get_labels())
                self._print_value("StopSignal", image.get_stop_signal())
                self._print_value("User", image.get_user())
                self._print_value("Volumes", image.get_volumes())
                self._print_value("WorkingDir", image.get_working_dir())
                for i, created_by in enumerate(image.get_history()):
                    self._print(f"History[{i}]\t\t{created_by}")
        self._print()
