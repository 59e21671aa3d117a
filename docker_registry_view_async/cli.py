#!/usr/bin/env python

"""Command line interface: prints, or deletes, images of a docker registry."""

import argparse
import asyncio
import logging
import platform
import signal
import sys

from getpass import getpass
from pathlib import Path
from typing import Dict, List, Optional

from .blobcache import BlobCache
from .credentials import get_credentials
from .deleter import Deleter
from .enumerator import Enumerator
from .exceptions import ManifestError, RECOVERABLE_ERRORS, RegistryError
from .imagename import ImageName
from .printer import ImagePrinter
from .registryclientasync import RegistryClientAsync
from .transport import Transport
from .utils import async_wrap

LOGGER = logging.getLogger(__name__)

ARCHES = [
    "386",
    "amd64",
    "arm",
    "arm64",
    "mips",
    "mips64",
    "mips64le",
    "mipsle",
    "ppc64",
    "ppc64le",
    "riscv64",
    "s390x",
    "wasm",
]
OSES = [
    "aix",
    "android",
    "darwin",
    "dragonfly",
    "freebsd",
    "illumos",
    "ios",
    "js",
    "linux",
    "netbsd",
    "openbsd",
    "plan9",
    "solaris",
    "windows",
]

PROG = "docker-registry-view"


def get_version() -> str:
    """Returns the version string reported by --version."""
    # Note: This cannot be imported above, as it causes a circular import!
    from . import __version__  # pylint: disable=import-outside-toplevel

    return (
        f"v{__version__} Python {platform.python_version()} "
        f"{sys.platform}/{platform.machine()}"
    )


def get_parser() -> argparse.ArgumentParser:
    """Builds the command line parser."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        usage=f"{PROG} [OPTIONS] REGISTRY[/REPOSITORY[:TAG|@DIGEST]]",
        epilog=(
            f"Valid options for --arch: {' '.join(ARCHES)}\n"
            f"Valid options for --os: {' '.join(OSES)}"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-a", "--all", action="store_true", help="Print information for all platforms"
    )
    parser.add_argument(
        "--arch",
        action="append",
        default=[],
        help="Target architecture. May be specified multiple times",
    )
    parser.add_argument(
        "--os",
        action="append",
        default=[],
        help="Target OS. May be specified multiple times",
    )
    parser.add_argument(
        "--delete", action="store_true", help="Delete images. USE WITH CAUTION"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Used with --delete: only show the images that would be deleted",
    )
    parser.add_argument("--digests", action="store_true", help="Show digests")
    parser.add_argument("--debug", action="store_true", help="Enable debug")
    parser.add_argument(
        "--insecure", action="store_true", help="Allow insecure server connections"
    )
    parser.add_argument("--no-trunc", action="store_true", help="Don't truncate output")
    parser.add_argument(
        "--raw", action="store_true", help="Raw values for date and size"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show more information"
    )
    parser.add_argument("--version", action="version", version=get_version())
    parser.add_argument("-u", "--user", help="Username for authentication")
    parser.add_argument(
        "-p", "--pass", dest="password", help="Password, or password file"
    )
    parser.add_argument(
        "-C", "--tlscacert", help="Trust certs signed only by this CA"
    )
    parser.add_argument("-c", "--tlscert", help="Path to TLS certificate file")
    parser.add_argument("-k", "--tlskey", help="Path to TLS key file")
    parser.add_argument(
        "-P", "--tlskeypass", help="Passphrase, or passphrase file, for TLS key file"
    )
    parser.add_argument(
        "-H",
        "--header",
        action="append",
        default=[],
        help="Additional request header (NAME:VALUE). May be specified multiple times",
    )
    parser.add_argument(
        "--workers", type=int, help="Maximum number of concurrent repositories"
    )
    parser.add_argument("--timeout", type=float, help="Request timeout, in seconds")
    parser.add_argument("target", metavar="REGISTRY[/REPOSITORY[:TAG|@DIGEST]]")
    return parser


def parse_headers(
    parser: argparse.ArgumentParser, values: List[str]
) -> Dict[str, str]:
    """Converts NAME:VALUE arguments into a mapping of headers."""
    result = {}
    for value in values:
        name, separator, header = value.partition(":")
        if not separator or not name.strip():
            parser.error(f"Invalid header: {value}")
        result[name.strip()] = header.strip()
    return result


def read_secret(value: Optional[str]) -> Optional[str]:
    """Reads a secret from a file, if the value names a readable file."""
    if value:
        path = Path(value)
        if path.is_file():
            return path.read_text(encoding="utf-8").rstrip("\n")
    return value


def parse_args(argv: List[str] = None) -> argparse.Namespace:
    """
    Parses and normalizes the command line arguments.

    Args:
        argv: The arguments to be parsed; defaults to sys.argv.

    Returns:
        The parsed arguments.
    """
    parser = get_parser()
    args = parser.parse_args(argv)

    for arch in args.arch:
        if arch not in ARCHES:
            parser.error(f"Invalid arch: {arch}")
    for os_ in args.os:
        if os_ not in OSES:
            parser.error(f"Invalid os: {os_}")
    if args.arch or args.os:
        args.all = True
    if args.delete:
        args.digests = True
    if args.workers is not None and args.workers < 1:
        parser.error(f"Invalid number of workers: {args.workers}")

    args.headers = parse_headers(parser, args.header)
    args.password = read_secret(args.password)
    args.tlskeypass = read_secret(args.tlskeypass)
    try:
        args.image_name = ImageName.parse(args.target)
        args.patterns = args.image_name.get_patterns()
    except ValueError as exception:
        parser.error(f"{args.target}: {exception}")
    args.non_ssl = args.target.lower().startswith("http://")
    return args


async def create_client(args: argparse.Namespace) -> RegistryClientAsync:
    """
    Creates a registry client from the parsed arguments.

    Args:
        args: The parsed arguments.

    Returns:
        The registry client.
    """
    password = args.password
    if args.user and not password:
        password = await async_wrap(getpass)("Password: ")

    domain = args.image_name.endpoint
    if args.non_ssl:
        domain = f"http://{domain}"
    credentials = await get_credentials(args.user, password, domain)
    if not args.insecure and (
        args.non_ssl or credentials.server_address.startswith("http:")
    ):
        raise RegistryError(
            "Attempted to use insecure protocol! Use --insecure option to force"
        )

    return RegistryClientAsync(
        blob_cache=BlobCache(),
        cacert=args.tlscacert,
        cert=args.tlscert,
        credentials=credentials,
        digests=args.digests,
        domain=domain,
        headers=args.headers,
        insecure=args.insecure,
        key=args.tlskey,
        passphrase=args.tlskeypass,
        timeout=args.timeout,
    )


def create_printer(args: argparse.Namespace) -> ImagePrinter:
    """Creates an image printer from the parsed arguments."""
    return ImagePrinter(
        all_platforms=args.all,
        digests=args.digests,
        no_trunc=args.no_trunc,
        raw=args.raw,
        verbose=args.verbose,
    )


async def print_image(args: argparse.Namespace, client: RegistryClientAsync):
    """Prints the details of a single image."""
    image_name = args.image_name
    enumerator = Enumerator(
        client,
        all_platforms=args.all,
        arches=args.arch,
        more=True,
        oses=args.os,
        workers=args.workers,
    )
    printer = create_printer(args)
    for info in await enumerator.get_infos(image_name.image, image_name.resolve_ref()):
        printer.print_details(info)


async def print_all(args: argparse.Namespace, client: RegistryClientAsync):
    """Prints a table row for every tag of every matching repository."""
    repo_regex, tag_regex = args.patterns
    enumerator = Enumerator(
        client,
        all_platforms=args.all,
        arches=args.arch,
        more=args.verbose,
        oses=args.os,
        workers=args.workers,
    )
    repos = await enumerator.get_repositories(repo_regex)

    printer = create_printer(args)
    printer.repo_width = max([len(repo) for repo in repos], default=0)
    printer.print_header()
    async for infos in enumerator.iterate(repo_regex, tag_regex, repos=repos):
        printer.print_infos(infos)


async def delete(args: argparse.Namespace, client: RegistryClientAsync):
    """Deletes a single image, or every tag of every matching repository."""
    enumerator = Enumerator(
        client,
        all_platforms=args.all,
        arches=args.arch,
        oses=args.os,
        workers=args.workers,
    )
    deleter = Deleter(enumerator, dry_run=args.dry_run)
    image_name = args.image_name
    if image_name.is_pattern():
        await deleter.delete_all(*args.patterns)
    else:
        await deleter.delete(image_name.image, image_name.resolve_ref())


async def run(args: argparse.Namespace) -> int:
    """
    Executes the requested operation.

    Args:
        args: The parsed arguments.

    Returns:
        The process exit status.
    """
    try:
        client = await create_client(args)
    except (OSError, RegistryError) as exception:
        LOGGER.error("%s", exception)
        return 1

    async with client:
        try:
            if args.delete:
                await delete(args, client)
            elif args.image_name.is_pattern():
                await print_all(args, client)
            else:
                await print_image(args, client)
        except ManifestError as exception:
            if args.image_name.is_pattern():
                LOGGER.error("domain %s is not a valid registry", client.domain)
            else:
                LOGGER.error("%s: %s", args.target, exception)
            return 1
        except RECOVERABLE_ERRORS as exception:
            LOGGER.error("%s: %s", args.target, exception)
            return 1
    return 0


def on_signal(signum: int, task: asyncio.Task):
    """Cancels the main task upon receipt of a signal."""
    LOGGER.info("Received %s, exiting", signal.Signals(signum).name)
    task.cancel()


def main(argv: List[str] = None):
    """Entrypoint of the docker-registry-view command."""
    args = parse_args(argv)
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if args.debug else logging.INFO,
        stream=sys.stderr,
    )
    if args.debug:
        Transport.DEBUG = "1"

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    task = loop.create_task(run(args))
    for signum in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(signum, on_signal, signum, task)
    try:
        status = loop.run_until_complete(task)
    except asyncio.CancelledError:
        status = 0
    finally:
        loop.close()
    sys.exit(status)


if __name__ == "__main__":
    main()
