"""
objectmesh CLI Entrypoint

Commands:
    objectmesh url ID        Print a plain or signed URL
    objectmesh presign ID    Print a presigned request as JSON
    objectmesh exists ID     Exit 0 if the object exists, 1 if not
    objectmesh ls            List objects in the namespace
    objectmesh rm ID...      Delete objects
    objectmesh clear --yes   Delete every object in the namespace
    objectmesh version       Show version info

The store is configured from OBJECTMESH_* environment variables.
Exit codes: 0 success, 1 error, 2 configuration error.
"""

from __future__ import annotations

import argparse
import itertools
import json
import sys
from typing import Optional, Sequence

from objectmesh.core.config import ObjectMeshConfig
from objectmesh.core.errors import ConfigurationError, ObjectMeshError
from objectmesh.observability.logging import LogLevel, setup_logging

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entrypoint."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK
    if args.command == "version":
        print(f"objectmesh {_get_version()}")
        return EXIT_OK

    try:
        store = _build_store()
        return args.handler(store, args)
    except ConfigurationError as e:
        print(e.message, file=sys.stderr)
        return EXIT_CONFIG
    except ObjectMeshError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="objectmesh",
        description="Cloud object storage adapter",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # url command
    url_parser = subparsers.add_parser("url", help="Print the URL of an object")
    url_parser.add_argument("id", help="Logical object id")
    url_parser.add_argument(
        "--expires",
        type=int,
        default=None,
        help="Sign the URL, valid for this many seconds",
    )
    url_parser.set_defaults(handler=_run_url)

    # presign command
    presign_parser = subparsers.add_parser("presign", help="Authorize a direct request")
    presign_parser.add_argument("id", help="Logical object id")
    presign_parser.add_argument("--method", default="GET", help="HTTP method (default: GET)")
    presign_parser.add_argument("--expires", type=int, default=None, help="Validity in seconds")
    presign_parser.add_argument("--content-type", default=None)
    presign_parser.add_argument("--content-md5", default=None)
    presign_parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Extra header the client will send (repeatable)",
    )
    presign_parser.set_defaults(handler=_run_presign)

    # exists command
    exists_parser = subparsers.add_parser("exists", help="Check whether an object exists")
    exists_parser.add_argument("id", help="Logical object id")
    exists_parser.set_defaults(handler=_run_exists)

    # ls command
    ls_parser = subparsers.add_parser("ls", help="List objects in the namespace")
    ls_parser.add_argument("--limit", type=int, default=None, help="Stop after N objects")
    ls_parser.set_defaults(handler=_run_ls)

    # rm command
    rm_parser = subparsers.add_parser("rm", help="Delete objects")
    rm_parser.add_argument("ids", nargs="+", help="Logical object ids")
    rm_parser.set_defaults(handler=_run_rm)

    # clear command
    clear_parser = subparsers.add_parser("clear", help="Delete every object in the namespace")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm the deletion")
    clear_parser.set_defaults(handler=_run_clear)

    subparsers.add_parser("version", help="Show version info")
    return parser


def _get_version() -> str:
    """Get package version."""
    from objectmesh import __version__
    return __version__


def _build_store():
    from objectmesh.storage import CloudObjectStore, GCSInteropTransport

    loaded = ObjectMeshConfig.from_env()
    if loaded.is_err():
        raise ConfigurationError.invalid(loaded.error)
    config = loaded.unwrap()
    check = config.validate()
    if check.is_err():
        raise ConfigurationError.invalid(check.error)

    try:
        level = LogLevel.parse(config.observability.log_level)
    except ValueError as e:
        raise ConfigurationError.invalid(str(e)) from e
    setup_logging(level, json_output=config.observability.log_json)

    return CloudObjectStore(config.store, transport=GCSInteropTransport(config.transport))


def _parse_headers(pairs: Sequence[str]) -> dict[str, str]:
    headers = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ConfigurationError.invalid(f"header must be NAME=VALUE, got {pair!r}")
        headers[name.strip()] = value.strip()
    return headers


def _run_url(store, args: argparse.Namespace) -> int:
    print(store.url(args.id, expires=args.expires))
    return EXIT_OK


def _run_presign(store, args: argparse.Namespace) -> int:
    presigned = store.presign(
        args.id,
        method=args.method,
        expires=args.expires,
        content_type=args.content_type,
        content_md5=args.content_md5,
        headers=_parse_headers(args.header),
    )
    print(json.dumps(presigned.to_dict(), indent=2))
    return EXIT_OK


def _run_exists(store, args: argparse.Namespace) -> int:
    found = store.exists(args.id)
    print("yes" if found else "no")
    return EXIT_OK if found else EXIT_ERROR


def _run_ls(store, args: argparse.Namespace) -> int:
    for ref in itertools.islice(store.list(), args.limit):
        size = "-" if ref.size_bytes is None else str(ref.size_bytes)
        print(f"{size}\t{ref.key}")
    return EXIT_OK


def _run_rm(store, args: argparse.Namespace) -> int:
    deleted = store.multi_delete(args.ids)
    print(f"deleted {deleted} of {len(args.ids)}")
    return EXIT_OK


def _run_clear(store, args: argparse.Namespace) -> int:
    if not args.yes:
        print("refusing to clear without --yes", file=sys.stderr)
        return EXIT_ERROR
    deleted = store.clear()
    print(f"deleted {deleted}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
