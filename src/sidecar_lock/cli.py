"""Command line diagnostics for sidecar lock files."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .manager import lock_manager
from .metadata import read_lock_file
from .paths import canonical_path, lock_path_for

EXIT_OK = 0
EXIT_NOT_LOCKED = 1

EXIT_FREE = 0
EXIT_HELD = 1
EXIT_STALE = 2
EXIT_UNRESOLVABLE = 3


def _cmd_inspect(path: str) -> int:
    info = lock_manager().inspect(path)
    if info is None:
        print("not locked")
        return EXIT_NOT_LOCKED
    print(f"pid: {info.pid}")
    print(f"hostname: {info.hostname}")
    print(f"appname: {info.appname}")
    return EXIT_OK


def _cmd_status(path: str, stale_after: Optional[float]) -> int:
    canonical = canonical_path(path)
    if canonical is None:
        print(f"cannot resolve {path}", file=sys.stderr)
        return EXIT_UNRESOLVABLE
    info, mtime, raw = read_lock_file(lock_path_for(canonical))
    if raw is None:
        print("free")
        return EXIT_FREE
    if lock_manager(stale_after=stale_after).policy.is_stale(info, mtime):
        print("stale")
        return EXIT_STALE
    print("held")
    return EXIT_HELD


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="sidecar_lock")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)
    inspect_parser = sub.add_parser("inspect", help="show the process holding the lock")
    inspect_parser.add_argument("path")
    status_parser = sub.add_parser("status", help="report free, held or stale")
    status_parser.add_argument("path")
    status_parser.add_argument("--stale-after", type=float, default=None)
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    if args.command == "inspect":
        return _cmd_inspect(args.path)
    return _cmd_status(args.path, args.stale_after)


if __name__ == "__main__":
    sys.exit(main())
