"""
Inspect persisted state snapshots.

    treestate list [--dir DIR]
    treestate show NAMESPACE [--dir DIR]
    treestate clear NAMESPACE [--dir DIR]
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from typing import List, Optional

from .config import StateConfig
from .storage import FileBackend
from . import storage


def _resolve_config(args: argparse.Namespace) -> StateConfig:
    config = StateConfig.load(args.config) if args.config else None
    if config is None:
        config = StateConfig.from_env()
    if args.dir:
        config.storage_dir = args.dir
    return config


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="treestate",
        description="Inspect state snapshots stored by treestate file storage",
    )
    ap.add_argument("--dir", help="Storage directory (overrides config)")
    ap.add_argument("--config", help="Config file (JSON or YAML)")
    ap.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List stored namespaces")
    show = sub.add_parser("show", help="Print the snapshot for a namespace")
    show.add_argument("namespace")
    clear = sub.add_parser("clear", help="Delete the snapshot for a namespace")
    clear.add_argument("namespace")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    config = _resolve_config(args)
    if args.verbose:
        config.log_level = "DEBUG"
    if args.verbose or config.log_dir:
        config.configure_logging()

    if not os.path.isdir(config.storage_dir):
        print(f"No storage directory at {config.storage_dir}", file=sys.stderr)
        return 1
    backend = FileBackend(config.storage_dir)

    if args.command == "list":
        for key in backend.keys():
            print(key)
        return 0

    if args.namespace not in backend.keys():
        print(f"No snapshot for {args.namespace} in {config.storage_dir}", file=sys.stderr)
        return 1

    if args.command == "show":
        print(json.dumps(storage.get(backend, args.namespace), indent=2))
    else:
        backend.remove_item(args.namespace)
        print(f"Cleared {args.namespace}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
