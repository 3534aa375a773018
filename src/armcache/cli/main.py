"""CLI entrypoint for the ARM registry cache."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from armcache import __version__
from armcache.cli.handlers import (
    handle_cleanup,
    handle_clear,
    handle_recover,
    handle_show,
    handle_stats,
    handle_unlock_stale,
)
from armcache.config import load_tool_config
from armcache.constants.branding import CLI_DESCRIPTION
from armcache.exceptions import ArmCacheError, ConfigError


def build_parser() -> argparse.ArgumentParser:
    """Build top-level CLI parser."""
    parser = argparse.ArgumentParser(
        prog="armcache",
        description=CLI_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", type=Path, help="Explicit armcache.yaml file")
    parser.add_argument("--cache-root", type=Path, default=None, help="Cache root (overrides the config file)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Show total cache size and registry count")

    cleanup = subparsers.add_parser("cleanup", help="Evict expired and oversized cache entries")
    cleanup.add_argument("--ttl-hours", type=int, default=None, help="Override the TTL from config.json")
    cleanup.add_argument("--max-size-mb", type=int, default=None, help="Override the size budget from config.json")

    subparsers.add_parser("clear", help="Remove every cached registry and the mapping files")
    subparsers.add_parser("unlock-stale", help="Remove lock files left behind by dead processes")
    subparsers.add_parser("recover", help="Validate and repair the registry and ruleset mapping files")

    show = subparsers.add_parser("show", help="Describe one cached registry")
    show.add_argument("registry_key", help="64-character registry cache key")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_tool_config(Path.cwd(), args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(level=getattr(logging, config.log_level), format="%(levelname)s %(message)s")
    cache_root = args.cache_root.expanduser() if args.cache_root is not None else config.cache_root

    handlers = {
        "stats": handle_stats,
        "cleanup": handle_cleanup,
        "clear": handle_clear,
        "unlock-stale": handle_unlock_stale,
        "recover": handle_recover,
        "show": handle_show,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.error(f"Unsupported command: {args.command}")

    try:
        return handler(args, cache_root, config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except ArmCacheError as exc:
        print(f"Cache error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
