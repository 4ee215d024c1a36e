"""
mediacat - maintenance entry point

Run with: python -m mediacat [--db PATH] {init,stats,check,compact,prune}
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from mediacat import __version__
from mediacat.config import CatalogConfig, load_catalog_config
from mediacat.core.catalog import MediaCatalog


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="mediacat",
        description="mediacat - local catalog of streams, playlists and subscriptions",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to a catalog TOML config (default: bundled catalog.toml)",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Database file (overrides the config)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "command",
        choices=("init", "stats", "check", "compact", "prune"),
        help=(
            "init: create/migrate the schema; stats: print table counts; "
            "check: exit 1 if any playlist has position gaps; "
            "compact: renumber fragmented playlists; prune: delete unreferenced streams"
        ),
    )

    return parser.parse_args(argv)


async def run_command(command: str, config: CatalogConfig) -> int:
    """Run one maintenance command against the configured database."""
    catalog = MediaCatalog.from_config(config)
    await catalog.initialize()
    try:
        if command == "stats":
            stats = await catalog.stats()
            print(f"streams:          {stats.streams}")
            print(f"playlists:        {stats.playlists}")
            print(f"remote playlists: {stats.remote_playlists}")
            print(f"subscriptions:    {stats.subscriptions}")
            print(f"fragmented:       {len(stats.fragmented_playlists)}")
        elif command == "check":
            fragmented = await catalog.db.find_fragmented_playlists()
            if fragmented:
                print("fragmented playlists: " + ", ".join(str(p) for p in fragmented))
                return 1
            print("ok")
        elif command == "compact":
            compacted = await catalog.db.compact_all_playlists()
            print(f"compacted {len(compacted)} playlists")
        elif command == "prune":
            removed = await catalog.db.delete_orphaned_streams()
            print(f"removed {removed} streams")
        return 0
    finally:
        await catalog.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    config = load_catalog_config(args.config)
    if args.db is not None:
        config = replace(config, database_path=args.db)

    try:
        return asyncio.run(run_command(args.command, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
