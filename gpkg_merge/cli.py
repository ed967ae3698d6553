"""Command-line entry point for merging two tile GeoPackages.

Usage:
    gpkg-merge <file1> <file2> [output] [table_name]

The second file takes priority: wherever both files hold a tile at the same
zoom/column/row, the second file's tile is kept. Exit status is 0 on
success, 1 when the invocation itself is invalid (bad arguments, missing
input files, bad table name) and 2 when the merge fails.

Example:
    $ gpkg-merge ./data/file1.gpkg ./data/file2.gpkg
    $ gpkg-merge ./data/file1.gpkg ./data/file2.gpkg ./out.gpkg unified_tiles
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sqlite3
import sys
from typing import TYPE_CHECKING

from gpkg_merge.core import config, errors, logs
from gpkg_merge.services import assembler
from gpkg_merge.utils import naming

if TYPE_CHECKING:
    from collections.abc import Sequence

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_FAILURE = 2


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors as validation failures."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_VALIDATION, f"{self.prog}: error: {message}\n")


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="gpkg-merge",
        description=(
            "Merge the raster tiles of two GeoPackages. Tiles of the second "
            "file win over tiles of the first at the same position."
        ),
    )
    parser.add_argument(
        "file1", type=pathlib.Path, help="low-priority GeoPackage"
    )
    parser.add_argument(
        "file2", type=pathlib.Path, help="high-priority GeoPackage"
    )
    parser.add_argument(
        "output",
        nargs="?",
        default=None,
        help=(
            "output path; empty for the default "
            "merged_<file1>_<file2>.gpkg"
        ),
    )
    parser.add_argument(
        "table_name",
        nargs="?",
        default=None,
        help="merged tile table name (default: merged_tiles)",
    )
    parser.add_argument(
        "--strategy",
        choices=["attach", "stream"],
        default=None,
        help="how tiles are copied between files",
    )
    parser.add_argument("--batch-size", type=_positive_int, default=None)
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--log-file", type=pathlib.Path, default=None)
    return parser


def _settings_from_args(args: argparse.Namespace) -> config.Settings:
    """Apply command-line overrides on top of the cached settings."""
    overrides = {
        "copy_strategy": args.strategy,
        "batch_size": args.batch_size,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }
    return config.get_settings().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run a merge from command-line arguments and return the exit status."""
    args = build_parser().parse_args(argv)
    settings = _settings_from_args(args)
    logs.init_logging(settings.log_level, settings.log_file)
    log.info("GeoPackage Tile-Aware Merge Tool")

    try:
        report = assembler.merge_geopackages(
            args.file1,
            args.file2,
            output=pathlib.Path(args.output) if args.output else None,
            table_name=args.table_name,
            settings=settings,
        )
    except errors.MergeError as exc:
        log.error("Failed: %s", exc)
        if exc.status_code == errors.BAD_REQUEST:
            return EXIT_VALIDATION
        return EXIT_FAILURE
    except (OSError, sqlite3.Error) as exc:
        log.error("Failed: %s", exc)
        return EXIT_FAILURE

    log.info(naming.format_summary(report))
    return EXIT_OK
