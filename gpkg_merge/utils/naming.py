"""Output naming and merge summaries.

Derives the output filename from the two inputs when none is given, never
overwrites an existing file (a millisecond timestamp is appended instead),
and renders the one-line summary printed after a merge.

Example:
    >>> from gpkg_merge.utils import naming
    >>> naming.default_output_name(Path("a/north.gpkg"), Path("b/south.gpkg"))
    'merged_north_south.gpkg'
"""

from __future__ import annotations

import logging
import pathlib
import time

from gpkg_merge.db import models as db_models

log = logging.getLogger(__name__)

BYTES_TO_MB = 1024 * 1024


def base_name(path: pathlib.Path | str) -> str:
    """Return a file's name without directory or extension."""
    return pathlib.Path(path).stem


def default_output_name(
    file_a: pathlib.Path | str,
    file_b: pathlib.Path | str,
) -> str:
    return f"merged_{base_name(file_a)}_{base_name(file_b)}.gpkg"


def resolve_output_path(
    file_a: pathlib.Path | str,
    file_b: pathlib.Path | str,
    output: pathlib.Path | str | None = None,
    output_dir: pathlib.Path | None = None,
) -> pathlib.Path:
    """Pick the requested output path before uniqueness is enforced.

    An explicit ``output`` is used as given. Otherwise the default name is
    placed in ``output_dir`` (or the working directory).
    """
    if output:
        return pathlib.Path(output)

    name = default_output_name(file_a, file_b)
    if output_dir is not None:
        return output_dir / name
    return pathlib.Path(name)


def ensure_unique_output(
    path: pathlib.Path,
    now_ms: int | None = None,
) -> pathlib.Path:
    """Return ``path``, or a timestamped sibling when it already exists.

    Args:
        path: Requested output path.
        now_ms: Millisecond timestamp to use (defaults to the current time).

    Returns:
        A path that does not exist yet. The existing file is never touched.
    """
    if not path.exists():
        return path

    stamp = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    candidate = path.with_name(f"{path.stem}_{stamp}{path.suffix}")
    while candidate.exists():
        stamp += 1
        candidate = path.with_name(f"{path.stem}_{stamp}{path.suffix}")

    log.info("Output file exists, creating: %s", candidate)
    return candidate


def format_size_mb(size_bytes: int) -> str:
    return f"{size_bytes / BYTES_TO_MB:.2f}"


def format_inputs(
    file_a: pathlib.Path,
    file_b: pathlib.Path,
    sizes: tuple[int, int],
) -> str:
    """Describe both inputs and their sizes on one line."""
    return (
        f"{base_name(file_a)} dataset: {format_size_mb(sizes[0])} MB, "
        f"{base_name(file_b)} dataset: {format_size_mb(sizes[1])} MB"
    )


def format_summary(report: db_models.MergeReport) -> str:
    """Render the one-line summary of a finished merge."""
    zoom_levels = ", ".join(str(z) for z in report.zoom_levels) or "none"
    return (
        f"Merge complete! {report.tiles_from_primary} tiles from "
        f"{report.primary_name}, {report.tiles_from_secondary} from "
        f"{report.secondary_name} → {report.total_tiles} total tiles across "
        f"zoom levels {zoom_levels} • Output: {report.output_path} "
        f"({format_size_mb(report.file_size_bytes)} MB)"
    )
