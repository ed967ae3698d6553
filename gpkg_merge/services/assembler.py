"""Two-source priority merge of raster tile GeoPackages.

The output starts as a byte copy of the first source (A), which brings its
whole system catalog along. Its user data tables are dropped, one fresh
tile table is created and registered from a template source, and tiles are
copied from the second source (B) with ``replace`` and then from A with
``ignore``. B therefore wins every key collision and A only fills gaps.

Everything that can reject the inputs (missing files, non-database files,
no tile tables, incomplete template metadata) is checked before the output
file is created. The rebuild itself runs in one transaction: a failure
rolls it back and removes the output. Only an integrity-check failure,
detected after commit, leaves the output on disk for inspection.

Example:
    Merge two orthophoto packages, the second taking priority:
        >>> from pathlib import Path
        >>> from gpkg_merge.services import assembler
        >>> report = assembler.merge_geopackages(
        ...     Path("ortho_2019.gpkg"),
        ...     Path("ortho_2023.gpkg"),
        ... )
        >>> report.output_path
        PosixPath('merged_ortho_2019_ortho_2023.gpkg')
"""

from __future__ import annotations

import contextlib
import logging
import pathlib
import shutil
import sqlite3
from typing import TYPE_CHECKING

from gpkg_merge.core import config, errors
from gpkg_merge.db import database
from gpkg_merge.db import models as db_models
from gpkg_merge.services import inspector, merger, templater
from gpkg_merge.utils import naming

if TYPE_CHECKING:
    from collections.abc import Sequence

log = logging.getLogger(__name__)

SOURCE_A_ALIAS = "source_a"
SOURCE_B_ALIAS = "source_b"


def validate_inputs(file_a: pathlib.Path, file_b: pathlib.Path) -> None:
    """Make sure both source files exist.

    Raises:
        InputNotFound: Listing every missing path.
    """
    missing = [path for path in (file_a, file_b) if not path.is_file()]
    if missing:
        raise errors.InputNotFound(missing)


def validate_base(file_a: pathlib.Path) -> None:
    """Make sure the structural base carries the tile catalog tables.

    The output is cloned from ``file_a``, so the merged table can only be
    registered if its catalog tables exist there.

    Raises:
        NotAGeoPackage: Naming every missing catalog table.
    """
    with contextlib.closing(database.open_readonly(file_a)) as conn:
        missing = database.missing_catalog_tables(conn)
    if missing:
        raise errors.NotAGeoPackage(
            f"{file_a} is missing GeoPackage catalog table(s): "
            + ", ".join(missing)
        )


def strip_data_tables(conn: sqlite3.Connection) -> list[str]:
    """Drop every user data table and its catalog rows.

    System catalog tables are left in place.

    Returns:
        Names of the dropped tables.
    """
    dropped = inspector.get_data_tables(conn)
    for name in dropped:
        database.drop_table(conn, name)
    if dropped:
        log.info(
            "Removed %d inherited table(s): %s",
            len(dropped),
            ", ".join(dropped),
        )
    return dropped


def zoom_levels(conn: sqlite3.Connection, table_name: str) -> list[int]:
    table = database.quote_identifier(table_name)
    rows = conn.execute(
        f"SELECT DISTINCT zoom_level FROM {table} ORDER BY zoom_level"
    ).fetchall()
    return [int(zoom) for (zoom,) in rows]


def count_tiles(conn: sqlite3.Connection, table_name: str) -> int:
    (count,) = conn.execute(
        f"SELECT COUNT(*) FROM {database.quote_identifier(table_name)}"
    ).fetchone()
    return int(count)


def reconcile_tile_matrices(
    conn: sqlite3.Connection,
    table_name: str,
    fallback: Sequence[db_models.TileMatrix] = (),
) -> list[int]:
    """Align the table's gpkg_tile_matrix rows with the zoom levels it holds.

    Rows for zoom levels without tiles are removed and levels with tiles
    but no row are filled from ``fallback`` when it defines them. A table
    without any tiles keeps its rows.

    Args:
        conn: Writable connection.
        table_name: Merged tile table.
        fallback: Candidate rows from the non-template tile tables.

    Returns:
        Zoom levels that still have tiles but no gpkg_tile_matrix row.
    """
    present = set(zoom_levels(conn, table_name))
    if not present:
        return []

    defined = {
        matrix.zoom_level
        for matrix in templater.read_tile_matrices(conn, table_name)
    }

    unused = sorted(defined - present)
    if unused:
        conn.executemany(
            "DELETE FROM main.gpkg_tile_matrix "
            "WHERE table_name = ? AND zoom_level = ?",
            [(table_name, zoom) for zoom in unused],
        )
        log.debug("Removed tile matrix rows for empty zoom levels %s", unused)

    missing = present - defined
    supplement: dict[int, db_models.TileMatrix] = {}
    for matrix in fallback:
        if matrix.zoom_level in missing:
            supplement.setdefault(matrix.zoom_level, matrix)
    if supplement:
        templater.write_tile_matrices(conn, table_name, supplement.values())
        log.info(
            "Added tile matrix rows for zoom levels %s from the other source",
            sorted(supplement),
        )

    uncovered = sorted(missing - set(supplement))
    if uncovered:
        log.warning(
            "No tile matrix definition for zoom levels %s of %s",
            uncovered,
            table_name,
        )
    return uncovered


def _fallback_matrices(
    sources: Sequence[tuple[pathlib.Path, Sequence[str]]],
    template: db_models.TileTemplate,
) -> list[db_models.TileMatrix]:
    """Collect tile matrix rows of every tile table except the template."""
    matrices: list[db_models.TileMatrix] = []
    for path, tile_tables in sources:
        with contextlib.closing(database.open_readonly(path)) as conn:
            for table in tile_tables:
                is_template = (
                    path == template.source_path
                    and table == template.table_name
                )
                if not is_template:
                    matrices.extend(templater.read_tile_matrices(conn, table))
    return matrices


def _build_output(
    output_path: pathlib.Path,
    file_a: pathlib.Path,
    file_b: pathlib.Path,
    table_name: str,
    template: db_models.TileTemplate,
    fallback: Sequence[db_models.TileMatrix],
    settings: config.Settings,
) -> tuple[int, int]:
    """Rebuild the cloned output in one transaction.

    Returns:
        Rows written from B and from A.
    """
    with (
        contextlib.closing(database.open_writable(output_path)) as conn,
        contextlib.ExitStack() as stack,
    ):
        schema_a = schema_b = None
        if settings.copy_strategy == "attach":
            schema_b = stack.enter_context(
                database.attached(conn, file_b, SOURCE_B_ALIAS)
            )
            schema_a = stack.enter_context(
                database.attached(conn, file_a, SOURCE_A_ALIAS)
            )

        with database.transaction(conn):
            strip_data_tables(conn)
            database.create_tile_table(conn, table_name)
            templater.write_template(conn, template, table_name)

            log.info("Merging tiles with %s priority strategy...", file_b.stem)
            from_b = merger.merge_into(
                conn,
                table_name,
                file_b,
                "replace",
                schema=schema_b,
                batch_size=settings.batch_size,
            )
            from_a = merger.merge_into(
                conn,
                table_name,
                file_a,
                "ignore",
                schema=schema_a,
                batch_size=settings.batch_size,
            )

            reconcile_tile_matrices(conn, table_name, fallback)
            database.set_format_pragmas(
                conn, settings.application_id, settings.user_version
            )

    return from_b, from_a


def _verify_output(
    output_path: pathlib.Path,
    table_name: str,
) -> tuple[int, list[int]]:
    """Integrity-check the finished output and measure its tile table.

    Raises:
        MergeCorrupted: If ``PRAGMA integrity_check`` reports anything but ok.
    """
    with contextlib.closing(database.open_writable(output_path)) as conn:
        messages = database.integrity_check(conn)
        if messages != ["ok"]:
            raise errors.MergeCorrupted(output_path, messages)
        return count_tiles(conn, table_name), zoom_levels(conn, table_name)


def merge_geopackages(
    file_a: pathlib.Path | str,
    file_b: pathlib.Path | str,
    output: pathlib.Path | str | None = None,
    table_name: str | None = None,
    settings: config.Settings | None = None,
) -> db_models.MergeReport:
    """Merge two tile GeoPackages into a new one, B taking priority over A.

    Args:
        file_a: Low-priority source; also the structural base of the output.
        file_b: High-priority source.
        output: Requested output path. Derived from the input names when
            omitted. A timestamp is appended if the path already exists.
        table_name: Name of the merged tile table (settings default if None).
        settings: Merge settings (cached settings if None).

    Returns:
        MergeReport with per-source tile counts, total tiles, zoom levels
        and file sizes.

    Raises:
        InvalidTableName: If the table name is not a safe identifier.
        InputNotFound: If either source is missing.
        NotAGeoPackage: If a source is not a SQLite database, or file A
            lacks the tile catalog tables.
        NoTileTablesFound: If neither source has a tile table.
        MissingMetadata: If the template table's catalog rows are incomplete.
        MergeCorrupted: If the integrity check of the output fails.
        MergeError: If SQLite fails while the output is rebuilt.
    """
    settings = settings or config.get_settings()
    table_name = database.validate_table_name(
        table_name or settings.default_table_name
    )
    file_a = pathlib.Path(file_a)
    file_b = pathlib.Path(file_b)

    validate_inputs(file_a, file_b)
    input_sizes = (file_a.stat().st_size, file_b.stat().st_size)
    log.info(naming.format_inputs(file_a, file_b, input_sizes))

    sources = [
        (file_a, inspector.find_tile_tables_in_file(file_a)),
        (file_b, inspector.find_tile_tables_in_file(file_b)),
    ]
    template_path, template_table = templater.choose_template_source(sources)
    with contextlib.closing(database.open_readonly(template_path)) as conn:
        template = templater.read_template(conn, template_table, template_path)
    log.info(
        "Using %s:%s as metadata template (zoom levels %s)",
        template_path.name,
        template_table,
        template.zoom_levels,
    )
    validate_base(file_a)
    fallback = _fallback_matrices(sources, template)

    settings.ensure_directories()
    output_path = naming.ensure_unique_output(
        naming.resolve_output_path(file_a, file_b, output, settings.output_dir)
    )
    shutil.copyfile(file_a, output_path)
    log.debug("Cloned %s to %s", file_a, output_path)

    try:
        from_b, from_a = _build_output(
            output_path,
            file_a,
            file_b,
            table_name,
            template,
            fallback,
            settings,
        )
    except sqlite3.Error as exc:
        output_path.unlink(missing_ok=True)
        raise errors.MergeError(f"Merge failed: {exc}") from exc
    except BaseException:
        output_path.unlink(missing_ok=True)
        raise

    total, levels = _verify_output(output_path, table_name)
    return db_models.MergeReport(
        output_path=output_path,
        table_name=table_name,
        primary_name=naming.base_name(file_b),
        secondary_name=naming.base_name(file_a),
        tiles_from_primary=from_b,
        tiles_from_secondary=from_a,
        total_tiles=total,
        zoom_levels=levels,
        file_size_bytes=output_path.stat().st_size,
        input_sizes_bytes=input_sizes,
    )
