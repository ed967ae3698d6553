"""Catalog templating for the merged tile table.

A GeoPackage tile table is only valid content when three catalog records
describe it: a gpkg_contents row, a gpkg_tile_matrix_set row and one
gpkg_tile_matrix row per zoom level. This module reads those records for a
source tile table and writes copies of them under the merged table's name.
Writes use INSERT OR REPLACE, so templating the same table twice leaves a
single set of rows.

Example:
    Register ``merged_tiles`` with the pyramid of ``ortho`` from a source:
        >>> from gpkg_merge.services import templater
        >>> template = templater.read_template(source_conn, "ortho", path)
        >>> templater.write_template(target_conn, template, "merged_tiles")
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from gpkg_merge.core import errors
from gpkg_merge.db import database
from gpkg_merge.db import models as db_models

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterable, Sequence

log = logging.getLogger(__name__)

# ISO 8601 timestamp format required for gpkg_contents.last_change.
LAST_CHANGE_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"


def _rows(
    conn: sqlite3.Connection,
    sql: str,
    params: Sequence[object],
) -> list[sqlite3.Row]:
    cur = conn.cursor()
    cur.row_factory = sqlite3.Row
    try:
        return cur.execute(sql, params).fetchall()
    finally:
        cur.close()


def _require_catalog(
    conn: sqlite3.Connection,
    catalog: str,
    table_name: str,
) -> None:
    if not database.table_exists(conn, catalog):
        raise errors.MissingMetadata(table_name, catalog)


def read_tile_matrices(
    conn: sqlite3.Connection,
    table_name: str,
) -> list[db_models.TileMatrix]:
    """Return the gpkg_tile_matrix rows of a table, ordered by zoom level.

    A database without a gpkg_tile_matrix table yields an empty list.
    """
    if not database.table_exists(conn, "gpkg_tile_matrix"):
        return []

    rows = _rows(
        conn,
        "SELECT * FROM gpkg_tile_matrix WHERE table_name = ? "
        "ORDER BY zoom_level",
        (table_name,),
    )
    return [
        db_models.TileMatrix(
            zoom_level=int(row["zoom_level"]),
            matrix_width=int(row["matrix_width"]),
            matrix_height=int(row["matrix_height"]),
            tile_width=int(row["tile_width"]),
            tile_height=int(row["tile_height"]),
            pixel_x_size=float(row["pixel_x_size"]),
            pixel_y_size=float(row["pixel_y_size"]),
        )
        for row in rows
    ]


def _read_spatial_ref_sys(
    conn: sqlite3.Connection,
    srs_id: int | None,
) -> dict[str, object] | None:
    if srs_id is None or not database.table_exists(
        conn, "gpkg_spatial_ref_sys"
    ):
        return None

    rows = _rows(
        conn,
        "SELECT * FROM gpkg_spatial_ref_sys WHERE srs_id = ?",
        (srs_id,),
    )
    return dict(rows[0]) if rows else None


def read_template(
    conn: sqlite3.Connection,
    table_name: str,
    source_path: pathlib.Path,
) -> db_models.TileTemplate:
    """Read the complete catalog description of a source tile table.

    Args:
        conn: Read-only connection to the source GeoPackage.
        table_name: Tile table to describe.
        source_path: Path of the source, kept for reporting.

    Returns:
        TileTemplate holding the contents, tile matrix set and tile matrix
        rows of the table, plus its spatial reference row when present.

    Raises:
        MissingMetadata: If the gpkg_contents row, the gpkg_tile_matrix_set
            row, or every gpkg_tile_matrix row is missing.
    """
    _require_catalog(conn, "gpkg_contents", table_name)
    contents_rows = _rows(
        conn,
        "SELECT * FROM gpkg_contents WHERE table_name = ?",
        (table_name,),
    )
    if not contents_rows:
        raise errors.MissingMetadata(table_name, "gpkg_contents")
    contents_row = contents_rows[0]

    _require_catalog(conn, "gpkg_tile_matrix_set", table_name)
    set_rows = _rows(
        conn,
        "SELECT * FROM gpkg_tile_matrix_set WHERE table_name = ?",
        (table_name,),
    )
    if not set_rows:
        raise errors.MissingMetadata(table_name, "gpkg_tile_matrix_set")
    set_row = set_rows[0]

    matrices = read_tile_matrices(conn, table_name)
    if not matrices:
        raise errors.MissingMetadata(table_name, "gpkg_tile_matrix")

    contents = db_models.ContentsEntry(
        table_name=table_name,
        data_type=contents_row["data_type"],
        identifier=contents_row["identifier"],
        description=contents_row["description"],
        last_change=contents_row["last_change"],
        bbox=(
            contents_row["min_x"],
            contents_row["min_y"],
            contents_row["max_x"],
            contents_row["max_y"],
        ),
        srs_id=contents_row["srs_id"],
    )
    matrix_set = db_models.TileMatrixSet(
        table_name=table_name,
        srs_id=set_row["srs_id"],
        bbox=(
            set_row["min_x"],
            set_row["min_y"],
            set_row["max_x"],
            set_row["max_y"],
        ),
    )
    return db_models.TileTemplate(
        source_path=source_path,
        table_name=table_name,
        contents=contents,
        matrix_set=matrix_set,
        matrices=tuple(matrices),
        spatial_ref_sys=_read_spatial_ref_sys(conn, matrix_set.srs_id),
    )


def _ensure_spatial_ref_sys(
    conn: sqlite3.Connection,
    row: dict[str, object],
) -> None:
    """Insert a gpkg_spatial_ref_sys row unless its srs_id already exists."""
    if not database.table_exists(conn, "gpkg_spatial_ref_sys"):
        return

    target_columns = {
        info[1]
        for info in conn.execute(
            "PRAGMA main.table_info(gpkg_spatial_ref_sys)"
        )
    }
    columns = [name for name in row if name in target_columns]
    placeholders = ", ".join("?" for _ in columns)
    conn.execute(
        "INSERT OR IGNORE INTO main.gpkg_spatial_ref_sys "
        f"({', '.join(columns)}) VALUES ({placeholders})",
        [row[name] for name in columns],
    )


def write_tile_matrices(
    conn: sqlite3.Connection,
    target_table: str,
    matrices: Iterable[db_models.TileMatrix],
) -> int:
    """Upsert gpkg_tile_matrix rows for a table and return how many."""
    params = [
        (
            target_table,
            matrix.zoom_level,
            matrix.matrix_width,
            matrix.matrix_height,
            matrix.tile_width,
            matrix.tile_height,
            matrix.pixel_x_size,
            matrix.pixel_y_size,
        )
        for matrix in matrices
    ]
    conn.executemany(
        """
        INSERT OR REPLACE INTO main.gpkg_tile_matrix
        (table_name, zoom_level, matrix_width, matrix_height,
         tile_width, tile_height, pixel_x_size, pixel_y_size)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        params,
    )
    return len(params)


def write_template(
    conn: sqlite3.Connection,
    template: db_models.TileTemplate,
    target_table: str,
) -> None:
    """Register a target table in the catalog using a source's geometry.

    Writes the gpkg_contents, gpkg_tile_matrix_set and gpkg_tile_matrix
    rows for ``target_table``, copying extent, reference system and pyramid
    from ``template``. The description names the source table and
    last_change is set to the current time. The spatial reference row is
    copied too when the target does not define that srs_id yet.

    Args:
        conn: Writable connection to the target GeoPackage.
        template: Catalog description read from the source.
        target_table: Name the rows are registered under.
    """
    if template.spatial_ref_sys is not None:
        _ensure_spatial_ref_sys(conn, template.spatial_ref_sys)

    contents = template.contents
    min_x, min_y, max_x, max_y = contents.bbox
    conn.execute(
        f"""
        INSERT OR REPLACE INTO main.gpkg_contents
        (table_name, data_type, identifier, description, last_change,
         min_x, min_y, max_x, max_y, srs_id)
        VALUES (?, ?, ?, ?, {LAST_CHANGE_NOW}, ?, ?, ?, ?, ?)
        """,
        (
            target_table,
            contents.data_type,
            target_table,
            f"Merged tiles from {template.table_name}",
            min_x,
            min_y,
            max_x,
            max_y,
            contents.srs_id,
        ),
    )

    matrix_set = template.matrix_set
    min_x, min_y, max_x, max_y = matrix_set.bbox
    conn.execute(
        """
        INSERT OR REPLACE INTO main.gpkg_tile_matrix_set
        (table_name, srs_id, min_x, min_y, max_x, max_y)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (target_table, matrix_set.srs_id, min_x, min_y, max_x, max_y),
    )

    count = write_tile_matrices(conn, target_table, template.matrices)
    log.debug(
        "Registered %s from %s:%s (%d zoom levels)",
        target_table,
        template.source_path.name,
        template.table_name,
        count,
    )


def copy_tile_metadata(
    source_conn: sqlite3.Connection,
    target_conn: sqlite3.Connection,
    source_table: str,
    target_table: str,
    source_path: pathlib.Path,
) -> db_models.TileTemplate:
    """Copy a source tile table's catalog rows under a new table name.

    Raises:
        MissingMetadata: If the source table's catalog rows are incomplete.
    """
    template = read_template(source_conn, source_table, source_path)
    write_template(target_conn, template, target_table)
    return template


def choose_template_source(
    candidates: Sequence[tuple[pathlib.Path, Sequence[str]]],
) -> tuple[pathlib.Path, str]:
    """Pick the tile table that supplies the merged table's metadata.

    The first candidate that has a tile table wins, and within it the
    first tile table in catalog order.

    Args:
        candidates: ``(path, tile_tables)`` pairs in preference order.

    Returns:
        ``(path, table_name)`` of the chosen template.

    Raises:
        NoTileTablesFound: If no candidate has any tile table.
    """
    for path, tile_tables in candidates:
        if tile_tables:
            return path, tile_tables[0]

    raise errors.NoTileTablesFound()
