"""Shared fixtures that build small GeoPackages on disk.

The GeoPackages carry the catalog tables a tile server needs
(gpkg_spatial_ref_sys, gpkg_contents, gpkg_tile_matrix_set and
gpkg_tile_matrix) plus any number of tile tables filled with the given
tiles. Pyramid rows follow the Web Mercator quadtree: 2**z tiles per side
and 256-pixel tiles.
"""

from __future__ import annotations

import contextlib
import sqlite3
from typing import TYPE_CHECKING

import pytest

from gpkg_merge.core import config

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable, Iterable, Mapping

    TileKey = tuple[int, int, int]
    Tiles = Mapping[TileKey, bytes]

WEB_MERCATOR_EXTENT = 20037508.342789244
ZOOM0_PIXEL_SIZE = 156543.03392804097

CATALOG_DDL = """
CREATE TABLE gpkg_spatial_ref_sys (
    srs_name TEXT NOT NULL,
    srs_id INTEGER NOT NULL PRIMARY KEY,
    organization TEXT NOT NULL,
    organization_coordsys_id INTEGER NOT NULL,
    definition TEXT NOT NULL,
    description TEXT
);
CREATE TABLE gpkg_contents (
    table_name TEXT NOT NULL PRIMARY KEY,
    data_type TEXT NOT NULL,
    identifier TEXT UNIQUE,
    description TEXT DEFAULT '',
    last_change DATETIME NOT NULL
        DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    min_x DOUBLE,
    min_y DOUBLE,
    max_x DOUBLE,
    max_y DOUBLE,
    srs_id INTEGER
);
CREATE TABLE gpkg_tile_matrix_set (
    table_name TEXT NOT NULL PRIMARY KEY,
    srs_id INTEGER NOT NULL,
    min_x DOUBLE NOT NULL,
    min_y DOUBLE NOT NULL,
    max_x DOUBLE NOT NULL,
    max_y DOUBLE NOT NULL
);
CREATE TABLE gpkg_tile_matrix (
    table_name TEXT NOT NULL,
    zoom_level INTEGER NOT NULL,
    matrix_width INTEGER NOT NULL,
    matrix_height INTEGER NOT NULL,
    tile_width INTEGER NOT NULL,
    tile_height INTEGER NOT NULL,
    pixel_x_size DOUBLE NOT NULL,
    pixel_y_size DOUBLE NOT NULL,
    CONSTRAINT pk_ttm PRIMARY KEY (table_name, zoom_level)
);
"""

SPATIAL_REF_ROWS = [
    ("Undefined cartesian SRS", -1, "NONE", -1, "undefined", None),
    ("Undefined geographic SRS", 0, "NONE", 0, "undefined", None),
    ("WGS 84 geodetic", 4326, "EPSG", 4326, "GEOGCS[\"WGS 84\"]", None),
    (
        "WGS 84 / Pseudo-Mercator",
        3857,
        "EPSG",
        3857,
        "PROJCS[\"WGS 84 / Pseudo-Mercator\"]",
        None,
    ),
]

TILE_TABLE_DDL = """
CREATE TABLE "{name}" (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    zoom_level INTEGER NOT NULL,
    tile_column INTEGER NOT NULL,
    tile_row INTEGER NOT NULL,
    tile_data BLOB NOT NULL,
    UNIQUE (zoom_level, tile_column, tile_row)
)
"""


def build_geopackage(
    path: pathlib.Path,
    tables: Mapping[str, Tiles],
    *,
    metadata: bool = True,
    matrix_zooms: Mapping[str, Iterable[int]] | None = None,
    skip_catalog: Iterable[str] = (),
    extra_sql: Iterable[str] = (),
    srs_id: int = 3857,
    spatial_refs: bool = True,
) -> pathlib.Path:
    """Create a GeoPackage with the given tile tables.

    Args:
        path: File to create.
        tables: Tile table name -> {(zoom, column, row): payload}.
        metadata: Register every tile table in the catalog.
        matrix_zooms: Per-table zoom levels for gpkg_tile_matrix rows
            (defaults to the zoom levels of the table's tiles, or [0]).
        skip_catalog: Catalog tables to leave without rows for the tables.
        extra_sql: Statements run after the tables are built.
        srs_id: Spatial reference of every registered table.
        spatial_refs: Populate gpkg_spatial_ref_sys.
    """
    skipped = set(skip_catalog)
    with contextlib.closing(sqlite3.connect(path)) as conn:
        conn.executescript(CATALOG_DDL)
        if spatial_refs:
            conn.executemany(
                "INSERT INTO gpkg_spatial_ref_sys VALUES (?, ?, ?, ?, ?, ?)",
                SPATIAL_REF_ROWS,
            )

        for name, tiles in tables.items():
            conn.execute(TILE_TABLE_DDL.format(name=name))
            conn.executemany(
                f'INSERT INTO "{name}" '
                "(zoom_level, tile_column, tile_row, tile_data) "
                "VALUES (?, ?, ?, ?)",
                [(z, x, y, data) for (z, x, y), data in tiles.items()],
            )
            if not metadata:
                continue

            extent = (
                -WEB_MERCATOR_EXTENT,
                -WEB_MERCATOR_EXTENT,
                WEB_MERCATOR_EXTENT,
                WEB_MERCATOR_EXTENT,
            )
            if "gpkg_contents" not in skipped:
                conn.execute(
                    "INSERT INTO gpkg_contents (table_name, data_type, "
                    "identifier, description, min_x, min_y, max_x, max_y, "
                    "srs_id) VALUES (?, 'tiles', ?, ?, ?, ?, ?, ?, ?)",
                    (name, name, f"{name} tiles", *extent, srs_id),
                )
            if "gpkg_tile_matrix_set" not in skipped:
                conn.execute(
                    "INSERT INTO gpkg_tile_matrix_set "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (name, srs_id, *extent),
                )
            if "gpkg_tile_matrix" not in skipped:
                zooms = (matrix_zooms or {}).get(name)
                if zooms is None:
                    zooms = sorted({z for (z, _, _) in tiles}) or [0]
                conn.executemany(
                    "INSERT INTO gpkg_tile_matrix "
                    "VALUES (?, ?, ?, ?, 256, 256, ?, ?)",
                    [
                        (
                            name,
                            z,
                            2**z,
                            2**z,
                            ZOOM0_PIXEL_SIZE / 2**z,
                            ZOOM0_PIXEL_SIZE / 2**z,
                        )
                        for z in zooms
                    ],
                )

        for statement in extra_sql:
            conn.execute(statement)
        conn.execute("PRAGMA application_id = 1196444487")
        conn.execute("PRAGMA user_version = 10200")
        conn.commit()

    return path


def read_tiles(path: pathlib.Path, table: str) -> dict[TileKey, bytes]:
    """Return every tile of a table keyed by (zoom, column, row)."""
    with contextlib.closing(sqlite3.connect(path)) as conn:
        rows = conn.execute(
            "SELECT zoom_level, tile_column, tile_row, tile_data "
            f'FROM "{table}"'
        ).fetchall()
    return {(z, x, y): bytes(data) for z, x, y, data in rows}


@pytest.fixture
def make_gpkg(
    tmp_path: pathlib.Path,
) -> Callable[..., pathlib.Path]:
    """Factory fixture: ``make_gpkg("a.gpkg", {"tiles": {...}}, ...)``."""

    def _make(
        name: str,
        tables: Mapping[str, Tiles] | None = None,
        **kwargs: object,
    ) -> pathlib.Path:
        return build_geopackage(
            tmp_path / name,
            tables or {},
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture
def tiles_of() -> Callable[[pathlib.Path, str], dict[TileKey, bytes]]:
    return read_tiles


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> config.Settings:
    """Settings that write derived outputs under the test's tmp_path."""
    return config.Settings(output_dir=tmp_path / "out")
