"""Schema inspection for arbitrary GeoPackage databases.

Tile tables are recognised by capability, not by name: any user data table
that has a column named exactly ``tile_data`` is a tile table. User data
tables are every ordinary table whose name does not start with a reserved
SQLite or GeoPackage prefix.

Example:
    List the tile tables of a GeoPackage:
        >>> from gpkg_merge.services import inspector
        >>> inspector.find_tile_tables_in_file(Path("orthophoto.gpkg"))
        ['orthophoto_2019']
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

from gpkg_merge.db import database

if TYPE_CHECKING:
    import pathlib
    import sqlite3

TILE_DATA_COLUMN = "tile_data"


def get_data_tables(
    conn: sqlite3.Connection,
    schema: str = "main",
) -> list[str]:
    """Return the user data tables of a database, in catalog order.

    Args:
        conn: Open connection.
        schema: Schema to inspect ("main" or an attached alias).

    Returns:
        Names of every table not matching a reserved system prefix.
    """
    rows = conn.execute(
        f"SELECT name FROM {database.quote_identifier(schema)}.sqlite_master "
        "WHERE type = 'table'"
    ).fetchall()
    return [
        name
        for (name,) in rows
        if not name.lower().startswith(database.SYSTEM_TABLE_PREFIXES)
    ]


def get_table_columns(
    conn: sqlite3.Connection,
    table_name: str,
    schema: str = "main",
) -> list[str]:
    """Return the column names of a table (empty when it has none)."""
    rows = conn.execute(
        f"PRAGMA {database.quote_identifier(schema)}.table_info("
        f"{database.quote_identifier(table_name)})"
    ).fetchall()
    return [row[1] for row in rows]


def is_tile_table(
    conn: sqlite3.Connection,
    table_name: str,
    schema: str = "main",
) -> bool:
    """Tell whether a table has a column named exactly ``tile_data``."""
    return TILE_DATA_COLUMN in get_table_columns(conn, table_name, schema)


def find_tile_tables(
    conn: sqlite3.Connection,
    schema: str = "main",
) -> list[str]:
    """Return every tile table of a database, in catalog order."""
    return [
        name
        for name in get_data_tables(conn, schema)
        if is_tile_table(conn, name, schema)
    ]


def find_tile_tables_in_file(path: pathlib.Path) -> list[str]:
    """Open a GeoPackage read-only and return its tile tables.

    Raises:
        NotAGeoPackage: If the file is not a SQLite database.
    """
    with contextlib.closing(database.open_readonly(path)) as conn:
        return find_tile_tables(conn)
