"""SQLite connection helpers for reading and writing GeoPackages.

Sources are always opened read-only through a ``file:...?mode=ro`` URI and
the output is opened in autocommit mode so the assembler controls
transactions explicitly with transaction(). ATTACH cannot run inside an
open transaction, so attached() must be entered before transaction().

Example:
    Copy rows from an attached source inside one transaction:
        >>> from gpkg_merge.db import database
        >>> with contextlib.closing(database.open_writable(out)) as conn:
        ...     with database.attached(conn, source, "source_b"):
        ...         with database.transaction(conn):
        ...             conn.execute("INSERT INTO ...")
"""

from __future__ import annotations

import contextlib
import pathlib
import re
import sqlite3
from typing import TYPE_CHECKING

from gpkg_merge.core import errors

if TYPE_CHECKING:
    from collections.abc import Iterator

# Tables with these prefixes belong to SQLite or the GeoPackage catalog and
# are never treated as user data.
SYSTEM_TABLE_PREFIXES = ("sqlite_", "gpkg_", "rtree_", "idx_")

# Catalog tables holding rows that name a user table, with the column that
# names it.
CATALOG_TABLE_REFERENCES = (
    ("gpkg_tile_matrix", "table_name"),
    ("gpkg_tile_matrix_set", "table_name"),
    ("gpkg_geometry_columns", "table_name"),
    ("gpkg_data_columns", "table_name"),
    ("gpkg_extensions", "table_name"),
    ("gpkg_metadata_reference", "table_name"),
    ("gpkg_2d_gridded_coverage_ancillary", "tile_matrix_set_name"),
    ("gpkg_2d_gridded_tile_ancillary", "tpudt_name"),
    ("gpkg_contents", "table_name"),
)

# Catalog tables a GeoPackage needs before a tile table can be registered.
REQUIRED_CATALOG_TABLES = (
    "gpkg_contents",
    "gpkg_tile_matrix_set",
    "gpkg_tile_matrix",
)

TILE_TABLE_DDL = """
    CREATE TABLE {table} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        zoom_level INTEGER NOT NULL,
        tile_column INTEGER NOT NULL,
        tile_row INTEGER NOT NULL,
        tile_data BLOB NOT NULL,
        UNIQUE (zoom_level, tile_column, tile_row)
    )
"""

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier, doubling any embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def validate_table_name(name: str) -> str:
    """Validate an output table name.

    Only letters, digits and underscores are allowed, the name must not
    start with a digit, and it must not use a reserved system prefix.

    Args:
        name: Table name to validate.

    Returns:
        The validated name.

    Raises:
        InvalidTableName: If the name is empty, malformed or reserved.
    """
    if not _TABLE_NAME_RE.match(name or ""):
        raise errors.InvalidTableName(name)
    if name.lower().startswith(SYSTEM_TABLE_PREFIXES):
        raise errors.InvalidTableName(name)

    return name


def readonly_uri(path: pathlib.Path | str) -> str:
    """Build a read-only SQLite URI for a database file."""
    return pathlib.Path(path).resolve().as_uri() + "?mode=ro"


def open_readonly(path: pathlib.Path | str) -> sqlite3.Connection:
    """Open a GeoPackage read-only and make sure it is a SQLite database.

    Args:
        path: Path to the GeoPackage file.

    Returns:
        A read-only sqlite3 connection.

    Raises:
        NotAGeoPackage: If the file cannot be opened or is not a database.
    """
    try:
        conn = sqlite3.connect(readonly_uri(path), uri=True)
    except sqlite3.Error as exc:
        raise errors.NotAGeoPackage(f"Cannot open {path}: {exc}") from exc

    try:
        conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
    except sqlite3.DatabaseError as exc:
        conn.close()
        raise errors.NotAGeoPackage(
            f"{path} is not a GeoPackage: {exc}"
        ) from exc

    return conn


def open_writable(path: pathlib.Path | str) -> sqlite3.Connection:
    """Open the output GeoPackage in autocommit mode.

    URI filenames are enabled so read-only sources can be attached.
    """
    return sqlite3.connect(str(path), isolation_level=None, uri=True)


@contextlib.contextmanager
def attached(
    conn: sqlite3.Connection,
    path: pathlib.Path | str,
    alias: str,
) -> Iterator[str]:
    """Attach a database read-only for the duration of the block.

    Args:
        conn: Connection to attach to (must not be inside a transaction).
        path: Database file to attach.
        alias: Schema name to attach it as.

    Yields:
        The schema alias.
    """
    conn.execute(
        f"ATTACH DATABASE ? AS {quote_identifier(alias)}",
        (readonly_uri(path),),
    )
    try:
        yield alias
    finally:
        conn.execute(f"DETACH DATABASE {quote_identifier(alias)}")


@contextlib.contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block in one explicit transaction, rolling back on error."""
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def table_exists(
    conn: sqlite3.Connection,
    name: str,
    schema: str = "main",
) -> bool:
    row = conn.execute(
        f"SELECT 1 FROM {quote_identifier(schema)}.sqlite_master "
        "WHERE type = 'table' AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def create_tile_table(conn: sqlite3.Connection, name: str) -> None:
    """Create an empty tile pyramid user data table."""
    conn.execute(TILE_TABLE_DDL.format(table=quote_identifier(name)))


def drop_table(conn: sqlite3.Connection, name: str) -> None:
    """Drop a user table and delete the catalog rows that reference it.

    Catalog tables missing from the database are skipped.
    """
    conn.execute(f"DROP TABLE IF EXISTS main.{quote_identifier(name)}")
    for catalog, column in CATALOG_TABLE_REFERENCES:
        if table_exists(conn, catalog):
            conn.execute(
                f"DELETE FROM main.{catalog} WHERE {column} = ?",
                (name,),
            )


def missing_catalog_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the required GeoPackage catalog tables absent from main."""
    return [
        catalog
        for catalog in REQUIRED_CATALOG_TABLES
        if not table_exists(conn, catalog)
    ]


def set_format_pragmas(
    conn: sqlite3.Connection,
    application_id: int,
    user_version: int,
) -> None:
    """Write the GeoPackage application_id and user_version header values."""
    conn.execute(f"PRAGMA application_id = {int(application_id)}")
    conn.execute(f"PRAGMA user_version = {int(user_version)}")


def integrity_check(conn: sqlite3.Connection) -> list[str]:
    """Run ``PRAGMA integrity_check`` and return its messages.

    A healthy database yields ``["ok"]``.
    """
    return [str(row[0]) for row in conn.execute("PRAGMA integrity_check")]
