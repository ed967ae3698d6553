"""Bulk tile copying between GeoPackages with conflict resolution.

Every tile table of a source is copied into one destination table. Keys
are ``(zoom_level, tile_column, tile_row)`` and collisions are settled by
a conflict policy:

- ``"replace"``: the incoming row overwrites the existing one.
- ``"ignore"``: the incoming row is dropped and the existing one kept.

Two strategies move the rows. When the source is attached to the target
connection under a schema alias, a single ``INSERT OR <policy> ... SELECT``
per table does the work inside SQLite. Without an alias, rows are streamed
through Python from a separate read-only connection in batches, which
works inside an already open transaction.

Example:
    Copy a source with priority over existing rows:
        >>> from gpkg_merge.services import merger
        >>> with database.attached(conn, source, "source_b") as alias:
        ...     merger.merge_into(conn, "merged_tiles", source, "replace",
        ...                       schema=alias)
        3
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from gpkg_merge.db import database
from gpkg_merge.services import inspector

if TYPE_CHECKING:
    import pathlib
    import sqlite3
    from collections.abc import Sequence

    from gpkg_merge.db import models as db_models

log = logging.getLogger(__name__)

TILE_COLUMNS = "zoom_level, tile_column, tile_row, tile_data"

_INSERT_COMMANDS: dict[str, str] = {
    "replace": "INSERT OR REPLACE",
    "ignore": "INSERT OR IGNORE",
}


def insert_command(policy: db_models.ConflictPolicy) -> str:
    """Map a conflict policy to its SQLite INSERT form.

    Raises:
        ValueError: If the policy is unknown.
    """
    try:
        return _INSERT_COMMANDS[policy]
    except KeyError:
        raise ValueError(f"Unknown conflict policy: {policy!r}") from None


def copy_attached_tiles(
    conn: sqlite3.Connection,
    target_table: str,
    schema: str,
    tile_tables: Sequence[str],
    policy: db_models.ConflictPolicy,
) -> int:
    """Copy tiles from tables of an attached schema with INSERT ... SELECT.

    Returns:
        Number of rows actually written to ``target_table``.
    """
    command = insert_command(policy)
    target = database.quote_identifier(target_table)
    source_schema = database.quote_identifier(schema)

    total = 0
    for table in tile_tables:
        cur = conn.execute(
            f"{command} INTO {target} ({TILE_COLUMNS}) "
            f"SELECT {TILE_COLUMNS} "
            f"FROM {source_schema}.{database.quote_identifier(table)}"
        )
        log.debug("%s.%s: %d rows written", schema, table, cur.rowcount)
        total += cur.rowcount

    return total


def stream_tiles(
    conn: sqlite3.Connection,
    target_table: str,
    source_conn: sqlite3.Connection,
    tile_tables: Sequence[str],
    policy: db_models.ConflictPolicy,
    batch_size: int = 500,
) -> int:
    """Copy tiles by streaming rows through Python in batches.

    Args:
        conn: Writable connection holding ``target_table``.
        target_table: Destination tile table.
        source_conn: Read-only connection to the source.
        tile_tables: Source tables to copy.
        policy: Conflict policy for colliding keys.
        batch_size: Rows fetched and inserted per round trip.

    Returns:
        Number of rows actually written to ``target_table``.
    """
    command = insert_command(policy)
    insert_sql = (
        f"{command} INTO {database.quote_identifier(target_table)} "
        f"({TILE_COLUMNS}) VALUES (?, ?, ?, ?)"
    )

    before = conn.total_changes
    for table in tile_tables:
        cur = source_conn.execute(
            f"SELECT {TILE_COLUMNS} FROM {database.quote_identifier(table)}"
        )
        try:
            while batch := cur.fetchmany(batch_size):
                conn.executemany(insert_sql, batch)
        finally:
            cur.close()

    return conn.total_changes - before


def merge_into(
    conn: sqlite3.Connection,
    target_table: str,
    source_path: pathlib.Path,
    policy: db_models.ConflictPolicy,
    *,
    schema: str | None = None,
    batch_size: int = 500,
) -> int:
    """Merge every tile table of a source GeoPackage into one target table.

    When ``schema`` names the alias the source is attached under, its tile
    tables are found through that schema and copied with INSERT ... SELECT.
    Otherwise the source is opened read-only and its rows are streamed.

    Args:
        conn: Writable connection holding ``target_table``.
        target_table: Destination tile table.
        source_path: Source GeoPackage.
        policy: ``"replace"`` or ``"ignore"``.
        schema: Alias the source is attached under, if any.
        batch_size: Batch size for streaming.

    Returns:
        Number of rows actually written after conflict resolution.
    """
    if schema is not None:
        tile_tables = inspector.find_tile_tables(conn, schema)
        count = copy_attached_tiles(
            conn, target_table, schema, tile_tables, policy
        )
    else:
        with contextlib.closing(database.open_readonly(source_path)) as source:
            tile_tables = inspector.find_tile_tables(source)
            count = stream_tiles(
                conn, target_table, source, tile_tables, policy, batch_size
            )

    log.info(
        "Merged %d tiles from %s (%s, policy=%s)",
        count,
        source_path.name,
        ", ".join(tile_tables) or "no tile tables",
        policy,
    )
    return count
