"""Tests for catalog templating in gpkg_merge.services.templater.

Covers reading the three catalog records of a source tile table, writing
them under a new name (idempotently), copying a missing spatial reference
row, the MissingMetadata failures, and template source selection.
"""

from __future__ import annotations

import contextlib
import pathlib
import re
import sqlite3
from typing import TYPE_CHECKING

import pytest

from gpkg_merge.core import errors
from gpkg_merge.db import database
from gpkg_merge.services import templater

if TYPE_CHECKING:
    from collections.abc import Callable


def _target(make_gpkg: Callable[..., pathlib.Path]) -> pathlib.Path:
    return make_gpkg("target.gpkg", {})


def test_read_template(make_gpkg: Callable[..., pathlib.Path]) -> None:
    """All three catalog records are read for the table."""
    path = make_gpkg("a.gpkg", {"ortho": {(2, 0, 0): b"x", (3, 1, 1): b"y"}})
    with contextlib.closing(database.open_readonly(path)) as conn:
        template = templater.read_template(conn, "ortho", path)

    assert template.table_name == "ortho"
    assert template.contents.data_type == "tiles"
    assert template.contents.srs_id == 3857
    assert template.matrix_set.srs_id == 3857
    assert template.zoom_levels == [2, 3]
    assert template.matrices[0].matrix_width == 4
    assert template.spatial_ref_sys is not None
    assert template.spatial_ref_sys["srs_id"] == 3857


@pytest.mark.parametrize(
    "catalog",
    ["gpkg_contents", "gpkg_tile_matrix_set", "gpkg_tile_matrix"],
)
def test_read_template_missing_metadata(
    make_gpkg: Callable[..., pathlib.Path],
    catalog: str,
) -> None:
    """Each of the three catalog records is required."""
    path = make_gpkg(
        "a.gpkg",
        {"ortho": {(0, 0, 0): b"x"}},
        skip_catalog=[catalog],
    )
    with contextlib.closing(database.open_readonly(path)) as conn:
        with pytest.raises(errors.MissingMetadata) as excinfo:
            templater.read_template(conn, "ortho", path)

    assert excinfo.value.catalog_table == catalog
    assert excinfo.value.table_name == "ortho"


def test_read_template_without_catalog_tables(tmp_path: pathlib.Path) -> None:
    """A bare SQLite file with a tile table has no usable metadata."""
    path = tmp_path / "bare.gpkg"
    with contextlib.closing(sqlite3.connect(path)) as conn:
        conn.execute("CREATE TABLE t (tile_data BLOB)")
        conn.commit()

    with contextlib.closing(database.open_readonly(path)) as conn:
        with pytest.raises(errors.MissingMetadata):
            templater.read_template(conn, "t", path)


def test_write_template_registers_new_identity(
    make_gpkg: Callable[..., pathlib.Path],
) -> None:
    """Rows are written under the new name with the source's geometry."""
    source = make_gpkg("a.gpkg", {"ortho": {(2, 0, 0): b"x", (3, 0, 0): b"y"}})
    target = _target(make_gpkg)

    with (
        contextlib.closing(database.open_readonly(source)) as src,
        contextlib.closing(database.open_writable(target)) as dst,
    ):
        templater.copy_tile_metadata(src, dst, "ortho", "merged", source)

        contents = dst.execute(
            "SELECT data_type, identifier, description, last_change, srs_id "
            "FROM gpkg_contents WHERE table_name = 'merged'"
        ).fetchone()
        matrix_set = dst.execute(
            "SELECT srs_id FROM gpkg_tile_matrix_set "
            "WHERE table_name = 'merged'"
        ).fetchone()
        zooms = [
            row[0]
            for row in dst.execute(
                "SELECT zoom_level FROM gpkg_tile_matrix "
                "WHERE table_name = 'merged' ORDER BY zoom_level"
            )
        ]

    data_type, identifier, description, last_change, srs_id = contents
    assert data_type == "tiles"
    assert identifier == "merged"
    assert description == "Merged tiles from ortho"
    assert re.match(
        r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", last_change
    )
    assert srs_id == 3857
    assert matrix_set == (3857,)
    assert zooms == [2, 3]


def test_write_template_is_idempotent(
    make_gpkg: Callable[..., pathlib.Path],
) -> None:
    """Templating twice leaves exactly one row per catalog table."""
    source = make_gpkg("a.gpkg", {"ortho": {(0, 0, 0): b"x"}})
    target = _target(make_gpkg)

    with (
        contextlib.closing(database.open_readonly(source)) as src,
        contextlib.closing(database.open_writable(target)) as dst,
    ):
        template = templater.read_template(src, "ortho", source)
        templater.write_template(dst, template, "merged")
        templater.write_template(dst, template, "merged")

        counts = [
            dst.execute(
                f"SELECT COUNT(*) FROM {catalog} WHERE table_name = 'merged'"
            ).fetchone()[0]
            for catalog in (
                "gpkg_contents",
                "gpkg_tile_matrix_set",
                "gpkg_tile_matrix",
            )
        ]

    assert counts == [1, 1, 1]


def test_write_template_copies_missing_spatial_ref(
    make_gpkg: Callable[..., pathlib.Path],
) -> None:
    """The template's srs row is added when the target lacks it."""
    source = make_gpkg("b.gpkg", {"ortho": {(0, 0, 0): b"x"}})
    target = make_gpkg("target.gpkg", {}, spatial_refs=False)

    with (
        contextlib.closing(database.open_readonly(source)) as src,
        contextlib.closing(database.open_writable(target)) as dst,
    ):
        templater.copy_tile_metadata(src, dst, "ortho", "merged", source)
        rows = dst.execute(
            "SELECT srs_id, organization FROM gpkg_spatial_ref_sys"
        ).fetchall()

    assert rows == [(3857, "EPSG")]


def test_write_template_keeps_existing_spatial_ref(
    make_gpkg: Callable[..., pathlib.Path],
) -> None:
    """An srs row already present in the target is not overwritten."""
    source = make_gpkg("b.gpkg", {"ortho": {(0, 0, 0): b"x"}})
    target = make_gpkg(
        "target.gpkg",
        {},
        extra_sql=[
            "UPDATE gpkg_spatial_ref_sys SET description = 'local' "
            "WHERE srs_id = 3857"
        ],
    )

    with (
        contextlib.closing(database.open_readonly(source)) as src,
        contextlib.closing(database.open_writable(target)) as dst,
    ):
        templater.copy_tile_metadata(src, dst, "ortho", "merged", source)
        description = dst.execute(
            "SELECT description FROM gpkg_spatial_ref_sys WHERE srs_id = 3857"
        ).fetchone()[0]

    assert description == "local"


def test_choose_template_source_prefers_first() -> None:
    """The first source with a tile table supplies the template."""
    a = pathlib.Path("a.gpkg")
    b = pathlib.Path("b.gpkg")
    assert templater.choose_template_source(
        [(a, ["a1", "a2"]), (b, ["b1"])]
    ) == (a, "a1")
    assert templater.choose_template_source([(a, []), (b, ["b1"])]) == (
        b,
        "b1",
    )


def test_choose_template_source_none() -> None:
    """No tile table anywhere is a fatal precondition failure."""
    with pytest.raises(errors.NoTileTablesFound):
        templater.choose_template_source(
            [(pathlib.Path("a.gpkg"), []), (pathlib.Path("b.gpkg"), [])]
        )
