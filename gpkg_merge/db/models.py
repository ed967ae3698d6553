"""Data models for GeoPackage catalog rows and merge results.

This module defines the plain data structures passed between the merge
services: the three catalog records that describe a tile pyramid
(gpkg_contents, gpkg_tile_matrix_set and gpkg_tile_matrix rows), the
template bundle that groups them, and the MergeReport returned once a merge
has finished.

Example:
    Describe a single-level pyramid:
        >>> from gpkg_merge.db.models import TileMatrix
        >>> level = TileMatrix(
        ...     zoom_level=0,
        ...     matrix_width=1,
        ...     matrix_height=1,
        ...     tile_width=256,
        ...     tile_height=256,
        ...     pixel_x_size=156543.03392804097,
        ...     pixel_y_size=156543.03392804097,
        ... )
"""

from __future__ import annotations

import dataclasses
import pathlib
from typing import Literal

BBox = tuple[float | None, float | None, float | None, float | None]
ConflictPolicy = Literal["replace", "ignore"]


@dataclasses.dataclass(frozen=True)
class ContentsEntry:
    """A gpkg_contents row: table identity, extent and reference system."""

    table_name: str
    data_type: str
    identifier: str | None
    description: str | None
    last_change: str | None
    bbox: BBox
    srs_id: int | None


@dataclasses.dataclass(frozen=True)
class TileMatrixSet:
    """A gpkg_tile_matrix_set row: the zoom-independent pyramid extent."""

    table_name: str
    srs_id: int
    bbox: BBox


@dataclasses.dataclass(frozen=True)
class TileMatrix:
    """One gpkg_tile_matrix row: pyramid geometry at a single zoom level."""

    zoom_level: int
    matrix_width: int
    matrix_height: int
    tile_width: int
    tile_height: int
    pixel_x_size: float
    pixel_y_size: float


@dataclasses.dataclass(frozen=True)
class TileTemplate:
    """Complete catalog description of one source tile table.

    Attributes:
        source_path: GeoPackage the description was read from.
        table_name: Tile table the description belongs to.
        contents: Its gpkg_contents row.
        matrix_set: Its gpkg_tile_matrix_set row.
        matrices: Its gpkg_tile_matrix rows, ordered by zoom level.
        spatial_ref_sys: The gpkg_spatial_ref_sys row its srs_id points to,
            when the source has one.
    """

    source_path: pathlib.Path
    table_name: str
    contents: ContentsEntry
    matrix_set: TileMatrixSet
    matrices: tuple[TileMatrix, ...]
    spatial_ref_sys: dict[str, object] | None = None

    @property
    def zoom_levels(self) -> list[int]:
        return [matrix.zoom_level for matrix in self.matrices]


@dataclasses.dataclass
class MergeReport:
    """Summary of a finished merge.

    Attributes:
        output_path: File actually written (may carry a timestamp suffix).
        table_name: Name of the merged tile table.
        primary_name: Base name of the high-priority source (file B).
        secondary_name: Base name of the low-priority source (file A).
        tiles_from_primary: Rows written while merging file B.
        tiles_from_secondary: Rows added while merging file A.
        total_tiles: Row count of the merged table.
        zoom_levels: Sorted distinct zoom levels in the merged table.
        file_size_bytes: Size of the output file.
        input_sizes_bytes: Sizes of file A and file B, in that order.
    """

    output_path: pathlib.Path
    table_name: str
    primary_name: str
    secondary_name: str
    tiles_from_primary: int
    tiles_from_secondary: int
    total_tiles: int
    zoom_levels: list[int]
    file_size_bytes: int
    input_sizes_bytes: tuple[int, int] = (0, 0)
