"""Error taxonomy for GeoPackage merges.

Every failure raised by the merge engine derives from MergeError and carries
an HTTP-style ``status_code``. Callers branch on it: 400 marks a problem with
the request itself (missing files, bad table name), 422 marks input data the
engine cannot work with, and 500 marks a broken output.

Example:
    Handle merge failures:
        >>> from gpkg_merge.core import errors
        >>> try:
        ...     assembler.merge_geopackages(a, b)
        ... except errors.MergeError as e:
        ...     print(f"Failed: {e}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterable

BAD_REQUEST = 400
UNPROCESSABLE_ENTITY = 422
INTERNAL_SERVER_ERROR = 500


class MergeError(RuntimeError):
    """Base class for every error raised while merging GeoPackages."""

    status_code = INTERNAL_SERVER_ERROR


class InputNotFound(MergeError):
    """One or both source GeoPackages do not exist."""

    status_code = BAD_REQUEST

    def __init__(self, missing: Iterable[str | pathlib.Path]) -> None:
        self.missing = [str(path) for path in missing]
        super().__init__(f"Missing file(s): {', '.join(self.missing)}")


class InvalidTableName(MergeError):
    """The requested output table name is not a safe SQLite identifier."""

    status_code = BAD_REQUEST

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid table name: {name!r}")


class NotAGeoPackage(MergeError):
    """A source path exists but cannot be read as a SQLite database."""

    status_code = UNPROCESSABLE_ENTITY


class NoTileTablesFound(MergeError):
    """Neither source holds a table with a tile payload column."""

    status_code = UNPROCESSABLE_ENTITY

    def __init__(self) -> None:
        super().__init__("No tile tables found for metadata template")


class MissingMetadata(MergeError):
    """The template tile table lacks one of its required catalog rows."""

    status_code = UNPROCESSABLE_ENTITY

    def __init__(self, table_name: str, catalog_table: str) -> None:
        self.table_name = table_name
        self.catalog_table = catalog_table
        super().__init__(
            f"No {catalog_table} entry found for table: {table_name}"
        )


class MergeCorrupted(MergeError):
    """The post-merge integrity check did not report "ok".

    The output file is left on disk for inspection.
    """

    status_code = INTERNAL_SERVER_ERROR

    def __init__(self, output_path: pathlib.Path, messages: list[str]) -> None:
        self.output_path = output_path
        self.messages = messages
        super().__init__(
            f"Database integrity check failed for {output_path}: "
            + "; ".join(messages)
        )
