"""GeoPackage merge API endpoints.

This module exposes the merge engine over HTTP. Both sources and the
output are paths on the server's filesystem; nothing is uploaded. The
request body mirrors the command-line arguments and the response is the
merge report.

Example:
    Merge two packages, the second taking priority:
        >>> response = client.post(
        ...     "/api/merges",
        ...     json={
        ...         "file_a": "/data/ortho_2019.gpkg",
        ...         "file_b": "/data/ortho_2023.gpkg",
        ...         "table_name": "ortho",
        ...     },
        ... )
        >>> response.json()["total_tiles"]
        1024
"""

from __future__ import annotations

import dataclasses
from typing import Any

import fastapi
import pydantic

from gpkg_merge.core import config, errors
from gpkg_merge.services import assembler

router = fastapi.APIRouter(prefix="/api/merges", tags=["merges"])


class MergeRequest(pydantic.BaseModel):
    """Body of a merge request.

    Attributes:
        file_a: Low-priority source; also the structural base of the output.
        file_b: High-priority source.
        output: Optional output path (derived from the inputs when omitted).
        table_name: Optional merged tile table name.
    """

    file_a: str
    file_b: str
    output: str | None = None
    table_name: str | None = None


def _convert_to_json(result: dict[str, Any]) -> dict[str, Any]:
    """Convert non-JSON values of a serialized report."""
    result["output_path"] = str(result["output_path"])
    result["input_sizes_bytes"] = list(result["input_sizes_bytes"])
    return result


@router.post("")
def create_merge(
    request: MergeRequest,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Merge two GeoPackages on the server and return the merge report.

    Args:
        request: Source paths, optional output path and table name.
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        Dictionary with the output path, per-source tile counts, total
        tiles, zoom levels and file sizes.

    Raises:
        HTTPException: 400 for missing inputs or a bad table name, 422 for
            sources that cannot be merged, 500 for a corrupted output.
    """
    try:
        report = assembler.merge_geopackages(
            request.file_a,
            request.file_b,
            output=request.output,
            table_name=request.table_name,
            settings=settings,
        )
    except errors.MergeError as exc:
        raise fastapi.HTTPException(
            status_code=exc.status_code,
            detail=str(exc),
        ) from exc

    return _convert_to_json(dataclasses.asdict(report))
