"""GeoPackage tile merge engine.

This package merges the raster tile pyramids of two OGC GeoPackages into
one new GeoPackage. The output is cloned from the first file, stripped of
its user data tables, and given a single tile table whose catalog rows are
copied from a source tile table. Tiles of the second file take priority;
the first file only fills in tiles the second lacks.

- Tile tables are discovered by their ``tile_data`` column, not by name
- Catalog rows (contents, tile matrix set, tile matrices) are templated
- The rebuild runs in one transaction and ends with an integrity check
- Usable from the ``gpkg-merge`` command or the FastAPI app in ``main``
"""
