"""SQLite access helpers and data models for GeoPackages.

``database`` holds the connection, attach, transaction and DDL helpers;
``models`` holds the catalog row and merge report dataclasses.

Example:
    >>> from gpkg_merge.db import database
    >>> conn = database.open_readonly(path)
"""
