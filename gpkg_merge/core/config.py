"""Merge settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables (prefixed with ``GPKG_MERGE_``) or
a .env file. Settings include the default merged table name, the directory
used for derived output filenames, the GeoPackage format pragmas written to
every output, the bulk-copy strategy and logging options.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from gpkg_merge.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.default_table_name)
        merged_tiles

    Environment variables can override defaults:
        >>> GPKG_MERGE_DEFAULT_TABLE_NAME=unified_tiles
        >>> GPKG_MERGE_COPY_STRATEGY=stream
        >>> GPKG_MERGE_BATCH_SIZE=2000
"""

import functools
import pathlib
from typing import Literal

import pydantic
import pydantic_settings

CopyStrategy = Literal["attach", "stream"]

# "GPKG" read as a big-endian 32-bit integer.
GPKG_APPLICATION_ID = 0x47504B47
# GeoPackage 1.3.0.
GPKG_USER_VERSION = 10300


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via ``GPKG_MERGE_*`` environment
    variables or a .env file. The output directory, when set, is created
    on initialization via ensure_directories().

    Attributes:
        default_table_name: Name of the merged tile table when none is given.
        output_dir: Directory for derived output filenames (cwd when None).
        application_id: Value written to ``PRAGMA application_id``.
        user_version: Value written to ``PRAGMA user_version``.
        copy_strategy: "attach" copies with ATTACH + INSERT ... SELECT,
            "stream" pushes rows through Python in batches.
        batch_size: Rows per batch for the "stream" strategy.
        log_level: Root logging level name.
        log_file: Optional rotating log file.
        allow_origins: List of allowed CORS origins for the HTTP surface.
    """

    default_table_name: str = "merged_tiles"
    output_dir: pathlib.Path | None = None
    application_id: int = GPKG_APPLICATION_ID
    user_version: int = GPKG_USER_VERSION
    copy_strategy: CopyStrategy = "attach"
    batch_size: int = pydantic.Field(default=500, gt=0)
    log_level: str = "INFO"
    log_file: pathlib.Path | None = None
    allow_origins: list[str] = ["*"]

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix="GPKG_MERGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def ensure_directories(self) -> None:
        """Create the output directory if one is configured."""
        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance with directories initialized.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the process. Directories are created on first call.

    Returns:
        Settings instance with all configuration values populated and
        the output directory ensured to exist.
    """
    settings = Settings()
    settings.ensure_directories()
    return settings
