"""
Configuration management for the workbook diff service.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
WBDIFF_ prefix, or via a .env file in the project root.

Environment Variables:
    WBDIFF_MAX_CELLS_PER_SHEET: Per-sheet cell cap for imported snapshots (default: 500000)
    WBDIFF_OVERSIZE_POLICY: "truncate" rows or "reject" oversized sheets (default: truncate)
    WBDIFF_INCLUDE_HIDDEN_SHEETS: Import hidden sheets too (default: false)
    WBDIFF_DEFAULT_ENGINE: "openpyxl" (formulas) or "calamine" (values only) (default: openpyxl)
    WBDIFF_SNAPSHOT_DIR: Directory for stored snapshots (default: .snapshots)
    WBDIFF_MAX_SNAPSHOTS_PER_WORKBOOK: Retention cap per workbook id (default: 50)
    WBDIFF_LOG_LEVEL: Logging level (default: INFO)
    WBDIFF_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    WBDIFF_SERVER_HOST: Server bind host (default: 0.0.0.0)
    WBDIFF_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Example .env file:
        WBDIFF_MAX_CELLS_PER_SHEET=200000
        WBDIFF_OVERSIZE_POLICY=reject
        WBDIFF_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="WBDIFF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Snapshot Import Settings
    # =========================================================================

    max_cells_per_sheet: int = 500_000
    """Largest populated region (rows x columns) accepted per sheet."""

    oversize_policy: str = "truncate"
    """What to do with a sheet over the cap: "truncate" rows or "reject"."""

    include_hidden_sheets: bool = False
    """Whether hidden sheets are imported and compared."""

    default_engine: str = "openpyxl"
    """Import engine used when a request does not name one."""

    # =========================================================================
    # Snapshot Store Settings
    # =========================================================================

    snapshot_dir: str = ".snapshots"
    """Directory holding stored snapshot JSON files."""

    max_snapshots_per_workbook: int = 50
    """Snapshots kept per workbook id; older ones are pruned."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    # =========================================================================
    # Server Settings
    # =========================================================================

    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins, or * for all."""

    server_host: str = "0.0.0.0"
    """Host address for the server to bind to."""

    server_port: int = 8000
    """Port for the server to listen on."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        return upper_v

    @field_validator("oversize_policy")
    @classmethod
    def validate_oversize_policy(cls, v: str) -> str:
        """Validate the oversize policy name."""
        lower_v = v.strip().lower()
        if lower_v not in {"truncate", "reject"}:
            raise ValueError(f"oversize_policy must be 'truncate' or 'reject', got {v}")
        return lower_v

    @field_validator("default_engine")
    @classmethod
    def validate_default_engine(cls, v: str) -> str:
        """Validate the import engine name."""
        lower_v = v.strip().lower()
        if lower_v not in {"openpyxl", "calamine"}:
            raise ValueError(f"default_engine must be 'openpyxl' or 'calamine', got {v}")
        return lower_v

    @field_validator("max_cells_per_sheet", "max_snapshots_per_workbook")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Caps must be at least 1."""
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"server_port must be between 1 and 65535, got {v}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> None:
    """Configure logging for the application.

    Handlers write to stderr, which keeps stdout free for the MCP stdio
    transport.

    Args:
        level: Log level (int or string like "INFO").
        format_string: Custom format string (uses default if None).
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(handler)
