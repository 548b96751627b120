"""
Service layer for workbook comparison.

Contains the diff orchestration and the snapshot store, decoupled from
transport layers (HTTP/MCP).
"""

from src.services.diff_service import WorkbookDiffService, explain_cell
from src.services.snapshot_store import (
    SnapshotStore,
    build_archive_filename,
    sanitize_base_name,
)

__all__ = [
    "WorkbookDiffService",
    "explain_cell",
    "SnapshotStore",
    "build_archive_filename",
    "sanitize_base_name",
]
