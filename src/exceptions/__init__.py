"""
Custom exceptions for the workbook diff service.

Provides type-safe, descriptive exceptions for error handling throughout
the application.
"""

from src.exceptions.diff_exceptions import (
    CellRangeError,
    InvalidFileFormatError,
    ReadError,
    SheetNotFoundError,
    SheetTooLargeError,
    SnapshotNotFoundError,
    WorkbookDiffError,
    WriteError,
)
from src.exceptions.diff_exceptions import (
    FileNotFoundError as WorkbookFileNotFoundError,
)
from src.exceptions.diff_exceptions import (
    PermissionError as WorkbookPermissionError,
)

__all__ = [
    "WorkbookDiffError",
    "WorkbookFileNotFoundError",
    "InvalidFileFormatError",
    "SheetNotFoundError",
    "CellRangeError",
    "ReadError",
    "WriteError",
    "WorkbookPermissionError",
    "SheetTooLargeError",
    "SnapshotNotFoundError",
]
