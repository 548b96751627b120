"""
Custom exceptions for workbook diff operations.

This module defines a hierarchy of exceptions for the parts of the service
that touch the outside world: importing snapshots from files, writing diff
reports, and storing snapshots. The comparison core itself never raises.
All exceptions inherit from WorkbookDiffError for consistent error handling.

Example:
    try:
        service.diff_files(DiffFilesRequest(current_path=a, baseline_path=b))
    except SheetTooLargeError as e:
        logger.warning("Refusing oversized sheet %s", e.sheet_name)
    except WorkbookDiffError as e:
        logger.error("Diff failed: %s", e)
"""


class WorkbookDiffError(Exception):
    """
    Base exception for all workbook diff errors.

    All custom exceptions in this module inherit from this class,
    allowing consumers to catch all diff-related errors with a single
    except clause.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code for API responses.
        details: Optional additional context about the error.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "DIFF_ERROR",
        details: dict | None = None,
    ) -> None:
        """
        Initialize the WorkbookDiffError.

        Args:
            message: Human-readable error description.
            error_code: Machine-readable error code for API responses.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """
        Convert exception to a dictionary for API responses.

        Returns:
            Dictionary containing error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class FileNotFoundError(WorkbookDiffError):
    """
    Raised when a workbook file to import does not exist.

    Attributes:
        file_path: Path to the file that was not found.
    """

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        super().__init__(
            message=f"Workbook file not found: {file_path}",
            error_code="FILE_NOT_FOUND",
            details={"file_path": file_path},
        )


class InvalidFileFormatError(WorkbookDiffError):
    """
    Raised when a file cannot be imported as a workbook snapshot.

    Raised for unsupported extensions as well as for files the
    spreadsheet engine fails to parse (corruption, wrong format).

    Attributes:
        file_path: Path to the invalid file.
        expected_formats: List of expected/supported formats.
    """

    def __init__(
        self,
        file_path: str,
        expected_formats: list[str] | None = None,
        reason: str | None = None,
    ) -> None:
        """
        Initialize the InvalidFileFormatError.

        Args:
            file_path: Path to the invalid file.
            expected_formats: List of expected/supported formats.
            reason: Specific reason for the format error.
        """
        self.file_path = file_path
        self.expected_formats = expected_formats or [".xlsx", ".xlsm"]
        self.reason = reason

        message = f"Invalid workbook file format: {file_path}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="INVALID_FILE_FORMAT",
            details={
                "file_path": file_path,
                "expected_formats": self.expected_formats,
                "reason": reason,
            },
        )


class SheetNotFoundError(WorkbookDiffError):
    """
    Raised when a sheet is requested that has no diff.

    Sheets that exist on only one side are reported through the
    sheet status map and have no per-cell grid, so asking for their
    rectangles or cell details also raises this error.

    Attributes:
        sheet_name: Name of the sheet that was not found.
        available_sheets: Sheets that do have a per-cell diff.
    """

    def __init__(
        self,
        sheet_name: str,
        available_sheets: list[str] | None = None,
    ) -> None:
        self.sheet_name = sheet_name
        self.available_sheets = available_sheets or []

        message = f"Sheet not found: {sheet_name}"
        if available_sheets:
            message += f". Available sheets: {', '.join(available_sheets)}"

        super().__init__(
            message=message,
            error_code="SHEET_NOT_FOUND",
            details={
                "sheet_name": sheet_name,
                "available_sheets": self.available_sheets,
            },
        )


class CellRangeError(WorkbookDiffError):
    """
    Raised when an A1 cell reference or range cannot be parsed.

    Attributes:
        cell_range: The invalid cell range string.
        reason: Specific reason why the range is invalid.
    """

    def __init__(
        self,
        cell_range: str,
        reason: str | None = None,
    ) -> None:
        self.cell_range = cell_range
        self.reason = reason

        message = f"Invalid cell range: {cell_range}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="INVALID_CELL_RANGE",
            details={
                "cell_range": cell_range,
                "reason": reason,
            },
        )


class ReadError(WorkbookDiffError):
    """
    Raised when importing a workbook file fails.

    This is a general exception for read operations that fail
    for reasons not covered by more specific exceptions.

    Attributes:
        file_path: Path to the file being read.
        operation: The specific read operation that failed.
    """

    def __init__(
        self,
        file_path: str,
        operation: str = "read",
        reason: str | None = None,
    ) -> None:
        """
        Initialize the ReadError.

        Args:
            file_path: Path to the file being read.
            operation: The specific read operation that failed.
            reason: Specific reason for the read failure.
        """
        self.file_path = file_path
        self.operation = operation
        self.reason = reason

        message = f"Failed to {operation} workbook: {file_path}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="READ_ERROR",
            details={
                "file_path": file_path,
                "operation": operation,
                "reason": reason,
            },
        )


class WriteError(WorkbookDiffError):
    """
    Raised when writing a diff report or snapshot fails.

    Attributes:
        file_path: Path to the file being written.
        operation: The specific write operation that failed.
    """

    def __init__(
        self,
        file_path: str,
        operation: str = "write",
        reason: str | None = None,
    ) -> None:
        self.file_path = file_path
        self.operation = operation
        self.reason = reason

        message = f"Failed to {operation} file: {file_path}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="WRITE_ERROR",
            details={
                "file_path": file_path,
                "operation": operation,
                "reason": reason,
            },
        )


class PermissionError(WorkbookDiffError):
    """
    Raised when file access is denied due to permissions.

    Attributes:
        file_path: Path to the file with permission issues.
        operation: The operation that was denied (read/write).
    """

    def __init__(
        self,
        file_path: str,
        operation: str = "access",
    ) -> None:
        self.file_path = file_path
        self.operation = operation

        super().__init__(
            message=f"Permission denied for {operation} on: {file_path}",
            error_code="PERMISSION_DENIED",
            details={
                "file_path": file_path,
                "operation": operation,
            },
        )


class SheetTooLargeError(WorkbookDiffError):
    """
    Raised when an imported sheet exceeds the configured cell cap.

    The comparison core allocates a dense grid per sheet pair, so
    oversized sheets are rejected before they reach it when the
    oversize policy is "reject".

    Attributes:
        sheet_name: Name of the oversized sheet.
        cell_count: Number of cells in the sheet's populated region.
        max_cells: The configured per-sheet cap.
    """

    def __init__(
        self,
        sheet_name: str,
        cell_count: int,
        max_cells: int,
    ) -> None:
        self.sheet_name = sheet_name
        self.cell_count = cell_count
        self.max_cells = max_cells

        super().__init__(
            message=(
                f"Sheet '{sheet_name}' has {cell_count} cells, "
                f"exceeding the limit of {max_cells}"
            ),
            error_code="SHEET_TOO_LARGE",
            details={
                "sheet_name": sheet_name,
                "cell_count": cell_count,
                "max_cells": max_cells,
            },
        )


class SnapshotNotFoundError(WorkbookDiffError):
    """
    Raised when a stored snapshot id does not exist.

    Attributes:
        snapshot_id: The id that was looked up.
    """

    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(
            message=f"Snapshot not found: {snapshot_id}",
            error_code="SNAPSHOT_NOT_FOUND",
            details={"snapshot_id": snapshot_id},
        )
