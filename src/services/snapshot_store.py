"""
File-backed snapshot store.

Each snapshot is kept as two JSON files in the store directory: a small
record (<id>.meta.json) used for listing, and the full workbook model
(<id>.model.json) loaded only when the snapshot is needed. Snapshots that
share a workbook id are pruned to a retention cap, newest kept.

Ids look like "<epoch millis>_<random hex>" so they sort by creation
time and are safe to use as file names.
"""

import logging
import os
import re
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from src.exceptions.diff_exceptions import PermissionError as WorkbookPermissionError
from src.exceptions.diff_exceptions import (
    ReadError,
    SnapshotNotFoundError,
    WorkbookDiffError,
    WriteError,
)
from src.models.api_models import SnapshotRecord, StoredSnapshot
from src.models.workbook_models import WorkbookModel

logger = logging.getLogger(__name__)

_SNAPSHOT_ID = re.compile(r"^\d+_[0-9a-f]+$")
_EDGE_SPACES_AND_DOTS = re.compile(r"^[\s.]+|[\s.]+$")
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/\x00-\x1f\x7f:*?"<>|]')
_WORKBOOK_EXTENSION = re.compile(r"\.(xlsx|xlsm|xls|xltx|xltm|xml)$", re.IGNORECASE)


def sanitize_base_name(name: str | None) -> str:
    """
    Make a workbook name safe to use as a file name stem.

    Trims spaces and dots at both ends, replaces path separators, control
    characters and reserved characters with "-", keeps at most 80
    characters and drops a spreadsheet extension.

    Args:
        name: Workbook or file name.

    Returns:
        The sanitized stem, or "Workbook" when nothing is left.
    """
    stripped = _EDGE_SPACES_AND_DOTS.sub("", str(name or ""))
    stripped = _UNSAFE_FILENAME_CHARS.sub("-", stripped)[:80]
    return _WORKBOOK_EXTENSION.sub("", stripped) or "Workbook"


def build_archive_filename(workbook_name: str | None, now: datetime | None = None) -> str:
    """
    Timestamped archive file name such as "Budget_20250101_093000.xlsx".

    Args:
        workbook_name: Workbook name; sanitized first.
        now: Timestamp to use; the local current time when None.

    Returns:
        File name of the form <name>_YYYYMMDD_HHMMSS.xlsx.
    """
    now = now or datetime.now()
    return f"{sanitize_base_name(workbook_name)}_{now:%Y%m%d_%H%M%S}.xlsx"


class SnapshotStore:
    """
    Stores workbook snapshots as JSON files.

    Attributes:
        directory: Directory holding the snapshot files.
        max_per_workbook: Retention cap per workbook id.

    Example:
        store = SnapshotStore(".snapshots", max_per_workbook=50)
        record = store.save_snapshot(model, name="Before cleanup", workbook_id="budget")
        baseline = store.get_snapshot(record.id).model
    """

    def __init__(self, directory: str | Path, max_per_workbook: int = 50) -> None:
        self.directory = Path(directory)
        self.max_per_workbook = max_per_workbook

    def _meta_path(self, snapshot_id: str) -> Path:
        return self.directory / f"{snapshot_id}.meta.json"

    def _model_path(self, snapshot_id: str) -> Path:
        return self.directory / f"{snapshot_id}.model.json"

    def _check_id(self, snapshot_id: str) -> None:
        if not _SNAPSHOT_ID.match(snapshot_id or ""):
            raise SnapshotNotFoundError(snapshot_id)

    def _write_json(self, path: Path, payload: str) -> None:
        """Write a file atomically via a temporary sibling."""
        temp_path = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(payload, encoding="utf-8")
            os.replace(temp_path, path)
        except PermissionError as e:
            raise WorkbookPermissionError(file_path=str(path), operation="write") from e
        except OSError as e:
            raise WriteError(file_path=str(path), operation="save snapshot", reason=str(e)) from e

    def _read_record(self, path: Path) -> SnapshotRecord:
        try:
            return SnapshotRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise ReadError(file_path=str(path), operation="read snapshot", reason=str(e)) from e

    def _new_id(self) -> str:
        return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    def save_snapshot(
        self,
        model: WorkbookModel,
        name: str | None = None,
        workbook_id: str | None = None,
    ) -> SnapshotRecord:
        """
        Store a snapshot.

        Snapshots with a workbook id are pruned to max_per_workbook
        afterwards. A failed prune is logged and the saved record is
        still returned.

        Args:
            model: The workbook snapshot.
            name: Display name; "Snapshot" when None.
            workbook_id: Workbook grouping id.

        Returns:
            The stored record.

        Raises:
            WriteError: If the files cannot be written.
        """
        record = SnapshotRecord(
            id=self._new_id(),
            name=name or "Snapshot",
            ts=datetime.now(timezone.utc),
            sheet_count=len(model.sheets),
            workbook_id=workbook_id,
        )
        self._write_json(self._model_path(record.id), model.model_dump_json())
        self._write_json(self._meta_path(record.id), record.model_dump_json())
        logger.info("Saved snapshot %s (%r, %d sheet(s))", record.id, record.name, record.sheet_count)

        if workbook_id:
            try:
                self.prune(workbook_id)
            except WorkbookDiffError as e:
                logger.warning("Could not prune snapshots of workbook %r: %s", workbook_id, e.message)
        return record

    def list_snapshots(self, workbook_id: str | None = None) -> list[SnapshotRecord]:
        """
        List snapshot records, newest first.

        Args:
            workbook_id: Only list snapshots of this workbook when given.

        Returns:
            Records sorted by creation time, newest first.
            Records that cannot be read are logged and skipped.
        """
        if not self.directory.exists():
            return []

        records = []
        for path in self.directory.glob("*.meta.json"):
            try:
                records.append(self._read_record(path))
            except ReadError as e:
                logger.warning("Skipping unreadable snapshot record %s: %s", path.name, e.message)
        if workbook_id is not None:
            records = [record for record in records if record.workbook_id == workbook_id]
        records.sort(key=lambda record: (record.ts, record.id), reverse=True)
        return records

    def list_snapshots_by_workbook(self, workbook_id: str | None) -> list[SnapshotRecord]:
        """Snapshots of one workbook, newest first; empty for a missing id."""
        if not workbook_id:
            return []
        return self.list_snapshots(workbook_id)

    def get_record(self, snapshot_id: str) -> SnapshotRecord:
        """
        Load a snapshot's record.

        Raises:
            SnapshotNotFoundError: If no such snapshot exists.
        """
        self._check_id(snapshot_id)
        path = self._meta_path(snapshot_id)
        if not path.exists():
            raise SnapshotNotFoundError(snapshot_id)
        return self._read_record(path)

    def get_snapshot(self, snapshot_id: str) -> StoredSnapshot:
        """
        Load a snapshot with its workbook model.

        Args:
            snapshot_id: Snapshot id.

        Returns:
            The record and model.

        Raises:
            SnapshotNotFoundError: If no such snapshot exists.
            ReadError: If the stored files cannot be parsed.
        """
        record = self.get_record(snapshot_id)
        path = self._model_path(snapshot_id)
        if not path.exists():
            raise SnapshotNotFoundError(snapshot_id)
        try:
            model = WorkbookModel.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise ReadError(file_path=str(path), operation="read snapshot", reason=str(e)) from e
        return StoredSnapshot(record=record, model=model)

    def delete_snapshot(self, snapshot_id: str) -> None:
        """
        Delete a snapshot.

        Raises:
            SnapshotNotFoundError: If no such snapshot exists.
        """
        self._check_id(snapshot_id)
        meta_path = self._meta_path(snapshot_id)
        if not meta_path.exists():
            raise SnapshotNotFoundError(snapshot_id)

        try:
            meta_path.unlink()
            self._model_path(snapshot_id).unlink(missing_ok=True)
        except OSError as e:
            raise WriteError(
                file_path=str(meta_path),
                operation="delete snapshot",
                reason=str(e),
            ) from e
        logger.info("Deleted snapshot %s", snapshot_id)

    def prune(self, workbook_id: str, keep: int | None = None) -> list[str]:
        """
        Delete the oldest snapshots of a workbook beyond the retention cap.

        Args:
            workbook_id: Workbook grouping id.
            keep: Number to keep; max_per_workbook when None.

        Returns:
            Ids of the deleted snapshots.
        """
        keep = self.max_per_workbook if keep is None else keep
        if keep <= 0:
            return []

        stale = self.list_snapshots_by_workbook(workbook_id)[keep:]
        for record in stale:
            self.delete_snapshot(record.id)
        if stale:
            logger.info("Pruned %d snapshot(s) of workbook %r", len(stale), workbook_id)
        return [record.id for record in stale]
