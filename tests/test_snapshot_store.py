"""
Tests for the file-backed snapshot store.
"""

import logging
from datetime import datetime
from pathlib import Path

import pytest

from src.exceptions.diff_exceptions import ReadError, SnapshotNotFoundError, WriteError
from src.models.workbook_models import WorkbookModel
from src.services.snapshot_store import (
    SnapshotStore,
    build_archive_filename,
    sanitize_base_name,
)


class TestSaveAndLoad:
    """Tests for saving and loading snapshots."""

    def test_save_and_get(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        """A saved snapshot loads back unchanged."""
        record = snapshot_store.save_snapshot(current_model, name="Before", workbook_id="budget")

        stored = snapshot_store.get_snapshot(record.id)

        assert stored.record == record
        assert stored.model == current_model
        assert record.name == "Before"
        assert record.sheet_count == 3
        assert record.workbook_id == "budget"

    def test_files_written(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        record = snapshot_store.save_snapshot(current_model)

        assert (snapshot_store.directory / f"{record.id}.meta.json").exists()
        assert (snapshot_store.directory / f"{record.id}.model.json").exists()
        assert not list(snapshot_store.directory.glob("*.tmp"))

    def test_default_name(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        record = snapshot_store.save_snapshot(current_model)

        assert record.name == "Snapshot"

    def test_get_missing(self, snapshot_store: SnapshotStore) -> None:
        with pytest.raises(SnapshotNotFoundError) as exc_info:
            snapshot_store.get_snapshot("1700000000000_deadbeef")

        assert exc_info.value.error_code == "SNAPSHOT_NOT_FOUND"

    def test_path_like_id_rejected(self, snapshot_store: SnapshotStore) -> None:
        """Ids that could escape the store directory are never looked up."""
        with pytest.raises(SnapshotNotFoundError):
            snapshot_store.get_snapshot("../../etc/passwd")

    def test_corrupt_record(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        record = snapshot_store.save_snapshot(current_model)
        (snapshot_store.directory / f"{record.id}.meta.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ReadError):
            snapshot_store.get_record(record.id)


class TestListing:
    """Tests for listing snapshots."""

    def test_empty_store(self, temp_dir: Path) -> None:
        store = SnapshotStore(temp_dir / "missing")

        assert store.list_snapshots() == []

    def test_newest_first(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        first = snapshot_store.save_snapshot(current_model, name="first")
        second = snapshot_store.save_snapshot(current_model, name="second")

        records = snapshot_store.list_snapshots()

        assert {record.id for record in records} == {first.id, second.id}
        assert records[0].ts >= records[1].ts

    def test_by_workbook(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        snapshot_store.save_snapshot(current_model, workbook_id="a")
        snapshot_store.save_snapshot(current_model, workbook_id="b")
        snapshot_store.save_snapshot(current_model)

        assert len(snapshot_store.list_snapshots()) == 3
        assert [r.workbook_id for r in snapshot_store.list_snapshots_by_workbook("a")] == ["a"]
        assert snapshot_store.list_snapshots_by_workbook(None) == []
        assert snapshot_store.list_snapshots_by_workbook("") == []

    def test_unreadable_record_skipped(
        self,
        snapshot_store: SnapshotStore,
        current_model: WorkbookModel,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A corrupt record file is logged and left out of the listing."""
        record = snapshot_store.save_snapshot(current_model)
        bad_meta = snapshot_store.directory / "1700000000000_deadbeef.meta.json"
        bad_meta.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="src.services.snapshot_store"):
            records = snapshot_store.list_snapshots()

        assert [r.id for r in records] == [record.id]
        assert "1700000000000_deadbeef.meta.json" in caplog.text


class TestDeleteAndPrune:
    """Tests for deletion and retention."""

    def test_delete(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        record = snapshot_store.save_snapshot(current_model)

        snapshot_store.delete_snapshot(record.id)

        assert snapshot_store.list_snapshots() == []
        assert not (snapshot_store.directory / f"{record.id}.model.json").exists()

    def test_delete_missing(self, snapshot_store: SnapshotStore) -> None:
        with pytest.raises(SnapshotNotFoundError):
            snapshot_store.delete_snapshot("1700000000000_deadbeef")

    def test_retention_cap(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        """Only the newest max_per_workbook snapshots of a workbook are kept."""
        assert snapshot_store.max_per_workbook == 3
        for index in range(5):
            snapshot_store.save_snapshot(current_model, name=f"v{index}", workbook_id="budget")
        snapshot_store.save_snapshot(current_model, name="other", workbook_id="other")

        kept = snapshot_store.list_snapshots_by_workbook("budget")

        assert len(kept) == 3
        assert len(snapshot_store.list_snapshots_by_workbook("other")) == 1

    def test_prune_with_keep(self, snapshot_store: SnapshotStore, current_model: WorkbookModel) -> None:
        for _ in range(3):
            snapshot_store.save_snapshot(current_model, workbook_id="budget")

        deleted = snapshot_store.prune("budget", keep=1)

        assert len(deleted) == 2
        assert len(snapshot_store.list_snapshots_by_workbook("budget")) == 1

    def test_prune_zero_keeps_everything(
        self,
        snapshot_store: SnapshotStore,
        current_model: WorkbookModel,
    ) -> None:
        snapshot_store.save_snapshot(current_model, workbook_id="budget")

        assert snapshot_store.prune("budget", keep=0) == []

    def test_save_with_unreadable_record(
        self,
        snapshot_store: SnapshotStore,
        current_model: WorkbookModel,
    ) -> None:
        """Saving into a workbook group is not blocked by a corrupt record."""
        snapshot_store.directory.mkdir(parents=True, exist_ok=True)
        (snapshot_store.directory / "1700000000000_deadbeef.meta.json").write_text(
            "{not json", encoding="utf-8"
        )

        record = snapshot_store.save_snapshot(current_model, workbook_id="budget")

        assert [r.id for r in snapshot_store.list_snapshots_by_workbook("budget")] == [record.id]

    def test_failed_prune_keeps_save(
        self,
        snapshot_store: SnapshotStore,
        current_model: WorkbookModel,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A prune that cannot delete is logged; the new snapshot is still returned."""
        for _ in range(3):
            snapshot_store.save_snapshot(current_model, workbook_id="budget")

        def refuse(snapshot_id: str) -> None:
            raise WriteError(file_path=snapshot_id, operation="delete snapshot", reason="read-only")

        monkeypatch.setattr(snapshot_store, "delete_snapshot", refuse)

        with caplog.at_level(logging.WARNING, logger="src.services.snapshot_store"):
            record = snapshot_store.save_snapshot(current_model, workbook_id="budget")

        assert snapshot_store.get_record(record.id) == record
        assert len(snapshot_store.list_snapshots_by_workbook("budget")) == 4
        assert "Could not prune" in caplog.text


class TestArchiveNames:
    """Tests for archive file naming."""

    def test_build_archive_filename(self) -> None:
        now = datetime(2025, 1, 2, 9, 30, 5)

        assert build_archive_filename("Budget", now) == "Budget_20250102_093005.xlsx"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Budget.xlsx", "Budget"),
            ("  ..Q1 report.. ", "Q1 report"),
            ("a/b\\c:d*e?f", "a-b-c-d-e-f"),
            ('x"<>|y', "x----y"),
            ("", "Workbook"),
            (None, "Workbook"),
            ("...", "Workbook"),
        ],
    )
    def test_sanitize_base_name(self, name, expected: str) -> None:
        assert sanitize_base_name(name) == expected

    def test_sanitize_truncates(self) -> None:
        assert len(sanitize_base_name("x" * 200)) == 80
