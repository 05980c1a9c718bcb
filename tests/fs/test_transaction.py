"""Tests for the transactional writer and its rollback."""

import os
from pathlib import Path

import pytest

from harvest_bootstrap.core.errors import (
    FileSystemError,
    TransactionClosed,
    UnsafePathError,
)
from harvest_bootstrap.fs.transaction import (
    CreateDirectory,
    CreateFile,
    OverwriteFile,
    TransactionLog,
)


def _snapshot(root: Path) -> dict[str, bytes | None]:
    """Map every path under root to its bytes (None for directories)."""
    result: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root).as_posix()
        result[relative] = None if path.is_dir() else path.read_bytes()
    return result


class TestStaging:
    """Test staging of directories and files."""

    def test_write_new_file_records_directories_and_file(self, tmp_path: Path) -> None:
        tx = TransactionLog(tmp_path)
        operation = tx.stage_write_file("src/main/Foo.java", b"data")

        assert isinstance(operation, CreateFile)
        assert (tmp_path / "src" / "main" / "Foo.java").read_bytes() == b"data"
        assert [type(op) for op in tx.operations] == [
            CreateDirectory,
            CreateDirectory,
            CreateFile,
        ]
        assert tx.operations[0].path == (tmp_path / "src").resolve()

    def test_existing_directories_are_not_recorded(self, tmp_path: Path) -> None:
        (tmp_path / "src").mkdir()
        tx = TransactionLog(tmp_path)

        created = tx.stage_create_directory("src/main")

        assert created == [(tmp_path / "src" / "main").resolve()]
        assert tx.pending == 1

    def test_overwrite_records_previous_bytes(self, tmp_path: Path) -> None:
        target = tmp_path / "Foo.java"
        target.write_bytes(b"original")
        tx = TransactionLog(tmp_path)

        operation = tx.stage_write_file("Foo.java", b"replacement")

        assert isinstance(operation, OverwriteFile)
        assert operation.previous_content == b"original"
        assert target.read_bytes() == b"replacement"

    def test_missing_destination_root_is_created(self, tmp_path: Path) -> None:
        root = tmp_path / "new-project"
        tx = TransactionLog(root)

        tx.stage_write_file("a/b.txt", b"x")

        assert (root / "a" / "b.txt").exists()
        assert tx.operations[0] == CreateDirectory(root.resolve())

    def test_writing_over_directory_fails(self, tmp_path: Path) -> None:
        (tmp_path / "Foo.java").mkdir()
        tx = TransactionLog(tmp_path)

        with pytest.raises(FileSystemError):
            tx.stage_write_file("Foo.java", b"data")

    def test_parent_is_a_file(self, tmp_path: Path) -> None:
        (tmp_path / "src").write_bytes(b"not a directory")
        tx = TransactionLog(tmp_path)

        with pytest.raises(FileSystemError):
            tx.stage_write_file("src/Foo.java", b"data")

    @pytest.mark.parametrize("path", ["../escape.txt", "a/../../escape.txt"])
    def test_escape_rejected(self, tmp_path: Path, path: str) -> None:
        tx = TransactionLog(tmp_path / "root")

        with pytest.raises(UnsafePathError):
            tx.stage_write_file(path, b"data")

    def test_absolute_path_outside_root_rejected(self, tmp_path: Path) -> None:
        tx = TransactionLog(tmp_path / "root")

        with pytest.raises(UnsafePathError):
            tx.stage_write_file(tmp_path / "elsewhere.txt", b"data")

    def test_exact_bytes_are_written(self, tmp_path: Path) -> None:
        data = b"\xef\xbb\xbfline one\r\nline two\x00\xff"
        tx = TransactionLog(tmp_path)

        tx.stage_write_file("bin.dat", data)

        assert (tmp_path / "bin.dat").read_bytes() == data


class TestRollback:
    """Test rollback restores the pre-run state."""

    def test_rollback_restores_snapshot(self, tmp_path: Path) -> None:
        (tmp_path / "keep").mkdir()
        (tmp_path / "keep" / "Existing.java").write_bytes(b"before")
        (tmp_path / "untouched.txt").write_bytes(b"same")
        before = _snapshot(tmp_path)

        tx = TransactionLog(tmp_path)
        tx.stage_write_file("keep/Existing.java", b"after")
        tx.stage_write_file("keep/New.java", b"new")
        tx.stage_write_file("deep/nested/dir/File.java", b"deep")
        result = tx.rollback()

        assert result.clean
        assert result.undone == 6
        assert _snapshot(tmp_path) == before
        assert tx.state == "rolled_back"
        assert tx.pending == 0

    def test_same_file_written_twice_restores_original(self, tmp_path: Path) -> None:
        target = tmp_path / "Foo.java"
        target.write_bytes(b"v0")
        tx = TransactionLog(tmp_path)

        tx.stage_write_file("Foo.java", b"v1")
        tx.stage_write_file("Foo.java", b"v2")
        tx.rollback()

        assert target.read_bytes() == b"v0"

    def test_foreign_files_keep_directory(self, tmp_path: Path) -> None:
        tx = TransactionLog(tmp_path)
        tx.stage_write_file("shared/Ours.java", b"ours")
        # Someone else drops a file into a directory we created
        (tmp_path / "shared" / "Theirs.txt").write_bytes(b"theirs")

        result = tx.rollback()

        assert not (tmp_path / "shared" / "Ours.java").exists()
        assert (tmp_path / "shared" / "Theirs.txt").read_bytes() == b"theirs"
        assert len(result.warnings) == 1
        assert result.warnings[0].operation == "create_directory"

    def test_undo_failure_does_not_stop_rollback(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        existing = tmp_path / "Existing.java"
        existing.write_bytes(b"before")
        tx = TransactionLog(tmp_path)
        tx.stage_write_file("Existing.java", b"after")
        tx.stage_write_file("New.java", b"new")

        def _fail(self: CreateFile) -> None:
            raise PermissionError(13, "Permission denied", str(self.path))

        monkeypatch.setattr(CreateFile, "undo", _fail)
        result = tx.rollback()

        assert not result.clean
        assert result.warnings[0].operation == "create_file"
        assert "Permission denied" in result.warnings[0].message
        # The earlier overwrite was still undone
        assert existing.read_bytes() == b"before"
        assert result.undone == 1

    def test_rollback_of_empty_log(self, tmp_path: Path) -> None:
        result = TransactionLog(tmp_path).rollback()

        assert result.clean
        assert result.undone == 0


class TestLifecycle:
    """Test commit, closing, and the context manager."""

    def test_commit_keeps_changes_and_clears_log(self, tmp_path: Path) -> None:
        tx = TransactionLog(tmp_path)
        tx.stage_write_file("Foo.java", b"data")

        tx.commit()

        assert tx.state == "committed"
        assert tx.pending == 0
        assert (tmp_path / "Foo.java").read_bytes() == b"data"

    def test_rollback_after_commit_is_noop(self, tmp_path: Path) -> None:
        tx = TransactionLog(tmp_path)
        tx.stage_write_file("Foo.java", b"data")
        tx.commit()

        result = tx.rollback()

        assert result.undone == 0
        assert (tmp_path / "Foo.java").exists()
        assert tx.state == "committed"

    def test_staging_after_close_raises(self, tmp_path: Path) -> None:
        tx = TransactionLog(tmp_path)
        tx.rollback()

        with pytest.raises(TransactionClosed):
            tx.stage_write_file("Foo.java", b"data")
        with pytest.raises(TransactionClosed):
            tx.commit()

    def test_context_manager_rolls_back_on_exception(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            with TransactionLog(tmp_path) as tx:
                tx.stage_write_file("a/Foo.java", b"data")
                raise RuntimeError("boom")

        assert tx.state == "rolled_back"
        assert os.listdir(tmp_path) == []

    def test_context_manager_leaves_committed_log(self, tmp_path: Path) -> None:
        with TransactionLog(tmp_path) as tx:
            tx.stage_write_file("Foo.java", b"data")
            tx.commit()

        assert (tmp_path / "Foo.java").exists()

    def test_summary(self, tmp_path: Path) -> None:
        (tmp_path / "Old.java").write_bytes(b"x")
        tx = TransactionLog(tmp_path)
        tx.stage_write_file("Old.java", b"y")
        tx.stage_write_file("dir/New.java", b"z")

        assert tx.summary() == (
            "Changes recorded: 1 files created, 1 files modified, "
            "1 directories created"
        )
