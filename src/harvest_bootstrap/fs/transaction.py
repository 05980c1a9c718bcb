"""Transactional filesystem writer with rollback capability.

A ``TransactionLog`` stages filesystem mutations under a destination root.
Each staging call first records the inverse of what it is about to do, then
performs the mutation, so that ``rollback()`` can return every touched path
to its state before the run. ``commit()`` makes everything permanent.

A log is owned by exactly one pipeline run; it is never shared.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import structlog

from harvest_bootstrap.core.errors import (
    FileSystemError,
    TransactionClosed,
    UnsafePathError,
)
from harvest_bootstrap.fs.paths import normalize_path, resolve_within
from harvest_bootstrap.schemas import RollbackWarning

TransactionState = Literal["open", "committed", "rolled_back"]


@dataclass(frozen=True)
class CreateDirectory:
    """A directory created by the run; undone by removing it."""

    path: Path
    op: Literal["create_directory"] = "create_directory"

    def undo(self) -> None:
        # Only empty directories are removed; content we did not stage stays.
        if self.path.is_dir():
            self.path.rmdir()


@dataclass(frozen=True)
class CreateFile:
    """A file created by the run; undone by deleting it."""

    path: Path
    op: Literal["create_file"] = "create_file"

    def undo(self) -> None:
        self.path.unlink(missing_ok=True)


@dataclass(frozen=True)
class OverwriteFile:
    """An existing file replaced by the run; undone by restoring its bytes."""

    path: Path
    previous_content: bytes = field(repr=False)
    op: Literal["overwrite_file"] = "overwrite_file"

    def undo(self) -> None:
        self.path.write_bytes(self.previous_content)


FileSystemOperation = CreateDirectory | CreateFile | OverwriteFile


@dataclass
class RollbackResult:
    """Summary of a rollback.

    Attributes:
        undone: Number of operations whose inverse ran cleanly
        warnings: Secondary failures, one per operation that could not be undone
    """

    undone: int = 0
    warnings: list[RollbackWarning] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings


class TransactionLog:
    """Undo stack of filesystem mutations under a single destination root.

    Usage:
        with TransactionLog(root) as tx:
            tx.stage_write_file("src/Foo.java", data)
            tx.commit()

    Leaving the ``with`` block through an exception without committing rolls
    everything back.
    """

    def __init__(self, root: Path, logger: Any = None) -> None:
        """Initialize a transaction rooted at ``root``.

        Args:
            root: Destination root; staged paths must stay inside it
            logger: Optional structlog logger instance
        """
        self.root = normalize_path(root)
        self._operations: list[FileSystemOperation] = []
        self._state: TransactionState = "open"
        self._logger = (logger or structlog.get_logger()).bind(
            root=str(self.root)
        )

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def pending(self) -> int:
        """Number of staged operations not yet committed or undone."""
        return len(self._operations)

    @property
    def operations(self) -> tuple[FileSystemOperation, ...]:
        return tuple(self._operations)

    def _ensure_open(self) -> None:
        if self._state != "open":
            raise TransactionClosed(self._state)

    def _resolve(self, path: str | Path) -> Path:
        if Path(path).is_absolute():
            candidate = normalize_path(path)
            if candidate != self.root and not candidate.is_relative_to(self.root):
                raise UnsafePathError(str(path), str(self.root))
            return candidate
        return resolve_within(self.root, path)

    def stage_create_directory(self, path: str | Path) -> list[Path]:
        """Create a directory (and missing parents) under the root.

        One ``CreateDirectory`` is recorded per directory actually created;
        directories that already exist are left alone and recorded nowhere.

        Args:
            path: Directory path, relative to the root or absolute inside it

        Returns:
            Directories created by this call, outermost first

        Raises:
            FileSystemError: If a directory cannot be created
            UnsafePathError: If the path escapes the root
            TransactionClosed: If the log was already committed or rolled back
        """
        self._ensure_open()
        target = self._resolve(path)

        missing: list[Path] = []
        current = target
        while not current.exists():
            missing.append(current)
            if current == current.parent:
                break
            current = current.parent
        if current.exists() and not current.is_dir():
            raise FileSystemError(
                "create directory", str(target), f"{current} is not a directory"
            )

        created: list[Path] = []
        for directory in reversed(missing):
            self._operations.append(CreateDirectory(directory))
            try:
                directory.mkdir()
            except FileExistsError:
                # Raced into existence; it is not ours to remove.
                self._operations.pop()
                continue
            except OSError as exc:
                raise FileSystemError(
                    "create directory", str(directory), str(exc)
                ) from exc
            created.append(directory)
            self._logger.debug("transaction.mkdir", path=str(directory))
        return created

    def stage_write_file(self, path: str | Path, data: bytes) -> FileSystemOperation:
        """Write bytes to a file under the root, recording how to undo it.

        Args:
            path: File path, relative to the root or absolute inside it
            data: Exact bytes to write

        Returns:
            The recorded operation (CreateFile or OverwriteFile)

        Raises:
            FileSystemError: If the file cannot be read or written
            UnsafePathError: If the path escapes the root
            TransactionClosed: If the log was already committed or rolled back
        """
        self._ensure_open()
        target = self._resolve(path)
        self.stage_create_directory(target.parent)

        if target.is_dir():
            raise FileSystemError("write", str(target), "path is a directory")

        operation: FileSystemOperation
        if target.exists():
            try:
                previous = target.read_bytes()
            except OSError as exc:
                raise FileSystemError("read", str(target), str(exc)) from exc
            operation = OverwriteFile(target, previous)
        else:
            operation = CreateFile(target)

        self._operations.append(operation)
        try:
            target.write_bytes(data)
        except OSError as exc:
            raise FileSystemError("write", str(target), str(exc)) from exc

        self._logger.debug(
            "transaction.write", path=str(target), op=operation.op, size=len(data)
        )
        return operation

    def commit(self) -> None:
        """Make every staged mutation permanent and close the log."""
        self._ensure_open()
        committed = len(self._operations)
        self._operations.clear()
        self._state = "committed"
        self._logger.info("transaction.commit", operations=committed)

    def rollback(self) -> RollbackResult:
        """Undo every staged mutation, last staged first.

        Each undo is best effort: a failure is recorded as a warning and the
        remaining undos still run. Rolling back a closed log is a no-op.

        Returns:
            RollbackResult with the undo count and any warnings
        """
        result = RollbackResult()
        if self._state != "open":
            self._logger.warning("transaction.rollback_skipped", state=self._state)
            return result

        self._logger.info("transaction.rollback_start", operations=len(self._operations))
        while self._operations:
            operation = self._operations.pop()
            try:
                operation.undo()
            except OSError as exc:
                warning = RollbackWarning(
                    operation=operation.op, path=str(operation.path), message=str(exc)
                )
                result.warnings.append(warning)
                self._logger.warning(
                    "transaction.undo_failed",
                    op=operation.op,
                    path=str(operation.path),
                    error=str(exc),
                )
                continue
            result.undone += 1

        self._state = "rolled_back"
        self._logger.info(
            "transaction.rollback_done",
            undone=result.undone,
            warnings=len(result.warnings),
        )
        return result

    def summary(self) -> str:
        """Describe the pending operations."""
        created = sum(isinstance(op, CreateFile) for op in self._operations)
        modified = sum(isinstance(op, OverwriteFile) for op in self._operations)
        dirs = sum(isinstance(op, CreateDirectory) for op in self._operations)
        return (
            f"Changes recorded: {created} files created, {modified} files modified, "
            f"{dirs} directories created"
        )

    def __enter__(self) -> TransactionLog:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit; rolls back if an exception escaped."""
        if exc_type is not None and self._state == "open":
            self.rollback()
