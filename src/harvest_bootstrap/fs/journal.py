"""Run journal writer for pipeline runs.

This module writes a JSONL audit trail of one pipeline run: a header line
describing the run, one line per entry outcome, and a closing summary. The
journal lives outside the destination root so that a rollback never has to
account for it.
"""

import json
import os
import platform
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from harvest_bootstrap.schemas import EntryReport, PipelineReport, RefactorMapping
from harvest_bootstrap.utils.debug import debug

JOURNAL_SCHEMA_VERSION = "1.0"


class RunJournal:
    """Writes a run journal in JSONL format.

    Each journal file contains:
    - Header line with run metadata (type: "header")
    - One line per manifest entry outcome (type: "entry")
    - Summary line with the final state (type: "summary")
    """

    def __init__(
        self,
        journal_dir: Path,
        run_id: str,
        destination: Path,
        mode: str,
    ) -> None:
        """Initialize journal writer.

        Args:
            journal_dir: Directory receiving ``{run_id}.jsonl``
            run_id: Unique identifier of the pipeline run
            destination: Destination root of the run
            mode: 'write' or 'dry_run'

        Raises:
            OSError: If the journal directory cannot be created or written
        """
        self.run_id = run_id
        self.journal_dir = Path(journal_dir).expanduser().resolve()
        self.destination = Path(destination).resolve()
        self.mode = mode
        self._journal_file: Any = None
        self._header_written = False

        if self.journal_dir == self.destination or self.journal_dir.is_relative_to(
            self.destination
        ):
            raise OSError(
                f"Journal directory {self.journal_dir} must be outside the "
                f"destination root {self.destination}"
            )
        self._ensure_journal_directory()
        self.path = self.journal_dir / f"{run_id}.jsonl"

    def _ensure_journal_directory(self) -> None:
        """Ensure the journal directory exists and is writable."""
        try:
            self.journal_dir.mkdir(parents=True, exist_ok=True)

            # Test write access
            test_file = self.journal_dir / f".test_{uuid.uuid4().hex}"
            test_file.write_text("test")
            test_file.unlink()

        except OSError as e:
            raise OSError(
                f"Cannot create journal directory {self.journal_dir}: {e}. "
                "Ensure the directory is writable or choose a different one."
            ) from e

    def write_header(
        self, mapping: RefactorMapping, source: str, total_entries: int
    ) -> None:
        """Write journal header with run metadata."""
        if self._header_written:
            return

        header = {
            "type": "header",
            "schema_version": JOURNAL_SCHEMA_VERSION,
            "run_id": self.run_id,
            "generated_at": datetime.now(UTC).isoformat(),
            "destination": str(self.destination),
            "mode": self.mode,
            "source": source,
            "old_namespace": mapping.old_namespace,
            "new_namespace": mapping.new_namespace,
            "total_entries": total_entries,
            "system": {"os": platform.system()},
        }

        self._write_line(header)
        self._header_written = True
        debug(f"Wrote journal header for run {self.run_id}")

    def record_entry(self, entry: EntryReport) -> None:
        """Append one entry outcome."""
        self._write_line({"type": "entry", **entry.model_dump(mode="json")})
        debug(f"Journaled entry {entry.index}: {entry.status}")

    def write_summary(self, report: PipelineReport) -> None:
        """Append the closing summary line."""
        summary: dict[str, Any] = {
            "type": "summary",
            "run_id": report.run_id,
            "state": report.state,
            "success": report.success,
            "finished_at": datetime.now(UTC).isoformat(),
            "counts": {
                status: report.count(status)
                for status in ("written", "validated", "rolled_back", "failed", "skipped")
            },
        }
        if report.error is not None:
            summary["error"] = report.error.model_dump()
        if report.rollback_warnings:
            summary["rollback_warnings"] = [
                warning.model_dump() for warning in report.rollback_warnings
            ]
        self._write_line(summary)

    def _write_line(self, data: dict[str, Any]) -> None:
        """Write a JSON line to the journal file."""
        if self._journal_file is None:
            self._journal_file = open(self.path, "w", encoding="utf-8")

        json_line = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        self._journal_file.write(json_line + "\n")
        self._journal_file.flush()
        os.fsync(self._journal_file.fileno())

    def close(self) -> None:
        """Close the journal file."""
        if self._journal_file is not None:
            self._journal_file.close()
            self._journal_file = None
        debug(f"Closed journal file: {self.path}")

    def __enter__(self) -> "RunJournal":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()


def read_journal(path: Path) -> list[dict[str, Any]]:
    """Load every line of a journal file."""
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
