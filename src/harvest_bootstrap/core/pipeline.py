"""Harvest pipeline orchestrating extract -> refactor -> write with rollback.

This module provides the HarvestPipeline class that drives a manifest through
the three stages in declared order, staging every write through a single
TransactionLog. The first failing entry aborts the run and rolls back every
staged mutation, so the destination root ends up either holding the complete
result or exactly what it held before. A dry run never stages anything and
validates every entry, so one report lists every problem in the manifest.

Extraction is read-only and may run ahead of the sequential refactor/stage
step on a bounded thread pool; refactoring and staging never overlap.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

import structlog

from harvest_bootstrap.core.constants import DEFAULT_PREFETCH_WORKERS
from harvest_bootstrap.core.errors import FileSystemError, HarvestError
from harvest_bootstrap.core.settings import HarvestSettings, clamp_workers
from harvest_bootstrap.fs.journal import RunJournal
from harvest_bootstrap.fs.transaction import TransactionLog
from harvest_bootstrap.refactor.header import refactor_source
from harvest_bootstrap.schemas import (
    EntryReport,
    EntryStatus,
    ErrorInfo,
    Manifest,
    ManifestEntry,
    PipelineReport,
    PipelineState,
    RefactorMapping,
    RollbackWarning,
)
from harvest_bootstrap.sources import ExtractedFile, SourceExtractor, open_source

RefactorFilter = Callable[[ManifestEntry], bool]


def suffix_filter(suffixes: Iterable[str]) -> RefactorFilter:
    """Build a refactor filter selecting entries by source path suffix.

    Args:
        suffixes: Suffixes such as '.java'; a missing leading dot is added

    Returns:
        Predicate true for entries whose source path ends with any suffix
    """
    normalized = tuple(s if s.startswith(".") else f".{s}" for s in suffixes if s)

    def _matches(entry: ManifestEntry) -> bool:
        return entry.source_path.endswith(normalized)

    return _matches


class HarvestPipeline:
    """Runs manifest entries through extract, refactor and staged write.

    Usage:
        pipeline = HarvestPipeline(extractor, mapping, Path("out"))
        report = pipeline.run(manifest.entries)
        if not report.success:
            print(report.error)

    A pipeline object may run several times; each run gets its own run id
    and its own transaction log.
    """

    def __init__(
        self,
        extractor: SourceExtractor,
        mapping: RefactorMapping,
        destination_root: Path,
        *,
        dry_run: bool = False,
        prefetch: int = DEFAULT_PREFETCH_WORKERS,
        refactor_filter: RefactorFilter | None = None,
        journal_dir: Path | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            extractor: Source backend resolving entries to bytes
            mapping: Namespace rename applied to refactored entries
            destination_root: Root every destination path is relative to
            dry_run: Extract and refactor only; never touch the destination
            prefetch: Extraction workers running ahead of staging
            refactor_filter: Chooses entries that go through the header
                engine; others are copied verbatim. Default: every entry.
            journal_dir: Optional directory for a JSONL run journal
            logger: Optional structlog logger instance
        """
        self.extractor = extractor
        self.mapping = mapping
        self.destination_root = Path(destination_root)
        self.dry_run = dry_run
        self.prefetch = clamp_workers(prefetch)
        self.refactor_filter = refactor_filter
        self.journal_dir = journal_dir
        self._logger = logger or structlog.get_logger()

    @property
    def mode(self) -> str:
        return "dry_run" if self.dry_run else "write"

    def _should_refactor(self, entry: ManifestEntry) -> bool:
        if self.refactor_filter is None:
            return True
        return self.refactor_filter(entry)

    def _transform(self, extracted: ExtractedFile) -> bytes:
        if not self._should_refactor(extracted.entry):
            return extracted.content
        return refactor_source(extracted.content, self.mapping)

    def run(self, entries: Sequence[ManifestEntry]) -> PipelineReport:
        """Run every entry; commit on full success, roll back otherwise.

        Args:
            entries: Manifest entries in processing order

        Returns:
            PipelineReport covering every entry, whether or not the run
            succeeded
        """
        entries = list(entries)
        run_id = str(uuid.uuid4())
        bound_logger = self._logger.bind(
            run_id=run_id,
            destination=str(self.destination_root),
            mode=self.mode,
            source_kind=self.extractor.kind,
        )
        bound_logger.info(
            "harvest.start",
            total_entries=len(entries),
            old_namespace=self.mapping.old_namespace,
            new_namespace=self.mapping.new_namespace,
            prefetch=self.prefetch,
        )

        journal: RunJournal | None = None
        if self.journal_dir is not None:
            journal = RunJournal(
                self.journal_dir, run_id, self.destination_root, self.mode
            )
            journal.write_header(self.mapping, str(self.extractor.root), len(entries))

        try:
            report = self._run(run_id, entries, bound_logger)
            if journal is not None:
                for entry_report in report.entries:
                    journal.record_entry(entry_report)
                journal.write_summary(report)
        finally:
            if journal is not None:
                journal.close()

        bound_logger.info(
            "harvest.summary",
            state=report.state,
            success=report.success,
            total_entries=len(entries),
            written=report.count("written"),
            validated=report.count("validated"),
            rolled_back=report.count("rolled_back"),
            failed=report.count("failed"),
            skipped=report.count("skipped"),
            error_kind=report.error.kind if report.error else None,
            rollback_warnings=len(report.rollback_warnings),
        )
        return report

    def _run(
        self, run_id: str, entries: list[ManifestEntry], bound_logger: Any
    ) -> PipelineReport:
        state: PipelineState = "init"
        statuses: list[EntryStatus] = ["skipped"] * len(entries)
        error: HarvestError | None = None
        failed_index: int | None = None
        entry_errors: dict[int, HarvestError] = {}
        warnings: list[RollbackWarning] = []

        tx = None if self.dry_run else TransactionLog(
            self.destination_root, logger=bound_logger
        )
        done_status: EntryStatus = "validated" if self.dry_run else "written"

        pending: dict[int, Future[ExtractedFile]] = {}
        executor = ThreadPoolExecutor(
            max_workers=self.prefetch, thread_name_prefix="harvest-extract"
        )
        next_submit = 0
        try:
            for index, entry in enumerate(entries):
                # At most `prefetch` extractions in flight, this entry included
                limit = min(len(entries), index + self.prefetch)
                while next_submit < limit:
                    pending[next_submit] = executor.submit(
                        self.extractor.extract, entries[next_submit]
                    )
                    next_submit += 1

                failure: HarvestError | None = None
                try:
                    state = "extracting"
                    extracted = pending.pop(index).result()
                    state = "refactoring"
                    content = self._transform(extracted)
                    if tx is not None:
                        state = "writing"
                        tx.stage_write_file(entry.destination_path, content)
                except HarvestError as exc:
                    failure = exc
                except OSError as exc:
                    failure = FileSystemError("write", entry.destination_path, str(exc))

                if failure is not None:
                    entry_errors[index] = failure
                    if error is None:
                        error = failure
                        failed_index = index
                    statuses[index] = "failed"
                    bound_logger.error(
                        "harvest.entry",
                        index=index,
                        revision=entry.revision,
                        source_path=entry.source_path,
                        destination_path=entry.destination_path,
                        status="failed",
                        stage=state,
                        error_kind=failure.kind,
                        error=failure.message,
                    )
                    # A dry run validates every entry; a real run stops here
                    if self.dry_run:
                        continue
                    break

                statuses[index] = done_status
                bound_logger.info(
                    "harvest.entry",
                    index=index,
                    revision=entry.revision,
                    source_path=entry.source_path,
                    destination_path=entry.destination_path,
                    status=done_status,
                    size=len(content),
                )
        except BaseException:
            # Unexpected fault: leave the destination as it was, then re-raise.
            if tx is not None:
                tx.rollback()
            raise
        finally:
            for future in pending.values():
                future.cancel()
            executor.shutdown(wait=True, cancel_futures=True)

        if error is None:
            if tx is not None:
                tx.commit()
                state = "committed"
            else:
                state = "validated"
        else:
            state = "failed"
            if tx is not None:
                bound_logger.warning(
                    "harvest.rollback",
                    failed_index=failed_index,
                    operations=tx.pending,
                )
                result = tx.rollback()
                warnings = result.warnings
                state = "rolled_back"
                statuses = [
                    "rolled_back" if status == "written" else status
                    for status in statuses
                ]

        return PipelineReport(
            run_id=run_id,
            state=state,
            dry_run=self.dry_run,
            success=error is None,
            entries=self._entry_reports(
                entries, statuses, entry_errors, failed_index
            ),
            error=ErrorInfo(kind=error.kind, message=error.message) if error else None,
            rollback_warnings=warnings,
        )

    def _entry_reports(
        self,
        entries: list[ManifestEntry],
        statuses: list[EntryStatus],
        entry_errors: dict[int, HarvestError],
        failed_index: int | None,
    ) -> list[EntryReport]:
        reports: list[EntryReport] = []
        for index, (entry, status) in enumerate(zip(entries, statuses, strict=True)):
            error_kind: str | None = None
            message: str | None = None
            failure = entry_errors.get(index)
            if status == "failed" and failure is not None:
                error_kind = failure.kind
                message = failure.message
            elif status == "rolled_back":
                message = f"Rolled back after entry {failed_index} failed"
            elif status == "skipped":
                message = f"Not processed after entry {failed_index} failed"
            reports.append(
                EntryReport(
                    index=index,
                    revision=entry.revision,
                    source_path=entry.source_path,
                    destination_path=entry.destination_path,
                    status=status,
                    error_kind=error_kind,
                    message=message,
                )
            )
        return reports


def run_manifest(
    manifest: Manifest,
    mapping: RefactorMapping,
    destination_root: Path,
    *,
    settings: HarvestSettings | None = None,
    dry_run: bool = False,
    prefetch: int | None = None,
    refactor_filter: RefactorFilter | None = None,
    journal_dir: Path | None = None,
    logger: Any = None,
) -> PipelineReport:
    """Open the manifest's source and run its entries.

    Args:
        manifest: Validated manifest
        mapping: Namespace rename for the run
        destination_root: Destination root directory
        settings: Runtime settings (git binary, default prefetch, journal)
        dry_run: Extract and refactor without writing
        prefetch: Overrides ``settings.prefetch_workers`` when given
        refactor_filter: Entries selected for header refactoring
        journal_dir: Overrides ``settings.journal_dir`` when given
        logger: Optional structlog logger instance

    Returns:
        PipelineReport of the run

    Raises:
        SourceUnavailable: If the source root cannot be opened
    """
    settings = settings or HarvestSettings()
    # An extension written in the manifest beats the environment default
    archive_ext = (
        manifest.archive_ext
        if "archive_ext" in manifest.model_fields_set
        else settings.archive_ext
    )
    with open_source(
        manifest.source_kind,
        manifest.source_root,
        git_binary=settings.git_binary,
        archive_ext=archive_ext,
        logger=logger,
    ) as extractor:
        pipeline = HarvestPipeline(
            extractor,
            mapping,
            destination_root,
            dry_run=dry_run,
            prefetch=prefetch if prefetch is not None else settings.prefetch_workers,
            refactor_filter=refactor_filter,
            journal_dir=journal_dir if journal_dir is not None else settings.journal_dir,
            logger=logger,
        )
        return pipeline.run(manifest.entries)
