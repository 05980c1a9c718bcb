"""CLI entry point for running a harvest manifest."""

from __future__ import annotations

import importlib
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, NoReturn

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from harvest_bootstrap.core.constants import (
    EXIT_OK,
    EXIT_PREFLIGHT,
    EXIT_ROLLED_BACK,
)
from harvest_bootstrap.core.errors import SourceUnavailable
from harvest_bootstrap.core.pipeline import run_manifest, suffix_filter
from harvest_bootstrap.core.settings import load_settings
from harvest_bootstrap.schemas import Manifest, PipelineReport, RefactorMapping

app: TyperType = typer.Typer(
    help="Harvest files from a project's history into a new namespace."
)

ManifestOption = Annotated[
    Path,
    typer.Option("--manifest", help="JSON manifest listing the files to harvest."),
]
DestinationOption = Annotated[
    Path,
    typer.Option("--destination", help="Destination project root."),
]
OldNamespaceOption = Annotated[
    str,
    typer.Option("--old-namespace", help="Namespace the harvested files declare."),
]
NewNamespaceOption = Annotated[
    str,
    typer.Option("--new-namespace", help="Namespace to rename them to."),
]
DryRunFlag = Annotated[
    bool,
    typer.Option("--dry-run", help="Extract and refactor without writing anything."),
]
JsonFlag = Annotated[
    bool,
    typer.Option("--json", help="Emit the report as JSON instead of a table."),
]
PrefetchOption = Annotated[
    int | None,
    typer.Option(
        "--prefetch",
        min=1,
        help="Extraction workers running ahead of writes (default from "
        "HARVEST_PREFETCH_WORKERS).",
    ),
]
OnlySuffixOption = Annotated[
    list[str] | None,
    typer.Option(
        "--only-suffix",
        help="Refactor only files with this suffix; others are copied as-is. "
        "Repeatable.",
    ),
]
JournalDirOption = Annotated[
    Path | None,
    typer.Option(
        "--journal-dir",
        help="Write a JSONL run journal here (default from HARVEST_JOURNAL_DIR).",
    ),
]
VerboseFlag = Annotated[
    bool,
    typer.Option("--verbose", help="Log every staged operation."),
]

_STATUS_STYLES = {
    "written": "green",
    "validated": "blue",
    "rolled_back": "yellow",
    "failed": "red",
    "skipped": "dim",
}


def _configure_logging(verbose: bool, json_output: bool) -> None:
    """Send structured logs to stderr so stdout carries only the report."""
    if verbose:
        level = logging.DEBUG
    elif json_output:
        level = logging.WARNING
    else:
        level = logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )


def _fail_preflight(message: str) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=EXIT_PREFLIGHT)


def _load_manifest(path: Path) -> Manifest:
    """Load and validate a JSON manifest.

    A relative source root is taken relative to the manifest's directory.
    """
    manifest = Manifest.model_validate_json(path.read_bytes())
    if not manifest.source_root.is_absolute():
        manifest = manifest.model_copy(
            update={"source_root": path.parent / manifest.source_root}
        )
    return manifest


def _render_report(report: PipelineReport, console: Console) -> None:
    """Render a report as a Rich table plus a one-line verdict."""
    title = "Harvest (dry run)" if report.dry_run else "Harvest"
    table = Table(title=f"{title} {report.run_id}")
    table.add_column("#", justify="right")
    table.add_column("Revision")
    table.add_column("Source")
    table.add_column("Destination")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")

    for entry in report.entries:
        style = _STATUS_STYLES.get(entry.status, "")
        detail = entry.message or ""
        if entry.error_kind:
            detail = f"{entry.error_kind}: {detail}"
        table.add_row(
            str(entry.index),
            entry.revision,
            entry.source_path,
            entry.destination_path,
            f"[{style}]{entry.status}[/{style}]" if style else entry.status,
            detail,
        )
    console.print(table)

    for warning in report.rollback_warnings:
        console.print(
            f"⚠️ [yellow]Rollback could not undo {warning.operation}[/yellow] "
            f"{warning.path}: {warning.message}"
        )

    if report.success:
        verb = "validated" if report.dry_run else "written"
        console.print(
            f"✅ [green]{report.state.upper()}[/green] "
            f"{len(report.entries)} file(s) {verb}"
        )
    elif report.error is not None:
        console.print(
            f"❌ [red]{report.state.upper()}[/red] "
            f"{report.error.kind}: {report.error.message}"
        )


def harvest(
    manifest: ManifestOption,
    destination: DestinationOption,
    old_namespace: OldNamespaceOption,
    new_namespace: NewNamespaceOption,
    dry_run: DryRunFlag = False,
    json_output: JsonFlag = False,
    prefetch: PrefetchOption = None,
    only_suffix: OnlySuffixOption = None,
    journal_dir: JournalDirOption = None,
    verbose: VerboseFlag = False,
) -> None:
    """Harvest manifest entries, rewrite their namespace, and write them."""

    _configure_logging(verbose, json_output)

    try:
        settings = load_settings()
    except ValueError as exc:
        _fail_preflight(f"Invalid configuration: {exc}")

    try:
        loaded = _load_manifest(manifest)
    except OSError as exc:
        _fail_preflight(f"Cannot read manifest {manifest}: {exc}")
    except ValidationError as exc:
        _fail_preflight(f"Invalid manifest {manifest}:\n{exc}")

    try:
        mapping = RefactorMapping(
            old_namespace=old_namespace, new_namespace=new_namespace
        )
    except ValidationError as exc:
        _fail_preflight(f"Invalid namespace mapping:\n{exc}")

    try:
        report = run_manifest(
            loaded,
            mapping,
            destination,
            settings=settings,
            dry_run=dry_run,
            prefetch=prefetch,
            refactor_filter=suffix_filter(only_suffix) if only_suffix else None,
            journal_dir=journal_dir,
        )
    except SourceUnavailable as exc:
        _fail_preflight(str(exc))
    except OSError as exc:
        _fail_preflight(f"Cannot start run: {exc}")

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
    else:
        _render_report(report, Console())

    raise typer.Exit(code=EXIT_OK if report.success else EXIT_ROLLED_BACK)


def run_cli(args: Sequence[str] | None = None) -> None:
    app(args=args)


app.command("harvest")(harvest)
