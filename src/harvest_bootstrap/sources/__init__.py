"""Source extractors resolving (revision, path) pairs to file bytes.

Two interchangeable backends share the ``SourceExtractor`` interface:
history-backed (git commits) and archive-backed (per-revision snapshot
archives). ``open_source`` picks one from a manifest's source kind.
"""

from pathlib import Path
from typing import Any

from harvest_bootstrap.core.constants import (
    DEFAULT_ARCHIVE_EXT,
    DEFAULT_GIT_BINARY,
    SOURCE_KINDS,
)
from harvest_bootstrap.sources.archive import ArchiveSource, archive_revision
from harvest_bootstrap.sources.base import ExtractedFile, SourceExtractor
from harvest_bootstrap.sources.history import HistorySource

__all__ = [
    "ArchiveSource",
    "ExtractedFile",
    "HistorySource",
    "SourceExtractor",
    "archive_revision",
    "open_source",
]


def open_source(
    kind: str,
    root: Path,
    *,
    git_binary: str = DEFAULT_GIT_BINARY,
    archive_ext: str = DEFAULT_ARCHIVE_EXT,
    logger: Any = None,
) -> SourceExtractor:
    """Open the extractor for a source kind.

    Args:
        kind: 'history' or 'archive'
        root: Repository root or archive directory
        git_binary: git executable for the history backend
        archive_ext: Archive extension for the archive backend
        logger: Optional structlog logger instance

    Returns:
        A ready-to-use SourceExtractor

    Raises:
        ValueError: If kind is not a known source kind
        SourceUnavailable: If the root cannot be opened
    """
    if kind == "history":
        return HistorySource(root, git_binary=git_binary, logger=logger)
    if kind == "archive":
        return ArchiveSource(root, archive_ext=archive_ext, logger=logger)
    raise ValueError(
        f"Invalid source kind: {kind} (expected one of {', '.join(SOURCE_KINDS)})"
    )
