"""Base source extractor interface.

A source extractor resolves a (revision, path) pair to the exact bytes stored
for that path in that historical snapshot. Implementations are read-only and
side-effect free, so the pipeline may call ``resolve`` from several worker
threads at once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from harvest_bootstrap.schemas import ManifestEntry


@dataclass(frozen=True)
class ExtractedFile:
    """Raw content of one manifest entry, as read from the source."""

    entry: ManifestEntry
    content: bytes = field(repr=False)


class SourceExtractor(ABC):
    """Base class for history and archive extractors.

    Subclasses validate their root on construction and raise
    ``SourceUnavailable`` when it cannot be used at all.
    """

    #: Source kind name as used in manifests
    kind: str = ""

    def __init__(self, root: Path, logger: Any = None) -> None:
        self.root = Path(root).expanduser()
        self._logger = (logger or structlog.get_logger()).bind(
            source_kind=self.kind, source_root=str(self.root)
        )

    def __str__(self) -> str:
        return f"{type(self).__name__}(root={self.root})"

    def __repr__(self) -> str:
        return self.__str__()

    @abstractmethod
    def resolve(self, revision: str, source_path: str) -> bytes:
        """Return the bytes stored at ``source_path`` as of ``revision``.

        Args:
            revision: Commit id or archive snapshot id
            source_path: Path relative to the project root in that snapshot

        Returns:
            Exact stored bytes, without line-ending or encoding changes

        Raises:
            ExtractionError: If the revision or path cannot be resolved
        """

    def extract(self, entry: ManifestEntry) -> ExtractedFile:
        """Resolve a manifest entry to an ``ExtractedFile``."""
        content = self.resolve(entry.revision, entry.source_path)
        self._logger.debug(
            "source.extracted",
            revision=entry.revision,
            source_path=entry.source_path,
            size=len(content),
        )
        return ExtractedFile(entry=entry, content=content)

    def close(self) -> None:
        """Release resources held by the extractor."""

    def __enter__(self) -> SourceExtractor:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
