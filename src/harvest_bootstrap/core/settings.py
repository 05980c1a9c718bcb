"""Environment-driven settings for harvest-bootstrap.

Settings are resolved when ``load_settings()`` is called rather than at import
time, so tests and the CLI can adjust the environment first. Explicit CLI
options always win over the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from harvest_bootstrap.core.constants import (
    DEFAULT_ARCHIVE_EXT,
    DEFAULT_GIT_BINARY,
    DEFAULT_PREFETCH_WORKERS,
    MAX_PREFETCH_WORKERS,
)

__all__ = ["HarvestSettings", "load_settings"]


@dataclass(frozen=True)
class HarvestSettings:
    """Resolved runtime settings.

    Attributes:
        prefetch_workers: Extraction workers running ahead of staging
        git_binary: Executable used by the history backend
        archive_ext: Extension of snapshot archives
        journal_dir: Directory for run journals, or None to disable them
    """

    prefetch_workers: int = DEFAULT_PREFETCH_WORKERS
    git_binary: str = DEFAULT_GIT_BINARY
    archive_ext: str = DEFAULT_ARCHIVE_EXT
    journal_dir: Path | None = None


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def clamp_workers(value: int) -> int:
    """Clamp a worker count into [1, MAX_PREFETCH_WORKERS]."""
    return max(1, min(value, MAX_PREFETCH_WORKERS))


def load_settings() -> HarvestSettings:
    """Build settings from HARVEST_* environment variables.

    Environment:
        HARVEST_PREFETCH_WORKERS: Extraction worker count (default 4)
        HARVEST_GIT_BINARY: git executable (default 'git')
        HARVEST_ARCHIVE_EXT: Archive extension without dot (default 'zip')
        HARVEST_JOURNAL_DIR: Optional journal directory

    Raises:
        ValueError: If HARVEST_PREFETCH_WORKERS is not an integer
    """
    journal_env = os.getenv("HARVEST_JOURNAL_DIR")
    archive_ext = os.getenv("HARVEST_ARCHIVE_EXT") or DEFAULT_ARCHIVE_EXT

    return HarvestSettings(
        prefetch_workers=clamp_workers(
            _int_from_env("HARVEST_PREFETCH_WORKERS", DEFAULT_PREFETCH_WORKERS)
        ),
        git_binary=os.getenv("HARVEST_GIT_BINARY") or DEFAULT_GIT_BINARY,
        archive_ext=archive_ext.lstrip("."),
        journal_dir=Path(journal_env).expanduser() if journal_env else None,
    )
