"""Path utilities for filesystem operations.

This module provides path normalisation shared by the transaction writer
(destination paths) and by archive readers (member names), including the
guard against paths that climb out of their root.
"""

import os
import posixpath
import unicodedata
from pathlib import Path

from harvest_bootstrap.core.errors import UnsafePathError


def normalize_path(path: Path | str, root: Path | None = None) -> Path:
    """Normalize a path for consistent handling.

    Args:
        path: Path to normalize
        root: Optional root directory for relative paths

    Returns:
        Normalized absolute path
    """
    if not isinstance(path, Path):
        path = Path(path)

    if not path.is_absolute() and root is not None:
        path = root / path
    path = path.resolve()

    # Normalize Unicode (NFC on macOS, NFD handling)
    if os.name == "posix":
        path = Path(unicodedata.normalize("NFC", str(path)))

    return path


def resolve_within(root: Path, relative: str | Path) -> Path:
    """Resolve a root-relative path, refusing anything outside the root.

    Leading slashes are stripped so the path is always treated as relative.

    Args:
        root: Directory the result must stay inside
        relative: Path relative to root

    Returns:
        Absolute normalized path under root

    Raises:
        UnsafePathError: If the resolved path is not inside root
    """
    normalized_root = normalize_path(root)
    sanitized = str(relative).replace("\\", "/").lstrip("/")
    candidate = normalize_path(sanitized, normalized_root)

    if candidate != normalized_root and not candidate.is_relative_to(
        normalized_root
    ):
        raise UnsafePathError(str(relative), str(normalized_root))
    return candidate


def find_root_folder(names: list[str]) -> str | None:
    """Detect the top-level folder of an archive.

    Takes the first segment before '/' of the first entry name that has one,
    the way project archives nest everything under a single folder. The
    candidate only counts if every entry lives under it; an archive whose
    files sit directly at the top has no root folder.

    Args:
        names: Entry names in archive order

    Returns:
        Root folder name, or None if entries do not share one
    """
    candidate: str | None = None
    for name in names:
        normalized = name.replace("\\", "/")
        slash_index = normalized.find("/")
        if slash_index > 0:
            candidate = normalized[:slash_index]
            break
    if candidate is None:
        return None

    for name in names:
        normalized = name.replace("\\", "/")
        if normalized != candidate and not normalized.startswith(candidate + "/"):
            return None
    return candidate


def normalize_archive_member(name: str, root_folder: str | None) -> str | None:
    """Map an archive entry name to a path relative to the project root.

    The root folder prefix is stripped when present. The result is
    normalised and checked so that no entry can refer outside the archive's
    logical root, whether or not the caller ever writes it to disk.

    Args:
        name: Raw entry name from the archive
        root_folder: Detected root folder, or None

    Returns:
        Normalised relative path, or None when the entry is the root folder
        itself (nothing left after stripping)

    Raises:
        UnsafePathError: If the entry is absolute or climbs out of the root
    """
    relative = name.replace("\\", "/")
    if root_folder is not None:
        if relative == root_folder or relative == root_folder + "/":
            return None
        if relative.startswith(root_folder + "/"):
            relative = relative[len(root_folder) + 1 :]

    if not relative.strip("/"):
        return None
    if relative.startswith("/"):
        raise UnsafePathError(name, "<archive>")

    normalized = posixpath.normpath(relative)
    if normalized == ".":
        return None
    if normalized == ".." or normalized.startswith("../"):
        raise UnsafePathError(name, "<archive>")
    return normalized
