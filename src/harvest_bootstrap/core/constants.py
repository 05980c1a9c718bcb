"""Core constants for harvest-bootstrap.

This module defines constants used throughout the application:
- Source kinds and archive naming
- Header scanning constants for the refactoring engine
- Defaults for prefetching and external tools
"""

import re

# ============================================================================
# Sources
# ============================================================================

#: Source backends a manifest may name
SOURCE_KINDS: tuple[str, ...] = ("history", "archive")

#: Default extension of snapshot archives ({project}-{revision}.{ext})
DEFAULT_ARCHIVE_EXT = "zip"

#: Separator between project name and revision id in archive file names
ARCHIVE_REVISION_SEPARATOR = "-"

#: Default git executable for the history backend
DEFAULT_GIT_BINARY = "git"

# ============================================================================
# Pipeline
# ============================================================================

#: Default number of extraction workers prefetching ahead of staging
DEFAULT_PREFETCH_WORKERS = 4

#: Upper bound on prefetch workers
MAX_PREFETCH_WORKERS = 32

# ============================================================================
# Refactoring
# ============================================================================

#: A dotted identifier such as ``com.example.model``
DOTTED_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")

#: Fewest segments an import rename root may be shortened to (group-id level)
MIN_RENAME_ROOT_SEGMENTS = 2

#: UTF-8 byte order mark, skipped before the header
UTF8_BOM = b"\xef\xbb\xbf"

# ============================================================================
# CLI exit codes
# ============================================================================

EXIT_OK = 0
EXIT_ROLLED_BACK = 1
EXIT_PREFLIGHT = 2
