"""Filesystem staging with rollback capability.

This module provides the transaction log that stages destination writes and
undoes them on failure, path guards for destination and archive paths, and
the JSONL run journal.
"""

from harvest_bootstrap.fs.journal import RunJournal, read_journal
from harvest_bootstrap.fs.paths import normalize_path, resolve_within
from harvest_bootstrap.fs.transaction import (
    CreateDirectory,
    CreateFile,
    FileSystemOperation,
    OverwriteFile,
    RollbackResult,
    TransactionLog,
)

__all__ = [
    "CreateDirectory",
    "CreateFile",
    "FileSystemOperation",
    "OverwriteFile",
    "RollbackResult",
    "RunJournal",
    "TransactionLog",
    "normalize_path",
    "read_journal",
    "resolve_within",
]
