"""Custom exceptions for harvest-bootstrap.

Every failure the pipeline can report is a ``HarvestError`` carrying a stable
``kind`` string. The kind is what ends up in ``PipelineReport`` entries and in
the run journal, so callers can tell a manifest/data mismatch apart from a
filesystem fault without parsing messages.
"""

from typing import Any


class HarvestError(Exception):
    """Base exception for all harvest-bootstrap errors.

    Attributes:
        kind: Stable error kind used in reports (e.g. 'RevisionNotFound')
        message: Human-readable description of the failure
    """

    kind = "HarvestError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        """Return error-specific fields for reports."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for reports and JSON output.

        Returns:
            Dictionary with the error kind, message and any extra details
        """
        result: dict[str, Any] = {"error": self.kind, "message": self.message}
        result.update({k: v for k, v in self.details().items() if v is not None})
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class SourceUnavailable(HarvestError):
    """Raised when the configured source root cannot be opened at all.

    This is a pre-flight failure: no entry was processed.
    """

    kind = "SourceUnavailable"

    def __init__(self, root: str, reason: str) -> None:
        self.root = root
        self.reason = reason
        super().__init__(f"Source root '{root}' unavailable: {reason}")

    def details(self) -> dict[str, Any]:
        return {"root": self.root}


class ExtractionError(HarvestError):
    """Base for failures resolving a (revision, path) pair to bytes."""

    kind = "ExtractionError"

    def __init__(
        self, message: str, revision: str, source_path: str | None = None
    ) -> None:
        self.revision = revision
        self.source_path = source_path
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"revision": self.revision, "source_path": self.source_path}


class RevisionNotFound(ExtractionError):
    """Raised when the history backend has no commit for a revision."""

    kind = "RevisionNotFound"

    def __init__(self, revision: str) -> None:
        super().__init__(f"Commit not found: {revision}", revision)


class PathNotFoundAtRevision(ExtractionError):
    """Raised when a commit's tree has no blob at the requested path."""

    kind = "PathNotFoundAtRevision"

    def __init__(self, revision: str, source_path: str) -> None:
        super().__init__(
            f"File not found at commit {revision[:7]}: {source_path}",
            revision,
            source_path,
        )


class ArchiveNotFound(ExtractionError):
    """Raised when no archive's revision component equals the revision."""

    kind = "ArchiveNotFound"

    def __init__(self, revision: str, root: str) -> None:
        self.root = root
        super().__init__(f"No archive for revision '{revision}' in {root}", revision)


class AmbiguousArchive(ExtractionError):
    """Raised when several archives carry the same revision component.

    Attributes:
        candidates: File names of every matching archive
    """

    kind = "AmbiguousArchive"

    def __init__(self, revision: str, candidates: list[str]) -> None:
        self.candidates = candidates
        super().__init__(
            f"Revision '{revision}' matches {len(candidates)} archives: "
            + ", ".join(candidates),
            revision,
        )

    def details(self) -> dict[str, Any]:
        result = super().details()
        result["candidates"] = self.candidates
        return result


class PathNotFoundInArchive(ExtractionError):
    """Raised when the matched archive has no entry for the path."""

    kind = "PathNotFoundInArchive"

    def __init__(self, revision: str, source_path: str, archive: str) -> None:
        self.archive = archive
        super().__init__(
            f"File not found in archive {archive}: {source_path}",
            revision,
            source_path,
        )

    def details(self) -> dict[str, Any]:
        result = super().details()
        result["archive"] = self.archive
        return result


class ArchiveUnreadable(ExtractionError):
    """Raised when a matched archive entry cannot be decompressed.

    Covers compression methods zipfile does not support and encrypted entries.
    """

    kind = "ArchiveUnreadable"

    def __init__(
        self, revision: str, source_path: str, archive: str, reason: str
    ) -> None:
        self.archive = archive
        super().__init__(
            f"Cannot read {source_path} from archive {archive}: {reason}",
            revision,
            source_path,
        )

    def details(self) -> dict[str, Any]:
        result = super().details()
        result["archive"] = self.archive
        return result


class RefactorError(HarvestError):
    """Base for header parsing and namespace rewriting failures."""

    kind = "RefactorError"


class HeaderParseError(RefactorError):
    """Raised when no package/import header can be located.

    Attributes:
        offset: Byte offset where parsing gave up, if known
    """

    kind = "HeaderParseError"

    def __init__(self, reason: str, offset: int | None = None) -> None:
        self.reason = reason
        self.offset = offset
        message = f"Failed to parse header: {reason}"
        if offset is not None:
            message += f" (at byte {offset})"
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"offset": self.offset}


class NamespaceMismatch(RefactorError):
    """Raised when a file's declared namespace is not the mapping's old one."""

    kind = "NamespaceMismatch"

    def __init__(self, expected: str, actual: str | None) -> None:
        self.expected = expected
        self.actual = actual
        declared = actual if actual is not None else "<none>"
        super().__init__(
            f"Declared namespace '{declared}' does not match expected '{expected}'"
        )

    def details(self) -> dict[str, Any]:
        return {"expected": self.expected, "actual": self.actual}


class FileSystemError(HarvestError):
    """Raised when staging or undoing a filesystem mutation fails."""

    kind = "FileSystemError"

    def __init__(self, operation: str, path: str, reason: str) -> None:
        self.operation = operation
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to {operation} {path}: {reason}")

    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "path": self.path}


class UnsafePathError(HarvestError):
    """Raised when a relative path would escape its root."""

    kind = "UnsafePath"

    def __init__(self, path: str, root: str) -> None:
        self.path = path
        self.root = root
        super().__init__(f"Path '{path}' escapes root {root}")

    def details(self) -> dict[str, Any]:
        return {"path": self.path, "root": self.root}


class TransactionClosed(HarvestError):
    """Raised when staging on a transaction that was committed or rolled back."""

    kind = "TransactionClosed"

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Transaction already {state}")
