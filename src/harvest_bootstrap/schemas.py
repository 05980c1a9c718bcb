"""Pydantic schemas for the harvest -> refactor -> write pipeline.

These schemas define the validated inputs and the report produced by a run:
- ManifestEntry / Manifest: what to harvest and where to put it
- RefactorMapping: the old -> new namespace rename for a run
- EntryReport / PipelineReport: per-entry outcomes and overall result

All schemas use Pydantic v2 for validation and serialization.
"""

from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from harvest_bootstrap.core.constants import (
    DEFAULT_ARCHIVE_EXT,
    DOTTED_IDENTIFIER,
    MIN_RENAME_ROOT_SEGMENTS,
)

SourceKind = Literal["history", "archive"]

PipelineState = Literal[
    "init",
    "extracting",
    "refactoring",
    "writing",
    "committed",
    "validated",
    "failed",
    "rolled_back",
]

EntryStatus = Literal["written", "validated", "rolled_back", "failed", "skipped"]


def normalize_relative_path(value: str) -> str:
    """Validate and normalise a manifest-relative POSIX path.

    Args:
        value: Path as written in the manifest

    Returns:
        Normalised path without leading './' segments

    Raises:
        ValueError: If the path is blank, absolute, or contains '..'
    """
    raw = value.strip().replace("\\", "/")
    if not raw:
        raise ValueError("path must not be blank")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise ValueError(f"path must be relative: {value!r}")

    parts = [part for part in PurePosixPath(raw).parts if part != "."]
    if ".." in parts:
        raise ValueError(f"path must not contain '..': {value!r}")
    if not parts:
        raise ValueError(f"path must name a file: {value!r}")
    return "/".join(parts)


class ManifestEntry(BaseModel):
    """A single file to harvest.

    Attributes:
        revision: Commit id or archive snapshot id to read from
        source_path: Path of the file inside the snapshot
        destination_path: Path relative to the destination root
    """

    model_config = ConfigDict(frozen=True)

    revision: str = Field(validation_alias=AliasChoices("revision", "commit"))
    source_path: str = Field(
        validation_alias=AliasChoices("source_path", "sourcePath", "source")
    )
    destination_path: str = Field(
        validation_alias=AliasChoices(
            "destination_path", "destinationPath", "destination"
        )
    )

    @field_validator("revision")
    @classmethod
    def validate_revision(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("revision must not be blank")
        return v

    @field_validator("source_path", "destination_path")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return normalize_relative_path(v)


class Manifest(BaseModel):
    """Validated manifest: an ordered list of entries plus their source.

    Attributes:
        source_root: Git repository or directory of snapshot archives
        source_kind: Backend used to resolve entries ('history' or 'archive')
        entries: Entries in processing (and rollback) order
        archive_ext: Archive extension used by the archive backend
    """

    model_config = ConfigDict(frozen=True)

    source_root: Path = Field(
        validation_alias=AliasChoices("source_root", "sourceRoot", "sourceRepository")
    )
    source_kind: SourceKind = Field(
        default="history",
        validation_alias=AliasChoices("source_kind", "sourceKind", "sourceType"),
    )
    entries: list[ManifestEntry] = Field(
        validation_alias=AliasChoices("entries", "files")
    )
    archive_ext: str = Field(
        default=DEFAULT_ARCHIVE_EXT,
        validation_alias=AliasChoices("archive_ext", "archiveExt"),
    )

    @field_validator("source_kind", mode="before")
    @classmethod
    def normalize_source_kind(cls, v: object) -> object:
        # Older manifests say 'git' / 'zip'
        aliases = {"git": "history", "zip": "archive"}
        if isinstance(v, str):
            lowered = v.strip().lower()
            return aliases.get(lowered, lowered)
        return v

    @field_validator("archive_ext")
    @classmethod
    def validate_archive_ext(cls, v: str) -> str:
        v = v.strip().lstrip(".")
        if not v:
            raise ValueError("archive_ext must not be blank")
        return v

    @model_validator(mode="after")
    def validate_entries(self) -> "Manifest":
        if not self.entries:
            raise ValueError("manifest contains no entries")
        seen: set[str] = set()
        for entry in self.entries:
            if entry.destination_path in seen:
                raise ValueError(
                    f"destination '{entry.destination_path}' listed more than once"
                )
            seen.add(entry.destination_path)
        return self

    @field_serializer("source_root")
    def serialize_source_root(self, path: Path) -> str:
        """Serialize Path to string for JSON."""
        return str(path)


class RefactorMapping(BaseModel):
    """The namespace rename applied to every refactored file in a run.

    Attributes:
        old_namespace: Namespace every refactored file must declare
        new_namespace: Namespace it is renamed to
    """

    model_config = ConfigDict(frozen=True)

    old_namespace: str
    new_namespace: str

    @field_validator("old_namespace", "new_namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        v = v.strip()
        if not DOTTED_IDENTIFIER.match(v):
            raise ValueError(f"not a dotted identifier: {v!r}")
        return v

    @property
    def is_identity(self) -> bool:
        return self.old_namespace == self.new_namespace

    def rename_root(self) -> tuple[str, str]:
        """Return the (old, new) prefixes that imports are re-rooted on.

        Trailing segments shared by both namespaces are dropped while both
        prefixes keep at least two segments: ``com.old.model -> com.new.model``
        re-roots imports under ``com.old`` onto ``com.new``, while
        ``com.acme.model -> org.acme.model`` stops at ``com.acme`` so that
        unrelated ``com.*`` imports are left alone. Anything under
        ``old_namespace`` is also under the returned old prefix.
        """
        old_parts = self.old_namespace.split(".")
        new_parts = self.new_namespace.split(".")
        while (
            len(old_parts) > MIN_RENAME_ROOT_SEGMENTS
            and len(new_parts) > MIN_RENAME_ROOT_SEGMENTS
            and old_parts[-1] == new_parts[-1]
        ):
            old_parts.pop()
            new_parts.pop()
        return ".".join(old_parts), ".".join(new_parts)


class ErrorInfo(BaseModel):
    """Kind and message of an error, as it appears in reports."""

    kind: str
    message: str


class EntryReport(BaseModel):
    """Outcome of one manifest entry.

    Attributes:
        index: Zero-based position in the manifest
        status: written, validated (dry run), rolled_back, failed or skipped
        error_kind: Error kind when status is 'failed'
        message: Error message, or a note for rolled back / skipped entries
    """

    index: int
    revision: str
    source_path: str
    destination_path: str
    status: EntryStatus
    error_kind: str | None = None
    message: str | None = None


class RollbackWarning(BaseModel):
    """A secondary failure while undoing one staged operation."""

    operation: str
    path: str
    message: str


class PipelineReport(BaseModel):
    """Complete audit trail of a pipeline run.

    Returned whether or not the run succeeded. ``error`` is the primary
    failure that aborted the run; ``rollback_warnings`` are secondary
    failures met while undoing and never replace it.
    """

    run_id: str
    state: PipelineState
    dry_run: bool = False
    success: bool
    entries: list[EntryReport] = Field(default_factory=list)
    error: ErrorInfo | None = None
    rollback_warnings: list[RollbackWarning] = Field(default_factory=list)

    @property
    def failed_entry(self) -> EntryReport | None:
        for entry in self.entries:
            if entry.status == "failed":
                return entry
        return None

    def count(self, status: EntryStatus) -> int:
        return sum(1 for entry in self.entries if entry.status == status)
