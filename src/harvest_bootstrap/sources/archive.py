"""Archive-backed source extractor.

The source root is a directory of snapshot archives named
``{project}-{revision}.{ext}``, one archive per revision. Archives usually nest
the project under a single top-level folder; that folder is stripped before
entry paths are compared with manifest paths.
"""

from __future__ import annotations

import posixpath
import zipfile
import zlib
from pathlib import Path
from typing import Any

from harvest_bootstrap.core.constants import (
    ARCHIVE_REVISION_SEPARATOR,
    DEFAULT_ARCHIVE_EXT,
)
from harvest_bootstrap.core.errors import (
    AmbiguousArchive,
    ArchiveNotFound,
    ArchiveUnreadable,
    PathNotFoundInArchive,
    SourceUnavailable,
    UnsafePathError,
)
from harvest_bootstrap.fs.paths import find_root_folder, normalize_archive_member
from harvest_bootstrap.sources.base import SourceExtractor
from harvest_bootstrap.utils.debug import debug


def archive_revision(file_name: str, archive_ext: str) -> str | None:
    """Extract the revision id component from an archive file name.

    Expected format: ``{project}-{revision}.{ext}``; the revision is whatever
    follows the last hyphen of the stem.

    Args:
        file_name: Archive file name (no directory)
        archive_ext: Extension without the dot

    Returns:
        Revision id, or None if the name does not follow the pattern
    """
    suffix = "." + archive_ext
    if not file_name.endswith(suffix):
        return None
    stem = file_name[: -len(suffix)]
    separator = stem.rfind(ARCHIVE_REVISION_SEPARATOR)
    if separator <= 0 or separator == len(stem) - 1:
        return None
    return stem[separator + 1 :]


class ArchiveSource(SourceExtractor):
    """Resolve files from a directory of per-revision snapshot archives.

    The directory is rescanned on every lookup and every archive is opened per
    call, so concurrent ``resolve`` calls share no state.
    """

    kind = "archive"

    def __init__(
        self,
        root: Path,
        *,
        archive_ext: str = DEFAULT_ARCHIVE_EXT,
        logger: Any = None,
    ) -> None:
        """Open an archive directory.

        Args:
            root: Directory containing snapshot archives
            archive_ext: Archive extension, with or without the leading dot
            logger: Optional structlog logger instance

        Raises:
            SourceUnavailable: If root is missing or not a directory
        """
        super().__init__(root, logger)
        self.archive_ext = archive_ext.lstrip(".")

        if not self.root.exists():
            raise SourceUnavailable(str(self.root), "commits directory not found")
        if not self.root.is_dir():
            raise SourceUnavailable(str(self.root), "path is not a directory")

    def index(self) -> dict[str, list[Path]]:
        """Map each revision id to the archives carrying it."""
        revisions: dict[str, list[Path]] = {}
        try:
            candidates = sorted(self.root.iterdir())
        except OSError as exc:
            raise SourceUnavailable(str(self.root), str(exc)) from exc

        for path in candidates:
            if not path.is_file():
                continue
            revision = archive_revision(path.name, self.archive_ext)
            if revision is None:
                debug(f"Ignoring file without revision component: {path.name}")
                continue
            revisions.setdefault(revision, []).append(path)
        return revisions

    def find_archive(self, revision: str) -> Path:
        """Return the single archive whose revision component equals ``revision``.

        Matching is exact; a shorter or longer id never matches.

        Raises:
            ArchiveNotFound: If no archive matches
            AmbiguousArchive: If more than one archive matches
        """
        matches = self.index().get(revision, [])
        if not matches:
            raise ArchiveNotFound(revision, str(self.root))
        if len(matches) > 1:
            raise AmbiguousArchive(revision, [path.name for path in matches])
        return matches[0]

    def _read_member(
        self,
        bundle: zipfile.ZipFile,
        member: zipfile.ZipInfo,
        revision: str,
        archive: Path,
    ) -> bytes:
        # Unsupported compression, encryption and corrupt streams
        try:
            return bundle.read(member)
        except (NotImplementedError, RuntimeError, zlib.error) as exc:
            raise ArchiveUnreadable(
                revision, member.filename, archive.name, str(exc)
            ) from exc

    def resolve(self, revision: str, source_path: str) -> bytes:
        archive = self.find_archive(revision)
        wanted = posixpath.normpath(source_path.replace("\\", "/").lstrip("/"))

        try:
            with zipfile.ZipFile(archive) as bundle:
                members = bundle.infolist()
                root_folder = find_root_folder([m.filename for m in members])
                debug(f"Root folder of {archive.name}: {root_folder}")

                for member in members:
                    if member.is_dir():
                        continue
                    try:
                        relative = normalize_archive_member(member.filename, root_folder)
                    except UnsafePathError:
                        self._logger.warning(
                            "source.unsafe_entry",
                            archive=archive.name,
                            entry=member.filename,
                        )
                        continue
                    if relative is None:
                        # Entry is the root folder itself; not a file.
                        debug(f"Skipping root folder entry: {member.filename}")
                        continue
                    if relative == wanted:
                        return self._read_member(bundle, member, revision, archive)
        except (zipfile.BadZipFile, OSError) as exc:
            raise SourceUnavailable(str(archive), f"cannot read archive: {exc}") from exc

        raise PathNotFoundInArchive(revision, source_path, archive.name)
