"""History-backed source extractor.

Reads file content straight out of a git repository's object database with
the ``git`` executable. Nothing here touches the work tree, the index or any
ref, so extraction never changes the repository.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Any

from harvest_bootstrap.core.constants import DEFAULT_GIT_BINARY
from harvest_bootstrap.core.errors import (
    PathNotFoundAtRevision,
    RevisionNotFound,
    SourceUnavailable,
)
from harvest_bootstrap.sources.base import SourceExtractor

# Variables that would point git somewhere other than the configured root
_GIT_ENV_OVERRIDES = ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_OBJECT_DIRECTORY")


class HistorySource(SourceExtractor):
    """Resolve files from commits of a git repository.

    The root may be a work tree or a ``.git`` directory. Repository discovery
    is not allowed to climb above the root, so a plain directory nested inside
    some other checkout is rejected rather than silently read from the outer
    repository.
    """

    kind = "history"

    def __init__(
        self,
        root: Path,
        *,
        git_binary: str = DEFAULT_GIT_BINARY,
        logger: Any = None,
    ) -> None:
        """Open the repository at ``root``.

        Args:
            root: Repository work tree or .git directory
            git_binary: git executable to run
            logger: Optional structlog logger instance

        Raises:
            SourceUnavailable: If root is missing, not a repository, or git
                cannot be run
        """
        super().__init__(root, logger)
        self.git_binary = git_binary
        self._env = self._build_env()
        self._check_repository()

    def _build_env(self) -> dict[str, str]:
        env = {k: v for k, v in os.environ.items() if k not in _GIT_ENV_OVERRIDES}
        env["GIT_CEILING_DIRECTORIES"] = str(self.root.resolve().parent)
        env["GIT_OPTIONAL_LOCKS"] = "0"
        env["LC_ALL"] = "C"
        return env

    def _git(self, *args: str) -> subprocess.CompletedProcess[bytes]:
        try:
            return subprocess.run(
                [self.git_binary, "-C", str(self.root), *args],
                capture_output=True,
                env=self._env,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SourceUnavailable(
                str(self.root), f"git executable '{self.git_binary}' not found"
            ) from exc
        except OSError as exc:
            raise SourceUnavailable(str(self.root), str(exc)) from exc

    def _check_repository(self) -> None:
        if not self.root.exists():
            raise SourceUnavailable(str(self.root), "Git repository not found")
        if not self.root.is_dir():
            raise SourceUnavailable(str(self.root), "path is not a directory")

        result = self._git("rev-parse", "--git-dir")
        if result.returncode != 0:
            reason = result.stderr.decode("utf-8", "replace").strip()
            raise SourceUnavailable(
                str(self.root), reason or "not a git repository"
            )
        self._logger.info("source.opened", git_dir=result.stdout.decode().strip())

    def resolve_revision(self, revision: str) -> str:
        """Resolve a revision (full or abbreviated commit id, ref) to a commit.

        Args:
            revision: Revision expression from the manifest

        Returns:
            Full commit id

        Raises:
            RevisionNotFound: If the revision names no commit
        """
        if not revision.strip() or revision.startswith("-"):
            raise RevisionNotFound(revision)

        result = self._git("rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}")
        if result.returncode != 0:
            raise RevisionNotFound(revision)
        return result.stdout.decode("ascii").strip()

    def read_path_at_revision(
        self, commit: str, source_path: str, revision: str | None = None
    ) -> bytes:
        """Read the blob stored at ``source_path`` in ``commit``'s tree.

        Args:
            commit: Full commit id (from ``resolve_revision``)
            source_path: Path relative to the repository root
            revision: Revision as written in the manifest, for error messages

        Returns:
            Blob bytes exactly as stored

        Raises:
            PathNotFoundAtRevision: If the tree has no blob at that path
        """
        shown = revision or commit
        object_spec = f"{commit}:{source_path.lstrip('/')}"

        kind = self._git("cat-file", "-t", object_spec)
        if kind.returncode != 0 or kind.stdout.strip() != b"blob":
            raise PathNotFoundAtRevision(shown, source_path)

        blob = self._git("cat-file", "blob", object_spec)
        if blob.returncode != 0:
            raise PathNotFoundAtRevision(shown, source_path)
        return blob.stdout

    def resolve(self, revision: str, source_path: str) -> bytes:
        commit = self.resolve_revision(revision)
        return self.read_path_at_revision(commit, source_path, revision)
