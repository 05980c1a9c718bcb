"""Pytest configuration and fixtures for harvest-bootstrap tests."""

import os
import shutil
import subprocess
import zipfile
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import structlog

GIT = shutil.which("git")

requires_git = pytest.mark.skipif(GIT is None, reason="git executable not available")


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo any structlog configuration a test (or the CLI) installed."""
    yield
    structlog.reset_defaults()


class GitRepo:
    """Throwaway git repository for history-backed tests."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._env = {
            **os.environ,
            "GIT_AUTHOR_NAME": "Test Author",
            "GIT_AUTHOR_EMAIL": "author@example.com",
            "GIT_COMMITTER_NAME": "Test Author",
            "GIT_COMMITTER_EMAIL": "author@example.com",
            "GIT_CONFIG_NOSYSTEM": "1",
        }
        self.git("init", "-q")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", "-C", str(self.root), *args],
            capture_output=True,
            check=True,
            env=self._env,
        )
        return result.stdout.decode().strip()

    def commit(self, files: dict[str, bytes], message: str = "commit") -> str:
        """Write files, commit them, and return the new commit id."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            self.git("add", relative)
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")

    def remove(self, relative: str, message: str = "remove") -> str:
        """Delete a tracked file in a new commit and return its id."""
        self.git("rm", "-q", relative)
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    """Empty git repository under tmp_path/repo."""
    if GIT is None:
        pytest.skip("git executable not available")
    root = tmp_path / "repo"
    root.mkdir()
    return GitRepo(root)


ArchiveBuilder = Callable[..., Path]


@pytest.fixture
def make_archive() -> ArchiveBuilder:
    """Build a zip archive from a mapping of entry name to bytes.

    Usage:
        make_archive(directory, "proj-abc123.zip", {"src/Foo.txt": b"x"},
                     root_folder="proj-abc123")
    """

    def _make(
        directory: Path,
        name: str,
        files: dict[str, bytes],
        root_folder: str | None = None,
        include_dirs: bool = True,
    ) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        archive = directory / name
        with zipfile.ZipFile(archive, "w") as bundle:
            if root_folder and include_dirs:
                bundle.writestr(f"{root_folder}/", b"")
            for entry_name, content in files.items():
                full = f"{root_folder}/{entry_name}" if root_folder else entry_name
                bundle.writestr(full, content)
        return archive

    return _make


def set_compression_method(archive: Path, method: int) -> None:
    """Overwrite the compression method recorded for every entry of a zip.

    Entry data is left as written, so a method zipfile lacks makes reads fail.
    """
    data = bytearray(archive.read_bytes())
    field = method.to_bytes(2, "little")
    # Local file headers keep the method at offset 8, central records at 10
    for signature, offset in ((b"PK\x03\x04", 8), (b"PK\x01\x02", 10)):
        start = data.find(signature)
        while start != -1:
            data[start + offset : start + offset + 2] = field
            start = data.find(signature, start + 4)
    archive.write_bytes(bytes(data))


def java_source(
    namespace: str, imports: list[str] | None = None, body: str = "class Sample {}\n"
) -> bytes:
    """Assemble a small Java file with a package line and imports."""
    lines = [f"package {namespace};", ""]
    lines.extend(f"import {name};" for name in imports or [])
    if imports:
        lines.append("")
    return ("\n".join(lines) + "\n" + body).encode("utf-8")
