from __future__ import annotations

from pathlib import Path
from typing import List, Set, Tuple

import pytest

from config_schema import ROOT_ENV_VAR, SkyInstallConfig
from installer_core.errors import FetchError, FilesystemError, InstallGlueError
from installer_core.fs_ops import LocalFilesystem
from installer_core.lifecycle import LifecycleOrchestrator


# === Collaborator doubles ===

class FakeFetcher:
    """Stands in for GitFetcher: "clones" by writing a small tree."""

    def __init__(self, fail_with: str = "") -> None:
        self.fail_with = fail_with
        self.clones: List[Tuple[str, Path, str]] = []
        self.checkouts: List[Tuple[Path, str]] = []

    def clone(self, url: str, dest: Path, branch: str) -> None:
        self.clones.append((url, Path(dest), branch))
        if self.fail_with:
            raise FetchError(url, str(dest), self.fail_with)
        dest = Path(dest)
        (dest / ".git").mkdir(parents=True)
        (dest / ".git" / "HEAD").write_text(f"ref: refs/heads/{branch}\n")
        (dest / "README.md").write_text(f"cloned from {url}\n")

    def checkout(self, dest: Path, branch: str) -> None:
        self.checkouts.append((Path(dest), branch))


class SpyFilesystem(LocalFilesystem):
    """LocalFilesystem that records every mutation and can fail on demand."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Path]] = []
        self.fail_on: Set[Path] = set()

    def _note(self, op: str, path: Path) -> None:
        path = Path(path)
        self.calls.append((op, path))
        if path in self.fail_on:
            raise FilesystemError(op, str(path), PermissionError(13, "Permission denied"))

    def make_dirs(self, path):
        self._note("make_dirs", path)
        super().make_dirs(path)

    def remove_tree(self, path):
        self._note("remove_tree", path)
        super().remove_tree(path)

    def copy_tree(self, source, dest):
        self._note("copy_tree", dest)
        super().copy_tree(source, dest)

    def link_tree(self, source, dest):
        self._note("link_tree", dest)
        super().link_tree(source, dest)

    def paths_for(self, op: str) -> List[Path]:
        return [path for name, path in self.calls if name == op]


class FailingGlue:
    """Glue that half-builds the install directory, then fails."""

    def __init__(self) -> None:
        self.calls = 0

    def materialize(self, source, install_path, kind):
        self.calls += 1
        Path(install_path).mkdir(parents=True)
        (Path(install_path) / "partial.txt").write_text("half done")
        raise InstallGlueError(Path(install_path).name, kind, "post-install step exploded")


# === Fixtures ===

@pytest.fixture(autouse=True)
def _no_root_override(monkeypatch):
    monkeypatch.delenv(ROOT_ENV_VAR, raising=False)


@pytest.fixture
def root(tmp_path) -> Path:
    return tmp_path / "scaii"


@pytest.fixture
def config(root) -> SkyInstallConfig:
    return SkyInstallConfig(root_dir=str(root), web_dependencies=[])


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def fs() -> SpyFilesystem:
    return SpyFilesystem()


@pytest.fixture
def orch(config, fetcher, fs) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(config, fetcher=fetcher, fs=fs, show_progress=False)


@pytest.fixture
def local_backend(tmp_path) -> Path:
    """A backend checked out somewhere outside the managed root."""
    path = tmp_path / "work" / "my-local-backend"
    path.mkdir(parents=True)
    (path / "backend.py").write_text("print('hello')\n")
    return path
