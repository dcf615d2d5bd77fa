"""
Sky-Install — Filesystem operations.

Every mutation the lifecycle makes goes through a LocalFilesystem instance,
so tests can substitute a recording spy and prove that a rejected intent
never reached the disk.

# ---- Changelog ----
# [2026-10-14] Read-only retry.
#   What: remove_tree clears the read-only bit and retries, so git object
#         files can be deleted.
#
# [2026-10-12] Initial creation.
#   What: exists, make_dirs, remove_tree, copy_tree and link_tree.
#   How:  OSError is wrapped in FilesystemError carrying the action and
#         the offending path.
# -------------------
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import sys
from pathlib import Path

from installer_core.errors import FilesystemError

logger = logging.getLogger("sky_install.fs_ops")


def _clear_readonly_and_retry(func, path, exc) -> None:
    """shutil.rmtree error hook: git marks object files read-only."""
    if isinstance(exc, tuple):
        exc = exc[1]
    if not os.access(path, os.W_OK):
        os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
        func(path)
    else:
        raise exc


def _rmtree(path: Path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_clear_readonly_and_retry)
    else:
        shutil.rmtree(path, onerror=_clear_readonly_and_retry)


class LocalFilesystem:
    """Filesystem mutations with path context on every failure."""

    def exists(self, path: Path) -> bool:
        return os.path.lexists(path)

    def make_dirs(self, path: Path) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("create", str(path), e) from e

    def remove_tree(self, path: Path) -> None:
        """Remove a directory tree, a file, or a symlink (not its target)."""
        path = Path(path)
        try:
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.exists():
                _rmtree(path)
            else:
                return
        except OSError as e:
            raise FilesystemError("clean", str(path), e) from e
        logger.debug("Removed %s", path)

    def copy_tree(self, source: Path, dest: Path) -> None:
        """Copy source into dest, leaving out git metadata."""
        try:
            Path(dest).parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(
                source, dest,
                symlinks=True,
                ignore=shutil.ignore_patterns(".git"),
            )
        except (OSError, shutil.Error) as e:
            raise FilesystemError("copy into", str(dest), e) from e

    def link_tree(self, source: Path, dest: Path) -> None:
        try:
            Path(dest).parent.mkdir(parents=True, exist_ok=True)
            os.symlink(Path(source).resolve(), dest, target_is_directory=True)
        except OSError as e:
            raise FilesystemError("link", str(dest), e) from e
