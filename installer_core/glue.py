"""
Sky-Install — Installer glue.

Per-kind materialization of an acquired resource into its install location.
The lifecycle hands each glue a source tree (a git cache or a local path)
and an install path; the glue owns everything that happens in between.

  backend, rts: place the source tree (copy without .git, or symlink)
  core:         place the tree, then unpack the web dependency archives

# ---- Changelog ----
# [2026-10-14] Core web dependencies.
#   What: CoreGlue unpacks the closure and protobuf archives after placing
#         the tree.
#   Settings: web_dependencies and link_mode in config.yaml.
#
# [2026-10-13] Initial creation.
#   What: BackendGlue (copy or symlink) and default_glue().
# -------------------
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from config_schema import SkyInstallConfig, WebDependencyConfig
from installer_core.archives import install_archive
from installer_core.errors import FilesystemError, InstallGlueError
from installer_core.fs_ops import LocalFilesystem

logger = logging.getLogger("sky_install.glue")


class BackendGlue:
    """Places a resource tree at its install location."""

    def __init__(self, fs: Optional[LocalFilesystem] = None, link_mode: str = "copy"):
        self.fs = fs or LocalFilesystem()
        self.link_mode = link_mode

    def materialize(self, source: Path, install_path: Path, kind: str) -> None:
        source, install_path = Path(source), Path(install_path)

        if _same_path(source, install_path):
            # In-place install of a local resource
            if not source.is_dir():
                raise InstallGlueError(install_path.name, kind,
                                       f"'{source}' is not a directory")
            logger.info("Using %s '%s' in place", kind, source)
            return

        if not source.is_dir():
            raise InstallGlueError(install_path.name, kind,
                                   f"source '{source}' is not a directory")

        try:
            if self.link_mode == "symlink":
                self.fs.link_tree(source, install_path)
            else:
                self.fs.copy_tree(source, install_path)
        except FilesystemError as e:
            raise InstallGlueError(install_path.name, kind, str(e)) from e

        logger.info("Placed %s '%s' at %s (%s)",
                    kind, source.name, install_path, self.link_mode)


class CoreGlue(BackendGlue):
    """Core suite: place the tree, then fetch its web dependencies."""

    def __init__(
        self,
        fs: Optional[LocalFilesystem] = None,
        link_mode: str = "copy",
        web_dependencies: Sequence[WebDependencyConfig] = (),
        fetch_archive: Callable[..., None] = install_archive,
        show_progress: bool = True,
    ):
        super().__init__(fs=fs, link_mode=link_mode)
        self.web_dependencies = list(web_dependencies)
        self.fetch_archive = fetch_archive
        self.show_progress = show_progress

    def materialize(self, source: Path, install_path: Path, kind: str) -> None:
        super().materialize(source, install_path, kind)

        for dep in self.web_dependencies:
            self.fetch_archive(
                dep.name,
                dep.url,
                Path(install_path) / dep.dest,
                expected_bytes=dep.size_bytes,
                show_progress=self.show_progress,
            )


def default_glue(
    config: SkyInstallConfig,
    fs: Optional[LocalFilesystem] = None,
    show_progress: bool = True,
) -> Dict[str, BackendGlue]:
    """Glue per resource kind, built from configuration."""
    backend = BackendGlue(fs=fs, link_mode=config.link_mode)
    return {
        "backend": backend,
        "rts": backend,
        "core": CoreGlue(
            fs=fs,
            link_mode=config.link_mode,
            web_dependencies=config.web_dependencies,
            show_progress=show_progress,
        ),
    }


def _same_path(a: Path, b: Path) -> bool:
    try:
        return os.path.samefile(a, b)
    except OSError:
        return os.path.normpath(os.path.abspath(a)) == os.path.normpath(os.path.abspath(b))
