"""
Sky-Install — Path resolution.

Turns a validated ResourceIntent into concrete locations under the managed
root.  Nothing here touches the filesystem.

Layout of the managed root (defaults):

    ~/.scaii/
    ├── git/<name>/          # git caches, one per resource name
    ├── backends/<name>/     # installed backends (Sky-RTS included)
    ├── core/                # installed core suite
    └── manifest.json        # ManifestStore index

# ---- Changelog ----
# [2026-10-15] Public reserved-name check.
#   What: check_reserved() is shared with clean, which validates --name
#         before looking it up in the manifest.
#
# [2026-10-12] Initial creation.
#   What: PathResolver and ResourcePaths for core, rts and backend intents.
#   How:  Backend names come from --name, the local path or the last URL
#         segment (".git" stripped).  --save-path overrides the git cache.
# -------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from config_schema import SkyInstallConfig
from installer_core.errors import PathError, ValidationError
from installer_core.intent import ReservedName, ResourceIntent, Target

logger = logging.getLogger("sky_install.paths")


@dataclass(frozen=True)
class ResourcePaths:
    """Derived locations for one intent.

    Attributes:
        name: Resource name (cache directory and manifest key).
        kind: "core", "rts" or "backend".
        url: Remote to fetch from; None for local resources.
        git_cache_path: Clone location; None for local resources.
        install_path: Active install location; None when unknown (clean
            resolves it from the manifest instead).
        manifest_path: ManifestStore index consulted for this intent.
        branch: Branch to check out (explicit or the configured default).
    """
    name: str
    kind: str
    url: Optional[str]
    git_cache_path: Optional[Path]
    install_path: Optional[Path]
    manifest_path: Path
    branch: str


def name_from_url(url: str) -> str:
    """Derive a resource name from a repository URL's trailing segment.

    >>> name_from_url("https://github.com/SCAII/Sky-RTS.git")
    'Sky-RTS'
    >>> name_from_url("git@github.com:me/my-backend/")
    'my-backend'
    """
    path = urlparse(url).path if "://" in url else url.split(":", 1)[-1]
    segment = path.rstrip("/").rsplit("/", 1)[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]
    if not segment or segment in (".", ".."):
        raise PathError(f"cannot derive a resource name from URL '{url}'")
    return segment


class PathResolver:
    """Computes ResourcePaths from an intent plus configuration."""

    def __init__(self, config: SkyInstallConfig):
        self.config = config
        self.root = config.root_path

    @property
    def git_root(self) -> Path:
        return self.root / "git"

    @property
    def default_manifest_path(self) -> Path:
        return self.root / self.config.manifest_file

    def default_cache_path(self, name: str) -> Path:
        return self.git_root / name

    def resolve(self, intent: ResourceIntent) -> ResourcePaths:
        """Resolve paths for get/install (and the name-level view of clean).

        Raises:
            PathError: Neither a path nor a name/URL can be derived.
            ValidationError: A backend resolved to a reserved name.
        """
        manifest_path = (
            Path(intent.manifest_path).expanduser()
            if intent.manifest_path
            else self.default_manifest_path
        )
        branch = intent.branch or self.config.default_branch

        if intent.target in (Target.CORE, Target.RTS):
            known = self.config.core if intent.target == Target.CORE else self.config.rts
            paths = ResourcePaths(
                name=known.name,
                kind=intent.target.value,
                url=known.url,
                git_cache_path=self._expand(intent.save_path) or self.default_cache_path(known.name),
                install_path=self._expand(intent.local_path) or self.root / known.install_dir,
                manifest_path=manifest_path,
                branch=branch,
            )
        elif intent.target == Target.BACKEND:
            paths = self._resolve_backend(intent, manifest_path, branch)
        else:
            raise PathError(f"'{intent.target.value}' does not name a single resource")

        logger.debug("Resolved %s -> cache=%s install=%s manifest=%s",
                     intent.describe(), paths.git_cache_path,
                     paths.install_path, paths.manifest_path)
        return paths

    def _resolve_backend(
        self, intent: ResourceIntent, manifest_path: Path, branch: str
    ) -> ResourcePaths:
        if intent.local_path:
            local = self._expand(intent.local_path)
            name = intent.name or local.resolve().name
            self.check_reserved(name)
            return ResourcePaths(
                name=name,
                kind=Target.BACKEND.value,
                url=None,
                git_cache_path=None,
                install_path=local,
                manifest_path=manifest_path,
                branch=branch,
            )

        if intent.url:
            name = intent.name or name_from_url(intent.url)
            self.check_reserved(name)
            return ResourcePaths(
                name=name,
                kind=Target.BACKEND.value,
                url=intent.url,
                git_cache_path=self._expand(intent.save_path) or self.default_cache_path(name),
                install_path=self.root / self.config.backends_dir / name,
                manifest_path=manifest_path,
                branch=branch,
            )

        if intent.name:
            # clean backend --name: the install location comes from the manifest
            self.check_reserved(intent.name)
            return ResourcePaths(
                name=intent.name,
                kind=Target.BACKEND.value,
                url=None,
                git_cache_path=self.default_cache_path(intent.name),
                install_path=None,
                manifest_path=manifest_path,
                branch=branch,
            )

        raise PathError(
            f"cannot resolve a location for '{intent.describe()}': "
            "give a URL, a local path or a name"
        )

    def check_reserved(self, name: str) -> None:
        if name in self.config.reserved_names:
            raise ValidationError([ReservedName("name", name)])

    @staticmethod
    def _expand(value: Optional[str]) -> Optional[Path]:
        return Path(value).expanduser() if value else None
