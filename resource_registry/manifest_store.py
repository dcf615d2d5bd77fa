"""
Manifest Store — provenance records for installed resources.

Keeps one ManifestRecord per installed resource, keyed by name, in a single
JSON index under the managed root (``~/.scaii/manifest.json`` by default).
Clean reads these records to discover what to remove.

# ---- Changelog ----
# [2026-10-14] Corruption is fatal.
#   What: _load() raises ManifestCorruptError instead of logging a warning
#         and starting from an empty registry.
#   Why:  An empty registry after a parse error made `clean all` report
#         success while leaving every install on disk.
#
# [2026-10-12] Initial creation.
#   What: ManifestRecord dataclass and ManifestStore with lookup(), put(),
#         remove(), list().
#   How:  Whole-file JSON index with a "format" marker and version.  Every
#         write goes to a temp file in the same directory, is fsync'd, and
#         is moved over the index with os.replace().
# -------------------
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from installer_core.errors import (
    FilesystemError,
    ManifestConflictError,
    ManifestCorruptError,
)

logger = logging.getLogger("sky_install.manifest_store")

MANIFEST_FORMAT = "sky-install-manifest"
MANIFEST_VERSION = 1


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class ManifestRecord:
    """Provenance of one installed resource.

    Attributes:
        name: Unique resource name (e.g., "SCAII", "Sky-RTS", "my-backend").
        kind: "core", "rts" or "backend".
        install_path: Absolute path of the active install.
        git_cache_path: Git clone the install was produced from, if any.
        branch: Branch checked out at install time, if any.
        installed_at: ISO-8601 UTC timestamp.
        url: Remote the resource was fetched from, if any.
    """
    name: str
    kind: str
    install_path: str
    git_cache_path: Optional[str] = None
    branch: Optional[str] = None
    installed_at: str = ""
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ManifestRecord:
        """Build a record, raising ValueError on missing or mistyped fields."""
        if not isinstance(data, dict):
            raise ValueError(f"record must be an object, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown record fields: {sorted(unknown)}")

        for required in ("name", "kind", "install_path"):
            value = data.get(required)
            if not isinstance(value, str) or not value:
                raise ValueError(f"field '{required}' must be a non-empty string")

        for optional in ("git_cache_path", "branch", "url", "installed_at"):
            value = data.get(optional)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"field '{optional}' must be a string or null")

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ManifestStore:
    """Durable name -> ManifestRecord index backed by one JSON file.

    A missing file is an empty store.  Nothing is written until the first
    put() or remove(), so constructing a store never touches the disk.

    Usage:
        store = ManifestStore("~/.scaii/manifest.json")
        store.put(ManifestRecord(name="my-backend", kind="backend",
                                 install_path="/home/me/.scaii/backends/my-backend"))
        record = store.lookup("my-backend")
        store.remove("my-backend")
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------
    # Core API
    # -------------------------------------------------------------------

    def lookup(self, name: str) -> Optional[ManifestRecord]:
        return self._load().get(name)

    def put(self, record: ManifestRecord) -> None:
        """Insert or atomically replace the record for record.name.

        Raises:
            ManifestConflictError: another name already owns record's
                git cache directory.
        """
        records = self._load()

        if record.git_cache_path:
            owner = self._find_cache_owner(records, record.git_cache_path)
            if owner is not None and owner.name != record.name:
                raise ManifestConflictError(
                    record.name, owner.name, record.git_cache_path
                )

        records[record.name] = record
        self._save(records)
        logger.debug("Recorded %s '%s' at %s in %s",
                     record.kind, record.name, record.install_path, self._path)

    def remove(self, name: str) -> Optional[ManifestRecord]:
        records = self._load()
        removed = records.pop(name, None)
        if removed is not None:
            self._save(records)
            logger.debug("Removed record '%s' from %s", name, self._path)
        return removed

    def list(self) -> List[ManifestRecord]:
        """All records, sorted by name."""
        records = self._load()
        return [records[name] for name in sorted(records)]

    def owner_of_cache(self, git_cache_path: str | Path) -> Optional[ManifestRecord]:
        """Return the record whose git cache is git_cache_path, if any."""
        return self._find_cache_owner(self._load(), str(git_cache_path))

    # -------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------

    @staticmethod
    def _find_cache_owner(
        records: Dict[str, ManifestRecord], git_cache_path: str
    ) -> Optional[ManifestRecord]:
        target = os.path.normpath(git_cache_path)
        for record in records.values():
            if record.git_cache_path and os.path.normpath(record.git_cache_path) == target:
                return record
        return None

    def _load(self) -> Dict[str, ManifestRecord]:
        if not self._path.exists():
            return {}

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ManifestCorruptError(str(self._path), f"invalid JSON ({e})") from e
        except UnicodeDecodeError as e:
            raise ManifestCorruptError(str(self._path), f"not UTF-8 text ({e})") from e
        except OSError as e:
            raise FilesystemError("read", str(self._path), e) from e

        if not isinstance(data, dict) or data.get("format") != MANIFEST_FORMAT:
            raise ManifestCorruptError(
                str(self._path), f"missing '{MANIFEST_FORMAT}' format marker"
            )
        if data.get("version") != MANIFEST_VERSION:
            raise ManifestCorruptError(
                str(self._path), f"unsupported version {data.get('version')!r}"
            )

        raw_records = data.get("resources")
        if not isinstance(raw_records, dict):
            raise ManifestCorruptError(str(self._path), "'resources' must be an object")

        records: Dict[str, ManifestRecord] = {}
        for key, raw in raw_records.items():
            try:
                record = ManifestRecord.from_dict(raw)
            except (TypeError, ValueError) as e:
                raise ManifestCorruptError(
                    str(self._path), f"record '{key}': {e}"
                ) from e
            if record.name != key:
                raise ManifestCorruptError(
                    str(self._path),
                    f"record keyed '{key}' is named '{record.name}'",
                )
            records[key] = record

        return records

    def _save(self, records: Dict[str, ManifestRecord]) -> None:
        data = {
            "format": MANIFEST_FORMAT,
            "version": MANIFEST_VERSION,
            "last_updated": time.time(),
            "resources": {name: r.to_dict() for name, r in sorted(records.items())},
        }

        tmp_path: Optional[Path] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(data, tmp, indent=2)
                tmp.write("\n")
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise FilesystemError("write", str(self._path), e) from e
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
