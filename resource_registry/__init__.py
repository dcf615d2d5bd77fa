"""
Resource Registry — what Sky-Install has installed, and where.

Every successful `install` leaves a ManifestRecord in the registry and
every successful `clean` takes it out again, so the registry is the single
source of truth for reversing an installation.  Records live in one JSON
index under the managed root (``~/.scaii/manifest.json``); `clean backend
--manifest <file>` may point at any other index written in the same format.

# ---- Changelog ----
# [2026-10-12] Initial creation.
#   What: Package holding ManifestRecord and ManifestStore.
#   Settings: The index file name defaults to manifest.json and is
#         configurable through sky_install.manifest_file in config.yaml.
# -------------------
"""

from resource_registry.manifest_store import ManifestRecord, ManifestStore

__all__ = ["ManifestRecord", "ManifestStore"]

__version__ = "0.1.0"
