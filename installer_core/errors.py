"""
Sky-Install — Error taxonomy and exit codes.

Every failure the installer can surface derives from SkyInstallError and
carries a stable process exit code.  The CLI maps an uncaught
SkyInstallError straight to sys.exit(err.exit_code).

  0   success
  1   filesystem / unexpected I/O failure
  2   validation failure (bad flag combination)
  3   not found (clean)
  4   already exists / already installed
  5   manifest corrupt or conflicting
  6   fetch (git) failure
  7   installer glue failure
  8   unresolvable path
  9   partial failure of a `clean all` batch
  10  invalid configuration

# ---- Changelog ----
# [2026-10-12] Initial creation.
#   What: Exception hierarchy grouped by lifecycle stage (Get, Install,
#         Clean, Manifest) plus validation/path/fetch/config errors.
#   How:  Class attribute exit_code, overridden per family.  Errors that
#         name a path or resource keep it as an attribute so callers can
#         act manually without parsing the message.
# -------------------
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

EXIT_OK = 0
EXIT_IO = 1
EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_ALREADY_PRESENT = 4
EXIT_MANIFEST = 5
EXIT_FETCH = 6
EXIT_GLUE = 7
EXIT_PATH = 8
EXIT_BATCH = 9
EXIT_CONFIG = 10


class SkyInstallError(Exception):
    """Base class for all installer failures."""
    exit_code: int = EXIT_IO


class ConfigError(SkyInstallError):
    """config.yaml could not be loaded or failed schema validation."""
    exit_code = EXIT_CONFIG


class ValidationError(SkyInstallError):
    """An intent violated one or more declared field relations.

    Attributes:
        violations: Every violation found, in declaration order.
    """
    exit_code = EXIT_VALIDATION

    def __init__(self, violations: Sequence):
        self.violations = list(violations)
        lines = "; ".join(v.message for v in self.violations)
        super().__init__(f"invalid arguments: {lines}")


class PathError(SkyInstallError):
    """Not enough information to derive a resource location."""
    exit_code = EXIT_PATH


class FilesystemError(SkyInstallError):
    """A filesystem mutation failed.

    Attributes:
        path: The path being created, copied or removed.
    """

    def __init__(self, action: str, path: str, cause: BaseException):
        self.action = action
        self.path = str(path)
        self.cause = cause
        super().__init__(f"cannot {action} '{self.path}': {cause}")


class FetchError(SkyInstallError):
    """git clone/checkout failed; stderr is kept verbatim."""
    exit_code = EXIT_FETCH

    def __init__(self, url: str, dest: str, detail: str):
        self.url = url
        self.dest = str(dest)
        self.detail = detail
        super().__init__(f"git failed for '{url}' at '{self.dest}': {detail}")


# --- Get ---

class GetError(SkyInstallError):
    pass


class AlreadyExistsError(GetError):
    exit_code = EXIT_ALREADY_PRESENT

    def __init__(self, path: str):
        self.path = str(path)
        super().__init__(
            f"Directory '{self.path}' exists "
            "(Hint: rerun this command with '-f' to force overwrite)"
        )


# --- Install ---

class InstallError(SkyInstallError):
    pass


class AlreadyInstalledError(InstallError):
    exit_code = EXIT_ALREADY_PRESENT

    def __init__(self, name: str, install_path: str = ""):
        self.name = name
        self.install_path = str(install_path)
        where = f" at '{self.install_path}'" if install_path else ""
        super().__init__(
            f"'{name}' is already installed{where} "
            "(Hint: rerun with '--force' to reinstall)"
        )


class InstallGlueError(InstallError):
    """Per-kind materialization failed after acquisition."""
    exit_code = EXIT_GLUE

    def __init__(self, name: str, kind: str, detail: str):
        self.name = name
        self.kind = kind
        super().__init__(f"installing {kind} '{name}' failed: {detail}")


# --- Manifest ---

class ManifestError(SkyInstallError):
    exit_code = EXIT_MANIFEST


class ManifestCorruptError(ManifestError):
    def __init__(self, path: str, detail: str):
        self.path = str(path)
        super().__init__(f"manifest '{self.path}' is corrupt: {detail}")


class ManifestConflictError(ManifestError):
    """Two resource names would share one git cache directory."""

    def __init__(self, name: str, owner: str, git_cache_path: str):
        self.name = name
        self.owner = owner
        self.git_cache_path = str(git_cache_path)
        super().__init__(
            f"git cache '{self.git_cache_path}' already belongs to '{owner}', "
            f"cannot reuse it for '{name}'"
        )


# --- Clean ---

class CleanError(SkyInstallError):
    pass


class NotFoundError(CleanError):
    exit_code = EXIT_NOT_FOUND

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"no installed resource matches '{identifier}'")


class CleanBatchError(CleanError):
    """Raised after a `clean all` batch when any record failed.

    Attributes:
        failures: (resource name, error) pairs.
        cleaned: Names that were cleaned successfully.
    """
    exit_code = EXIT_BATCH

    def __init__(
        self,
        failures: List[Tuple[str, SkyInstallError]],
        cleaned: List[str],
    ):
        self.failures = failures
        self.cleaned = cleaned
        detail = "; ".join(f"{name}: {err}" for name, err in failures)
        super().__init__(
            f"{len(failures)} of {len(failures) + len(cleaned)} "
            f"resources failed to clean: {detail}"
        )
