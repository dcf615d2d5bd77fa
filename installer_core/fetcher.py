"""
Sky-Install — Git transport.

GitFetcher shells out to the git executable for clone and checkout.  git's
stderr is surfaced verbatim in FetchError; nothing is retried.

# ---- Changelog ----
# [2026-10-12] Initial creation.
#   What: clone --branch, then fetch and checkout for a cached repository.
#   Settings: git.executable and git.timeout_seconds in config.yaml.
#   How:  subprocess.run with capture_output, text and timeout.  A timeout
#         or a missing executable is reported as FetchError.
# -------------------
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List

from installer_core.errors import FetchError

logger = logging.getLogger("sky_install.fetcher")


class GitFetcher:
    """Clone/checkout through the git command line.

    Usage:
        fetcher = GitFetcher()
        fetcher.clone("https://github.com/SCAII/Sky-RTS", Path("~/.scaii/git/Sky-RTS"), "master")
        fetcher.checkout(Path("~/.scaii/git/Sky-RTS"), "dev")
    """

    def __init__(self, executable: str = "git", timeout_seconds: int = 600):
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    def clone(self, url: str, dest: Path, branch: str) -> None:
        logger.info("Cloning git repository at '%s' into '%s' (branch %s)",
                    url, dest, branch)
        self._run(url, dest, ["clone", "--branch", branch, url, str(dest)])

    def checkout(self, dest: Path, branch: str) -> None:
        logger.info("Checking out branch %s in '%s'", branch, dest)
        self._run(str(dest), dest, ["-C", str(dest), "fetch", "origin", branch])
        self._run(str(dest), dest, ["-C", str(dest), "checkout", branch])

    def _run(self, url: str, dest: Path, args: List[str]) -> None:
        try:
            result = subprocess.run(
                [self.executable, *args],
                capture_output=True, text=True, timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise FetchError(url, str(dest), f"timed out after {self.timeout_seconds}s") from e
        except (subprocess.SubprocessError, FileNotFoundError) as e:
            raise FetchError(url, str(dest), str(e)) from e

        if result.returncode != 0:
            raise FetchError(url, str(dest), result.stderr.strip())
