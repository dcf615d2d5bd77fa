"""
Sky-Install — Web dependency archives.

The core suite's visualization needs third-party JavaScript that is not in
its git repository (closure-library, protobuf-js).  The core glue downloads
each configured zip archive and unpacks it under the core install.

# ---- Changelog ----
# [2026-10-16] Initial creation.
#   What: download() over httpx with a rich progress bar, and unzip() with
#         member-name sanitizing and unix mode restore.
#   How:  unzip(into=True) strips the archive's single top-level folder,
#         the same as `unzip foo.zip && mv foo/* . && rm -r foo`.
# -------------------
"""

from __future__ import annotations

import io
import logging
import os
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional

import httpx
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from installer_core.errors import FilesystemError, InstallGlueError

logger = logging.getLogger("sky_install.archives")


def download(
    url: str,
    expected_bytes: Optional[int] = None,
    timeout: float = 60.0,
    show_progress: bool = True,
) -> bytes:
    """Fetch url into memory, following redirects.

    Args:
        url: Archive URL.
        expected_bytes: Used as the progress total when the server sends no
            Content-Length.
        timeout: Per-request timeout in seconds.
        show_progress: Render a rich progress bar on stderr.

    Raises:
        httpx.HTTPError: Transport failure or non-2xx status.
    """
    buf = io.BytesIO()
    with httpx.stream("GET", url, follow_redirects=True, timeout=timeout) as response:
        response.raise_for_status()
        total = int(response.headers.get("Content-Length") or 0) or expected_bytes

        with Progress(
            TextColumn("[cyan]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            disable=not show_progress,
            transient=True,
        ) as progress:
            task = progress.add_task(url.rsplit("/", 1)[-1], total=total)
            for chunk in response.iter_bytes():
                buf.write(chunk)
                progress.advance(task, len(chunk))

    data = buf.getvalue()
    logger.debug("Downloaded %d bytes from %s", len(data), url)
    return data


def sanitize_member_name(name: str) -> PurePosixPath:
    """Keep only the normal components of an archive member name.

    Drops anything after a NUL, roots, drive letters, "." and "..", so no
    member can be written outside the extraction directory.

    >>> sanitize_member_name("../../etc/passwd")
    PurePosixPath('etc/passwd')
    """
    name = name.split("\0", 1)[0].replace("\\", "/")
    parts = [
        part for part in PurePosixPath(name).parts
        if part not in ("", ".", "..", "/") and not part.endswith(":")
    ]
    return PurePosixPath(*parts)


def unzip(data: bytes, dest: Path, into: bool = False) -> int:
    """Extract a zip archive held in memory into dest.

    Args:
        data: The archive bytes.
        dest: Extraction directory (created if missing).
        into: Strip the top-level folder shared by every member.

    Returns:
        Number of members extracted.

    Raises:
        zipfile.BadZipFile: data is not a zip archive.
        FilesystemError: A member could not be written.
    """
    dest = Path(dest)
    count = 0

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        members = archive.infolist()
        prefix = PurePosixPath()
        if into and members:
            first = sanitize_member_name(members[0].filename).parts
            if first:
                prefix = PurePosixPath(first[0])

        for info in members:
            relative = sanitize_member_name(info.filename)
            if into and prefix.parts:
                try:
                    relative = relative.relative_to(prefix)
                except ValueError:
                    pass
            if not relative.parts:
                continue

            outpath = dest.joinpath(*relative.parts)
            try:
                if info.filename.endswith("/"):
                    outpath.mkdir(parents=True, exist_ok=True)
                else:
                    outpath.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as src, open(outpath, "wb") as out:
                        while True:
                            block = src.read(1 << 16)
                            if not block:
                                break
                            out.write(block)

                mode = info.external_attr >> 16
                if mode and os.name == "posix":
                    os.chmod(outpath, mode & 0o7777)
            except OSError as e:
                raise FilesystemError("extract into", str(outpath), e) from e
            count += 1

    return count


def install_archive(
    name: str,
    url: str,
    dest: Path,
    expected_bytes: Optional[int] = None,
    show_progress: bool = True,
) -> None:
    """Download url and unpack it "into" dest.

    Raises:
        InstallGlueError: Download or extraction failed.
    """
    logger.info("Fetching %s from %s", name, url)
    try:
        data = download(url, expected_bytes=expected_bytes, show_progress=show_progress)
        count = unzip(data, dest, into=True)
    except httpx.HTTPError as e:
        raise InstallGlueError(name, "web dependency", f"download failed: {e}") from e
    except zipfile.BadZipFile as e:
        raise InstallGlueError(name, "web dependency", f"bad archive: {e}") from e

    if expected_bytes and len(data) != expected_bytes:
        logger.warning("%s: expected %d bytes, got %d", name, expected_bytes, len(data))
    logger.info("Unpacked %d entries of %s into %s", count, name, dest)
