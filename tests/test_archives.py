"""Tests for installer_core.archives (no network: download is patched)."""

from __future__ import annotations

import io
import os
import stat
import zipfile
from pathlib import PurePosixPath

import httpx
import pytest

from installer_core import archives
from installer_core.errors import InstallGlueError


def _zip(entries):
    """Build a zip in memory from (name, data, mode) tuples."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data, mode in entries:
            info = zipfile.ZipInfo(name)
            if mode:
                info.external_attr = mode << 16
            zf.writestr(info, data)
    return buf.getvalue()


CLOSURE_ZIP = [
    ("closure-library-20171112/", b"", 0),
    ("closure-library-20171112/closure/goog/base.js", b"var goog = {};", 0o644),
    ("closure-library-20171112/closure/bin/build.py", b"#!/usr/bin/env python", 0o755),
]


class TestSanitize:

    @pytest.mark.parametrize("name, expected", [
        ("a/b.js", "a/b.js"),
        ("../../etc/passwd", "etc/passwd"),
        ("/abs/path.txt", "abs/path.txt"),
        ("C:\\windows\\evil.dll", "windows/evil.dll"),
        ("ok.txt\0.exe", "ok.txt"),
        ("./x/./y", "x/y"),
    ])
    def test_only_normal_components_survive(self, name, expected):
        assert archives.sanitize_member_name(name) == PurePosixPath(expected)


class TestUnzip:

    def test_into_strips_top_level_folder(self, tmp_path):
        count = archives.unzip(_zip(CLOSURE_ZIP), tmp_path, into=True)

        assert count == 2
        assert (tmp_path / "closure" / "goog" / "base.js").read_bytes() == b"var goog = {};"
        assert not (tmp_path / "closure-library-20171112").exists()

    def test_plain_keeps_top_level_folder(self, tmp_path):
        archives.unzip(_zip(CLOSURE_ZIP), tmp_path)
        assert (tmp_path / "closure-library-20171112" / "closure" / "goog" / "base.js").is_file()

    def test_traversal_stays_inside_dest(self, tmp_path):
        dest = tmp_path / "dest"

        archives.unzip(_zip([("../escape.txt", b"nope", 0)]), dest)

        assert (dest / "escape.txt").is_file()
        assert not (tmp_path / "escape.txt").exists()

    @pytest.mark.skipif(os.name != "posix", reason="unix modes only")
    def test_unix_mode_restored(self, tmp_path):
        archives.unzip(_zip(CLOSURE_ZIP), tmp_path, into=True)

        mode = stat.S_IMODE((tmp_path / "closure" / "bin" / "build.py").stat().st_mode)
        assert mode == 0o755

    def test_not_a_zip(self, tmp_path):
        with pytest.raises(zipfile.BadZipFile):
            archives.unzip(b"<html>404</html>", tmp_path)


class TestInstallArchive:

    def test_downloads_and_unpacks(self, tmp_path, monkeypatch):
        data = _zip(CLOSURE_ZIP)
        seen = {}

        def fake_download(url, expected_bytes=None, timeout=60.0, show_progress=True):
            seen.update(url=url, expected_bytes=expected_bytes, show_progress=show_progress)
            return data

        monkeypatch.setattr(archives, "download", fake_download)

        archives.install_archive("closure-library", "https://example.invalid/c.zip",
                                 tmp_path / "js", expected_bytes=len(data), show_progress=False)

        assert seen == {"url": "https://example.invalid/c.zip",
                        "expected_bytes": len(data), "show_progress": False}
        assert (tmp_path / "js" / "closure" / "goog" / "base.js").is_file()

    def test_http_error_becomes_glue_error(self, tmp_path, monkeypatch):
        def offline(url, **kwargs):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(archives, "download", offline)

        with pytest.raises(InstallGlueError) as excinfo:
            archives.install_archive("protobuf-js", "https://example.invalid/p.zip", tmp_path)

        assert excinfo.value.name == "protobuf-js"
        assert "connection refused" in str(excinfo.value)

    def test_bad_archive_becomes_glue_error(self, tmp_path, monkeypatch):
        monkeypatch.setattr(archives, "download", lambda url, **kwargs: b"not a zip")

        with pytest.raises(InstallGlueError, match="bad archive"):
            archives.install_archive("protobuf-js", "https://example.invalid/p.zip", tmp_path)
