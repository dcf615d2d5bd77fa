"""Tests for config_schema."""

from __future__ import annotations

from pathlib import Path

import pytest

from config_schema import (
    CLOSURE_LIB_BYTES,
    PROTOBUF_JS_BYTES,
    ROOT_ENV_VAR,
    load_and_validate,
)
from installer_core.errors import EXIT_CONFIG, ConfigError


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestDefaults:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_and_validate(str(tmp_path / "absent.yaml"))

        assert config.root_path == Path("~/.scaii").expanduser()
        assert config.default_branch == "master"
        assert config.link_mode == "copy"
        assert config.reserved_names == ["SCAII", "Sky-RTS"]
        assert config.rts.install_dir == "backends/Sky-RTS"

    def test_default_web_dependencies(self, tmp_path):
        config = load_and_validate(str(tmp_path / "absent.yaml"))

        sizes = {dep.name: dep.size_bytes for dep in config.web_dependencies}
        assert sizes == {"closure-library": CLOSURE_LIB_BYTES, "protobuf-js": PROTOBUF_JS_BYTES}

    def test_empty_file_gives_defaults(self, tmp_path):
        assert load_and_validate(str(_write(tmp_path, ""))).manifest_file == "manifest.json"


class TestLoading:

    def test_values_and_unknown_keys(self, tmp_path):
        path = _write(tmp_path, f"""
sky_install:
  root_dir: "{tmp_path / 'root'}"
  link_mode: symlink
  default_branch: develop
  git:
    timeout_seconds: 30
  web_dependencies: []
  future_option: true
other_tool:
  anything: 1
""")
        config = load_and_validate(str(path))

        assert config.root_path == tmp_path / "root"
        assert config.link_mode == "symlink"
        assert config.default_branch == "develop"
        assert config.git.timeout_seconds == 30
        assert config.web_dependencies == []

    def test_env_overrides_root(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "sky_install:\n  root_dir: /from/file\n")
        monkeypatch.setenv(ROOT_ENV_VAR, str(tmp_path / "from-env"))

        assert load_and_validate(str(path)).root_path == tmp_path / "from-env"


class TestInvalid:

    @pytest.mark.parametrize("text", [
        "sky_install: [unclosed",
        "- just\n- a list\n",
        "sky_install:\n  link_mode: hardlink\n",
        "sky_install:\n  git:\n    timeout_seconds: 0\n",
        "sky_install:\n  backends_dir: /abs/backends\n",
        "sky_install:\n  core:\n    name: SCAII\n    url: x\n    install_dir: ../outside\n",
        "sky_install:\n  logging:\n    level: LOUD\n",
    ], ids=["bad-yaml", "not-mapping", "link-mode", "timeout", "abs-dir",
            "escaping-dir", "log-level"])
    def test_invalid_config_raises(self, tmp_path, text):
        with pytest.raises(ConfigError) as excinfo:
            load_and_validate(str(_write(tmp_path, text)))

        assert excinfo.value.exit_code == EXIT_CONFIG
