"""Tests for the sky-install command line (main.py)."""

from __future__ import annotations

import json

import pytest

import main as cli
from installer_core.errors import (
    EXIT_ALREADY_PRESENT,
    EXIT_BATCH,
    EXIT_CONFIG,
    EXIT_NOT_FOUND,
    EXIT_OK,
    EXIT_VALIDATION,
)
from installer_core.lifecycle import LifecycleOrchestrator

TOY_URL = "https://github.com/me/toy"


@pytest.fixture
def config_file(tmp_path, root):
    path = tmp_path / "config.yaml"
    path.write_text(f'sky_install:\n  root_dir: "{root}"\n  web_dependencies: []\n')
    return str(path)


@pytest.fixture
def run(config_file, fetcher, fs, monkeypatch):
    """Invoke main() against the tmp root with faked git."""
    monkeypatch.setattr(
        cli, "build_orchestrator",
        lambda config, show_progress: LifecycleOrchestrator(
            config, fetcher=fetcher, fs=fs, show_progress=False),
    )

    def _run(*argv):
        return cli.main(["--config", config_file, *argv])

    return _run


class TestParser:

    def test_fields_keyed_by_long_option(self):
        args = cli.build_parser().parse_args(["clean", "backend", "--name", "toy", "-a"])

        assert cli.fields_from_args(args) == {
            "manifest": None, "name": "toy", "git-only": False, "remove-git": True,
        }

    def test_short_save_path(self):
        args = cli.build_parser().parse_args(["get", "core", "-sp", "/tmp/cache", "-f"])
        assert args.save_path == "/tmp/cache"
        assert args.force is True

    def test_clean_all_only_takes_remove_git(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["clean", "all", "--name", "x"])


class TestExitCodes:

    def test_install_then_list(self, run, capsys, root):
        assert run("--json", "install", "backend", "--remote", TOY_URL) == EXIT_OK
        [report] = json.loads(capsys.readouterr().out)
        assert report["final_state"] == "recorded"

        assert run("--json", "list") == EXIT_OK
        [record] = json.loads(capsys.readouterr().out)
        assert record["name"] == "toy"
        assert record["install_path"] == str(root / "backends" / "toy")

    def test_rich_output(self, run, capsys):
        assert run("get", "backend", TOY_URL) == EXIT_OK
        out = capsys.readouterr().out
        assert "FETCHED" in out
        assert "Lifecycle Steps" in out

    def test_validation_lists_every_violation(self, run, capsys, fs):
        code = run("clean", "backend", "--remove-git", "--git-only")

        assert code == EXIT_VALIDATION
        err = capsys.readouterr().err
        assert "'--manifest' is required" in err
        assert err.count("'--name' is required") == 2
        assert fs.calls == []

    def test_double_install(self, run):
        assert run("install", "backend", "--remote", TOY_URL) == EXIT_OK
        assert run("install", "backend", "--remote", TOY_URL) == EXIT_ALREADY_PRESENT

    def test_clean_not_found(self, run):
        assert run("clean", "backend", "--name", "ghost") == EXIT_NOT_FOUND

    def test_clean_all_partial_failure(self, run, fs, root, capsys):
        for name in ("alpha", "beta"):
            assert run("install", "backend", "--remote", f"https://github.com/me/{name}") == 0
        fs.fail_on.add(root / "backends" / "alpha")
        capsys.readouterr()

        assert run("clean", "all") == EXIT_BATCH
        assert "alpha" in capsys.readouterr().err

    def test_clean_all_partial_failure_lists_cleaned(self, run, fs, root, capsys):
        for name in ("alpha", "beta", "gamma"):
            assert run("install", "backend", "--remote", f"https://github.com/me/{name}") == 0
        fs.fail_on.add(root / "backends" / "beta")
        capsys.readouterr()

        assert run("clean", "all") == EXIT_BATCH
        err = capsys.readouterr().err
        assert "alpha: cleaned" in err
        assert "gamma: cleaned" in err
        assert "beta: cannot remove_tree" in err

    def test_invalid_config(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("sky_install:\n  link_mode: hardlink\n")

        assert cli.main(["--config", str(bad), "list"]) == EXIT_CONFIG
