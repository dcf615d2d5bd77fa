from __future__ import annotations

import pytest

from installer_core.errors import EXIT_VALIDATION, ValidationError
from installer_core.intent import (
    Command,
    ConflictsWith,
    MissingRequired,
    MutuallyExclusive,
    Required,
    RequiredIf,
    RequiredUnless,
    RequiredUnlessAll,
    Target,
    UnexpectedField,
    build_intent,
    check_relations,
    validate_fields,
)


def _kinds(violations):
    return [(type(v).__name__, v.field if hasattr(v, "field") else v.first) for v in violations]


# === Relation interpreter ===

def test_conflicts_with_reports_every_present_other() -> None:
    rel = ConflictsWith("name", ("path", "save-path"))

    assert rel.check({"name": "x"}) == []
    assert rel.check({"path": "p", "save-path": "s"}) == []
    assert rel.check({"name": "x", "path": "p", "save-path": "s"}) == [
        MutuallyExclusive("name", "path"),
        MutuallyExclusive("name", "save-path"),
    ]


def test_required_reports_missing_field() -> None:
    rel = Required("url")

    assert rel.check({"url": "https://github.com/me/b"}) == []
    assert rel.check({"url": None}) == [MissingRequired("url")]
    assert MissingRequired("url").message == "'--url' is required"


def test_required_unless_any_alternate_satisfies() -> None:
    rel = RequiredUnless("remote", ("path", "manifest"))

    assert rel.check({"remote": "u"}) == []
    assert rel.check({"manifest": "m"}) == []
    [violation] = rel.check({})
    assert isinstance(violation, MissingRequired)
    assert violation.field == "remote"


def test_required_unless_all_needs_every_alternate() -> None:
    rel = RequiredUnlessAll("manifest", ("name", "remove-git"))

    assert rel.check({"name": "x", "remove-git": True}) == []
    assert rel.check({"manifest": "m"}) == []
    assert len(rel.check({"name": "x"})) == 1
    assert len(rel.check({"name": "x", "remove-git": False})) == 1


def test_required_if_only_when_condition_holds() -> None:
    rel = RequiredIf("name", (("git-only", True),))

    assert rel.check({}) == []
    assert rel.check({"git-only": False}) == []
    assert rel.check({"git-only": True, "name": "x"}) == []
    [violation] = rel.check({"git-only": True})
    assert violation.field == "name"
    assert "--git-only" in violation.message


def test_check_relations_collects_all_and_deduplicates() -> None:
    relations = (
        ConflictsWith("a", ("b",)),
        ConflictsWith("a", ("b",)),
        RequiredUnless("c", ("d",)),
    )

    violations = check_relations(relations, {"a": 1, "b": 2})

    assert violations == [
        MutuallyExclusive("a", "b"),
        MissingRequired("c", "unless --d is given"),
    ]


def test_false_flags_and_none_count_as_absent() -> None:
    rel = ConflictsWith("remove-git", ("manifest",))

    assert rel.check({"remove-git": False, "manifest": "m"}) == []
    assert rel.check({"remove-git": True, "manifest": None}) == []


# === Per-command declarations ===

def test_get_backend_name_conflicts_with_save_path() -> None:
    violations = validate_fields(
        Command.GET, Target.BACKEND,
        {"url": "https://github.com/me/b", "name": "b", "save-path": "/tmp/b"},
    )
    assert violations == [MutuallyExclusive("name", "save-path")]


def test_get_backend_requires_url() -> None:
    violations = validate_fields(Command.GET, Target.BACKEND, {"name": "toy"})
    assert violations == [MissingRequired("url")]


def test_install_backend_requires_remote_or_path() -> None:
    violations = validate_fields(Command.INSTALL, Target.BACKEND, {})
    assert _kinds(violations) == [("MissingRequired", "remote")]


def test_install_backend_reports_every_violation_at_once() -> None:
    violations = validate_fields(
        Command.INSTALL, Target.BACKEND,
        {"remote": "https://github.com/me/b", "path": "/src/b", "name": "b", "save-path": "/tmp"},
    )
    assert violations == [
        MutuallyExclusive("remote", "path"),
        MutuallyExclusive("name", "path"),
        MutuallyExclusive("name", "save-path"),
    ]


def test_clean_backend_remove_git_alone_misses_both_keys() -> None:
    violations = validate_fields(Command.CLEAN, Target.BACKEND, {"remove-git": True})
    assert _kinds(violations) == [
        ("MissingRequired", "manifest"),
        ("MissingRequired", "name"),
    ]


def test_clean_backend_manifest_conflicts_with_name() -> None:
    violations = validate_fields(
        Command.CLEAN, Target.BACKEND, {"manifest": "/m.json", "name": "b"}
    )
    assert violations == [MutuallyExclusive("manifest", "name")]


@pytest.mark.parametrize("fields", [
    {"name": "b"},
    {"name": "b", "remove-git": True},
    {"name": "b", "git-only": True},
    {"manifest": "/m.json"},
])
def test_clean_backend_accepted_combinations(fields) -> None:
    assert validate_fields(Command.CLEAN, Target.BACKEND, fields) == []


def test_unexpected_field_reported_alongside_relations() -> None:
    violations = validate_fields(
        Command.INSTALL, Target.BACKEND, {"manifest": "/m.json"}
    )
    assert violations[0] == UnexpectedField("manifest", "install", "backend")
    assert _kinds(violations[1:]) == [("MissingRequired", "remote")]


def test_unknown_command_target_pair_raises_value_error() -> None:
    with pytest.raises(ValueError):
        validate_fields(Command.GET, Target.ALL, {})


# === build_intent ===

def test_build_intent_maps_raw_fields() -> None:
    intent = build_intent("install", "backend", {
        "remote": "https://github.com/me/b.git", "name": "bee",
        "branch": "dev", "force": True, "save-path": None, "path": None,
    })

    assert intent.command == Command.INSTALL
    assert intent.target == Target.BACKEND
    assert intent.url == "https://github.com/me/b.git"
    assert intent.name == "bee"
    assert intent.branch == "dev"
    assert intent.force is True
    assert intent.local_path is None
    assert intent.describe() == (
        "install backend url=https://github.com/me/b.git name=bee branch=dev force"
    )


def test_build_intent_clean_flags() -> None:
    intent = build_intent("clean", "backend", {"name": "b", "git-only": True})
    assert intent.git_only is True
    assert intent.remove_git is False
    assert intent.manifest_path is None


def test_build_intent_raises_with_full_violation_list() -> None:
    with pytest.raises(ValidationError) as excinfo:
        build_intent("clean", "backend", {"git-only": True, "remove-git": True})

    err = excinfo.value
    assert err.exit_code == EXIT_VALIDATION
    # manifest, plus name once per triggering flag
    assert len(err.violations) == 3
    for violation in err.violations:
        assert violation.message in str(err)
