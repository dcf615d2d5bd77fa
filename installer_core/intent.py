"""
Sky-Install — Resource intents and the constraint validator.

A ResourceIntent is the validated, immutable form of one command
invocation.  The only way to build one is build_intent(), which checks the
raw field values against the relations declared for that (command, target)
pair and raises ValidationError listing every violation at once.

Field names in the raw mapping are the CLI's long option names
("save-path", "remove-git", ...).  Flags count as present only when True;
other fields count as present when not None.

# ---- Changelog ----
# [2026-10-18] Required relation.
#   What: `get backend` now requires its URL; a name alone used to pass
#         validation and reach the clone with no URL.
#
# [2026-10-13] Accepted-field check.
#   What: Each (command, target) pair declares the fields it accepts; any
#         other supplied field is reported as UnexpectedField.
#   How:  Reported together with the relation violations, never instead.
#
# [2026-10-12] Initial creation.
#   What: ConflictsWith / RequiredUnless / RequiredUnlessAll / RequiredIf
#         relations, one generic check_relations() interpreter, and the
#         relation tables for get, install and clean.
# -------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from installer_core.errors import ValidationError

logger = logging.getLogger("sky_install.intent")


class Command(str, Enum):
    GET = "get"
    INSTALL = "install"
    CLEAN = "clean"


class Target(str, Enum):
    CORE = "core"
    RTS = "rts"
    BACKEND = "backend"
    ALL = "all"


# ---------------------------------------------------------------------------
# Violations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MutuallyExclusive:
    first: str
    second: str

    @property
    def message(self) -> str:
        return f"'--{self.first}' cannot be used with '--{self.second}'"


@dataclass(frozen=True)
class MissingRequired:
    field: str
    reason: str = ""

    @property
    def message(self) -> str:
        suffix = f" ({self.reason})" if self.reason else ""
        return f"'--{self.field}' is required{suffix}"


@dataclass(frozen=True)
class UnexpectedField:
    field: str
    command: str
    target: str

    @property
    def message(self) -> str:
        return f"'--{self.field}' is not accepted by '{self.command} {self.target}'"


@dataclass(frozen=True)
class ReservedName:
    field: str
    value: str

    @property
    def message(self) -> str:
        return (
            f"use of reserved resource name '{self.value}' "
            "(reserved names belong to the core and the RTS)"
        )


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------

def is_present(fields: Mapping[str, Any], name: str) -> bool:
    value = fields.get(name)
    return value is not None and value is not False


@dataclass(frozen=True)
class ConflictsWith:
    field: str
    others: Tuple[str, ...]

    def check(self, fields: Mapping[str, Any]) -> List[Any]:
        if not is_present(fields, self.field):
            return []
        return [
            MutuallyExclusive(self.field, other)
            for other in self.others
            if is_present(fields, other)
        ]


@dataclass(frozen=True)
class Required:
    field: str

    def check(self, fields: Mapping[str, Any]) -> List[Any]:
        if is_present(fields, self.field):
            return []
        return [MissingRequired(self.field)]


@dataclass(frozen=True)
class RequiredUnless:
    """field is required unless any one of alternates is present."""
    field: str
    alternates: Tuple[str, ...]

    def check(self, fields: Mapping[str, Any]) -> List[Any]:
        if is_present(fields, self.field):
            return []
        if any(is_present(fields, alt) for alt in self.alternates):
            return []
        alts = " or ".join(f"--{a}" for a in self.alternates)
        return [MissingRequired(self.field, f"unless {alts} is given")]


@dataclass(frozen=True)
class RequiredUnlessAll:
    """field is required unless every one of alternates is present."""
    field: str
    alternates: Tuple[str, ...]

    def check(self, fields: Mapping[str, Any]) -> List[Any]:
        if is_present(fields, self.field):
            return []
        if all(is_present(fields, alt) for alt in self.alternates):
            return []
        alts = " and ".join(f"--{a}" for a in self.alternates)
        return [MissingRequired(self.field, f"unless {alts} are all given")]


@dataclass(frozen=True)
class RequiredIf:
    """field is required while any (other, value) condition holds."""
    field: str
    conditions: Tuple[Tuple[str, Any], ...]

    def check(self, fields: Mapping[str, Any]) -> List[Any]:
        if is_present(fields, self.field):
            return []
        for other, value in self.conditions:
            if fields.get(other) == value:
                return [MissingRequired(self.field, f"when --{other} is {value!r}")]
        return []


def check_relations(relations: Sequence, fields: Mapping[str, Any]) -> List[Any]:
    """Evaluate every relation and collect every violation, in order."""
    violations: List[Any] = []
    for relation in relations:
        for violation in relation.check(fields):
            if violation not in violations:
                violations.append(violation)
    return violations


# ---------------------------------------------------------------------------
# Per-command declarations
# ---------------------------------------------------------------------------

_GET_COMMON = frozenset({"branch", "save-path", "force"})
_INSTALL_COMMON = frozenset({"path", "branch", "save-path", "force"})

ACCEPTED_FIELDS: Dict[Tuple[Command, Target], FrozenSet[str]] = {
    (Command.GET, Target.BACKEND): _GET_COMMON | {"url", "name"},
    (Command.GET, Target.CORE): _GET_COMMON,
    (Command.GET, Target.RTS): _GET_COMMON,
    (Command.INSTALL, Target.BACKEND): _INSTALL_COMMON | {"remote", "name"},
    (Command.INSTALL, Target.CORE): _INSTALL_COMMON,
    (Command.INSTALL, Target.RTS): _INSTALL_COMMON,
    (Command.CLEAN, Target.BACKEND): frozenset(
        {"manifest", "name", "remove-git", "git-only"}
    ),
    (Command.CLEAN, Target.CORE): frozenset({"remove-git"}),
    (Command.CLEAN, Target.RTS): frozenset({"remove-git"}),
    (Command.CLEAN, Target.ALL): frozenset({"remove-git"}),
}

RELATIONS: Dict[Tuple[Command, Target], Tuple] = {
    (Command.GET, Target.BACKEND): (
        Required("url"),
        ConflictsWith("name", ("save-path",)),
    ),
    (Command.INSTALL, Target.BACKEND): (
        RequiredUnless("remote", ("path",)),
        ConflictsWith("remote", ("path",)),
        ConflictsWith("name", ("path", "save-path")),
    ),
    (Command.CLEAN, Target.BACKEND): (
        ConflictsWith("manifest", ("name",)),
        # --name alone stands in for --manifest.  Requiring both --name and
        # --remove-git would reject a plain `clean backend --name N`, and the
        # conflict above already rules out giving --manifest with --name.
        RequiredUnless("manifest", ("name",)),
        RequiredIf("name", (("remove-git", True),)),
        RequiredIf("name", (("git-only", True),)),
    ),
}


@dataclass(frozen=True)
class ResourceIntent:
    """One validated command invocation.  Build with build_intent()."""
    command: Command
    target: Target
    url: Optional[str] = None
    name: Optional[str] = None
    local_path: Optional[str] = None
    save_path: Optional[str] = None
    branch: Optional[str] = None
    force: bool = False
    remove_git: bool = False
    git_only: bool = False
    manifest_path: Optional[str] = None

    def describe(self) -> str:
        parts = [self.command.value, self.target.value]
        for label, value in (
            ("url", self.url), ("name", self.name), ("path", self.local_path),
            ("save-path", self.save_path), ("branch", self.branch),
            ("manifest", self.manifest_path),
        ):
            if value:
                parts.append(f"{label}={value}")
        for label, flag in (
            ("force", self.force), ("remove-git", self.remove_git),
            ("git-only", self.git_only),
        ):
            if flag:
                parts.append(label)
        return " ".join(parts)


def validate_fields(
    command: Command, target: Target, fields: Mapping[str, Any]
) -> List[Any]:
    """Return every violation of the raw fields for (command, target)."""
    key = (command, target)
    if key not in ACCEPTED_FIELDS:
        raise ValueError(f"'{command.value} {target.value}' is not a command")

    accepted = ACCEPTED_FIELDS[key]
    violations: List[Any] = [
        UnexpectedField(name, command.value, target.value)
        for name in sorted(fields)
        if name not in accepted and is_present(fields, name)
    ]
    violations.extend(check_relations(RELATIONS.get(key, ()), fields))
    return violations


def build_intent(
    command: Command | str,
    target: Target | str,
    fields: Optional[Mapping[str, Any]] = None,
) -> ResourceIntent:
    """Validate raw field values and build the ResourceIntent.

    Args:
        command: "get", "install" or "clean".
        target: "core", "rts", "backend" or (clean only) "all".
        fields: Raw values keyed by long option name.  None values and
            False flags are treated as absent.

    Raises:
        ValidationError: With every violation found.
        ValueError: Unknown command/target pair.
    """
    command = Command(command)
    target = Target(target)
    fields = dict(fields or {})

    violations = validate_fields(command, target, fields)
    if violations:
        logger.debug("Rejected %s %s: %s", command.value, target.value,
                     [v.message for v in violations])
        raise ValidationError(violations)

    return ResourceIntent(
        command=command,
        target=target,
        url=fields.get("url") or fields.get("remote"),
        name=fields.get("name"),
        local_path=fields.get("path"),
        save_path=fields.get("save-path"),
        branch=fields.get("branch"),
        force=bool(fields.get("force")),
        remove_git=bool(fields.get("remove-git")),
        git_only=bool(fields.get("git-only")),
        manifest_path=fields.get("manifest"),
    )
