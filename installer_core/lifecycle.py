"""
Sky-Install — Lifecycle Orchestrator

Drives get, install and clean as one state machine parametrized by a
per-command policy.  Every policy goes through the same four capabilities,
in order, and may decline any of them:

  resolve  ->  acquire  ->  mutate  ->  record

  get:     resolve paths, clone into the git cache        (no mutate/record)
  install: resolve, acquire via a nested get, run the
           per-kind glue, write the manifest record
  clean:   locate via manifest or name, purge install
           (dropping its record with it) and/or cache     (no acquire)

Each policy declares its legal transitions; the machine refuses any other,
so a policy can never report "recorded" without having linked first.  Each
capability is timed and reported as a StepResult, the same way a pipeline
reports per-layer results.

Concurrent invocations racing on the same resource name are undefined
behaviour: there is no inter-process locking.

# ---- Changelog ----
# [2026-10-18] Record and install stay in step.
#   What: Clean drops each record as soon as its install is removed, so a
#         later cache or target failure cannot leave a record for a missing
#         install.  A --force reinstall to a new location removes the
#         previous managed install.  Get refuses to clone without a URL.
#
# [2026-10-17] Batch clean.
#   What: clean_all() runs the clean policy once per manifest record,
#         keeps going past failures and raises one CleanBatchError.
#
# [2026-10-13] Initial creation.
#   What: LifecycleMachine, GetPolicy, InstallPolicy, CleanPolicy and
#         LifecycleOrchestrator.
#   How:  Install acquires through a nested GetPolicy with
#         skip_existing=True, so an existing cache is reused (Skipped)
#         instead of failing as a Conflict.  A glue failure removes any
#         install directory this run created, keeps the git cache, and
#         never writes a manifest record.
# -------------------
"""

from __future__ import annotations

import logging
import time
from abc import ABC
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from config_schema import SkyInstallConfig
from installer_core.errors import (
    AlreadyExistsError,
    AlreadyInstalledError,
    CleanBatchError,
    ManifestConflictError,
    NotFoundError,
    PathError,
    SkyInstallError,
)
from installer_core.fetcher import GitFetcher
from installer_core.fs_ops import LocalFilesystem
from installer_core.glue import default_glue
from installer_core.intent import Command, ResourceIntent, Target, build_intent
from installer_core.paths import PathResolver, ResourcePaths
from resource_registry.manifest_store import ManifestRecord, ManifestStore, utc_timestamp

logger = logging.getLogger("sky_install.lifecycle")


class LifecycleState(str, Enum):
    START = "start"
    RESOLVED = "resolved"
    LOCATED = "located"
    ACQUIRED = "acquired"
    FETCHED = "fetched"
    SKIPPED = "skipped"
    LINKED = "linked"
    PURGING = "purging"
    RECORDED = "recorded"
    DONE = "done"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FAILED = "failed"


S = LifecycleState


@dataclass
class StepResult:
    """Outcome of one capability of a lifecycle run.

    Attributes:
        step: "resolve", "acquire", "mutate" or "record".
        state: State the machine entered.
        details: Step-specific details (paths, names, flags).
        elapsed_ms: Time taken by this step.
    """
    step: str = ""
    state: LifecycleState = S.START
    details: Dict[str, Any] = field(default_factory=dict)
    elapsed_ms: float = 0.0


@dataclass
class LifecycleReport:
    """Full record of one lifecycle run."""
    command: str = ""
    target: str = ""
    name: str = ""
    final_state: LifecycleState = S.START
    steps: List[StepResult] = field(default_factory=list)
    total_time_ms: float = 0.0
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for --json output."""
        return {
            "command": self.command,
            "target": self.target,
            "name": self.name,
            "final_state": self.final_state.value,
            "steps": [
                {
                    "step": s.step,
                    "state": s.state.value,
                    "elapsed_ms": round(s.elapsed_ms, 2),
                    "details": s.details,
                }
                for s in self.steps
            ],
            "total_time_ms": round(self.total_time_ms, 2),
            "error": self.error,
        }


@dataclass
class CleanTarget:
    """One resource a clean run will purge."""
    name: str
    install_path: Optional[Path]
    git_cache_path: Optional[Path]
    record: Optional[ManifestRecord] = None


@dataclass
class LifecycleContext:
    """Mutable state shared by the capabilities of a single run."""
    intent: ResourceIntent
    paths: Optional[ResourcePaths] = None
    store: Optional[ManifestStore] = None
    source: Optional[Path] = None
    existing: Optional[ManifestRecord] = None
    created_install: bool = False
    clean_targets: List[CleanTarget] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

class LifecyclePolicy(ABC):
    """Per-command capability set.

    A capability returns the state to enter, or None when the policy does
    not use that capability.  Raising a SkyInstallError fails the run.
    """

    name: str = ""
    transitions: Mapping[LifecycleState, FrozenSet[LifecycleState]] = {}

    def __init__(self, orchestrator: LifecycleOrchestrator):
        self.orch = orchestrator

    def resolve(self, ctx: LifecycleContext) -> Optional[LifecycleState]:
        return None

    def acquire(self, ctx: LifecycleContext) -> Optional[LifecycleState]:
        return None

    def mutate(self, ctx: LifecycleContext) -> Optional[LifecycleState]:
        return None

    def record(self, ctx: LifecycleContext) -> Optional[LifecycleState]:
        return None

    def failure_state(self, error: SkyInstallError) -> LifecycleState:
        if isinstance(error, AlreadyExistsError):
            return S.CONFLICT
        if isinstance(error, NotFoundError):
            return S.NOT_FOUND
        return S.FAILED

    def resource_name(self, ctx: LifecycleContext) -> str:
        if ctx.paths is not None:
            return ctx.paths.name
        return ctx.intent.name or ctx.intent.url or ctx.intent.target.value


class GetPolicy(LifecyclePolicy):
    """Populate the git cache.  Never touches the manifest."""

    name = "get"
    transitions = {
        S.START: frozenset({S.RESOLVED, S.FAILED}),
        S.RESOLVED: frozenset({S.FETCHED, S.SKIPPED, S.CONFLICT, S.FAILED}),
    }

    def __init__(self, orchestrator: LifecycleOrchestrator, skip_existing: bool = False):
        super().__init__(orchestrator)
        self.skip_existing = skip_existing

    def resolve(self, ctx):
        ctx.paths = self.orch.resolver.resolve(ctx.intent)
        return S.RESOLVED

    def acquire(self, ctx):
        paths = ctx.paths
        dest = paths.git_cache_path
        fs = self.orch.fs

        if paths.url is None:
            raise PathError(f"no URL to fetch '{paths.name}' from")

        if fs.exists(dest):
            if self.skip_existing and not ctx.intent.force:
                logger.info("Reusing git cache for '%s' at %s", paths.name, dest)
                return S.SKIPPED
            if not ctx.intent.force:
                raise AlreadyExistsError(str(dest))
            logger.info("Removing existing %s (--force)", dest)
            fs.remove_tree(dest)

        fs.make_dirs(dest.parent)
        self.orch.fetcher.clone(paths.url, dest, paths.branch)
        return S.FETCHED


class InstallPolicy(LifecyclePolicy):
    """Acquire, materialize and record one resource."""

    name = "install"
    transitions = {
        S.START: frozenset({S.RESOLVED, S.FAILED}),
        S.RESOLVED: frozenset({S.ACQUIRED, S.FAILED}),
        S.ACQUIRED: frozenset({S.LINKED, S.FAILED}),
        S.LINKED: frozenset({S.RECORDED, S.FAILED}),
    }

    def resolve(self, ctx):
        intent = ctx.intent
        paths = ctx.paths = self.orch.resolver.resolve(intent)
        store = ctx.store = self.orch.store_for(paths.manifest_path)

        ctx.existing = store.lookup(paths.name)
        if ctx.existing is not None and not intent.force:
            raise AlreadyInstalledError(paths.name, ctx.existing.install_path)

        if paths.git_cache_path is not None and intent.local_path is None:
            owner = store.owner_of_cache(paths.git_cache_path)
            if owner is not None and owner.name != paths.name:
                raise ManifestConflictError(paths.name, owner.name, str(paths.git_cache_path))

        ctx.source = self._local_source(intent, paths)
        if (
            ctx.source is None
            and ctx.existing is None
            and not intent.force
            and self.orch.fs.exists(paths.install_path)
        ):
            # Something this tool did not install already lives there
            raise AlreadyExistsError(str(paths.install_path))

        return S.RESOLVED

    def acquire(self, ctx):
        if ctx.source is not None:
            return S.ACQUIRED

        get_intent = replace(ctx.intent, command=Command.GET, force=False)
        report = self.orch.run_policy(GetPolicy(self.orch, skip_existing=True), get_intent)

        if report.final_state == S.SKIPPED and ctx.intent.branch:
            self.orch.fetcher.checkout(ctx.paths.git_cache_path, ctx.paths.branch)

        ctx.source = ctx.paths.git_cache_path
        return S.ACQUIRED

    def mutate(self, ctx):
        paths, fs = ctx.paths, self.orch.fs
        in_place = ctx.intent.local_path is not None

        if not in_place and fs.exists(paths.install_path):
            # --force reinstall: the old install and its record go first
            fs.remove_tree(paths.install_path)
        if ctx.existing is not None:
            # An in-place install (no git cache) is the user's own tree
            old_install = Path(ctx.existing.install_path)
            if ctx.existing.git_cache_path and old_install != paths.install_path:
                fs.remove_tree(old_install)
                logger.info("Removed previous install of '%s' at %s", paths.name, old_install)
            ctx.store.remove(paths.name)
            ctx.existing = None

        ctx.created_install = not in_place
        glue = self.orch.glue[paths.kind]
        try:
            glue.materialize(ctx.source, paths.install_path, paths.kind)
        except SkyInstallError:
            self._discard_partial_install(ctx)
            raise

        return S.LINKED

    def record(self, ctx):
        paths = ctx.paths
        from_cache = ctx.intent.local_path is None and paths.git_cache_path is not None
        ctx.store.put(ManifestRecord(
            name=paths.name,
            kind=paths.kind,
            install_path=str(paths.install_path),
            git_cache_path=str(paths.git_cache_path) if from_cache else None,
            branch=paths.branch,
            installed_at=utc_timestamp(),
            url=paths.url if from_cache else None,
        ))
        return S.RECORDED

    @staticmethod
    def _local_source(intent: ResourceIntent, paths: ResourcePaths) -> Optional[Path]:
        if intent.local_path is None:
            return None
        return paths.install_path

    def _discard_partial_install(self, ctx: LifecycleContext) -> None:
        if not ctx.created_install:
            return
        try:
            self.orch.fs.remove_tree(ctx.paths.install_path)
        except SkyInstallError as e:
            logger.error("Could not remove partial install %s: %s",
                         ctx.paths.install_path, e)


class CleanPolicy(LifecyclePolicy):
    """Remove an install and/or its cache, driven by the manifest."""

    name = "clean"
    transitions = {
        S.START: frozenset({S.LOCATED, S.NOT_FOUND, S.FAILED}),
        S.LOCATED: frozenset({S.PURGING, S.FAILED}),
        S.PURGING: frozenset({S.DONE, S.FAILED}),
    }

    def __init__(
        self,
        orchestrator: LifecycleOrchestrator,
        record: Optional[ManifestRecord] = None,
    ):
        super().__init__(orchestrator)
        self.prelocated = record

    def resource_name(self, ctx):
        if self.prelocated is not None:
            return self.prelocated.name
        if len(ctx.clean_targets) == 1:
            return ctx.clean_targets[0].name
        return ctx.intent.name or ctx.intent.manifest_path or ctx.intent.target.value

    def resolve(self, ctx):
        intent = ctx.intent

        if self.prelocated is not None:
            ctx.store = self.orch.store_for(self.orch.resolver.default_manifest_path)
            ctx.clean_targets = [self._target_for(self.prelocated)]
            return S.LOCATED

        if intent.manifest_path:
            ctx.store = self.orch.store_for(Path(intent.manifest_path).expanduser())
            records = ctx.store.list()
            if not records:
                raise NotFoundError(str(intent.manifest_path))
            ctx.clean_targets = [self._target_for(r) for r in records]
            return S.LOCATED

        name = self._name_for(intent)
        ctx.store = self.orch.store_for(self.orch.resolver.default_manifest_path)
        record = ctx.store.lookup(name)
        if record is not None:
            ctx.clean_targets = [self._target_for(record)]
            return S.LOCATED

        # A cache fetched by `get` has no record; --git-only may still drop it
        cache = self.orch.resolver.default_cache_path(name)
        if intent.git_only and self.orch.fs.exists(cache):
            ctx.clean_targets = [CleanTarget(name=name, install_path=None, git_cache_path=cache)]
            return S.LOCATED

        raise NotFoundError(name)

    def mutate(self, ctx):
        intent, fs = ctx.intent, self.orch.fs
        purge_cache = intent.remove_git or intent.git_only

        for target in ctx.clean_targets:
            if not intent.git_only and target.install_path is not None:
                fs.remove_tree(target.install_path)
                logger.info("Uninstalled '%s' from %s", target.name, target.install_path)
                # The record goes with its install, before the cache is touched
                if target.record is not None:
                    ctx.store.remove(target.name)
            if purge_cache and target.git_cache_path is not None:
                fs.remove_tree(target.git_cache_path)
                logger.info("Removed git cache of '%s' at %s",
                            target.name, target.git_cache_path)

        return S.PURGING

    def record(self, ctx):
        # Records were dropped target by target in mutate()
        return S.DONE

    def _name_for(self, intent: ResourceIntent) -> str:
        if intent.target == Target.CORE:
            return self.orch.config.core.name
        if intent.target == Target.RTS:
            return self.orch.config.rts.name
        self.orch.resolver.check_reserved(intent.name)
        return intent.name

    @staticmethod
    def _target_for(record: ManifestRecord) -> CleanTarget:
        return CleanTarget(
            name=record.name,
            install_path=Path(record.install_path),
            git_cache_path=Path(record.git_cache_path) if record.git_cache_path else None,
            record=record,
        )


# ---------------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------------

class LifecycleMachine:
    """Runs one policy over one intent, enforcing its transitions."""

    STEPS = ("resolve", "acquire", "mutate", "record")

    def __init__(self, policy: LifecyclePolicy, intent: ResourceIntent):
        self.policy = policy
        self.ctx = LifecycleContext(intent=intent)
        self.state = S.START
        self.report = LifecycleReport(
            command=policy.name,
            target=intent.target.value,
        )

    def run(self) -> LifecycleReport:
        start = time.time()
        try:
            for step in self.STEPS:
                step_start = time.time()
                try:
                    new_state = getattr(self.policy, step)(self.ctx)
                except SkyInstallError as e:
                    failed = self.policy.failure_state(e)
                    if failed not in self.policy.transitions.get(self.state, ()):
                        failed = S.FAILED
                    self._enter(failed, step, step_start, {"error": str(e)})
                    self.report.error = str(e)
                    raise

                if new_state is None:
                    continue
                self._enter(new_state, step, step_start, self._details())
                if not self.policy.transitions.get(new_state):
                    break
        finally:
            self.report.name = self.policy.resource_name(self.ctx)
            self.report.total_time_ms = (time.time() - start) * 1000.0

        return self.report

    def _enter(
        self, new_state: LifecycleState, step: str, step_start: float,
        details: Dict[str, Any],
    ) -> None:
        allowed = self.policy.transitions.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(
                f"{self.policy.name}: illegal transition "
                f"{self.state.value} -> {new_state.value}"
            )
        logger.debug("%s: %s -> %s (%s)", self.policy.name,
                     self.state.value, new_state.value, step)
        self.state = new_state
        self.report.final_state = new_state
        self.report.steps.append(StepResult(
            step=step,
            state=new_state,
            details=details,
            elapsed_ms=(time.time() - step_start) * 1000.0,
        ))

    def _details(self) -> Dict[str, Any]:
        ctx = self.ctx
        details: Dict[str, Any] = {}
        if ctx.paths is not None:
            details["name"] = ctx.paths.name
            if ctx.paths.git_cache_path is not None:
                details["git_cache_path"] = str(ctx.paths.git_cache_path)
            if ctx.paths.install_path is not None:
                details["install_path"] = str(ctx.paths.install_path)
            details["branch"] = ctx.paths.branch
        if ctx.clean_targets:
            details["targets"] = [t.name for t in ctx.clean_targets]
        return details


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class LifecycleOrchestrator:
    """Entry point for get, install and clean.

    Usage:
        orch = LifecycleOrchestrator(config)
        report = orch.execute("install", "backend",
                              {"remote": "https://github.com/me/my-backend"})
        print(report[0].to_dict())

    Collaborators (fetcher, glue, fs) are injectable; by default they are
    the git command line, the per-kind glue and the local filesystem.
    """

    def __init__(
        self,
        config: Optional[SkyInstallConfig] = None,
        fetcher: Optional[GitFetcher] = None,
        glue: Optional[Mapping[str, Any]] = None,
        fs: Optional[LocalFilesystem] = None,
        show_progress: bool = True,
    ):
        self.config = config or SkyInstallConfig()
        self.resolver = PathResolver(self.config)
        self.fs = fs or LocalFilesystem()
        self.fetcher = fetcher or GitFetcher(
            executable=self.config.git.executable,
            timeout_seconds=self.config.git.timeout_seconds,
        )
        self.glue = dict(glue) if glue is not None else default_glue(
            self.config, fs=self.fs, show_progress=show_progress,
        )
        self._stores: Dict[Path, ManifestStore] = {}

    def store_for(self, manifest_path: Path) -> ManifestStore:
        key = Path(manifest_path)
        if key not in self._stores:
            self._stores[key] = ManifestStore(key)
        return self._stores[key]

    @property
    def store(self) -> ManifestStore:
        return self.store_for(self.resolver.default_manifest_path)

    # -------------------------------------------------------------------
    # Core API
    # -------------------------------------------------------------------

    def execute(
        self, command: str, target: str, fields: Optional[Mapping[str, Any]] = None,
    ) -> List[LifecycleReport]:
        """Validate raw fields, then run the intent.

        Validation happens before any collaborator is called.
        """
        return self.run(build_intent(command, target, fields))

    def run(self, intent: ResourceIntent) -> List[LifecycleReport]:
        if intent.command == Command.GET:
            return [self.get(intent)]
        if intent.command == Command.INSTALL:
            return [self.install(intent)]
        if intent.target == Target.ALL:
            return self.clean_all(intent)
        return [self.clean(intent)]

    def get(self, intent: ResourceIntent) -> LifecycleReport:
        return self.run_policy(GetPolicy(self), intent)

    def install(self, intent: ResourceIntent) -> LifecycleReport:
        return self.run_policy(InstallPolicy(self), intent)

    def clean(self, intent: ResourceIntent) -> LifecycleReport:
        return self.run_policy(CleanPolicy(self), intent)

    def clean_all(self, intent: ResourceIntent) -> List[LifecycleReport]:
        """Clean every recorded resource, continuing past failures.

        Raises:
            CleanBatchError: After the whole batch, if any record failed.
        """
        reports: List[LifecycleReport] = []
        failures = []
        cleaned: List[str] = []

        for record in self.store.list():
            policy = CleanPolicy(self, record=record)
            machine = LifecycleMachine(policy, replace(intent, name=record.name))
            try:
                machine.run()
                cleaned.append(record.name)
            except SkyInstallError as e:
                logger.error("Failed to clean '%s': %s", record.name, e)
                failures.append((record.name, e))
            reports.append(machine.report)

        logger.info("Cleaned %d of %d resources", len(cleaned), len(cleaned) + len(failures))
        if failures:
            raise CleanBatchError(failures, cleaned)
        return reports

    def list_records(self) -> List[ManifestRecord]:
        return self.store.list()

    def run_policy(
        self, policy: LifecyclePolicy, intent: ResourceIntent
    ) -> LifecycleReport:
        machine = LifecycleMachine(policy, intent)
        report = machine.run()
        logger.info("%s '%s': %s", policy.name, report.name, report.final_state.value)
        return report
