"""
Sky-Install (SCAII Environment Installer)

Primary entry point.  Manages resources related to the SCAII learning
environment, including backends and the core suite:

  get      fetch a component from git into ~/.scaii/git/<NAME>
  install  install a component (fetching it first when needed)
  clean    uninstall a component, optionally dropping its git cache
  list     show what is installed

Flags are parsed here but never cross-checked here: every relation
between them (conflicts, conditional requirements) is validated by
installer_core.intent so that all violations are reported together.

Exit codes are listed in installer_core/errors.py.

# ---- Changelog ----
# [2026-10-18] Batch clean summary.
#   What: A partially failed `clean all` lists the resources it did clean
#         next to the ones that failed.
#
# [2026-10-16] list command.
#   What: `sky-install list` prints every manifest record.
#
# [2026-10-13] Initial creation.
#   What: argparse command tree (get/install/clean x core/rts/backend/all)
#         plus Rich rendering of lifecycle reports.
#   Settings: Reads config.yaml (sky_install: key) for the managed root,
#         default branch and well-known resource URLs.
#   How:  Parsed options become a raw field dict keyed by long option
#         name, handed to LifecycleOrchestrator.execute().  SkyInstallError
#         maps to its exit code; --json prints report dicts instead.
# -------------------
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from config_schema import SkyInstallConfig, load_and_validate
from installer_core import __version__
from installer_core.errors import EXIT_OK, CleanBatchError, SkyInstallError, ValidationError
from installer_core.lifecycle import LifecycleOrchestrator, LifecycleReport, LifecycleState

logger = logging.getLogger("sky_install")

GLOBAL_DESTS = {"command", "target", "config", "json", "verbose"}

STATE_COLORS = {
    LifecycleState.FETCHED: "green",
    LifecycleState.RECORDED: "green",
    LifecycleState.DONE: "green",
    LifecycleState.SKIPPED: "yellow",
    LifecycleState.CONFLICT: "red",
    LifecycleState.NOT_FOUND: "red",
    LifecycleState.FAILED: "red",
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _add_get_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--branch", metavar="BRANCH_NAME",
                   help="sets the branch to be used after fetching")
    p.add_argument("--save-path", "-sp", dest="save_path", metavar="PATH",
                   help="the directory to store the repository under "
                        "(defaults to ~/.scaii/git/<REPO-NAME>)")
    p.add_argument("--force", "-f", action="store_true",
                   help="overwrite the target directory instead of failing "
                        "when it already exists")


def _add_install_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--path", "-p", metavar="PATH",
                   help="a local version of the resource to install in place")
    p.add_argument("--branch", metavar="BRANCH_NAME",
                   help="sets the branch of the resource to install")
    p.add_argument("--save-path", "-sp", dest="save_path", metavar="PATH",
                   help="where to store the fetched repository if this also "
                        "does a `get` (defaults to ~/.scaii/git/<REPO-NAME>)")
    p.add_argument("--force", "-f", action="store_true",
                   help="reinstall even if the resource is already installed")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sky-install",
        description="Manages resources related to the SCAII learning environment "
                    "including backends and the core suite",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", default="config.yaml",
                        help="Path to config.yaml")
    parser.add_argument("--json", action="store_true",
                        help="Output raw JSON instead of Rich formatted output")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    # --- get ---
    get = commands.add_parser("get", help="Fetches SCAII-related components from github")
    get_targets = get.add_subparsers(dest="target", metavar="RESOURCE")
    get_targets.required = True

    p = get_targets.add_parser("backend", help="Fetches an unknown backend")
    p.add_argument("url", metavar="URL", help="The URL to fetch from")
    p.add_argument("--name", "-n", metavar="NAME",
                   help="The name to save this as under ~/.scaii/git/<NAME>")
    _add_get_options(p)

    _add_get_options(get_targets.add_parser("core", help="Gets the core suite"))
    _add_get_options(get_targets.add_parser(
        "rts", help="Gets the Sky-RTS (a special case of `get backend`)"))

    # --- install ---
    install = commands.add_parser(
        "install", help="Installs a SCAII-related component to the proper place")
    install_targets = install.add_subparsers(dest="target", metavar="RESOURCE")
    install_targets.required = True

    p = install_targets.add_parser("backend", help="Installs an unknown backend")
    p.add_argument("--remote", metavar="URL",
                   help="the URL to a remote git repository to fetch "
                        "(required unless --path is given)")
    p.add_argument("--name", "-n", metavar="NAME",
                   help="The name of the backend under ~/.scaii/git")
    _add_install_options(p)

    _add_install_options(install_targets.add_parser(
        "core", help="Installs the core and associated glue and dependencies"))
    _add_install_options(install_targets.add_parser(
        "rts", help="Installs the rts and associated glue and dependencies"))

    # --- clean ---
    clean = commands.add_parser("clean", help="Uninstalls a component")
    clean_targets = clean.add_subparsers(dest="target", metavar="RESOURCE")
    clean_targets.required = True

    p = clean_targets.add_parser(
        "backend", help="Uninstalls all resources associated with a given backend")
    p.add_argument("--manifest", "-m", metavar="PATH",
                   help="The manifest describing where the resources to be "
                        "deleted exist (required unless --name is given)")
    p.add_argument("--name", "-n", metavar="NAME",
                   help="The installed backend to remove.  Without --remove-git "
                        "its folder under ~/.scaii/git is NOT deleted")
    p.add_argument("--git-only", "-g", dest="git_only", action="store_true",
                   help="only removes the git cache of the given name")
    p.add_argument("--remove-git", "-a", dest="remove_git", action="store_true",
                   help="also removes resources (if any) under ~/.scaii/git")

    for target, text in (
        ("core", "Uninstalls the core suite"),
        ("rts", "Uninstalls the RTS and all associated components"),
        ("all", "Uninstalls every recorded resource"),
    ):
        p = clean_targets.add_parser(target, help=text)
        p.add_argument("--remove-git", "-a", dest="remove_git", action="store_true",
                       help="also removes resources (if any) under ~/.scaii/git")

    # --- list ---
    commands.add_parser("list", help="Lists installed resources")

    return parser


def fields_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Raw field dict keyed by long option name ("save-path", ...)."""
    return {
        dest.replace("_", "-"): value
        for dest, value in vars(args).items()
        if dest not in GLOBAL_DESTS
    }


def build_orchestrator(config: SkyInstallConfig, show_progress: bool) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(config, show_progress=show_progress)


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point.  Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(name)s %(levelname)s: %(message)s",
    )

    console = Console()
    err_console = Console(stderr=True)

    try:
        config = load_and_validate(args.config)
        if not args.verbose:
            logging.getLogger().setLevel(config.logging.level)

        logger.debug("Managed root: %s", config.root_path)
        orchestrator = build_orchestrator(config, show_progress=not args.json)

        if args.command == "list":
            records = orchestrator.list_records()
            if args.json:
                print(json.dumps([r.to_dict() for r in records], indent=2))
            else:
                _rich_print_records(console, records)
            return EXIT_OK

        reports = orchestrator.execute(args.command, args.target, fields_from_args(args))

    except CleanBatchError as e:
        _print_error(err_console, e)
        for name in e.cleaned:
            err_console.print(f"  [green]{escape(name)}[/]: cleaned")
        for name, failure in e.failures:
            err_console.print(f"  [red]{escape(name)}[/]: {escape(str(failure))}")
        return e.exit_code
    except SkyInstallError as e:
        _print_error(err_console, e)
        return e.exit_code

    if args.json:
        print(json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        for report in reports:
            _rich_print_report(console, report)
        if not reports:
            console.print("[yellow]Nothing to do[/]")

    return EXIT_OK


def _print_error(console: Console, error: SkyInstallError) -> None:
    if isinstance(error, ValidationError):
        console.print("[bold red]error:[/] invalid arguments")
        for violation in error.violations:
            console.print(f"  - {escape(violation.message)}")
    else:
        console.print(f"[bold red]error:[/] {escape(str(error))}")


def _rich_print_report(console: Console, report: LifecycleReport) -> None:
    """Pretty-print a lifecycle report using Rich."""
    color = STATE_COLORS.get(report.final_state, "white")

    console.print(Panel(
        f"[bold {color}]{report.final_state.value.upper()}[/]",
        title=f"{report.command} {report.target}",
        subtitle=report.name,
    ))

    table = Table(title="Lifecycle Steps")
    table.add_column("Step", style="cyan")
    table.add_column("State")
    table.add_column("Details", style="white")
    table.add_column("Time (ms)", justify="right")

    for step in report.steps:
        s_color = STATE_COLORS.get(step.state, "white")
        details = ", ".join(f"{k}={v}" for k, v in step.details.items())
        table.add_row(
            step.step,
            f"[{s_color}]{step.state.value}[/]",
            escape(details) or "-",
            f"{step.elapsed_ms:.1f}",
        )

    console.print(table)
    console.print(f"\nTotal time: {report.total_time_ms:.1f}ms")


def _rich_print_records(console: Console, records) -> None:
    if not records:
        console.print("Nothing installed.")
        return

    table = Table(title="Installed Resources")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Install path")
    table.add_column("Git cache")
    table.add_column("Branch")
    table.add_column("Installed at")

    for r in records:
        table.add_row(
            escape(r.name), r.kind, escape(r.install_path),
            escape(r.git_cache_path or "-"), r.branch or "-", r.installed_at,
        )

    console.print(table)


if __name__ == "__main__":
    sys.exit(main())
