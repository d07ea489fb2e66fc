"""
buildverify CLI - reproducible-build verification for Bitcoin wallets and nodes.
Builds a tagged release in a container and compares it with the published binaries.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__, config
from .common.exceptions import (
    BuildVerifyError,
    ConfigurationError,
    ValidationError,
    VerificationCancelled,
    format_exception_chain,
)
from .common.formatting import format_duration
from .comparators.registry import list_comparators
from .core.container import detect_engine, remove_stale
from .core.models import Verdict
from .core.orchestrator import VerificationRun, compare_pair
from .core.params import resolve_request, sanitize_component
from .core.reporting import render_results_block, summary_table
from .core.settings import Settings
from .logging_cfg import configure_logging
from .projects.base import BaseProfile
from .projects.registry import registry

app = typer.Typer(
    help="Verify that official release binaries can be reproduced from source.",
    rich_markup_mode="rich",
    add_completion=False,
)
# stdout carries only the results block
console = Console(stderr=True)
logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130

HELP_PROJECT = "Project id (see [bold]buildverify projects[/bold])."
HELP_CONFIG = "JSON settings file (default: ./buildverify.json if present)."


def _print_banner():
    console.print(Panel.fit(
        f"[bold cyan]buildverify {__version__}[/bold cyan]  [dim]script {config.SCRIPT_VERSION}[/dim]\n"
        "[dim]Source → Container build → Official download → Compare[/dim]",
        border_style="blue",
    ))


def _fail(message: str, code: int = config.EXIT_INVALID_PARAMS) -> typer.Exit:
    console.print(f"[bold red]✘ {message}[/bold red]")
    return typer.Exit(code)


def _load_settings(config_file: Optional[Path]) -> Settings:
    if config_file is None:
        default = Path.cwd() / config.SETTINGS_FILENAME
        config_file = default if default.is_file() else None
    return Settings(config_file)


def _targets_table(profile: BaseProfile) -> Table:
    table = Table(show_header=True, header_style="bold cyan", title=profile.display_name)
    table.add_column("Architecture")
    table.add_column("Triplet", style="dim")
    table.add_column("Types")
    table.add_column("Platform", style="dim")
    for arch, triplet, types in profile.describe_targets():
        table.add_row(arch, triplet, ", ".join(types), config.ARCH_LABELS.get(arch, ""))
    return table


def _run_workdir(settings: Settings, workdir: Optional[Path], project: str, version: str,
                 arch: str, build_type: str) -> Path:
    if workdir is not None:
        return workdir
    parts = [sanitize_component(p) for p in (project, version, arch, build_type)]
    return settings.workspace_root / "-".join(parts)


@app.command("verify")
def cmd_verify(
    project: Optional[str] = typer.Option(None, "--project", "-p", help=HELP_PROJECT),
    version: Optional[str] = typer.Option(None, "--version", help="Release version, with or without leading v."),
    arch: Optional[str] = typer.Option(None, "--arch", help="Target architecture label, e.g. x86_64-linux."),
    build_type: Optional[str] = typer.Option(None, "--type", help="Artifact kind: tarball, zip, setup, deb, ..."),
    clean: bool = typer.Option(False, "--clean", help="Remove stopped leftovers of this target and previous artifacts first."),
    keep_container: bool = typer.Option(False, "--keep-container", help="Leave the build container for inspection."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Rebuild the toolchain image from scratch."),
    list_targets: bool = typer.Option(False, "--list-targets", help="Print supported architectures and types."),
    workdir: Optional[Path] = typer.Option(None, "--workdir", help="Per-run workspace directory."),
    config_file: Optional[Path] = typer.Option(None, "--config", help=HELP_CONFIG),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on the console."),
    log_format: str = typer.Option("auto", "--log-format", help="auto | human | json"),
):
    """
    [bold green]🔁 Verify a release[/bold green]

    Clones the tagged source, builds it inside a container, downloads the
    official artifact and compares the two. Writes COMPARISON_RESULTS.yaml to
    the current directory and prints the results block.

    Exit codes: 0 reproducible, 1 not reproducible / ftbfs / nosource,
    2 invalid parameters, 12 manual review required.
    """
    configure_logging(log_format, logging.DEBUG if verbose else logging.INFO)
    try:
        profile = registry.require(project or "")
        if list_targets:
            console.print(_targets_table(profile))
            raise typer.Exit(0)
        settings = _load_settings(config_file)
        run_dir = _run_workdir(settings, workdir, profile.project_id, version or "", arch or "", build_type or "")
        request = resolve_request(profile, version, arch, build_type, run_dir)
    except (ValidationError, ConfigurationError) as e:
        raise _fail(str(e))

    _print_banner()
    console.print(
        f"[bold]{profile.display_name}[/bold] {request.version} "
        f"[dim]{request.architecture} ({request.triplet}) {request.build_type}[/dim]"
    )
    run = VerificationRun(
        profile, request, settings,
        clean=clean, keep_container=keep_container, no_cache=no_cache,
    )
    try:
        outcome = run.execute()
    except VerificationCancelled as e:
        raise _fail(str(e), EXIT_CANCELLED)
    except (ValidationError, ConfigurationError) as e:
        raise _fail(format_exception_chain(e))

    console.print(summary_table(outcome))
    console.print(f"[dim]Finished in {format_duration(outcome.duration)}[/dim]")
    for line in render_results_block(outcome, profile.app_id):
        typer.echo(line)
    raise typer.Exit(outcome.exit_code)


@app.command("targets")
def cmd_targets(project: str = typer.Argument(..., help=HELP_PROJECT)):
    """List architectures and artifact types supported by a project."""
    try:
        profile = registry.require(project)
    except ValidationError as e:
        raise _fail(str(e))
    console.print(_targets_table(profile))


@app.command("projects")
def cmd_projects():
    """List the bundled project profiles."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Repository", style="dim")
    for pid in registry.list_projects():
        profile = registry.get_profile(pid)
        table.add_row(pid, profile.display_name, profile.repo_url)
    console.print(table)


@app.command("compare")
def cmd_compare(
    built: Path = typer.Argument(..., exists=True, dir_okay=False, help="Locally built artifact."),
    official: Path = typer.Argument(..., exists=True, dir_okay=False, help="Official release artifact."),
    method: str = typer.Option("plain", "--method", "-m", help=f"One of: {', '.join(list_comparators())}"),
    workdir: Path = typer.Option(Path(config.WORKSPACE_DEFAULT) / "compare", "--workdir", help="Scratch directory."),
    config_file: Optional[Path] = typer.Option(None, "--config", help=HELP_CONFIG),
):
    """
    [bold magenta]🔍 Compare two local files[/bold magenta]

    Runs only the comparison stage. Exit 0 on a match, 1 on a difference,
    12 when the result needs manual review.
    """
    configure_logging("auto", logging.INFO)
    try:
        engine = None
        if method == "authenticode":
            settings = _load_settings(config_file)
            try:
                engine = detect_engine(settings.container_engine, settings.engine_preference)
            except ConfigurationError as e:
                logger.debug("No container engine for the osslsigncode fallback: %s", e)
        outcome = compare_pair(built, official, method, workdir, engine=engine)
    except (ValidationError, ConfigurationError) as e:
        raise _fail(str(e))
    except BuildVerifyError as e:
        raise _fail(format_exception_chain(e), config.EXIT_MANUAL_REVIEW)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Field", style="dim")
    table.add_column("Value", overflow="fold")
    table.add_row("Verdict", outcome.verdict.value)
    table.add_row("Built SHA-256", outcome.built_hash)
    table.add_row("Official SHA-256", outcome.official_hash)
    for note in outcome.notes:
        table.add_row("Note", note)
    console.print(table)
    for line in outcome.diff_lines:
        typer.echo(line)

    if outcome.match:
        raise typer.Exit(config.EXIT_REPRODUCIBLE)
    if outcome.verdict is Verdict.MANUAL_REVIEW:
        raise typer.Exit(config.EXIT_MANUAL_REVIEW)
    raise typer.Exit(config.EXIT_NOT_REPRODUCIBLE)


@app.command("cleanup")
def cmd_cleanup(
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Only this project's resources."),
    config_file: Optional[Path] = typer.Option(None, "--config", help=HELP_CONFIG),
):
    """Remove containers and images left behind by earlier runs."""
    configure_logging("auto", logging.INFO)
    try:
        settings = _load_settings(config_file)
        engine = detect_engine(settings.container_engine, settings.engine_preference)
        if project:
            project = registry.require(project).project_id
    except (ValidationError, ConfigurationError) as e:
        raise _fail(str(e))
    with console.status(f"[bold blue]Removing stale {engine} resources..."):
        removed = remove_stale(engine, project)
    console.print(f"[bold green]✔[/bold green] Removed {removed} resource(s)")


def main():
    app()


if __name__ == "__main__":
    main()
