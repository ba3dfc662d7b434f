"""stagegate CLI - pre-commit verification pipeline."""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from stagegate import __version__
from stagegate.checks import default_stages, stage_names
from stagegate.config import CONFIG_FILENAME, load_config, write_default_config
from stagegate.errors import ConfigError, GateEnvironmentError
from stagegate.exec import ExecError, run_git
from stagegate.probe import ToolProbe
from stagegate.reporting import Reporter, ReporterConfig, write_report
from stagegate.runner import PipelineRunner
from stagegate.staging import resolve_repo_root
from stagegate.types import EXIT_ERROR

cli = typer.Typer(
    name="stagegate",
    help="stagegate - verify staged changes before they are committed",
    no_args_is_help=True,
)
console = Console(stderr=True)

COLOR_ENV = "STAGEGATE_COLOR"

HOOK_SCRIPT = """#!/bin/sh
# Installed by stagegate install-hook.
exec stagegate run "$@"
"""


def color_enabled(no_color: bool = False) -> bool:
    if no_color or os.getenv("NO_COLOR"):
        return False
    return os.getenv(COLOR_ENV, "1") == "1"


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("stagegate")
    handler = RichHandler(console=console, show_time=False, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


def _version_option_callback(value: bool) -> None:
    """Handle eager --version option."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show stagegate version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Verify staged changes before they are committed."""
    _ = version


def _resolve_root(repo_root: Path | None) -> Path:
    try:
        return resolve_repo_root(repo_root)
    except GateEnvironmentError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(EXIT_ERROR) from exc


def _load_config_or_exit(root: Path):
    try:
        return load_config(root)
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))} ({exc.reason_code})")
        console.print(f"[yellow]Fix {CONFIG_FILENAME} or regenerate it: stagegate init-config --force[/yellow]")
        raise typer.Exit(EXIT_ERROR) from exc


@cli.command()
def run(
    repo_root: Path | None = typer.Option(
        None,
        "--repo-root",
        help="Repository to verify (default: the repo containing the current directory)",
    ),
    report_dir: Path | None = typer.Option(
        None,
        "--report-dir",
        help="Also write PRECOMMIT_REPORT.json/.md into this directory",
    ),
    skip: list[str] = typer.Option(
        [],
        "--skip",
        help=f"Skip a stage (repeatable): {', '.join(stage_names())}",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print failures and the summary"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every external command"),
    timestamp_mode: str = typer.Option(
        "deterministic",
        "--timestamp-mode",
        help="Report timestamp mode: deterministic or wallclock",
    ),
) -> None:
    """Run every check over the staged changes; non-zero exit rejects the commit."""
    _configure_logging(verbose)
    unknown = sorted(set(skip) - set(stage_names()))
    if unknown:
        console.print(f"[bold red]Error:[/bold red] unknown stage(s): {', '.join(unknown)}")
        console.print(f"Known stages: {', '.join(stage_names())}")
        raise typer.Exit(2)
    if timestamp_mode not in ("deterministic", "wallclock"):
        console.print(f"[bold red]Error:[/bold red] unsupported timestamp mode: {timestamp_mode}")
        raise typer.Exit(2)

    root = _resolve_root(repo_root)
    config = _load_config_or_exit(root)
    stages = [stage for stage in default_stages(config) if stage.name not in skip]
    reporter = Reporter(ReporterConfig(color=color_enabled(no_color), show_progress=not quiet))

    outcome = PipelineRunner(root, config, stages=stages, reporter=reporter).run()

    if report_dir is not None:
        json_path, md_path = write_report(report_dir, outcome.verdict, outcome.summary, timestamp_mode)
        console.print(f"[cyan]Report:[/cyan] {json_path}, {md_path}")

    raise typer.Exit(outcome.verdict.exit_code)


@cli.command()
def probe(
    repo_root: Path | None = typer.Option(None, "--repo-root", help="Repository root"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every external command"),
) -> None:
    """Resolve the tools and resources the enabled stages need."""
    _configure_logging(verbose)
    root = _resolve_root(repo_root)
    config = _load_config_or_exit(root)
    runner = PipelineRunner(root, config)
    tools, resources = runner.requirements()
    try:
        toolchain = ToolProbe(root, timeout=config.tool_timeout).resolve(tools, resources)
    except GateEnvironmentError as exc:
        console.print(f"[bold red]✗ {escape(str(exc))}[/bold red] ({exc.reason_code})")
        if exc.remediation:
            console.print(f"[yellow]fix: {escape(exc.remediation)}[/yellow]")
        raise typer.Exit(EXIT_ERROR) from exc

    table = Table(title="Toolchain")
    table.add_column("tool")
    table.add_column("path")
    table.add_column("version")
    table.add_column("note")
    for name, handle in toolchain.tools.items():
        note = f"fallback ({handle.executable})" if handle.degraded else ""
        table.add_row(name, str(handle.path), handle.version or "-", note)
    for name, path in toolchain.resources.items():
        table.add_row(name, str(path), "-", "resource")
    Console().print(table)


@cli.command("init-config")
def init_config(
    repo_root: Path | None = typer.Option(None, "--repo-root", help="Repository root"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
) -> None:
    """Write the default stagegate.yaml."""
    root = _resolve_root(repo_root)
    try:
        path = write_default_config(root, force=force)
    except FileExistsError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))} (use --force to overwrite)")
        raise typer.Exit(2) from exc
    console.print(f"[green]Wrote {path}[/green]")


@cli.command("install-hook")
def install_hook(
    repo_root: Path | None = typer.Option(None, "--repo-root", help="Repository root"),
    force: bool = typer.Option(False, "--force", help="Replace an existing pre-commit hook"),
) -> None:
    """Install the pre-commit hook that runs `stagegate run`.

    The hooks directory comes from git, so worktrees, submodules and
    core.hooksPath are honored.
    """
    root = _resolve_root(repo_root)
    try:
        hooks = run_git(["rev-parse", "--git-path", "hooks"], repo_root=root).stdout.strip()
    except (ExecError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] cannot locate the hooks directory: {escape(str(exc))}")
        raise typer.Exit(EXIT_ERROR) from exc
    hooks_dir = Path(hooks)
    if not hooks_dir.is_absolute():
        hooks_dir = root / hooks_dir
    hook_path = hooks_dir / "pre-commit"
    if hook_path.exists() and not force:
        console.print(f"[bold red]Error:[/bold red] {hook_path} already exists (use --force to replace)")
        raise typer.Exit(2)
    hook_path.parent.mkdir(parents=True, exist_ok=True)
    hook_path.write_text(HOOK_SCRIPT, encoding="utf-8")
    mode = hook_path.stat().st_mode
    hook_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    console.print(f"[green]Installed {hook_path}[/green]")


def main() -> None:
    cli(prog_name="stagegate")


if __name__ == "__main__":
    sys.exit(main())
