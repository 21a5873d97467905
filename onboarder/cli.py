"""
ONBOARDER CLI — The Interface

Main command:
  onboarder run --org <name> --mode yaml|api|register

Plus utilities:
  - onboarder status        (check config, credentials, catalog connectivity)
  - onboarder state stats   (ledger counts)
  - onboarder state list    (every tracked repository)
  - onboarder state reset <repo> | reset-all | cleanup --older-than DAYS
  - onboarder state export <path> | import <path>
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Optional

import httpx
import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from onboarder.identity import __codename__, __tagline__, __version__, BANNER
from onboarder.audit_logger import AuditLogger
from onboarder.config_loader import (
    OnboarderConfig,
    apply_overrides,
    load_config,
    split_csv,
    validate_config,
    validate_tokens,
)
from onboarder.errors import ConfigError, RemoteAPIError, StateError
from onboarder.event_bus import EventBus
from onboarder.github_client import GitHubClient
from onboarder.harness_client import HarnessClient
from onboarder.models import RepoStatus
from onboarder.pipeline import Onboarder
from onboarder.state import StateStore
from onboarder.strategies import build_strategy

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".onboarder" / ".env")

app = typer.Typer(
    name="onboarder",
    help=f"{__codename__}: {__tagline__}.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
state_app = typer.Typer(help="Inspect and maintain the processing ledger.", no_args_is_help=True)
app.add_typer(state_app, name="state")

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__}: {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a config YAML"),
    org: Optional[str] = typer.Option(None, "--org", "-o", help="GitHub organization or user"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="yaml | api | register"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", help="Number of workers"),
    rate_limit: Optional[float] = typer.Option(None, "--rate-limit", help="Seconds to wait before each task"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List the repositories that would be processed"),
    include_repos: Optional[str] = typer.Option(None, "--include-repos", help="Comma-separated repository names"),
    exclude_repos: Optional[str] = typer.Option(None, "--exclude-repos", help="Comma-separated repository names"),
    state_file: Optional[Path] = typer.Option(None, "--state-file", help="Path to the processing ledger"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="debug | info | warning | error"),
    audit_log: Optional[Path] = typer.Option(None, "--audit-log", help="Append task events to this JSONL file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Onboard an organization's repositories into the catalog."""
    _print_banner()

    try:
        config = apply_overrides(_load(config_path), {
            "github": {"organization": org},
            "runtime": {
                "mode": mode,
                "concurrency": concurrency,
                "rate_limit": rate_limit,
                "dry_run": True if dry_run else None,
                "include_repos": split_csv(include_repos) if include_repos is not None else None,
                "exclude_repos": split_csv(exclude_repos) if exclude_repos is not None else None,
                "state_file": str(state_file) if state_file else None,
                "log_level": log_level,
            },
        })
        validate_config(config, dry_run=config.runtime.dry_run)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)

    _configure_logging(verbose, config.runtime.log_level)
    runtime = config.runtime

    console.print(Panel(
        f"Organization: [bold]{config.github.organization}[/]\n"
        f"Mode: {runtime.mode} | Workers: {runtime.concurrency} | Delay: {runtime.rate_limit}s"
        + (" | [yellow]DRY RUN[/]" if runtime.dry_run else ""),
        title="Onboarding",
        border_style="cyan",
    ))

    github = GitHubClient(config.github.token, api_url=config.github.api_url)
    try:
        if runtime.dry_run:
            Onboarder(config, github, console=console).run()
            return

        harness = HarnessClient(config.harness)
        strategy = build_strategy(
            runtime.mode,
            manifests=github,
            catalog=harness,
            defaults=config.defaults,
            org_id=config.harness.org_id,
            project_id=config.harness.project_id,
        )

        bus = EventBus()
        if audit_log:
            AuditLogger(str(audit_log), bus)

        with harness, StateStore(runtime.state_file) as state:
            report = Onboarder(config, github, strategy, state, console, bus).run()
    except (RemoteAPIError, httpx.HTTPError) as e:
        console.print(f"[red]Repository discovery failed: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        github.close()

    if report.exit_code:
        raise typer.Exit(report.exit_code)


@app.command()
def status(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a config YAML"),
    check: bool = typer.Option(False, "--check", help="Call the catalog health endpoint"),
):
    """Check ONBOARDER configuration and readiness."""
    _print_banner()
    config = _load(config_path)

    key_table = Table(title="Credentials", border_style="cyan")
    key_table.add_column("Credential")
    key_table.add_column("Status")
    for name, available in validate_tokens(config).items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(name, status_str)
    console.print(key_table)

    console.print(f"\n[bold]GitHub:[/]")
    console.print(f"  Organization: {config.github.organization or '[red]not set[/]'}")
    console.print(f"  API URL:      {config.github.api_url}")

    console.print(f"\n[bold]Catalog:[/]")
    console.print(f"  Base URL:     {config.harness.base_url}")
    console.print(f"  Account:      {config.harness.account_id or '[red]not set[/]'}")
    console.print(f"  Org:          {config.harness.org_id or '[red]not set[/]'}")
    console.print(f"  Project:      {config.harness.project_id or '[red]not set[/]'}")

    console.print(f"\n[bold]Runtime:[/]")
    console.print(f"  Mode:         {config.runtime.mode}")
    console.print(f"  Concurrency:  {config.runtime.concurrency}")
    console.print(f"  Rate limit:   {config.runtime.rate_limit}s")
    console.print(f"  State file:   {config.runtime.state_file}")

    if check:
        with HarnessClient(config.harness) as harness:
            try:
                harness.validate_connection()
                console.print("\n[green]✓ Catalog reachable[/]")
            except (RemoteAPIError, httpx.HTTPError) as e:
                console.print(f"\n[red]✗ Catalog check failed: {escape(str(e))}[/]")
                raise typer.Exit(1)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

StateFileOption = typer.Option(None, "--state-file", help="Path to the processing ledger")


@state_app.command("stats")
def state_stats(state_file: Optional[Path] = StateFileOption):
    """Show ledger counts."""
    store = _open_state(state_file)
    s = store.get_stats()

    stats_table = Table(title="Processing State", border_style="cyan")
    stats_table.add_column("Metric")
    stats_table.add_column("Value")
    stats_table.add_row("Successful", str(s.successful))
    stats_table.add_row("Failed", str(s.failed))
    stats_table.add_row("In progress", str(s.in_progress))
    stats_table.add_row("Total", str(s.total))
    stats_table.add_row("Last run", s.last_run.isoformat(timespec="seconds") if s.last_run else "never")
    console.print(stats_table)


@state_app.command("list")
def state_list(state_file: Optional[Path] = StateFileOption):
    """List every tracked repository."""
    store = _open_state(state_file)
    entries = store.list_all()
    if not entries:
        console.print("[dim]No repositories tracked yet.[/]")
        return

    table = Table(title=f"Tracked Repositories ({len(entries)})", border_style="cyan")
    table.add_column("Repository")
    table.add_column("Status")
    table.add_column("Last processed", style="dim")
    table.add_column("Error")

    colors = {RepoStatus.SUCCESS: "green", RepoStatus.ERROR: "red", RepoStatus.IN_PROGRESS: "yellow"}
    for name, entry in sorted(entries.items()):
        table.add_row(
            name,
            f"[{colors[entry.status]}]{entry.status.value}[/]",
            entry.last_processed.isoformat(timespec="seconds"),
            escape((entry.error or "")[:60]),
        )
    console.print(table)


@state_app.command("reset")
def state_reset(
    repository: str = typer.Argument(..., help="Repository full name, e.g. acme/api"),
    state_file: Optional[Path] = StateFileOption,
):
    """Forget one repository so the next run processes it."""
    store = _open_state(state_file)
    if store.reset(repository):
        console.print(f"[green]Reset {repository}[/]")
    else:
        console.print(f"[dim]{repository} was not tracked[/]")


@state_app.command("reset-all")
def state_reset_all(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    state_file: Optional[Path] = StateFileOption,
):
    """Forget every repository."""
    if not yes:
        typer.confirm("Reset state for all repositories?", abort=True)
    _open_state(state_file).reset_all()
    console.print("[green]All repository state reset[/]")


@state_app.command("cleanup")
def state_cleanup(
    older_than: int = typer.Option(30, "--older-than", help="Drop entries older than this many days"),
    state_file: Optional[Path] = StateFileOption,
):
    """Drop stale ledger entries."""
    removed = _open_state(state_file).cleanup_older_than(timedelta(days=older_than))
    console.print(f"Removed {removed} entries older than {older_than} days")


@state_app.command("export")
def state_export(
    path: Path = typer.Argument(..., help="Destination JSON file"),
    state_file: Optional[Path] = StateFileOption,
):
    """Write the ledger to a file."""
    try:
        _open_state(state_file).export_to(path)
    except OSError as e:
        console.print(f"[red]Export failed: {escape(str(e))}[/]")
        raise typer.Exit(1)
    console.print(f"[green]State exported to {path}[/]")


@state_app.command("import")
def state_import(
    path: Path = typer.Argument(..., help="Source JSON file"),
    state_file: Optional[Path] = StateFileOption,
):
    """Replace the ledger with the contents of a file."""
    try:
        count = _open_state(state_file).import_from(path)
    except (StateError, OSError) as e:
        console.print(f"[red]Import failed: {escape(str(e))}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Imported {count} repositories from {path}[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(config_path: Path | None) -> OnboarderConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)


def _open_state(state_file: Path | None) -> StateStore:
    _configure_logging(False, "warning")
    if state_file is None:
        state_file = Path(_load(None).runtime.state_file)
    return StateStore(state_file)


def _configure_logging(verbose: bool, level: str = "info") -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(msg.rstrip())}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(msg.rstrip())}[/]", highlight=False),
            level=level.upper(),
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
