from __future__ import annotations

import signal
from pathlib import Path
from types import FrameType

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from insights_agent import __version__
from insights_agent.core.config import (
    ConfigError,
    default_config_path,
    load_config,
    resolve_state_path,
    save_config,
    validate_for_sync,
)
from insights_agent.core.log import configure_logging
from insights_agent.core.sync import SyncEngine, SyncReport
from insights_agent.storage.base import DeliveryError, DiscoveryError, StateStoreError
from insights_agent.storage.models import SHARE_LEVELS, InsightsConfig
from insights_agent.storage.remote import CollectorClient

app = typer.Typer(
    help="Sync Claude Code sessions to a team insights server",
    no_args_is_help=True,
)
console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to config.yaml (defaults to the user config directory)",
)

SHARE_LEVEL_HELP = """Share level options:
  none     - Don't share anything (agent paused)
  metadata - Share session stats, tokens, tools (no content)
  full     - Share everything including message content"""


def _config_path(config_path: Path | None) -> Path:
    return config_path or default_config_path()


def _load_validated(config_path: Path | None) -> InsightsConfig:
    path = _config_path(config_path)
    try:
        config = load_config(path)
        validate_for_sync(config)
    except ConfigError as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        console.print("[dim]Run 'claude-insights-agent init' to create config[/dim]")
        raise typer.Exit(1) from None
    return config


def _build_engine(config: InsightsConfig) -> SyncEngine:
    configure_logging(config.logging.level, config.logging.file)
    return SyncEngine.from_config(config)


@app.command()
def init(config_path: Path | None = CONFIG_OPTION):
    """Create the configuration interactively."""
    path = _config_path(config_path)
    if path.exists():
        console.print(f"Config already exists at {path}")
        if not typer.confirm("Overwrite?", default=False):
            console.print("Aborted")
            raise typer.Exit(0)

    config = InsightsConfig()

    config.server.url = typer.prompt("Server URL", default=config.server.url or "").strip()
    config.server.api_key = typer.prompt("API Key", hide_input=True, default="").strip() or None

    console.print()
    console.print(SHARE_LEVEL_HELP)
    level = typer.prompt("Share level", default=config.sharing.level).strip()
    if level not in SHARE_LEVELS:
        choices = ", ".join(SHARE_LEVELS)
        console.print(f"[red]Configuration error: sharing.level must be one of {choices}[/red]")
        raise typer.Exit(1)
    config.sharing.level = level  # type: ignore[assignment]

    config.sharing.anonymize_paths = typer.confirm("Anonymize project paths?", default=True)

    interval = typer.prompt("Sync interval in seconds", default=config.sync.interval, type=int)
    if interval > 0:
        config.sync.interval = interval

    try:
        validate_for_sync(config)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {escape(str(exc))}[/red]")
        raise typer.Exit(1) from None

    saved = save_config(config, path)
    console.print(f"\n[green]Configuration saved to {saved}[/green]")
    console.print("Run 'claude-insights-agent run' to start syncing")


@app.command()
def run(config_path: Path | None = CONFIG_OPTION):
    """Start the continuous sync daemon."""
    config = _load_validated(config_path)
    engine = _build_engine(config)

    def _request_stop(signum: int, _frame: FrameType | None) -> None:
        console.print(f"[dim]Received signal {signum}, stopping after the current pass[/dim]")
        engine.stop()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    console.print("Starting claude-insights-agent...")
    console.print(f"Syncing to {config.server.url} (share level: {config.sharing.level})")
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    try:
        engine.run_forever(config.sync.interval)
    finally:
        engine.client.close()


@app.command()
def sync(config_path: Path | None = CONFIG_OPTION):
    """Run a one-time sync."""
    config = _load_validated(config_path)
    engine = _build_engine(config)

    console.print("Running one-time sync...")
    try:
        report = engine.run_once()
    except (DiscoveryError, StateStoreError) as exc:
        console.print(f"[red]Sync error: {escape(str(exc))}[/red]")
        raise typer.Exit(1) from None
    finally:
        engine.client.close()

    console.print(Panel.fit("\n".join(_report_lines(report)), title=_report_title(report)))


def _report_lines(report: SyncReport) -> list[str]:
    lines = [
        "",
        f"Sessions discovered: {report.sessions_discovered}",
        f"Sessions new:        {report.sessions_new}",
        f"Sessions uploaded:   {report.sessions_uploaded}",
    ]
    if report.sessions_excluded:
        lines.append(f"Sessions excluded:   {report.sessions_excluded}")
    if report.sessions_failed:
        lines.append(f"Sessions failed:     {report.sessions_failed} (retried next pass)")
    lines.append(f"Plans uploaded:      {report.plans_uploaded}")
    if report.plans_failed:
        lines.append(f"Plans failed:        {report.plans_failed} (retried next pass)")

    if report.errors:
        lines.append("")
        lines.append(f"[yellow]Warnings: {len(report.errors)}[/yellow]")
        for error in report.errors[:10]:
            lines.append(f"  [dim]- {escape(error)}[/dim]")
        if len(report.errors) > 10:
            lines.append(f"  [dim]... and {len(report.errors) - 10} more[/dim]")

    lines.append("")
    return lines


def _report_title(report: SyncReport) -> str:
    if report.sessions_failed or report.plans_failed:
        return "[yellow]Sync Complete (some uploads failed)[/yellow]"
    if report.sessions_uploaded or report.plans_uploaded:
        return "[green]✓ Sync Complete[/green]"
    return "[dim]Sync Complete (nothing new)[/dim]"


@app.command()
def status(config_path: Path | None = CONFIG_OPTION):
    """Show configuration and sync statistics."""
    path = _config_path(config_path)
    try:
        config = load_config(path)
    except ConfigError:
        console.print("Status: [red]NOT CONFIGURED[/red]")
        console.print(f"Config file: {path} (missing)")
        console.print("Run 'claude-insights-agent init' to create config")
        return

    state_path = resolve_state_path(config)
    lines = [
        f"Config file:     {path}",
        f"Server:          {config.server.url or '-'}",
        f"Share level:     {config.sharing.level}",
        f"Sync interval:   {config.sync.interval}s",
        f"Anonymize paths: {config.sharing.anonymize_paths}",
        "",
        f"State file:      {state_path}",
    ]

    try:
        validate_for_sync(config)
    except ConfigError as exc:
        lines.append(f"[yellow]Config incomplete: {escape(str(exc))}[/yellow]")
    else:
        engine = SyncEngine.from_config(config)
        stats = engine.stats()
        engine.client.close()
        lines.append(f"Sessions synced: {stats.total_synced}")
        lines.append(f"Plans synced:    {stats.total_plans_synced}")
        if stats.last_sync is not None:
            lines.append(f"Last sync:       {stats.last_sync:%Y-%m-%d %H:%M:%S}")

    console.print("Status: [green]CONFIGURED[/green]")
    console.print(Panel.fit("\n".join(lines), title="Claude Insights Agent"))


@app.command()
def health(config_path: Path | None = CONFIG_OPTION):
    """Check that the collector is reachable."""
    config = _load_validated(config_path)
    with CollectorClient.from_config(config.server) as client:
        try:
            client.health()
        except DeliveryError as exc:
            console.print(f"[red]✗ {escape(str(exc))}[/red]")
            raise typer.Exit(1) from None
    console.print(f"[green]✓ {config.server.url} is reachable[/green]")


@app.command()
def version():
    """Show version."""
    console.print(f"claude-insights-agent v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
