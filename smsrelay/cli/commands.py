"""CLI commands for smsrelay."""

import asyncio
import json
import os
import signal
import sys
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from smsrelay import __logo__, __version__

app = typer.Typer(
    name="smsrelay",
    help=f"{__logo__} smsrelay - Forward SMS, missed calls and device alerts",
    no_args_is_help=True,
)

console = Console()

SOURCES = ("termux", "mock")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} smsrelay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """smsrelay - Forward SMS, missed calls and device alerts."""
    pass


def _configure_logging(config, verbose: bool = False) -> None:
    """Route loguru output to stderr and, when configured, a rotating file."""
    level = "DEBUG" if verbose else str(config.logging.level or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    if config.logging.file:
        logger.add(
            str(Path(config.logging.file).expanduser()),
            level=level,
            rotation=config.logging.rotation,
            retention=config.logging.retention,
            encoding="utf-8",
        )


def _resolve_db_path(config, db: Path | None) -> Path:
    return (db or config.db_path).expanduser()


def _open_store(config, db: Path | None):
    from smsrelay.storage import SQLiteDedupStore, SQLiteTuningOptions

    return SQLiteDedupStore(
        _resolve_db_path(config, db),
        tuning_options=SQLiteTuningOptions.from_config(config.storage),
    )


# ============================================================================
# Config Commands
# ============================================================================


config_app = typer.Typer(help="Manage smsrelay config")
app.add_typer(config_app, name="config")


@config_app.command("check")
def config_check(
    config: Path | None = typer.Option(None, "--config", help="Config path to validate"),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail when unknown keys are detected (possible typos)",
    ),
):
    """Validate a config file and show what the relay would run with it."""
    from smsrelay.config.loader import get_config_path
    from smsrelay.config.validation import check_config_file

    config_path = (config or get_config_path()).expanduser()
    if not config_path.exists():
        console.print(f"[red]Config file not found:[/red] {config_path}")
        raise typer.Exit(2)

    try:
        result = check_config_file(config_path)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/red] {exc}")
        raise typer.Exit(2) from exc
    except ValidationError as exc:
        console.print(f"[red]Schema validation failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    except (OSError, ValueError) as exc:
        console.print(f"[red]Failed to read config:[/red] {exc}")
        raise typer.Exit(2) from exc

    if result.unknown_keys:
        console.print(
            f"[yellow]Unknown config keys ignored ({len(result.unknown_keys)}):[/yellow]"
        )
        for key in result.unknown_keys:
            console.print(f"  - {key}")
        if strict:
            raise typer.Exit(1)

    console.print(f"[green]✓[/green] Config validation passed: {config_path}")
    for key, value in result.summary():
        console.print(f"{key}={value}", markup=False, highlight=False)


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize smsrelay configuration and data directory."""
    from smsrelay.config.loader import get_config_path, load_config, save_config
    from smsrelay.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        console.print("  [bold]y[/bold] = overwrite with defaults (existing values will be lost)")
        console.print("  [bold]N[/bold] = refresh config, keeping existing values and adding new fields")
        if typer.confirm("Overwrite?"):
            save_config(Config())
            console.print(f"[green]✓[/green] Config reset to defaults at {config_path}")
        else:
            save_config(load_config())
            console.print(f"[green]✓[/green] Config refreshed at {config_path} (existing values preserved)")
    else:
        save_config(Config())
        console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} smsrelay is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Set [cyan]telegram.token[/cyan] and [cyan]telegram.chatId[/cyan] in {config_path}")
    console.print("  2. Grant Termux:API the SMS, call log and phone permissions")
    console.print("  3. Start relaying: [cyan]smsrelay run[/cyan]")


# ============================================================================
# Relay
# ============================================================================


@app.command()
def run(
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
    db: Path | None = typer.Option(None, "--db", help="Dedup database path override"),
    source: str = typer.Option("termux", "--source", help="Device source: termux/mock"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log notifications instead of sending them"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Start relaying device events."""
    from smsrelay.config.loader import load_config
    from smsrelay.errors import RelayError
    from smsrelay.runtime import RelayService, build_sink
    from smsrelay.sources import MockSource, TermuxSource

    cfg = load_config(config.expanduser() if config else None)
    _configure_logging(cfg, verbose)

    source_name = str(source or "").strip().lower()
    if source_name not in SOURCES:
        console.print(f"[red]Unknown source:[/red] {source} (expected one of {', '.join(SOURCES)})")
        raise typer.Exit(2)

    device = MockSource() if source_name == "mock" else TermuxSource.from_config(cfg.termux)
    try:
        store = _open_store(cfg, db)
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    sink = build_sink(cfg, dry_run=dry_run)
    console.print(f"{__logo__} Starting smsrelay (source={device.name}, sink={sink.name})")
    console.print(f"db={store.db_path}")

    async def _run() -> None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def _request_stop() -> None:
            loop.call_soon_threadsafe(stop_event.set)

        if os.name != "nt":
            signal.signal(signal.SIGINT, lambda *_: _request_stop())
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())

        service = RelayService.from_config(cfg, source=device, store=store, sink=sink)
        await service.run(stop_event)
        if service.baseline is not None:
            console.print(
                f"[green]✓[/green] Baseline: {service.baseline.messages} messages, "
                f"{service.baseline.call_logs} missed calls"
            )

    try:
        asyncio.run(_run())
    except RelayError as e:
        console.print(f"[red]Relay stopped with error:[/red] {e}")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("\nShutting down...")
    finally:
        store.close()


# ============================================================================
# Store Commands
# ============================================================================


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
    db: Path | None = typer.Option(None, "--db", help="Dedup database path override"),
):
    """Show smsrelay status."""
    from smsrelay.config.loader import get_config_path, load_config
    from smsrelay.errors import RelayError
    from smsrelay.storage import CATEGORIES

    config_path = (config or get_config_path()).expanduser()
    cfg = load_config(config_path)
    db_path = _resolve_db_path(cfg, db)

    console.print(f"{__logo__} smsrelay Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Database: {db_path} {'[green]✓[/green]' if db_path.exists() else '[red]✗[/red]'}")
    console.print(f"Telegram: {'[green]✓[/green]' if cfg.telegram_ready else '[dim]not set[/dim]'}")

    if not db_path.exists():
        return

    try:
        store = _open_store(cfg, db)
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    try:
        version = store.schema_version()
        if version is None:
            console.print("Schema: [dim]not initialized[/dim]")
            return
        console.print(f"Schema: v{version}")
        table = Table(title="Dedup records")
        table.add_column("Category", style="cyan")
        table.add_column("Records", justify="right")
        for category in CATEGORIES:
            table.add_row(category, str(store.count(category)))
        console.print(table)
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    finally:
        store.close()


@app.command()
def prune(
    days: int = typer.Option(..., "--days", min=1, help="Drop records for events older than N days"),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),
    db: Path | None = typer.Option(None, "--db", help="Dedup database path override"),
):
    """Delete old dedup records."""
    from smsrelay.config.loader import load_config
    from smsrelay.errors import RelayError
    from smsrelay.runtime import apply_retention

    cfg = load_config(config.expanduser() if config else None)
    db_path = _resolve_db_path(cfg, db)
    if not db_path.exists():
        console.print(f"[red]Database not found:[/red] {db_path}")
        raise typer.Exit(2)

    try:
        store = _open_store(cfg, db)
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    try:
        if not store.is_initialized():
            console.print(f"[yellow]Database is not initialized:[/yellow] {db_path}")
            raise typer.Exit(1)
        removed = apply_retention(store, days)
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    finally:
        store.close()

    total = sum(removed.values())
    console.print(f"[green]✓[/green] Pruned {total} records older than {days} days")
    for category, count in removed.items():
        console.print(f"  {category}: {count}")


if __name__ == "__main__":
    app()
