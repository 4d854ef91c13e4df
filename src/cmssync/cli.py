"""CLI interface for cmssync."""

from __future__ import annotations

import asyncio
import json
import signal
import typing
from collections import deque
from datetime import datetime
from pathlib import Path

import typer
from pydantic import SecretStr
from rich.console import Console

from cmssync.config import AppConfig, config_exists, ensure_dirs, get_base_dir, load_config, save_config
from cmssync.logging import MAIN_LOG, SYNC_LOG, setup_logging
from cmssync.storage import Database
from cmssync.sync.client import CmsAPIError, CmsAuthError
from cmssync.sync.engine import SyncEngine
from cmssync.sync.runner import SyncStats
from cmssync.sync.scheduler import SyncScheduler

app = typer.Typer(
    name="cmssync",
    help="Incrementally mirror headless CMS content, pages and sitemaps into a local store.",
    add_completion=False,
)
console = Console()


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_configured() -> AppConfig:
    """Load the config and bail out unless the API credentials are set."""
    cfg = load_config()
    if not cfg.is_api_configured():
        console.print("[red]CMS API is not configured.[/red]  Run [bold]cmssync init[/bold] first.")
        raise typer.Exit(1)
    return cfg


async def _run_once(cfg: AppConfig) -> SyncStats:
    db = Database(cfg.db_path)
    await db.connect()
    try:
        engine = SyncEngine(cfg, db)
        return await engine.run_sync()
    finally:
        await db.close()


async def _watch(cfg: AppConfig) -> datetime | None:
    db = Database(cfg.db_path)
    await db.connect()

    engine = SyncEngine(cfg, db)
    scheduler = SyncScheduler(engine, interval_minutes=cfg.sync.interval_minutes)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    await scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
        await db.close()
    return scheduler.last_sync_at


async def _collect_status(db_path: Path) -> dict:
    db = Database(db_path)
    await db.connect()
    try:
        states = await db.list_sync_states()
        languages = {
            code: {
                "item_token": state.item_token,
                "page_token": state.page_token,
                "items": await db.count_content_items(code),
                "pages": await db.count_pages(code),
            }
            for code, state in states.items()
        }
        last_run = await db.get_last_sync_run()
        return {"languages": languages, "last_run": last_run}
    finally:
        await db.close()


async def _clear(db_path: Path) -> None:
    db = Database(db_path)
    await db.connect()
    try:
        await db.clear()
    finally:
        await db.close()


def _print_stats(stats: SyncStats) -> None:
    console.print(f"  languages:          {stats.languages}")
    console.print(f"  languages changed:  {stats.languages_changed}")
    console.print(f"  items synced:       {stats.items_synced}")
    console.print(f"  pages synced:       {stats.pages_synced}")
    console.print(f"  sitemaps refreshed: {stats.sitemaps_refreshed}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration"),
) -> None:
    """Run the setup wizard and write ~/.cmssync/config.toml."""
    from cmssync.wizard import run_wizard

    if config_exists() and not force:
        console.print("[yellow]Configuration already exists.[/yellow]  Use [bold]--force[/bold] to overwrite it.")
        raise typer.Exit(0)

    cfg = run_wizard()
    save_config(cfg)
    console.print("[green]Configuration saved.[/green]")


@app.command()
def sync() -> None:
    """Run one incremental sync over every configured language."""
    cfg = _load_configured()
    ensure_dirs()
    setup_logging(cfg.logging.level, cfg.log_dir)

    try:
        stats = asyncio.run(_run_once(cfg))
    except CmsAuthError as exc:
        console.print(f"[red]Authentication failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    except (CmsAPIError, RuntimeError) as exc:
        console.print(f"[red]Sync failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    except Exception as exc:
        # The engine has already recorded the failed run.
        console.print(f"[red]Sync failed:[/red] {type(exc).__name__}: {exc}")
        raise typer.Exit(1) from exc

    console.print("[green]Sync completed.[/green]")
    _print_stats(stats)


@app.command()
def watch() -> None:
    """Sync now and then every sync.interval_minutes until interrupted."""
    cfg = _load_configured()
    ensure_dirs()
    setup_logging(cfg.logging.level, cfg.log_dir)

    console.print(
        f"[green]Watching[/green] {', '.join(cfg.sync.languages)} "
        f"every {cfg.sync.interval_minutes}m.  Press Ctrl+C to stop."
    )
    last_sync_at = asyncio.run(_watch(cfg))
    if last_sync_at:
        console.print(f"Stopped. Last successful sync: {last_sync_at.isoformat(timespec='seconds')}")
    else:
        console.print("Stopped. No sync completed.")


@app.command()
def status() -> None:
    """Show sync tokens and mirrored counts per language, and the last run."""
    cfg = load_config()
    if not cfg.db_path.exists():
        console.print("[yellow]No local store yet.[/yellow] Run [bold]cmssync sync[/bold] first.")
        raise typer.Exit(1)

    data = asyncio.run(_collect_status(cfg.db_path))

    console.print()
    console.print("  [bold cyan]Languages[/bold cyan]")
    if not data["languages"]:
        console.print("    [dim]none synced[/dim]")
    for code, info in data["languages"].items():
        console.print(
            f"    {code:10s}  items={info['items']:<6} pages={info['pages']:<6} "
            f"item_token={info['item_token']} page_token={info['page_token']}"
        )

    last_run = data["last_run"]
    if last_run:
        console.print("\n  [bold cyan]Last sync[/bold cyan]")
        console.print(f"    status:   {last_run.status}")
        console.print(f"    started:  {last_run.started_at.isoformat()}")
        if last_run.finished_at:
            console.print(f"    finished: {last_run.finished_at.isoformat()}")
        if last_run.stats_json:
            stats = json.loads(last_run.stats_json)
            console.print(f"    stats:    {', '.join(f'{k}: {v}' for k, v in stats.items())}")
        if last_run.error_message:
            console.print(f"    [red]error:    {last_run.error_message}[/red]")

    console.print()


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete all mirrored data and sync tokens; the next sync starts from scratch."""
    cfg = load_config()
    if not cfg.db_path.exists():
        console.print("[dim]Nothing to clear.[/dim]")
        return

    if not yes and not typer.confirm("Delete all synced content and sync state?"):
        console.print("Aborted.")
        raise typer.Exit(1)

    asyncio.run(_clear(cfg.db_path))
    console.print("[green]Local store cleared.[/green]")


@app.command()
def logs(
    tail_lines: int = typer.Option(50, "--lines", "-n", help="Number of lines to show"),
    sync: bool = typer.Option(False, "--sync", help="Show sync.log (JSON) instead of cmssync.log"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow log output (like tail -f)"),
) -> None:
    """Show recent log output (supports --sync for the JSON sync log, --follow for live tail)."""
    filename = SYNC_LOG if sync else MAIN_LOG
    log_file = get_base_dir() / "logs" / filename
    if not log_file.exists():
        console.print(f"[yellow]Log file not found:[/yellow] {log_file}")
        raise typer.Exit(1)

    if follow:
        _follow_log(log_file, tail_lines)
        return

    with open(log_file, encoding="utf-8") as fh:
        last_lines = deque(fh, maxlen=tail_lines)

    if not last_lines:
        console.print("[dim]Log file is empty.[/dim]")
        return

    for line in last_lines:
        _print_log_line(line)


def _log_line_style(line: str) -> str | None:
    """Return a Rich style string based on the log level found in *line*.

    Matches structlog formats only:
    - ConsoleRenderer: ``[error    ]``
    - JSONRenderer: ``"level": "error"``
    """
    lower = line.lower()
    if "[error" in lower or "[critical" in lower or '"level": "error"' in lower or '"level": "critical"' in lower:
        return "red"
    if "[warning" in lower or '"level": "warning"' in lower:
        return "yellow"
    if "[debug" in lower or '"level": "debug"' in lower:
        return "dim"
    return None


def _print_log_line(line: str) -> None:
    line = line.rstrip("\n")
    if not line:
        return
    console.print(line, style=_log_line_style(line), highlight=False, markup=False)


def _follow_log(log_file: Path, initial_lines: int = 10) -> None:
    """Follow a log file, printing new lines as they appear (like ``tail -f``)."""
    import time

    with open(log_file, encoding="utf-8") as fh:
        last = deque(fh, maxlen=initial_lines)
    for line in last:
        _print_log_line(line)

    with open(log_file, encoding="utf-8") as fh:
        fh.seek(0, 2)  # seek to end
        try:
            while True:
                line = fh.readline()
                if line:
                    _print_log_line(line)
                else:
                    time.sleep(0.5)
        except KeyboardInterrupt:
            pass


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _mask(secret: SecretStr) -> str:
    """Return '***' if the secret is non-empty, else '(not set)'."""
    return "[bold]***[/bold]" if secret.get_secret_value() else "[dim](not set)[/dim]"


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration (secrets are masked)."""
    cfg = load_config()

    console.print("\n[bold]Current Configuration[/bold]\n")

    console.print("[bold cyan]\\[logging][/bold cyan]")
    console.print(f"  level = {cfg.logging.level}")

    console.print("\n[bold cyan]\\[api][/bold cyan]")
    console.print(f"  guid            = {cfg.api.guid or '[dim](not set)[/dim]'}")
    console.print(f"  api_key         = {_mask(cfg.api.api_key)}")
    console.print(f"  preview         = {cfg.api.preview}")
    console.print(f"  base_url        = {cfg.api.base_url or '[dim](from guid)[/dim]'}")
    console.print(f"  page_size       = {cfg.api.page_size}")
    console.print(f"  timeout_seconds = {cfg.api.timeout_seconds}")

    console.print("\n[bold cyan]\\[sync][/bold cyan]")
    console.print(f"  languages        = {', '.join(cfg.sync.languages)}")
    console.print(f"  channels         = {', '.join(cfg.sync.channels)}")
    console.print(f"  interval_minutes = {cfg.sync.interval_minutes}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. sync.languages"),
    value: str = typer.Argument(help="New value; lists are comma-separated"),
) -> None:
    """Set a configuration value (e.g. cmssync config set sync.languages en-us,fr-ca)."""

    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. api.guid).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts

    cfg = load_config()
    section_map = {
        "logging": cfg.logging,
        "api": cfg.api,
        "sync": cfg.sync,
    }

    if section_name not in section_map:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(section_map)}[/dim]")
        raise typer.Exit(1)

    section_model = section_map[section_name]
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    field_type = fields[field_name].annotation

    try:
        coerced = _coerce_value(value, field_type)
        section_data = section_model.model_dump(mode="python")
        section_data[field_name] = coerced
        new_section = type(section_model)(**section_data)
    except (ValueError, TypeError) as exc:
        # pydantic's ValidationError is a ValueError
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from exc

    setattr(cfg, section_name, new_section)
    save_config(cfg)

    display_val = "***" if isinstance(coerced, SecretStr) else coerced
    console.print(f"[green]Set[/green] {key} = {display_val}")


def _coerce_value(raw: str, field_type: type) -> object:
    """Coerce a string value to the expected field type."""
    origin = typing.get_origin(field_type)

    if field_type is SecretStr:
        return SecretStr(raw)

    if field_type is bool:
        if raw.lower() in ("true", "1", "yes"):
            return True
        if raw.lower() in ("false", "0", "no"):
            return False
        msg = f"Cannot convert '{raw}' to bool (use true/false)"
        raise ValueError(msg)

    if field_type is int:
        return int(raw)

    if field_type is float:
        return float(raw)

    if origin is list:
        items = [part.strip() for part in raw.split(",") if part.strip()]
        if not items:
            msg = "List value cannot be empty"
            raise ValueError(msg)
        return items

    return raw


