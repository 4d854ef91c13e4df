"""Interactive setup wizard for cmssync.

Guides the user through:
  1. CMS instance GUID and API key
  2. Languages and sitemap channels to sync
  3. Watch-mode interval
"""

from __future__ import annotations

from pydantic import SecretStr
from rich.console import Console
from rich.prompt import Confirm, Prompt

from cmssync.config import ApiConfig, AppConfig, SyncConfig

console = Console()


def _split_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


def _wizard_api() -> ApiConfig:
    """Prompt for the instance GUID and API key."""
    console.print("[bold]Step 1: CMS instance[/bold]")
    console.print("Find the instance GUID and API keys under Settings → API Keys.\n")

    while True:
        guid = Prompt.ask("Instance GUID").strip()
        if guid:
            break
        console.print("[yellow]GUID cannot be empty. Try again.[/yellow]")

    while True:
        api_key = Prompt.ask("API key", password=True).strip()
        if api_key:
            break
        console.print("[yellow]API key cannot be empty. Try again.[/yellow]")

    preview = Confirm.ask("Is this a preview key?", default=False)
    console.print()
    return ApiConfig(guid=guid, api_key=SecretStr(api_key), preview=preview)


# ---------------------------------------------------------------------------
# Sync settings
# ---------------------------------------------------------------------------


def _wizard_sync() -> SyncConfig:
    """Let the user pick languages, channels and the watch interval."""
    console.print("[bold]Step 2: Sync settings[/bold]")

    languages = _split_list(Prompt.ask("Language codes (comma-separated)", default="en-us"))
    if not languages:
        console.print("[yellow]No languages given, using en-us.[/yellow]")
        languages = ["en-us"]

    channels = _split_list(Prompt.ask("Sitemap channels (comma-separated)", default="website"))
    if not channels:
        console.print("[yellow]No channels given, using website.[/yellow]")
        channels = ["website"]

    interval_str = Prompt.ask("Watch interval in minutes", default="30")
    try:
        interval = int(interval_str)
        if interval < 1:
            raise ValueError
    except ValueError:
        console.print("[yellow]Invalid interval, using default 30 minutes.[/yellow]")
        interval = 30

    console.print()
    return SyncConfig(languages=languages, channels=channels, interval_minutes=interval)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def run_wizard() -> AppConfig:
    """Run the interactive setup wizard and return a populated AppConfig."""
    console.print("\n[bold cyan]cmssync Setup Wizard[/bold cyan]")
    console.print("Let's configure your content sync.\n")

    api_cfg = _wizard_api()
    sync_cfg = _wizard_sync()

    console.print("[green bold]Configuration complete![/green bold]\n")

    return AppConfig(api=api_cfg, sync=sync_cfg)
