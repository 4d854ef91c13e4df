"""Configuration management for cmssync."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".cmssync"
_CONFIG_FILE = "config.toml"
_DB_FILE = "cmssync.db"
_LOG_DIR = "logs"


def get_base_dir() -> Path:
    """Return the base directory for all cmssync runtime files (~/.cmssync/)."""
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class LoggingConfig(BaseModel):
    """Settings for the log files."""

    level: str = Field(default="info", description="Logging level")


class ApiConfig(BaseModel):
    """CMS delivery API instance and credentials."""

    guid: str = Field(default="", description="Instance GUID, e.g. 12ab34cd-u")
    api_key: SecretStr = Field(default=SecretStr(""), description="Fetch or preview API key")
    preview: bool = Field(default=False, description="Use the preview API instead of fetch")
    base_url: str = Field(default="", description="Override the API base URL derived from the GUID")
    page_size: int = Field(default=100, ge=1, le=500, description="Items requested per sync page")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout per request")


class SyncConfig(BaseModel):
    """Settings that control synchronisation behaviour."""

    languages: list[str] = Field(default_factory=lambda: ["en-us"], description="Language codes, synced in order")
    channels: list[str] = Field(default_factory=lambda: ["website"], description="Sitemap channels, refreshed in order")
    interval_minutes: int = Field(default=30, ge=1, description="Minutes between runs in watch mode")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def db_path(self) -> Path:
        return self.base_dir / _DB_FILE

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR

    def is_api_configured(self) -> bool:
        """Return True if the instance GUID and API key are both set."""
        return bool(self.api.guid and self.api.api_key.get_secret_value())


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config() -> AppConfig:
    """Load configuration from TOML, falling back to defaults if the file is missing."""
    path = get_base_dir() / _CONFIG_FILE
    if not path.is_file():
        return AppConfig()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return AppConfig.model_validate(raw)


def _format_toml_string(raw: str) -> str:
    escaped = raw.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, SecretStr):
        return _format_toml_string(value.get_secret_value())
    if isinstance(value, str):
        return _format_toml_string(value)
    if isinstance(value, list):
        return "[" + ", ".join(_format_toml_value(v) for v in value) + "]"
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string.

    Only handles the flat two-level structure we actually use (tables with
    scalar or list-of-scalar values).
    """
    lines: list[str] = []
    sections = [
        ("logging", config.logging),
        ("api", config.api),
        ("sync", config.sync),
    ]
    for section_name, section_model in sections:
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")  # blank line between sections
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)
