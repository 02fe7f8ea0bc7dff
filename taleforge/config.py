"""Runtime settings, read from the environment (and a .env file if present)."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_API_URL = "http://localhost:5095/api"
DEFAULT_DATA_DIR = Path.home() / ".taleforge"


class Settings(BaseModel):
    api_url: str = DEFAULT_API_URL
    frontend_url: str = ""
    data_dir: Path = DEFAULT_DATA_DIR
    refresh_lookahead_minutes: float = 30
    history_window: int = 4
    timeout: float = 30.0

    @property
    def refresh_lookahead_seconds(self) -> float:
        return self.refresh_lookahead_minutes * 60

    @property
    def session_file(self) -> Path:
        return self.data_dir / "session.json"


def load_settings(env_file: Path | None = None) -> Settings:
    """Build settings from TALEFORGE_* variables. Unset variables keep their defaults."""
    load_dotenv(env_file or Path.cwd() / ".env")

    fields: dict[str, str] = {}
    for name in Settings.model_fields:
        value = os.getenv(f"TALEFORGE_{name.upper()}", "").strip()
        if value:
            fields[name] = value
    settings = Settings.model_validate(fields)
    settings.data_dir = settings.data_dir.expanduser()
    return settings
