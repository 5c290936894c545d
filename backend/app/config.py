"""Application configuration using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/wx-dashboard/wx-dashboard.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # Weather provider (WeatherAPI.com)
    weather_api_url: str = "https://api.weatherapi.com/v1"
    weather_api_key: str = ""  # deployment-wide fallback key
    request_timeout: float = 15.0

    # Suggestions / history
    suggestion_limit: int = 8
    history_limit: int = 10

    # Dashboard sessions kept in memory before the least recently used is dropped
    max_sessions: int = 256

    # Database
    db_path: str = "wx_dashboard.db"

    # Local scratch storage (user id, last location, cached API key)
    scratch_path: str = ".wx_scratch.json"

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Make file paths absolute, relative to /var/lib/wx-dashboard if installed, else project root."""
        base = Path("/var/lib/wx-dashboard") if _ENV_FILE == _SYSTEM_CONF else _PROJECT_ROOT
        if not Path(self.db_path).is_absolute():
            self.db_path = str(base / self.db_path)
        if not Path(self.scratch_path).is_absolute():
            self.scratch_path = str(base / self.scratch_path)
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    # UI defaults for a user with no stored preferences
    temperature_unit: Literal["C", "F", "K"] = "C"
    theme: Literal["light", "dark"] = "light"

    # Frontend (empty = auto-detect relative to source tree)
    frontend_dir: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "WXDASH_", "env_file": str(_ENV_FILE)}


settings = Settings()
