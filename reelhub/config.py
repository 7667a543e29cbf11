"""Server-level configuration from environment variables.

Only contains settings needed before any storage backend is available:
database/redis URLs, server host/port, outbound fetch tuning and the
storage backend choice. All fields have defaults; no .env file is required.

Source sites and admin settings live in the JSON config file and the
progress store (see services/config_service.py).
"""

import sys
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


def _default_database_url() -> str:
    """Return the default database URL, using ~/.reelhub/ for frozen builds."""
    if getattr(sys, "frozen", False):
        db_dir = Path.home() / ".reelhub"
        db_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite+aiosqlite:///{db_dir / 'reelhub.db'}"
    return "sqlite+aiosqlite:///./reelhub.db"


class Settings(BaseSettings):
    """Server infrastructure settings. Loaded from environment variables; optionally from .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage backend: memory | sql | redis | http
    storage_type: str = "memory"
    database_url: str = _default_database_url()
    redis_url: str = "redis://localhost:6379/0"
    remote_store_url: str = "http://127.0.0.1:8000"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    log_dir: str = str(Path.home() / ".reelhub" / "logs")
    # Per-logger levels; probes and provider fan-out log one line per upstream call
    log_levels: dict[str, str] = {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "aiosqlite": "WARNING",
        "reelhub.services.probe": "INFO",
        "reelhub.services.aggregator": "INFO",
    }
    log_to_file: bool = True

    # Source configuration file (api_site map, cache_time, custom_category)
    config_file: str = "config.json"

    # Site owner, auto-registered on startup when both are set
    owner_username: str = ""
    owner_password: str = ""
    allow_register: bool = False
    site_name: str = "Reelhub"
    announcement: str = (
        "This site only indexes media metadata; all streams come from third-party providers."
    )
    search_max_page: int = 5

    # Outbound fetches
    user_agent: str = DEFAULT_USER_AGENT
    provider_timeout: float = 8.0
    probe_timeout: float = 6.0
    probe_sample_bytes: int = 512 * 1024

    # Playback sessions
    auto_advance_delay: float = 1.0

    # Audiobook catalog
    audiobook_api_url: str = "https://sdkapi.hhlqilongzhu.cn/api/ximalaya/"
    audiobook_api_key: str = ""


settings = Settings()
