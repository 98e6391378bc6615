from __future__ import annotations

from pathlib import Path
from functools import lru_cache

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


ROOT_DIR = Path(__file__).resolve().parent.parent.parent

# In Docker, the package is installed to site-packages but config lives at /app/config.
# Fall back to the source-tree-relative path for local development.
_docker_config = Path("/app/config")
CONFIG_DIR = _docker_config if _docker_config.exists() else ROOT_DIR / "config"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    product_name: str = "MonitHQ"

    # Check timeouts
    check_timeout_seconds: float = 30.0
    security_timeout_seconds: float = 10.0
    degraded_threshold_ms: int = 5000

    # Edge executor (Cloudflare Worker)
    edge_worker_url: str = ""
    edge_worker_secret: str = ""
    edge_timeout_ms: int = 10000

    # Notifications
    resend_api_key: str = ""
    email_from: str = "MonitHQ <info@monithq.com>"
    app_url: str = "http://localhost:3000"
    slack_timeout_seconds: float = 15.0
    webhook_timeout_seconds: float = 10.0

    # Plans
    default_plan: str = "FREE"
    plan_cache_ttl_seconds: float = 60.0

    # Database
    database_url: str = "sqlite+aiosqlite:///data/monithq.db"

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    @property
    def edge_enabled(self) -> bool:
        return bool(self.edge_worker_url and self.edge_worker_secret)

    def load_yaml_config(self) -> dict:
        settings_path = CONFIG_DIR / "settings.yaml"
        if settings_path.exists():
            with open(settings_path) as f:
                return yaml.safe_load(f) or {}
        return {}


@lru_cache
def get_settings() -> Settings:
    return Settings()
