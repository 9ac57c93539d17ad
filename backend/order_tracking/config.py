"""Application configuration via environment variables and .env file."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings

# Relative paths in settings resolve against backend/, not the CWD.
BACKEND_DIR = Path(__file__).resolve().parent.parent


class AppConfig(BaseSettings):
    """Global application settings loaded from env / .env."""

    # Server
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    cors_origins: str = "*"

    # Durable store: DATABASE_URL wins, otherwise a SQLite file at DB_PATH
    database_url: str = ""
    db_path: str = "order_tracking.db"

    # Location cache
    redis_url: str = "redis://localhost:6379/0"
    location_ttl_seconds: int = 300

    # Tracking policy
    delivery_window_minutes: int = 30

    # Identity tokens
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    token_ttl_hours: int = 8

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Mount /api/dev (token issuer, log buffer); never enable in production
    dev_routes: bool = False

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    @staticmethod
    def _under_backend(value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else BACKEND_DIR / path

    @property
    def resolved_db_path(self) -> Path:
        return self._under_backend(self.db_path)

    @property
    def resolved_log_dir(self) -> Path:
        return self._under_backend(self.log_dir)

    @property
    def sqlalchemy_url(self) -> str:
        """Async SQLAlchemy URL for the durable store."""
        return self.database_url or f"sqlite+aiosqlite:///{self.resolved_db_path}"

    @property
    def delivery_window(self) -> timedelta:
        return timedelta(minutes=self.delivery_window_minutes)

    @property
    def parsed_cors_origins(self) -> list[str]:
        """Split the comma separated CORS_ORIGINS value."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Return the cached application config, creating it on first call."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config


def reset_config() -> None:
    """Reset the cached config so the next get_config() picks up new env vars."""
    global _config
    _config = None
