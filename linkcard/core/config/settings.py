"""Preview settings read from the process environment and an optional `.env`.

Sources, lowest priority first:
- field defaults below (each already consults os.environ at import time),
- `.env` at the project root,
- the process environment, which always wins.

Durations are in seconds and accept floats. Booleans accept 1/true/yes/on.

Keys (defaults in parentheses):
- `APP_ENV` picks the profile in environment.py (`production`).
- Cache: `CACHE_ENABLED` (true), `CACHE_INVALIDATION_TIMEOUT` (300), `CACHE_CLEANUP_INTERVAL` (60),
  `CACHE_MAX_ENTRIES` (1000). A disabled cache never stores anything.
- Transport: `REQUEST_TIMEOUT` (10), `MAX_REDIRECTS` (20), `USER_AGENT`.
- Work pool: `WORKER_THREADS` (8).
- Logging: `LOG_LEVEL` (INFO), `LOG_DIR` (console only when empty), `USE_JSON_LOGS` (false).
"""

import logging
import os
from pathlib import Path
from typing import ClassVar, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root: linkcard/core/config/settings.py -> three parents up.
BASE_DIR = Path(__file__).resolve().parents[3]


load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; linkcard/1.0)"


def _env_flag(name: str, *, default: Optional[bool] = False) -> Optional[bool]:
    """Read a boolean-ish env var; unset means `default`."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseSettings):
    """Knobs for the preview pipeline, its cache and the HTTP service.

    The cache is either off or timed; when it is on both intervals must be positive.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = os.getenv("APP_NAME", "Link Preview API")
    environment: str = os.getenv("APP_ENV", "production")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: Optional[str] = os.getenv("LOG_DIR") or None
    use_json_logs: bool = bool(_env_flag("USE_JSON_LOGS", default=False))

    cache_enabled: bool = bool(_env_flag("CACHE_ENABLED", default=True))
    cache_invalidation_timeout: float = float(
        os.getenv("CACHE_INVALIDATION_TIMEOUT", "300")
    )
    cache_cleanup_interval: float = float(os.getenv("CACHE_CLEANUP_INTERVAL", "60"))
    cache_max_entries: int = int(os.getenv("CACHE_MAX_ENTRIES", 1000))

    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "10"))
    max_redirects: int = int(os.getenv("MAX_REDIRECTS", 20))
    user_agent: str = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
    worker_threads: int = int(os.getenv("WORKER_THREADS", 8))

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        env_override = os.getenv("APP_ENV")
        if env_override:
            object.__setattr__(self, "environment", env_override)

        if self.cache_enabled and (
            self.cache_invalidation_timeout <= 0 or self.cache_cleanup_interval <= 0
        ):
            logger.error(
                "Cache intervals must be positive "
                f"(timeout={self.cache_invalidation_timeout}, "
                f"cleanup={self.cache_cleanup_interval})"
            )
            raise ValueError("Cache invalidation and cleanup intervals must be positive.")

        if self.max_redirects < 1:
            raise ValueError("MAX_REDIRECTS must allow at least one hop.")
        if self.worker_threads < 1:
            raise ValueError("WORKER_THREADS must be at least 1.")
