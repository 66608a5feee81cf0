"""Per-environment setting profiles, picked from APP_ENV."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict, Type

from .settings import Settings, _env_flag


class DevelopmentSettings(Settings):
    """Local runs: verbose logs and a short cache window so edits to pages show up quickly."""

    environment: str = "development"
    log_level: str = os.getenv("LOG_LEVEL", "DEBUG")
    cache_invalidation_timeout: float = float(
        os.getenv("CACHE_INVALIDATION_TIMEOUT", "30")
    )
    cache_cleanup_interval: float = float(os.getenv("CACHE_CLEANUP_INTERVAL", "10"))


class ProductionSettings(Settings):
    """Deployed service: JSON file logs unless turned off."""

    environment: str = "production"
    use_json_logs: bool = bool(_env_flag("USE_JSON_LOGS", default=True))


class TestSettings(Settings):
    """Test runs: console logs only and a small worker pool."""

    environment: str = "test"
    worker_threads: int = int(os.getenv("WORKER_THREADS", 2))

    def model_post_init(self, __context) -> None:
        super().model_post_init(__context)
        object.__setattr__(self, "log_dir", None)


PROFILES: Dict[str, Type[Settings]] = {
    "development": DevelopmentSettings,
    "dev": DevelopmentSettings,
    "local": DevelopmentSettings,
    "production": ProductionSettings,
    "prod": ProductionSettings,
    "test": TestSettings,
    "testing": TestSettings,
}


def profile_for(env: str) -> Type[Settings]:
    """Settings class for an APP_ENV value; unknown names run as production."""
    return PROFILES.get(env.strip().lower(), ProductionSettings)


@lru_cache
def get_settings() -> Settings:
    """Settings for the current APP_ENV, built once per process."""
    return profile_for(os.getenv("APP_ENV", "production"))()
