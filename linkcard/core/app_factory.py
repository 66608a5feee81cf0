"""Application factory helpers to keep linkcard/main.py lightweight."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from linkcard.api.router import api_router
from linkcard.core.config import Settings, get_settings
from linkcard.core.error_handlers import register_exception_handlers
from linkcard.core.logging_config import setup_logging
from linkcard.core.middleware import LoggingMiddleware
from linkcard.link_preview import LinkPreview

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None, link_preview: Optional[LinkPreview] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    A LinkPreview is built from settings at startup unless one is supplied; a
    supplied pipeline is left open on shutdown so its owner can reuse it.
    """
    settings = settings or get_settings()
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        use_json=settings.use_json_logs,
        use_colors=settings.environment.lower() != "production",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = link_preview is None
        app.state.link_preview = link_preview or LinkPreview.from_settings(settings)
        logger.info(
            f"Link preview ready (cache={'on' if settings.cache_enabled else 'off'})"
        )
        try:
            yield
        finally:
            if owned:
                app.state.link_preview.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.environment = settings.environment

    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["system"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok", "app": settings.app_name}

    return app
