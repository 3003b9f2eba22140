"""FastAPI application entrypoint for the users API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.health import router as health_router
from app.api.users import router as users_router
from app.core.config import AppSettings
from app.core.config import get_settings
from app.core.errors import register_error_handlers
from app.core.middleware import RequestLoggerMiddleware
from app.core.middleware import SecurityHeadersMiddleware
from app.db import models as _models  # noqa: F401

logger = logging.getLogger(__name__)


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the application with routers, middleware and error handlers."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting users API with settings=%s", settings.safe_for_logging())
        yield
        logger.info("Users API stopped")

    app = FastAPI(title="Users API", lifespan=lifespan)
    register_error_handlers(app, settings)

    # Added last runs outermost.
    app.add_middleware(RequestLoggerMiddleware, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_router)
    app.include_router(users_router)
    return app


app = create_app()
