"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import channels, health, incidents, responders
from .config import settings
from .services.core import DispatchCore, build_core


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(core: DispatchCore | None = None) -> FastAPI:
    configure_logging(settings.log_level)
    core = core or build_core(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.core.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.core = core
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(responders.router, prefix=settings.api_prefix)
    app.include_router(incidents.router, prefix=settings.api_prefix)
    app.include_router(channels.router, prefix=settings.api_prefix)
    return app


app = create_app()
