"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and the
build services configured on app state. Web routes are thin proxies to
the core otabuild APIs.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi import status as http_status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from otabuild import __version__
from otabuild.builds.executors import BuildExecutor, create_executor
from otabuild.builds.service import BuildCoordinator, BuildTimeouts
from otabuild.builds.webhook import WebhookResolver
from otabuild.config import Settings, get_settings
from otabuild.db import create_all_tables, get_engine, get_session_factory
from otabuild.errors import VALIDATION_ERROR
from otabuild.storage.blobs import LocalBlobStore
from web.routers import assets, builds, config, health, manifest, upload, webhook

logger = logging.getLogger(__name__)


def configure_app_state(
    app: FastAPI,
    settings: Settings,
    executor: BuildExecutor | None = None,
) -> None:
    """Create the engine, blob store and build services on app state.

    Args:
        app: Application to configure.
        settings: Effective settings.
        executor: Executor override; selected from settings when omitted.
    """
    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    session_factory = get_session_factory(engine)
    blob_store = LocalBlobStore(settings.storage_dir)
    timeouts = BuildTimeouts()

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.blob_store = blob_store
    app.state.timeouts = timeouts
    app.state.coordinator = BuildCoordinator(
        session_factory,
        blob_store,
        executor or create_executor(settings),
        settings=settings,
        timeouts=timeouts,
    )
    app.state.resolver = WebhookResolver(
        session_factory,
        timeouts=timeouts,
        blob_store=blob_store,
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Builds the services on startup unless they were configured already,
    re-arms timeouts of in-flight builds, and cancels timers on shutdown.
    """
    if not hasattr(app.state, "coordinator"):
        settings = get_settings()
        logging.basicConfig(level=settings.log_level)
        configure_app_state(app, settings)

    recovered = app.state.coordinator.recover()
    if recovered:
        logger.info("Recovered %d in-flight build(s)", recovered)
    yield
    app.state.coordinator.shutdown()


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed requests as 400 with the validation error code."""
    return JSONResponse(
        status_code=http_status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "code": VALIDATION_ERROR,
                "message": "Invalid request",
                "errors": [
                    {"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()
                ],
            }
        },
    )


def create_app(
    settings: Settings | None = None,
    executor: BuildExecutor | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to configure services with eagerly. When omitted,
            services are built from the environment at startup.
        executor: Executor override, used together with ``settings``.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="otabuild",
        description="Remote build coordinator and Expo Updates manifest server",
        version=__version__,
        lifespan=lifespan,
    )
    application.add_exception_handler(
        RequestValidationError,
        validation_exception_handler,  # type: ignore[arg-type]
    )

    if settings is not None:
        configure_app_state(application, settings, executor)

    # Include routers
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(upload.router, prefix="/v1/upload", tags=["builds"])
    application.include_router(builds.router, prefix="/v1/builds", tags=["builds"])
    application.include_router(webhook.router, prefix="/v1/webhook", tags=["webhook"])
    application.include_router(manifest.router, prefix="/v1/manifest", tags=["manifest"])
    application.include_router(assets.router, prefix="/v1/assets", tags=["assets"])

    return application


# Create the default application instance
app = create_app()
