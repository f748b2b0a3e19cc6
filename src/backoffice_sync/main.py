"""FastAPI application entry point."""

import structlog
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from backoffice_sync import __version__
from backoffice_sync.api import web
from backoffice_sync.api.deps import capture_referral
from backoffice_sync.api.v1.router import api_router
from backoffice_sync.config import Settings, get_settings
from backoffice_sync.infrastructure.database.connection import dispose_engine
from backoffice_sync.infrastructure.redis import close_redis
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.middleware.session import SessionCookieMiddleware

STATIC_DIR = Path(__file__).parent / "static"

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting Back-Office Sync Service",
        app_env=settings.app_env,
        debug=settings.debug,
        backoffice_configured=settings.backoffice_configured,
    )
    if not settings.backoffice_configured:
        logger.warning("Back-office API URL or key missing; sync calls will be skipped")

    SyncLog(settings.sync_log_path).ensure_exists()

    yield

    await close_redis()
    await dispose_engine()
    logger.info("Shutting down Back-Office Sync Service")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Back-Office Sync API",
        description="Forwards commerce events to the back office and handles SSO and referrals",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        dependencies=[Depends(capture_referral)],
    )
    app.state.settings = settings

    app.add_middleware(SessionCookieMiddleware, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")
    app.include_router(web.router, tags=["Web"])
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "backoffice_sync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
