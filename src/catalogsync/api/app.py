"""FastAPI application for the catalogsync daemon."""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalogsync import __version__
from catalogsync.api import routes
from catalogsync.api.middleware import RequestLoggingMiddleware
from catalogsync.config import Config
from catalogsync.core.scan_manager import ScanManager
from catalogsync.core.store import SQLiteStore
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

# Global app state for dependency injection
_app_state = None


def get_app_state():
    """Get global app state for dependency injection."""
    return _app_state


class AppState:
    """Application state container."""

    def __init__(self, config: Config):
        self.config = config
        self.start_time = time.time()
        self.store = None  # Initialized in lifespan
        self.scan_manager: Optional[ScanManager] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global _app_state

    logger.info("Starting catalogsync daemon", version=__version__)

    app_state = app.state.catalogsync
    config = app_state.config

    # Tests may pre-populate state
    if app_state.store is None:
        db_path = Path(config.store.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        app_state.store = SQLiteStore(db_path)
    if app_state.scan_manager is None:
        app_state.scan_manager = ScanManager(config, app_state.store)

    _app_state = {
        "config": config,
        "store": app_state.store,
        "scan_manager": app_state.scan_manager,
    }

    if config.scan.poll_interval_minutes:
        app_state.scan_manager.start_polling(config.scan.poll_interval_minutes * 60)

    logger.info("Catalog engine ready", sources=len(config.sources), db_path=config.store.db_path)

    yield

    logger.info("Shutting down catalogsync daemon")
    await app_state.scan_manager.shutdown()
    app_state.store.close()
    logger.info("Shutdown complete")


def create_app(config: Config) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Application configuration

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="catalogsync",
        description="Media catalog sync and quality normalization engine",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.catalogsync = AppState(config)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with detailed logging."""
        logger.error(
            "Request validation failed",
            path=request.url.path,
            method=request.method,
            errors=exc.errors(),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "status": "error",
                "message": "Invalid request",
                "errors": exc.errors(),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions."""
        logger.error(
            "Unhandled exception in request handler",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": "Internal server error"},
        )

    app.include_router(routes.router)
    app.include_router(routes.api_router)

    logger.info("FastAPI application created", version=__version__, api_port=config.api.port)

    return app
