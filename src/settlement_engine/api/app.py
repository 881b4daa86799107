"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement_engine import __version__
from settlement_engine.api.routes import health_router, settlements_router
from settlement_engine.config import get_settings
from settlement_engine.database import create_schema, init_db
from settlement_engine.services.settlement_service import SettlementService, StalePassError
from settlement_engine.services.state_machine import (
    InvalidTransitionError,
    LifecycleError,
    RecordLockedError,
)
from settlement_engine.services.store import RecordNotFoundError, SqlAlchemySettlementStore
from settlement_engine.sources import InMemorySource, load_snapshot_source

logger = logging.getLogger(__name__)


async def build_service() -> SettlementService:
    """Settlement service backed by the configured database and snapshot."""
    settings = get_settings()
    engine, session_factory = init_db()
    await create_schema(engine)

    if settings.source_snapshot_path:
        source = load_snapshot_source(settings.source_snapshot_path)
    else:
        logger.warning("SOURCE_SNAPSHOT_PATH is not set; serving an empty source")
        source = InMemorySource()
    return SettlementService(source, SqlAlchemySettlementStore(session_factory), settings=settings)


def _error(status_code: int, exc: Exception, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


def create_app(service: SettlementService | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass ``service`` to serve an already built service (tests, embedding);
    otherwise one is built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        # Startup
        if service is None:
            app.state.settlement_service = await build_service()
        else:
            app.state.settlement_service = service
        yield
        # Shutdown
        await app.state.settlement_service.close()

    app = FastAPI(
        title="Settlement Engine API",
        description="Worker settlement computation and lifecycle",
        version=__version__,
        lifespan=lifespan,
    )
    if service is not None:
        app.state.settlement_service = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc, "RECORD_NOT_FOUND")

    @app.exception_handler(LifecycleError)
    async def lifecycle_handler(request: Request, exc: LifecycleError) -> JSONResponse:
        """Rejected freeze, pay or edit; reports which record and why."""
        code = "LIFECYCLE_VIOLATION"
        if isinstance(exc, InvalidTransitionError):
            code = "INVALID_TRANSITION"
        elif isinstance(exc, RecordLockedError):
            code = "RECORD_LOCKED"
        logger.warning("Rejected lifecycle operation: %s", exc)
        return _error(status.HTTP_409_CONFLICT, exc, code)

    @app.exception_handler(StalePassError)
    async def stale_pass_handler(request: Request, exc: StalePassError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "STALE_PASS")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, "INVALID_VALUE")

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(settlements_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
