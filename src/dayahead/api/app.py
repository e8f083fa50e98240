"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dayahead.api.deps import AppState
from dayahead.api.routes import router
from dayahead.api.schemas import ErrorResponse, HealthResponse
from dayahead.core.config import PricesConfig, load_config
from dayahead.core.exceptions import DayAheadError
from dayahead.service import PriceService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    service = app.state._pending_service
    owns_service = service is None
    if owns_service:
        config = app.state._pending_config or load_config()
        service = await PriceService.create(config)
    await service.warm_window()

    app.state.app_state = AppState(
        config=service.config, service=service, owns_service=owns_service
    )

    yield

    if owns_service:
        await service.close()


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(status=status, error=message).model_dump(),
    )


def create_app(
    config: PricesConfig | None = None,
    service: PriceService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A ``service`` passed in is used as-is and not closed on shutdown.
    """
    import dayahead

    app = FastAPI(
        title="Day-ahead Prices API",
        description="Cached day-ahead electricity prices by date and path",
        version=dayahead.__version__,
        lifespan=lifespan,
    )

    # Stash config/service so lifespan can retrieve them
    app.state._pending_config = config
    app.state._pending_service = service

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="ok", version=dayahead.__version__)

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(DayAheadError)
    async def dayahead_exception_handler(request: Request, exc: DayAheadError):
        if exc.status_code >= 500:
            logger.error("%s %s: %s", request.method, request.url.path, exc)
        return _error(exc.status_code, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error(404, f"Route not found: {request.url.path}")
        return _error(exc.status_code, str(exc.detail))

    return app
