"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from callaxis import __version__
from callaxis.analysis.models import DispatchError, NoRecordingError
from callaxis.api.container import ServiceContainer, build_container
from callaxis.api.router import analysis_router, calls_router, insights_router
from callaxis.calls.reconciler import ReconciliationConflict
from callaxis.config import get_settings
from callaxis.insights.models import InsightGenerationError
from callaxis.shared.exceptions import AppError, NotFoundError, ValidationError
from callaxis.shared.logging import get_logger, setup_logging
from callaxis.telephony.interface import GatewayError

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()

    logger.info("Application starting", extra={"env": settings.app_env})

    container: ServiceContainer | None = getattr(app.state, "container", None)
    if container is None:
        container = build_container(settings)
        app.state.container = container
    if container.database is not None and settings.database_auto_create:
        await container.database.create_all()

    restored = await container.in_flight.rebuild(container.analyses, container.recordings)
    logger.info("In-flight analyses restored", extra={"in_flight": restored})

    yield

    logger.info("Shutting down application")
    await container.aclose()
    logger.info("Application shutdown complete")


def _error(status_code: int, exc: AppError, **extra: object) -> JSONResponse:
    content: dict[str, object] = {"detail": str(exc)}
    if exc.details:
        content["details"] = exc.details
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Callaxis API",
        description="Call lifecycle and analysis orchestration",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    if container is not None:
        app.state.container = container

    # Map domain exceptions to HTTP responses
    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(NoRecordingError)
    async def _no_recording(_: Request, exc: NoRecordingError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(GatewayError)
    async def _gateway(_: Request, exc: GatewayError) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(DispatchError)
    async def _dispatch(_: Request, exc: DispatchError) -> JSONResponse:
        return _error(502, exc, retryable=True)

    @app.exception_handler(ReconciliationConflict)
    async def _conflict(_: Request, exc: ReconciliationConflict) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(InsightGenerationError)
    async def _insights(_: Request, exc: InsightGenerationError) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(AppError)
    async def _app_error(_: Request, exc: AppError) -> JSONResponse:
        logger.error("Unhandled application error", extra={"error": str(exc), "type": type(exc).__name__})
        return _error(500, exc)

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(calls_router)
    app.include_router(analysis_router)
    app.include_router(insights_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
