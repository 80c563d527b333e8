"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from medlegal.api.v1.endpoints import health
from medlegal.api.v1.router import api_router
from medlegal.core.config import settings
from medlegal.core.database import close_database, init_database
from medlegal.core.exceptions import (
    AccessDeniedError,
    AnalysisInProgressError,
    AppError,
    ConfigurationError,
    ResourceNotFoundError,
    UnavailableError,
    ValidationError,
)
from medlegal.utils.logging import get_logger
from medlegal.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        await asyncio.wait_for(init_database(auto_migrate=True), timeout=settings.db_init_timeout)
        LOGGER.info("Database initialized successfully")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Document analysis backend for personal-injury case management",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)


def _error_response(request: Request, status_code: int, title: str, detail: str, errors=None) -> JSONResponse:
    error_detail = create_error_detail(
        title=title, status=status_code, detail=detail, request=request, errors=errors
    )
    return JSONResponse(status_code=status_code, content={"detail": error_detail.model_dump(mode="json")})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "AI Configuration Required",
        exc.message,
        errors={"missing_fields": exc.missing_fields},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "Invalid Request", exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {
        ".".join(str(part) for part in error["loc"]): error["msg"]
        for error in exc.errors()
    }
    return _error_response(
        request, status.HTTP_400_BAD_REQUEST, "Invalid Request", "Request validation failed", errors=fields
    )


@app.exception_handler(ResourceNotFoundError)
async def not_found_error_handler(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    return _error_response(request, status.HTTP_404_NOT_FOUND, "Not Found", exc.message)


@app.exception_handler(AccessDeniedError)
async def access_denied_error_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    return _error_response(request, status.HTTP_403_FORBIDDEN, "Access Denied", exc.message)


@app.exception_handler(AnalysisInProgressError)
async def analysis_in_progress_handler(request: Request, exc: AnalysisInProgressError) -> JSONResponse:
    return _error_response(request, status.HTTP_409_CONFLICT, "Analysis In Progress", exc.message)


@app.exception_handler(UnavailableError)
async def unavailable_error_handler(request: Request, exc: UnavailableError) -> JSONResponse:
    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Service Unavailable",
        exc.message,
        errors={"stage": exc.stage},
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    LOGGER.error(
        "Unhandled application error",
        extra={"path": request.url.path, "error": exc.message, "type": exc.__class__.__name__}
    )
    return _error_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", "Request could not be completed"
    )


app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "medlegal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
