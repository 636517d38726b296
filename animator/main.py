"""FastAPI application: routers, CORS and the JSON error envelope."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from animator.api import animations, folders, images, projects, segments, storage, tracks, videos
from animator.config import get_settings
from animator.constants.error_codes import get_error_spec
from animator.exceptions import AnimatorError
from animator.models.database import engine, init_db
from animator.schemas.envelope import ErrorInfo

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}

ROUTERS = (
    (projects.router, "/api/projects", "projects"),
    (tracks.router, "/api/projects", "tracks"),
    (segments.router, "/api/projects", "segments"),
    (animations.router, "/api/projects", "animations"),
    (images.router, "/api/images", "images"),
    (videos.router, "/api/videos", "videos"),
    (folders.router, "/api/folders", "folders"),
    (storage.router, "/api/storage", "storage"),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await init_db()
    yield
    await engine.dispose()


def _error_info(code: str, message: str) -> ErrorInfo:
    spec = get_error_spec(code)
    return ErrorInfo(
        code=code,
        message=message,
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )


def _error_response(
    status_code: int, detail: Any, error: ErrorInfo, headers: dict[str, str] | None = None
) -> JSONResponse:
    content = jsonable_encoder({"detail": detail, "error": error.model_dump(exclude_none=True)})
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def animator_error_handler(request: Request, exc: AnimatorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, exc.message, exc.to_error_info())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with the raw pydantic errors as ``detail`` and the first one summarized."""
    errors = exc.errors()
    message = "Request validation failed"
    if errors:
        first = errors[0]
        loc = " -> ".join(str(part) for part in first.get("loc", []))
        msg = first.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    return _error_response(422, errors, _error_info("VALIDATION_ERROR", message))


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return _error_response(
        exc.status_code, exc.detail, _error_info(code, str(exc.detail)), headers=exc.headers
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    message = "Internal server error"
    return _error_response(500, message, _error_info("INTERNAL_ERROR", message))


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(AnimatorError, animator_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_exception_handler(HTTPException, http_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    for router, prefix, tag in ROUTERS:
        application.include_router(router, prefix=prefix, tags=[tag])

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "version": settings.app_version, "git_hash": settings.git_hash}

    @application.get("/api/version")
    async def get_version() -> dict[str, str]:
        return {"version": settings.app_version, "git_hash": settings.git_hash}

    return application


app = create_app()
