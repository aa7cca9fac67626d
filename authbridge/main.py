"""
Main FastAPI application entry point
"""

import logging

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from authbridge.__version__ import __build_time__, __version__
from authbridge.api.v1.api import api_router
from authbridge.core.config import settings
from authbridge.core.exceptions import MigrationError, ProviderError
from authbridge.core.logging import setup_logging
from authbridge.db.database import get_db

logger = logging.getLogger(__name__)

# Configure logging first
setup_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=__version__,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    debug=settings.DEBUG,
)

PROVIDER_UNAVAILABLE_MESSAGE = (
    "The sign-in service is temporarily unavailable. Please try again."
)


def _error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


@app.exception_handler(MigrationError)
async def migration_error_handler(request: Request, exc: MigrationError):
    """Render bridge errors as {"success": false, "error": {...}}."""
    log_extra = {
        "path": request.url.path,
        "error_code": exc.code,
        "error_details": exc.details,
    }
    if isinstance(exc, ProviderError):
        # Provider detail stays in the logs, never in the response
        logger.error(
            f"Identity provider error: {exc.message}",
            extra={
                **log_extra,
                "provider": exc.provider,
                "provider_status": exc.status_code,
            },
        )
        message = PROVIDER_UNAVAILABLE_MESSAGE
    else:
        logger.info(f"Request failed: {exc.message}", extra=log_extra)
        message = exc.message

    return JSONResponse(
        status_code=exc.http_status, content=_error_body(exc.code, message)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
):
    errors = exc.errors()
    first = errors[0] if errors else {}
    message = str(first.get("msg") or "Invalid request")
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("validation_error", message),
    )


class HealthCheckLoggingFilter(BaseHTTPMiddleware):
    """Middleware to suppress logging for health check endpoints."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/health":
            logging.disable(logging.CRITICAL)
            try:
                response = await call_next(request)
                return response
            finally:
                logging.disable(logging.NOTSET)
        else:
            return await call_next(request)


app.add_middleware(HealthCheckLoggingFilter)

# Set up CORS
if settings.BACKEND_CORS_ORIGINS:
    cors_origins = []
    for origin in settings.BACKEND_CORS_ORIGINS:
        origin_str = str(origin).strip()
        if origin_str.endswith("/"):
            origin_str = origin_str.rstrip("/")
        cors_origins.append(origin_str)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,  # Bearer tokens only, no cookies
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint with database connectivity verification."""
    db_status = "unknown"
    db_error = None
    try:
        db.execute(text("SELECT 1")).scalar()
        db_status = "connected"
    except Exception as e:
        db_status = "error"
        db_error = str(e)
        # Only log failures
        logger.error(f"Database health check failed: {e}")

    if db_status != "connected":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "environment": settings.ENVIRONMENT,
                "version": __version__,
                "build_time": __build_time__,
                "database": db_status,
                "error": db_error,
            },
        )

    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__,
        "build_time": __build_time__,
        "database": db_status,
    }


if __name__ == "__main__":
    import os

    import uvicorn

    # Use 127.0.0.1 for security unless explicitly overridden
    host = os.getenv("UVICORN_HOST", "127.0.0.1")
    port = int(os.getenv("UVICORN_PORT", "8000"))
    uvicorn.run(app, host=host, port=port)
