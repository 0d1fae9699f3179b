"""
FastAPI application entry point.

create_app() builds a fresh application each call; tests create one per
case and swap settings, counter store and limiter via dependency_overrides.

For local development:
    uvicorn src.main:app --reload

For production:
    gunicorn src.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, uploads
from .config.settings import get_settings
from .core.uploads.rate_limit import RateLimitStoreError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs startup configuration and warns about missing settings.
    FastAPI calls this automatically when the application starts/stops.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "MediaDrop API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {
                "redis": settings.redis_mock_mode,
                "storage": settings.storage_mock_mode,
            },
            "rate_limit": f"{settings.rate_limit_max_requests}/{settings.rate_limit_window_seconds}s",
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Credential requests will answer 500 until this is fixed
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    for warning in settings.configuration_warnings():
        # Uploads will be rejected by the object store
        logger.warning("Inconsistent configuration: %s", warning)

    yield

    logger.info("MediaDrop API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    This function is called once at startup (in production) or
    multiple times (in tests with different configurations).
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Direct-to-storage media uploads.

        ## Workflow

        1. **Get a credential**: `GET /auth/upload-credential`
           - Rate limited per client
           - Returns a short-lived signed `{token, expire, signature}`

        2. **Upload**: send the file straight to the object store
           with the credential. The bytes never pass through this API.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        uploads.router,
        prefix="/auth",
        tags=["Uploads"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at docs."""
        return {
            "message": "MediaDrop API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(RateLimitStoreError)
    async def counter_store_failure_handler(request, exc):
        """
        Counter store failures raised outside the credential route.

        Operators get the detail in the log; clients only get an opaque message.
        """
        logger.error(
            "Credential issuance unavailable",
            extra={
                "path": request.url.path,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )

        return JSONResponse(
            status_code=500,
            content={"error": uploads.CREDENTIAL_FAILURE_MESSAGE},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        In production, this prevents stack traces from leaking to clients.
        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
