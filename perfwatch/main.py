"""FastAPI application factory and main entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from perfwatch.api.v1.router import api_router
from perfwatch.core.config import settings
from perfwatch.core.errors import (
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from perfwatch.core.logging import setup_logging
from perfwatch.db.base import Base
from perfwatch.db.engine import engine
from perfwatch.db.instrumentation import instrument_engine
from perfwatch.middleware.perf_capture import PerfCaptureMiddleware
from perfwatch.observability.logging import setup_structured_logging

import perfwatch.models  # noqa: F401  (register tables on Base.metadata)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    setup_structured_logging()
    # Create tables (in production, use migrations)
    if settings.ENV in ("dev", "test"):
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    instrument_engine(engine)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Samples admin requests and reports slow screens, outliers and slow queries",
        openapi_url="/openapi.json" if settings.ENV != "prod" else None,
        docs_url="/docs" if settings.ENV != "prod" else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(PerfCaptureMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint - API information."""
        return {
            "message": settings.PROJECT_NAME,
            "version": "1.0.0",
            "docs_url": "/docs" if settings.ENV != "prod" else None,
        }

    return app


# Create app instance
app = create_app()
