"""
Storefront Order Service - Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
import logging

from storefront import __version__
from storefront.api import routes
from storefront.common_instrumentation import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_opentelemetry,
    shutdown_opentelemetry,
)
from storefront.common_logging import setup_logging
from storefront.config import Settings, settings as default_settings
from storefront.db.database import Database
from storefront.db.schema import detect_capabilities
from storefront.services.errors import DatabaseFailureError, StorefrontError
from storefront.services.order_service import OrderService

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_body(message: str, error: Optional[str] = None) -> dict:
    body = {"success": False, "message": message}
    if error:
        body["error"] = error
    return body


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; tests pass their own settings"""
    settings = settings or default_settings

    setup_logging(
        service_name=settings.service_name,
        log_level=settings.log_level,
        log_format=settings.log_format
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        logger.info(f"Starting {settings.service_name}")
        logger.info(f"Environment: {settings.environment}")

        database = Database(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            lock_timeout=settings.db_lock_timeout,
        )
        try:
            engine = database.open()
            database.create_tables()
            capabilities = detect_capabilities(engine)
            logger.info("Database initialized successfully")

            if settings.otel_enabled:
                instrument_sqlalchemy(engine)
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            database.close()
            raise

        app.state.database = database
        app.state.capabilities = capabilities
        app.state.order_service = OrderService(
            capabilities,
            default_payment_method=settings.default_payment_method
        )

        tracer_provider = setup_opentelemetry(
            service_name=settings.otel_service_name or settings.service_name,
            otlp_endpoint=settings.otel_endpoint,
            enabled=settings.otel_enabled,
            service_version=__version__,
            environment=settings.environment
        )

        logger.info(f"{settings.service_name} started successfully")

        yield

        logger.info(f"Shutting down {settings.service_name}")
        database.close()
        shutdown_opentelemetry(tracer_provider)

    app = FastAPI(
        title="Storefront Order Service",
        description="Checkout and order management for the PC-parts storefront",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.otel_enabled:
        instrument_fastapi(app)

    app.include_router(routes.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint (liveness probe)"""
        return {
            "status": "healthy",
            "service": settings.service_name,
            "version": __version__,
            "timestamp": _now()
        }

    @app.get("/ready")
    def readiness_check(request: Request):
        """Readiness check endpoint (readiness probe)"""
        try:
            request.app.state.database.ping()

            return {
                "status": "ready",
                "service": settings.service_name,
                "database": "connected",
                "itemLayout": request.app.state.capabilities.item_layout.value,
                "timestamp": _now()
            }
        except Exception as e:
            logger.error(f"Readiness check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "not_ready",
                    "service": settings.service_name,
                    "database": "disconnected",
                    "error": str(e),
                    "timestamp": _now()
                }
            )

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": settings.service_name,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "ready": "/ready"
        }

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        error = None
        if isinstance(exc, DatabaseFailureError):
            logger.error(f"{exc.message}: {exc.detail}")
            if settings.expose_error_detail:
                error = exc.detail
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, error))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning(f"Invalid request to {request.url.path}: {message}")
        return JSONResponse(status_code=400, content=_error_body(message))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True)
        error = str(exc) if settings.expose_error_detail else None
        return JSONResponse(status_code=500, content=_error_body("Database error", error))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        error = exc.__class__.__name__ if settings.expose_error_detail else None

        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", error)
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8002,
        reload=default_settings.debug,
        log_level=default_settings.log_level.lower()
    )
