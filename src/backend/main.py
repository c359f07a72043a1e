"""
Luminex Guard Backend Application

Behavioral anti-abuse service for mini-game rewards and referral claims.
"""

from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.deps import get_anti_abuse_engine
from api.v1 import router as api_v1_router
from core.config import settings
from core.events import create_start_app_handler, create_stop_app_handler
from core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from repositories.memory_ledger_repository import MemoryLedgerRepository
from services.engine import AntiAbuseEngine

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    await create_start_app_handler(app)()
    yield
    # Shutdown
    await create_stop_app_handler(app)()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.APP_NAME,
        description="Behavioral anti-abuse engine for game inputs, scores and referrals",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - processed in reverse)
    # 1. Security headers - added to all responses
    application.add_middleware(SecurityHeadersMiddleware)

    # 2. Request context - request id and client IP on every log line
    application.add_middleware(RequestContextMiddleware)

    # 3. CORS - restricted to specific methods and headers
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Admin-Secret",
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID"],
    )

    # 4. GZip compression for responses
    application.add_middleware(GZipMiddleware, minimum_size=1000)

    # Include routers
    application.include_router(api_v1_router, prefix="/api/v1")

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler to catch unhandled exceptions.

        Returns a structured JSON 500 so CORS headers are still applied by the
        middleware stack.
        """
        logger.exception(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "An internal server error occurred. Please try again later.",
                "error_type": type(exc).__name__ if settings.DEBUG else "InternalServerError",
            },
        )

    return application


app = create_application()


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "service": "luminex-guard-api"}


@app.get("/health/services", tags=["Health"])
async def service_status(
    engine: Annotated[AntiAbuseEngine, Depends(get_anti_abuse_engine)],
) -> dict:
    """
    Service configuration status endpoint for deployment validation.

    Reports which ledger backend won the startup probe. Anything other than
    Azure Tables in production means ledgers will not survive a redeploy.
    """
    backend = engine.store.backend_name
    durable = backend != MemoryLedgerRepository.name

    services = {
        "ledger_storage": {
            "configured": durable,
            "details": {
                "backend": backend,
                "azure_tables_configured": settings.azure_tables_configured,
            },
        },
        "ip_intelligence": {
            "configured": engine.ip_intelligence.enabled,
            "details": {
                "timeout_seconds": engine.ip_intelligence.timeout_seconds,
            },
        },
    }

    all_configured = all(svc["configured"] for svc in services.values())

    return {
        "status": "healthy" if all_configured else "degraded",
        "all_services_configured": all_configured,
        "services": services,
    }


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }
