"""FastAPI application entry point for Mintoons."""

import asyncio
import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.middleware.auth_middleware import RouteAccessMiddleware
from app.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

# Get settings
settings = get_settings()

# Configure logging
configure_logging(debug=settings.debug)


# ── Background tasks ──────────────────────────────────────────────────────
_email_task = None
_maintenance_task = None


async def _maintenance_loop():
    """Run the maintenance sweep on a fixed interval."""
    from app.dependencies import get_db_client
    from app.services.email.email_service import get_email_queue
    from app.services.maintenance import MaintenanceSweep

    sweep = MaintenanceSweep(get_db_client(), email_queue=get_email_queue())
    interval = settings.maintenance_interval_seconds
    logger.info(f"Maintenance started ({interval}s interval)")

    while True:
        await asyncio.sleep(interval)
        try:
            sweep.run()
        except Exception as e:
            logger.warning(f"Maintenance sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown events."""
    global _email_task, _maintenance_task
    from app.services.email.email_service import get_email_queue

    # Startup event
    logger.info(f"Starting {settings.app_name} API {settings.api_version}")
    logger.info(f"Running in {settings.environment} mode")
    logger.info(f"Debug mode: {settings.debug}")
    if not settings.smtp_configured:
        logger.warning("SMTP_HOST not set - emails will not be delivered")

    _email_task = asyncio.create_task(get_email_queue().process_loop())
    _maintenance_task = asyncio.create_task(_maintenance_loop())

    yield

    # Shutdown event
    for task in [_email_task, _maintenance_task]:
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
    logger.info(f"Shutting down {settings.app_name} API")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Story-writing platform for young authors, with mentors and an AI assistant",
    version=settings.api_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

register_exception_handlers(app)

# ── Middleware (order matters: last-added = outermost = first to run) ──

# 1. Error handler added first → innermost layer
app.add_middleware(ErrorHandlerMiddleware)

# 2. Role checks run before routing
app.add_middleware(RouteAccessMiddleware)

# 3. Security headers on every response, including auth rejections
app.add_middleware(SecurityHeadersMiddleware)

# 4. CORS added last → outermost layer (processes OPTIONS preflight first)
_allow_all = settings.cors_origins == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=not _allow_all,  # Cannot use credentials with allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
)

# Include API routers
from app.api.v1.router import router as v1_router  # noqa: E402

app.include_router(v1_router)


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> JSONResponse:
    """Health check endpoint for monitoring."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.api_version,
        },
    )


@app.get(
    "/",
    status_code=status.HTTP_200_OK,
    tags=["Root"],
    summary="Welcome endpoint",
)
async def root() -> JSONResponse:
    """Root endpoint with welcome message."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "message": f"Welcome to {settings.app_name}",
            "version": settings.api_version,
            "docs_url": "/docs",
            "redoc_url": "/redoc",
        },
    )


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
