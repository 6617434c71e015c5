from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.exceptions import DualPlanError, error_response
from app.core.logging_config import logger
from app.core.middleware import (
    RequestLoggingMiddleware,
    RequestSizeLimitMiddleware,
)
from app.core.redis_client import redis_client
from app.api.v1.router import api_router
from app.services.session_store import get_session_store
from app.services.planning_stream import active_run_count, cancel_background_runs


async def validate_critical_config():
    """Validate critical configuration at startup - fail fast if missing"""
    errors = []
    warnings = []

    # Critical for AI planning
    if not settings.ANTHROPIC_API_KEY:
        errors.append("ANTHROPIC_API_KEY is not set - planning agents will NOT work!")

    # A per-agent timeout that outlives the host would leave sessions running forever
    errors.extend(settings.planning_budget_errors())

    if settings.SESSION_STORE_BACKEND == "memory" and settings.ENVIRONMENT == "production":
        warnings.append("SESSION_STORE_BACKEND=memory - sessions are per-process, run a single worker")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Invalid critical configuration: {', '.join(errors)}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")

    logger.info("[Startup] ✓ Critical configuration validated")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Version: {settings.API_VERSION}")
    logger.info("=" * 60)

    # Step 1: Validate critical configuration (fail fast!)
    await validate_critical_config()

    # Step 2: Shared session store needs its connection before the first request
    if settings.SESSION_STORE_BACKEND == "redis":
        await redis_client.connect()

    # Step 3: Sweep never-attached sessions (1hr TTL)
    store = get_session_store()
    await store.start_cleanup_task()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")

    store.stop_cleanup_task()
    await cancel_background_runs()

    if settings.SESSION_STORE_BACKEND == "redis":
        await redis_client.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Dual-agent planning: two specialists, one reconciled build plan",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False  # Prevent 307 redirects that break CORS
)

# Add middleware (order matters - last added runs first)
# 1. Request logging (runs first for all requests)
app.add_middleware(RequestLoggingMiddleware)

# 2. Request size limit (2MB default)
app.add_middleware(RequestSizeLimitMiddleware)

# 3. CORS - Origins from CORS_ORIGINS_STR in .env
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(DualPlanError)
async def dualplan_exception_handler(request: Request, exc: DualPlanError):
    logger.warning(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    health = {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "sessions": await get_session_store().get_stats(),
        "active_runs": active_run_count()
    }
    if settings.SESSION_STORE_BACKEND == "redis":
        health["redis"] = await redis_client.ping()
        if not health["redis"]:
            health["status"] = "degraded"
    return health


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# Include API router
app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )
