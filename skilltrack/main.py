"""Main FastAPI application for Skill Track Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from skilltrack.core.config import settings
from skilltrack.core.logging import setup_logging
from skilltrack.core.database import init_db, get_db
from skilltrack.core.dependencies import get_cache, close_http_client
from skilltrack.routers import progress, tracks

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    # Startup
    logger.info(
        "Starting Skill Track Service",
        version=settings.APP_VERSION,
        gateway=settings.GATEWAY_BACKEND,
        unlock_policy=settings.UNLOCK_POLICY
    )

    if settings.GATEWAY_BACKEND == "sql":
        await init_db()

    app.state.cache = await get_cache()

    logger.info("Skill track service initialized successfully")

    yield

    # Shutdown
    await close_http_client()
    logger.info("Shutting down Skill Track Service")


# Create FastAPI app
app = FastAPI(
    title="Skill Track Service",
    description="Skill track graphs: normalization, layout, learner state and the completion cascade",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics; middleware cannot be added once the app has started
if settings.ENABLE_METRICS:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

# Include routers
app.include_router(tracks.router, prefix="/api/tracks", tags=["tracks"])
app.include_router(
    progress.router,
    prefix="/api/progress/{track_id}/users/{user_id}",
    tags=["progress"]
)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check endpoint."""
    health_status = {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "checks": {}
    }

    # Check database
    if settings.GATEWAY_BACKEND == "sql":
        try:
            async for db in get_db():
                await db.execute(text("SELECT 1"))
                health_status["checks"]["database"] = "healthy"
        except Exception as e:
            health_status["checks"]["database"] = f"unhealthy: {str(e)}"
            health_status["status"] = "degraded"
    else:
        health_status["checks"]["backend"] = settings.BACKEND_URL

    # Check cache
    try:
        if hasattr(request.app.state, "cache"):
            await request.app.state.cache.exists("health_check")
            health_status["checks"]["cache"] = "healthy"
    except Exception as e:
        health_status["checks"]["cache"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "skilltrack.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENVIRONMENT == "development",
        log_config=None  # Use structlog instead
    )
