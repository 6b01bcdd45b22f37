import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from socialgraph.api.errors import register_exception_handlers
from socialgraph.api.v1.router import api_router
from socialgraph.core.config import settings
from socialgraph.core.logging_config import setup_logging
from socialgraph.core.redis import redis_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Startup
    setup_logging()
    logger.info("Starting up...")
    if settings.REDIS_ENABLED:
        await redis_client.connect()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await redis_client.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "health": "/health",
        "api": "/api/v1",
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    redis_status = "unavailable"
    if redis_client.connected:
        try:
            await redis_client.set("health_check", "ok", expire=10)
            redis_status = "healthy"
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            redis_status = "unhealthy"

    return {
        "status": "healthy" if redis_status != "unhealthy" else "degraded",
        "services": {
            "redis": redis_status,
        }
    }
