"""
Benefits Portal API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Logging
- Redis connection (browser session store)
- CORS middleware
- API routing
- Health check endpoints

The downstream submission client is registered on app.state as
"application_submitter" by the deployment; submissions answer 503 until one
is registered.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.api import api_router
from portal.core.config import settings
from portal.core.logging import setup_logging
from portal.core.redis import close_redis, init_redis, is_redis_available

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Logging configuration
    - Redis connection
    """
    # Startup
    setup_logging()
    logger.info(f"Starting Benefits Portal API in {settings.python_env} mode...")

    # Initialize Redis
    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise
        logger.warning("Using in-process session store")

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down Benefits Portal API...")
    await close_redis()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="Benefits Portal API",
    description="Dental benefits application and renewal flows",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix=settings.api_v1_prefix)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint."""
    return {
        "status": "ready",
        "session_store": "redis" if is_redis_available() else "memory",
    }
