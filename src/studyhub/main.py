"""
StudyHub API - Main Application Entry Point

Builds the FastAPI app. The lifespan connects Postgres and (optionally)
Redis, then owns the background job runner: it is created once, stored on
`app.state.job_runner` for the cron routes, and started only when
SCHEDULER_ENABLED is set.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from studyhub import __version__
from studyhub.api import api_router
from studyhub.core.config import settings
from studyhub.core.database import async_session_maker, close_db, init_db
from studyhub.core.logging import configure_logging
from studyhub.core.redis import close_redis, init_redis, is_redis_available
from studyhub.modules.jobs.registry import build_runner

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect backing services and run the job runner for the app lifetime.

    Handles startup and shutdown of:
    - Redis connection (optional outside production)
    - Database connection
    - Background job runner (the periodic timer only when SCHEDULER_ENABLED;
      the runner itself always exists so the cron trigger can dispatch jobs)
    """
    logger.info(f"Starting StudyHub API in {settings.python_env} mode...")

    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    runner = build_runner()
    app.state.job_runner = runner
    try:
        if settings.scheduler_enabled:
            await runner.start()
            logger.info("[OK] Background job runner started")
        else:
            await runner.register_all()
            logger.info("[OK] Background jobs registered (timer disabled, cron trigger only)")
    except Exception as e:
        logger.error(f"[FAIL] Background job runner failed to start: {e}")
        if settings.is_production:
            raise

    yield

    logger.info("Shutting down StudyHub API...")

    # Stop the runner first (wait for running jobs)
    await runner.stop(timeout=settings.scheduler_handler_timeout_seconds)
    logger.info("[OK] Background job runner stopped")

    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="StudyHub API",
    description="Student productivity platform API",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service name and version."""
    return {
        "message": "Welcome to StudyHub API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe; does not touch the database."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check: database reachable, Redis state reported."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        return {"status": "not_ready", "database": "error"}

    return {
        "status": "ready",
        "database": "connected",
        "redis": "connected" if is_redis_available() else "not initialized",
    }
