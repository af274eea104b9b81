"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contentfactory.api.routes import router
from contentfactory.config import settings
from contentfactory.db import init_database, shutdown
from contentfactory.orchestrator.wiring import build_orchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Startup:
        - Initialize database schema and seed agents
        - Build the orchestrator
        - Fail jobs orphaned by a previous process

    Shutdown:
        - Cancel running jobs and close event streams
        - Close database connections
    """
    # Startup
    logger.info("Starting Content Factory API...")
    await init_database()
    orchestrator = build_orchestrator()
    if settings.pipeline.fail_orphaned_jobs_on_startup:
        orphaned = await orchestrator.reconcile_orphans()
        if orphaned:
            logger.warning(f"Marked {orphaned} interrupted job(s) as failed")
    app.state.orchestrator = orchestrator
    logger.info("API startup complete")

    yield

    # Shutdown
    logger.info("Shutting down Content Factory API...")
    await orchestrator.shutdown()
    await shutdown()
    logger.info("API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Content Factory API",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to prevent stack traces in API responses."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
        }
    )
