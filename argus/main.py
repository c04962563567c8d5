"""ARGUS — FastAPI Application Entry Point.

Failure tracking, bounded retry and post-creation reconciliation for Meta
campaign / ad set / ad creation.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from argus.database import init_db, test_connection, db_url, _mask_url
from argus.scheduler.jobs import start_scheduler, stop_scheduler
from argus.api.failure_routes import router as failure_router
from argus.api.verification_routes import router as verification_router
from argus.api.job_routes import router as job_router
from argus.core.errors import ArgusError
from argus.core.logging import get_logger
from argus.jobs.progress import JobProgressStore

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 ARGUS starting up...")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")

    app.state.job_store = JobProgressStore()
    start_scheduler(app.state.job_store)
    yield
    stop_scheduler()
    await app.state.job_store.shutdown()
    logger.info("ARGUS shut down")


app = FastAPI(
    title="ARGUS",
    description="Track failed Meta ad entity creations, retry them safely, and verify what was created.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ArgusError)
async def argus_error_handler(request: Request, exc: ArgusError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


# Routers
app.include_router(failure_router)
app.include_router(verification_router)
app.include_router(job_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "argus",
        "version": "1.0.0",
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Debug endpoint — check database connectivity."""
    error = None
    connected = False
    try:
        connected = test_connection()
    except Exception as e:
        error = str(e)

    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "error": error,
    }
