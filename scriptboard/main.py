"""
Scriptboard
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from scriptboard.config import get_settings
from scriptboard.utils.logger import log
from scriptboard import __version__

# Import routers
from scriptboard.api import health, scripts, uploads, stats, admin, catalog

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from scriptboard.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for the nightly stats recompute
    from scriptboard.scheduler import start_scheduler, stop_scheduler
    try:
        start_scheduler()
    except Exception as e:
        log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    try:
        stop_scheduler()
    except Exception as e:
        log.warning(f"Scheduler shutdown error: {str(e)}")
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Script performance dashboard backend

    - Script library with parent/iteration lineage
    - Period spend workbook ingestion
    - Material-name to script matching and statistics recompute
    - Per-channel and per-period breakdowns
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(scripts.router)
app.include_router(uploads.router)
app.include_router(stats.router)
app.include_router(admin.router)
app.include_router(catalog.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "scriptboard.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
