"""
Marketing Hub Analytics
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from marketing_hub.config import get_settings
from marketing_hub.utils.logger import log
from marketing_hub import __version__

# Import routers
from marketing_hub.api import admin, analytics, cron, health

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from marketing_hub.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for cache refresh and sync jobs
    if settings.enable_scheduler:
        try:
            from marketing_hub.scheduler import start_scheduler
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if settings.enable_scheduler:
        from marketing_hub.scheduler import stop_scheduler
        stop_scheduler()

    from marketing_hub.services.container import get_services
    await get_services().refresh_queue.stop()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Marketing analytics hub for a portfolio of companies.

    Serves per-company and portfolio analytics for Google Analytics,
    Search Console, YouTube and LinkedIn out of a tiered cache:
    normalized daily storage, a point cache with stale-while-revalidate,
    and live provider fetches as the last resort.
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
app.include_router(analytics.router)
app.include_router(admin.router)
app.include_router(cron.router)
