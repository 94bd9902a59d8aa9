import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from radiofit.core.container import build_services
from radiofit.core.database import async_session_maker, init_db
from radiofit.api import records, timezone, reminder

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await init_db()
    services = build_services(async_session_maker)
    app.state.services = services

    try:
        await services.migration.migrate_all_stored()
    except Exception as e:
        logger.error(f"Startup migration failed: {e}")

    await services.reminders.restore()
    services.detector.on_change(
        lambda new, old: logger.info(f"Timezone changed from {old} to {new}; records will display in {new}")
    )
    services.detector.start_monitoring()
    yield
    # Shutdown
    services.detector.stop_monitoring()
    services.reminders.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Radio Fit",
    description="Timezone-aware radio calisthenics habit tracker",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(records.router)
app.include_router(timezone.router)
app.include_router(reminder.router)


@app.get("/")
async def root():
    """Redirect root to the API docs."""
    return RedirectResponse(url="/docs")
