"""
FastAPI app entrypoint.

Clinic scheduling: practitioner availability, bookable slots and appointments. The appointment event
outbox is drained by an in-process APScheduler job (disable with SCHEDULER_ENABLED=false when a separate
worker runs it).
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from ayursutra.api.routes import appointments, practitioners, slots, unavailable_dates
from ayursutra.config import settings
from ayursutra.core.constants import APPOINTMENT_EVENT_JOB_ID
from ayursutra.scheduler.appointment_event_job import run_appointment_event_job

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_appointment_event_job,
            "interval",
            seconds=settings.event_poll_seconds,
            id=APPOINTMENT_EVENT_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info("Appointment event job scheduled every %ss", settings.event_poll_seconds)
    else:
        logger.info("Scheduler disabled; appointment events are left for an external worker")
    logger.info("Scheduling backend ready")
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)


app = FastAPI(title="AyurSutra Scheduling", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS (comma-separated) for the deployed frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(practitioners.router, tags=["practitioners"])
app.include_router(slots.router, tags=["slots"])
app.include_router(unavailable_dates.router, tags=["unavailable-dates"])
app.include_router(appointments.router, tags=["appointments"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "AyurSutra Scheduling API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
