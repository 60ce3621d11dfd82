from fastapi import FastAPI
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import logging

# Import utilities and configurations
from config import settings
from routes import forms, health
from services.document_service import DocumentService
from services.frappe_client import FrappeClient
from services.session_registry import SessionRegistry

# Load environment variables (done via pydantic_settings in config.py, but keep for other `os.getenv` if any)
load_dotenv()

# FastAPI app
app = FastAPI(title="Frappe Form Engine")

# Logger setup
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app.include_router(forms.router)
app.include_router(health.router)


def sweep_idle_sessions():
    """Closes form sessions nobody has touched within SESSION_IDLE_MINUTES."""
    closed = app.state.sessions.sweep_idle()
    if closed:
        logger.info(f"Swept idle sessions: {', '.join(closed)}")


# Run on startup and shutdown events
@app.on_event("startup")
async def startup_event():
    # A client set up front (tests) is kept as is
    if getattr(app.state, "frappe", None) is None:
        app.state.frappe = FrappeClient()
    app.state.sessions = SessionRegistry()
    app.state.documents = DocumentService(app.state.frappe)
    logger.info(f"🌐 Frappe backend: {app.state.frappe.base_url}")

    # Start the idle-session sweeper
    scheduler = AsyncIOScheduler()
    scheduler.add_job(sweep_idle_sessions, IntervalTrigger(minutes=settings.SESSION_SWEEP_MINUTES))
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("🔁 Idle session sweeper started.")

@app.on_event("shutdown")
async def shutdown_event():
    # Shut down scheduler
    app.state.scheduler.shutdown()
    logger.info("🔁 Idle session sweeper stopped.")
    # Cancel pending work of every open session, then release the HTTP client
    app.state.sessions.close_all()
    await app.state.frappe.aclose()
    app.state.frappe = None
