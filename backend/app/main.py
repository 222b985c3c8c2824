"""
MeetingLingo Realtime Translation Relay - Main Application

This is the entry point for the FastAPI application.
It handles:
- REST API endpoints (session creation, status, control actions)
- WebSocket connections for audio ingest and listener fan-out
- Startup/shutdown of the database schema, metrics exporter and
  pending translation log writes
"""
from contextlib import asynccontextmanager
import logging
from datetime import datetime, UTC

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router as api_router
from app.api.websocket import router as ws_router
from app.config.settings import settings
from app.models.database import init_db
from app.services.connection import connection_manager
from app.services.audio import get_audio_chunk_recorder
from app.services.metrics import start_metrics_server
from app.services.translation import get_translation_logger

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # === STARTUP ===
    logger.info("🚀 Starting MeetingLingo translation relay...")

    # Create database tables
    await init_db()
    logger.info("✅ Database tables created")

    if settings.METRICS_ENABLED:
        start_metrics_server(settings.METRICS_PORT)

    if not settings.OPENAI_API_KEY:
        logger.warning("⚠️ OPENAI_API_KEY is not set; every initialize will fail to reach the provider")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("🛑 Shutting down...")
    await get_translation_logger().flush()
    await get_audio_chunk_recorder().flush()
    logger.info("✅ Pending translation logs and audio chunks flushed")


app = FastAPI(
    title="MeetingLingo Realtime Translation Relay",
    description="Live meeting audio relayed through a speech-to-speech translation provider",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST API routes
app.include_router(api_router, prefix="/api")

# Include WebSocket routes
app.include_router(ws_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "MeetingLingo Realtime Translation Relay",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "active_sessions": connection_manager.get_active_session_count(),
        "total_connections": connection_manager.get_total_connections()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
