"""Main FastAPI application for Emergency Buddy."""

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from emergency_buddy.config import settings
from emergency_buddy.connectors.audio_capture import SoundDeviceAudioCapture
from emergency_buddy.connectors.twilio_telephony import TwilioTelephonyConnector
from emergency_buddy.escalation.contacts import ContactManager
from emergency_buddy.escalation.engine import EscalationEngine
from emergency_buddy.escalation.scheduler import EscalationScheduler
from emergency_buddy.exceptions import InvalidConfigurationError
from emergency_buddy.models.location import LocationTracker
from emergency_buddy.storage.recordings import LocalRecordingStore
from emergency_buddy.triggers.voice import VoiceTrigger
from emergency_buddy.utils.logging import (
    CorrelationContextManager,
    get_logger,
    log_api_request,
    setup_logging,
)

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Global service instances
escalation_engine: Optional[EscalationEngine] = None
escalation_scheduler: Optional[EscalationScheduler] = None
location_tracker: Optional[LocationTracker] = None
contact_manager: Optional[ContactManager] = None
telephony_connector: Optional[TwilioTelephonyConnector] = None


class LocationUpdate(BaseModel):
    lat: float = Field(ge=-90, le=90, description="Latitude in degrees")
    lng: float = Field(ge=-180, le=180, description="Longitude in degrees")


class TranscriptIn(BaseModel):
    transcript: str = Field(max_length=2000, description="Recognised speech")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global escalation_engine, escalation_scheduler, location_tracker
    global contact_manager, telephony_connector

    logger.info("Starting Emergency Buddy")

    try:
        escalation_scheduler = EscalationScheduler()
        location_tracker = LocationTracker()
        contact_manager = ContactManager()
        telephony_connector = TwilioTelephonyConnector()

        escalation_engine = EscalationEngine(
            contact_source=contact_manager,
            config_source=settings,
            telephony=telephony_connector,
            audio=SoundDeviceAudioCapture(),
            location_source=location_tracker,
            recording_store=LocalRecordingStore(),
            scheduler=escalation_scheduler,
        )

        await escalation_scheduler.start()
        logger.info("Emergency Buddy started successfully")

    except Exception as e:
        logger.error("Failed to start application", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down Emergency Buddy")

    try:
        if escalation_engine and escalation_engine.is_active:
            logger.warning("Cancelling active escalation on shutdown")
            escalation_engine.cancel()

        if escalation_scheduler:
            await escalation_scheduler.stop()

        if telephony_connector:
            telephony_connector.shutdown(wait=True)

        logger.info("Emergency Buddy shutdown completed")

    except Exception as e:
        logger.error("Error during shutdown", error=str(e))


def get_engine() -> EscalationEngine:
    if not escalation_engine:
        raise HTTPException(status_code=503, detail="Escalation engine not initialized")
    return escalation_engine


def get_location_tracker() -> LocationTracker:
    if not location_tracker:
        raise HTTPException(status_code=503, detail="Location tracker not initialized")
    return location_tracker


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Personal safety escalation service",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    """Attach a correlation id and log every request."""
    with CorrelationContextManager(request.headers.get("X-Correlation-ID")) as correlation_id:
        started = time.monotonic()
        response = await call_next(request)
        log_api_request(
            logger,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms=(time.monotonic() - started) * 1000
        )
        response.headers["X-Correlation-ID"] = correlation_id
        return response


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with component status."""
    if not escalation_scheduler or not telephony_connector or not contact_manager:
        raise HTTPException(status_code=503, detail="Services not initialized")

    telephony_ok = await asyncio.to_thread(telephony_connector.check_connection)
    contacts = contact_manager.get_contacts_summary()

    overall = "healthy"
    if not telephony_ok:
        overall = "degraded"
    if escalation_scheduler.get_job_status()["status"] != "running":
        overall = "critical"

    health_status = {
        "overall_status": overall,
        "timestamp": _now(),
        "components": {
            "scheduler": escalation_scheduler.get_job_status(),
            "telephony": {"status": "healthy" if telephony_ok else "unavailable"},
            "contacts": contacts,
        },
    }

    if overall == "critical":
        return JSONResponse(status_code=503, content=health_status)
    return health_status


# Emergency endpoints
@app.get(f"{settings.API_V1_STR}/emergency/status")
async def get_emergency_status(engine: EscalationEngine = Depends(get_engine)):
    """Current state of the escalation for the presentation layer."""
    return engine.get_status()


@app.post(f"{settings.API_V1_STR}/emergency/trigger")
async def trigger_emergency(engine: EscalationEngine = Depends(get_engine)):
    """Start an escalation (the emergency button)."""
    try:
        started = engine.trigger()
    except InvalidConfigurationError as e:
        logger.error("Escalation refused, invalid configuration", fields=e.fields)
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "fields": e.fields}
        )

    if not started:
        raise HTTPException(status_code=409, detail="Emergency escalation already active")

    return {
        "message": "Emergency escalation started",
        "status": engine.get_status(),
        "timestamp": _now()
    }


@app.post(f"{settings.API_V1_STR}/emergency/cancel")
async def cancel_emergency(engine: EscalationEngine = Depends(get_engine)):
    """Stop the active escalation; harmless when nothing is running."""
    engine.cancel()
    return {
        "message": "Emergency protocol stopped",
        "status": engine.get_status(),
        "timestamp": _now()
    }


@app.post(f"{settings.API_V1_STR}/voice/transcript")
async def submit_transcript(
    body: TranscriptIn,
    engine: EscalationEngine = Depends(get_engine)
):
    """Match recognised speech against the trigger phrases."""
    if not settings.ENABLE_VOICE_TRIGGER:
        raise HTTPException(status_code=404, detail="Voice trigger disabled")

    voice_trigger = VoiceTrigger(settings.trigger_phrase_list, engine.trigger)
    try:
        triggered = voice_trigger.process_transcript(body.transcript)
    except InvalidConfigurationError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "fields": e.fields}
        )

    return {
        "triggered": triggered,
        "state": engine.state.value,
        "timestamp": _now()
    }


@app.put(f"{settings.API_V1_STR}/location")
async def update_location(
    body: LocationUpdate,
    tracker: LocationTracker = Depends(get_location_tracker)
):
    """Record the device's last known position."""
    location = tracker.update(body.lat, body.lng)
    return {
        "location": location.to_dict(),
        "map_link": location.map_link,
        "timestamp": _now()
    }


# Configuration endpoints
@app.get(f"{settings.API_V1_STR}/config/info")
async def get_config_info():
    """Get basic configuration information."""
    return {
        "app_name": settings.APP_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "escalation": {
            "cancel_window_seconds": settings.CANCEL_WINDOW_SECONDS,
            "contact_timeout_seconds": settings.CONTACT_TIMEOUT_SECONDS,
            "recording_duration_seconds": settings.RECORDING_DURATION_SECONDS,
            "keep_partial_recordings": settings.KEEP_PARTIAL_RECORDINGS
        },
        "features": {
            "sms_alerts": settings.ENABLE_SMS_ALERTS,
            "voice_trigger": settings.ENABLE_VOICE_TRIGGER
        },
        "trigger_phrases": settings.trigger_phrase_list
    }


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with structured logging."""
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "timestamp": _now(),
            "path": str(request.url.path)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions with structured logging."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "timestamp": _now(),
            "path": str(request.url.path)
        }
    )


# Run application
if __name__ == "__main__":
    uvicorn.run(
        "emergency_buddy.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
