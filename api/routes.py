"""
api/routes.py — FastAPI route definitions
==========================================
All HTTP endpoints are defined here and wired into the app via
`app.include_router(router)` in `api/app.py`.

Endpoint summary
----------------
    GET  /health              — Liveness probe
    POST /session/config      — Set per-session calibration (age, strategies)
    POST /session/start       — Start monitoring (push samples or local camera)
    POST /session/samples     — Push a batch of samples (?wait=true to block until processed)
    GET  /session/status      — Session state and counters
    GET  /vitals/latest       — Most recent vitals snapshot
    POST /session/calibrate   — Nudge BP offsets towards a cuff reading
    POST /session/stop        — Stop the worker (and camera)
    POST /session/reset       — Clear all session state
    GET  /docs                — Auto-generated Swagger UI (FastAPI built-in)
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from api.schemas import (
    BPCalibration,
    IngestResponse,
    SampleBatch,
    SessionConfig,
    StartRequest,
    StatusResponse,
    VitalsResponse,
)
from api.session import DISCLAIMER, MonitoringSession, SessionError
from utils.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()


def get_session(request: Request) -> MonitoringSession:
    """The application's single session, created by `create_app()`."""
    return request.app.state.session


# ── Health ────────────────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    """Simple liveness check."""
    return {"status": "ok", "service": "Camera-PPG Vital Signs Estimator"}


# ── Session Control ───────────────────────────────────────────────────────────

@router.post("/session/config")
async def set_config(config: SessionConfig, session: MonitoringSession = Depends(get_session)):
    """
    Store the calibration for the next session.  Returns 409 while a
    session is running.
    """
    try:
        session.configure(config)
    except SessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "ok", "message": "Configuration stored. Start a session via POST /session/start."}


@router.post("/session/start")
def start_session(request: StartRequest = StartRequest(),
                  session: MonitoringSession = Depends(get_session)):
    """
    Begin monitoring.  Returns 409 if a session is already running, or 503
    if the camera could not be opened.
    """
    if session.status == "running":
        raise HTTPException(status_code=409, detail="A session is already running.")
    try:
        session.start(source=request.source)
    except SessionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {
        "status": "running",
        "message": f"Session started (source={request.source}). Poll GET /vitals/latest.",
    }


@router.post("/session/samples")
def push_samples(batch: SampleBatch, wait: bool = False,
                 session: MonitoringSession = Depends(get_session)) -> IngestResponse:
    """
    Queue samples for processing.  Returns 409 if no session is running.
    With `?wait=true` the response is sent after the backlog is processed.
    """
    try:
        accepted, dropped = session.submit([s.to_sample() for s in batch.samples], wait=wait)
    except SessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    processed, _ = session.counters()
    return IngestResponse(accepted=accepted, dropped=dropped, processed=processed)


@router.get("/session/status")
async def session_status(session: MonitoringSession = Depends(get_session)) -> StatusResponse:
    """
    Current session state and counters.

    Returns
    -------
    StatusResponse
        status  : "idle" | "running" | "stopped" | "error"
        message : human-readable description
    """
    status = session.status
    processed, dropped = session.counters()

    messages = {
        "idle":    "No session. POST /session/start to begin.",
        "running": f"Monitoring — {processed} samples processed. Keep your fingertip on the camera.",
        "stopped": "Session stopped. GET /vitals/latest for the last reading.",
        "error":   "Session encountered an error. Reset and try again.",
    }

    return StatusResponse(
        status=status,
        message=messages.get(status, "Unknown state."),
        source=session.source,
        samples_processed=processed,
        samples_dropped=dropped,
        config=session.config,
        error=session.error_message,
    )


@router.get("/vitals/latest")
async def latest_vitals(session: MonitoringSession = Depends(get_session)) -> VitalsResponse:
    """Most recent vitals snapshot; 404 until the first sample is processed."""
    snapshot = session.latest()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No vitals available yet.")
    return VitalsResponse(disclaimer=DISCLAIMER, **snapshot.as_dict())


@router.post("/session/calibrate")
async def calibrate(reading: BPCalibration, session: MonitoringSession = Depends(get_session)):
    """Apply a reference cuff reading to the running session's BP estimate."""
    if reading.systolic <= reading.diastolic:
        raise HTTPException(status_code=422, detail="Systolic must exceed diastolic.")
    try:
        session.calibrate_bp(reading.systolic, reading.diastolic)
    except SessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "ok", "message": "BP calibration applied."}


@router.post("/session/stop")
def stop_session(session: MonitoringSession = Depends(get_session)):
    """Stop monitoring.  Returns 409 if no session is running."""
    if session.status != "running":
        raise HTTPException(status_code=409, detail="No running session.")
    session.stop()
    return {"status": "stopped", "message": "Session stopped."}


@router.post("/session/reset")
def reset_session(session: MonitoringSession = Depends(get_session)):
    """Clear all session state so a new session starts clean."""
    session.reset()
    return {"status": "ok", "message": "Session reset."}
