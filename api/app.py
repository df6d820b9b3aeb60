"""
api/app.py — FastAPI application factory
==========================================
`create_app()` wires one `MonitoringSession` into a fresh FastAPI instance
(`app.state.session`), so tests can build as many isolated apps as they
like and inject a pre-built session.

Lifespan
--------
On shutdown a still-running session is stopped, which joins the worker
thread and releases the camera.

CORS
----
Origins come from `config.CORS_ALLOW_ORIGINS` ("*" for local demos).
Restrict them to the frontend's domain in any shared deployment.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from api.session import MonitoringSession
from config import API_TITLE, API_VERSION, CORS_ALLOW_ORIGINS
from utils.logger import get_logger

logger = get_logger("api.app")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info("%s %s ready.", API_TITLE, API_VERSION)
    yield
    session: MonitoringSession = app.state.session
    if session.status == "running":
        logger.info("Shutting down — stopping the running session.")
        session.stop()


def create_app(session: MonitoringSession | None = None) -> FastAPI:
    """
    Build the API.

    Parameters
    ----------
    session : MonitoringSession | None   Session to serve (a new one if None).
    """
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        description=(
            "Fingertip camera photoplethysmography (PPG) vital-signs estimation API. "
            "⚠️ WELLNESS TOOL ONLY — not a medical device."
        ),
        lifespan=_lifespan,
    )
    app.state.session = session if session is not None else MonitoringSession()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(CORS_ALLOW_ORIGINS),
        allow_credentials=CORS_ALLOW_ORIGINS != ("*",),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
