"""
api/session.py — Monitoring Session Manager
=============================================
Owns the pipeline, its worker thread and (optionally) the camera for one
monitoring session.  The FastAPI routes interact with this object to
configure, start, feed, poll and stop the session.

Thread safety
-------------
Session bookkeeping read by the request handlers is protected by `_lock`.
The pipeline itself is only touched by the worker thread: resets and BP
calibrations are handed to it as requests, and readers get the immutable
snapshot published through the worker's `LatestValue` cell.  When the
worker fails, the next status check moves the session to `error` and
releases the camera.

Lifecycle
---------
    1. `configure(...)` — store per-session calibration (age, strategies).
    2. `start(source)`  — build a fresh pipeline and launch the worker
                          (and the camera when `source == "camera"`).
    3. `submit(...)`    — push samples (source "push").
    4. Poll `latest()` / `status`.
    5. `stop()` / `reset()`.
"""

import threading

from api.schemas import SessionConfig
from camera.capture import CameraSampleSource
from ppg.pipeline import PipelineConfig, VitalSignsPipeline, VitalSignsSnapshot
from ppg.streaming import PipelineWorker
from ppg.types import Sample
from utils.logger import get_logger

logger = get_logger("api.session")

# ── Disclaimer string injected into every vitals response ───────────────────
DISCLAIMER = (
    "⚠️ This is a WELLNESS ESTIMATION tool — NOT a medical device. "
    "Heart rate, HRV, SpO2, blood pressure, and stress values are ESTIMATES "
    "derived from fingertip camera photoplethysmography (PPG). "
    "They have NOT been validated for clinical use. "
    "Do NOT make medical decisions based on these readings. "
    "Consult a qualified healthcare professional for diagnosis or treatment."
)


class SessionError(RuntimeError):
    """Raised when a session operation is not allowed in the current state."""


def _pipeline_config(cfg: SessionConfig) -> PipelineConfig:
    return PipelineConfig(
        age=cfg.age,
        ppg_channel=cfg.ppg_channel,
        sample_rate=cfg.sample_rate,
        quality_strategy=cfg.quality_strategy,
        bp_model=cfg.bp_model,
    )


class MonitoringSession:
    """
    Manages the lifecycle of one continuous monitoring session.

    Instantiate once per application and reuse across requests.
    """

    def __init__(self):
        self._lock = threading.Lock()

        self._status = "idle"            # idle | running | stopped | error
        self._source: str | None = None
        self._error_message: str | None = None
        self._config = SessionConfig()

        self._pipeline: VitalSignsPipeline | None = None
        self._worker: PipelineWorker | None = None
        self._camera: CameraSampleSource | None = None

        logger.info("MonitoringSession initialised.")

    # ── Public API ─────────────────────────────────────────────────────────

    @property
    def status(self) -> str:
        self._check_worker()
        with self._lock:
            return self._status

    @property
    def config(self) -> SessionConfig:
        with self._lock:
            return self._config

    @property
    def source(self) -> str | None:
        with self._lock:
            return self._source

    @property
    def error_message(self) -> str | None:
        with self._lock:
            return self._error_message

    def counters(self) -> tuple[int, int]:
        """(samples processed, samples dropped) for the current worker."""
        with self._lock:
            if self._worker is None:
                return 0, 0
            return self._worker.processed, self._worker.channel.dropped

    def configure(self, config: SessionConfig) -> None:
        with self._lock:
            if self._status == "running":
                raise SessionError("Stop the running session before changing its configuration.")
            self._config = config
        logger.info("Session configured: age=%d, channel=%s, quality=%s, bp_model=%s",
                    config.age, config.ppg_channel, config.quality_strategy, config.bp_model)

    def start(self, source: str = "push") -> None:
        """Build a fresh pipeline and start consuming samples."""
        with self._lock:
            if self._status == "running":
                raise SessionError("A session is already running.")
            self._pipeline = VitalSignsPipeline(_pipeline_config(self._config))
            self._worker = PipelineWorker(self._pipeline)
            self._worker.start()
            self._source = source
            self._error_message = None
            self._status = "running"

        if source == "camera":
            camera = CameraSampleSource(sink=self._worker.submit)
            if not camera.open():
                self.stop()
                self._set_error("Failed to open camera. Check camera permissions.")
                raise SessionError("Failed to open camera.")
            with self._lock:
                self._camera = camera
        logger.info("Session started (source=%s).", source)

    def submit(self, samples: list[Sample], wait: bool = False, timeout: float = 5.0) -> tuple[int, int]:
        """
        Queue samples for processing.

        Returns (accepted, dropped).  With `wait=True` the call returns only
        once the worker has processed the backlog (or `timeout` elapsed).
        """
        self._check_worker()
        with self._lock:
            if self._status != "running" or self._worker is None:
                raise SessionError("No running session. POST /session/start first.")
            worker = self._worker
        dropped = sum(1 for sample in samples if worker.submit(sample))
        if wait and not worker.wait_idle(timeout=timeout):
            logger.warning("Timed out waiting for %d samples to be processed.", len(samples))
        return len(samples), dropped

    def latest(self) -> VitalSignsSnapshot | None:
        with self._lock:
            worker = self._worker
        return worker.latest.get() if worker is not None else None

    def calibrate_bp(self, systolic: float, diastolic: float) -> None:
        """Hand a cuff reading to the worker, which owns the pipeline."""
        with self._lock:
            if self._worker is None:
                raise SessionError("No session to calibrate. POST /session/start first.")
            worker = self._worker
        if not worker.request_calibration(systolic, diastolic):
            raise SessionError("The worker did not apply the calibration in time; try again.")

    def stop(self) -> None:
        """Stop the camera and worker; the last snapshot stays readable."""
        self._release()
        with self._lock:
            if self._status == "running":
                self._status = "stopped"
        logger.info("Session stopped.")

    def reset(self) -> None:
        """
        Clear all session state.

        A running session keeps running with an empty pipeline; otherwise the
        session returns to idle.
        """
        self._check_worker()
        with self._lock:
            running = self._status == "running"
            worker = self._worker
        if running and worker is not None:
            worker.request_reset()
            logger.info("Running session reset.")
            return
        self._release()
        with self._lock:
            self._pipeline = None
            self._worker = None
            self._source = None
            self._error_message = None
            self._status = "idle"
        logger.info("Session reset.")

    # ── Private ────────────────────────────────────────────────────────────

    def _check_worker(self) -> None:
        """Move a running session whose worker has failed to `error` and free its camera."""
        with self._lock:
            worker = self._worker
            if self._status != "running" or worker is None or not worker.error:
                return
        self._release()
        self._set_error(worker.error)

    def _release(self) -> None:
        """Close the camera and join the worker; safe to call more than once."""
        with self._lock:
            camera, worker = self._camera, self._worker
            self._camera = None
        if camera is not None:
            camera.release()
        if worker is not None:
            worker.stop()

    def _set_error(self, message: str) -> None:
        with self._lock:
            self._status = "error"
            self._error_message = message
        logger.error("Session error: %s", message)
