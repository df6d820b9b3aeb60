"""
api/schemas.py — Pydantic request & response models
=====================================================
Centralises all data-transfer objects so that FastAPI can auto-generate
OpenAPI docs and perform input validation for free.
"""

from typing import Optional

from pydantic import BaseModel, Field

from ppg.types import Sample


# ── Request Models ───────────────────────────────────────────────────────────


class SessionConfig(BaseModel):
    """
    Per-session calibration, fixed while a session runs.
    Supplied via POST /session/config before starting.
    """
    age: int = Field(35, ge=10, le=120, description="Age in years (BP age correction).")
    ppg_channel: str = Field("red", pattern="^(red|green|blue)$",
                             description="Channel used for heart-rate detection.")
    sample_rate: float = Field(30.0, gt=5, le=240, description="Nominal sample rate (Hz).")
    quality_strategy: str = Field("periodicity", pattern="^(periodicity|multichannel)$")
    bp_model: str = Field("additive", pattern="^(additive|forest)$")


class StartRequest(BaseModel):
    """Where samples come from: pushed by the client or read from a local camera."""
    source: str = Field("push", pattern="^(push|camera)$")


class SampleIn(BaseModel):
    timestamp_ms: float = Field(..., ge=0, description="Monotonic capture time (ms).")
    red: float = Field(..., ge=0)
    green: float = Field(..., ge=0)
    blue: float = Field(..., ge=0)
    coverage_ratio: Optional[float] = Field(None, ge=0, le=1)
    saturation_ratio: Optional[float] = Field(None, ge=0, le=1)

    def to_sample(self) -> Sample:
        return Sample(**self.model_dump())


class SampleBatch(BaseModel):
    samples: list[SampleIn] = Field(..., min_length=1, max_length=2000)


class BPCalibration(BaseModel):
    """A reference cuff reading used to nudge the session's BP offsets."""
    systolic: float = Field(..., ge=70, le=250)
    diastolic: float = Field(..., ge=40, le=150)


# ── Response Models ──────────────────────────────────────────────────────────


class HeartRateData(BaseModel):
    bpm: int
    is_peak: bool
    quality: int
    is_irregular: bool


class SpO2Data(BaseModel):
    value: int
    confidence: int
    is_valid: bool
    reason: Optional[str] = None


class BPData(BaseModel):
    systolic: int
    diastolic: int
    map: int
    confidence: float
    ptt_ms: float
    unit: str = "mmHg"


class StressData(BaseModel):
    level: str
    score: float
    confidence: str
    description: str


class VitalsResponse(BaseModel):
    """Most recent per-sample vitals snapshot."""
    disclaimer: str
    timestamp_ms: float
    heart_rate: HeartRateData
    hrv: Optional[dict] = None
    spo2: Optional[SpO2Data] = None
    blood_pressure: BPData
    quality_reason: str
    perfusion_index: float
    stress: Optional[StressData] = None


class IngestResponse(BaseModel):
    accepted: int
    dropped: int
    processed: int


class StatusResponse(BaseModel):
    status: str                          # "idle" | "running" | "stopped" | "error"
    message: str
    source: Optional[str] = None
    samples_processed: int = 0
    samples_dropped: int = 0
    config: SessionConfig
    error: Optional[str] = None
