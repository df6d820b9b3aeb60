"""
ppg/pipeline.py — End-to-end PPG → vital signs pipeline
=========================================================
Orchestrates the full per-sample chain:

    Sample  →  SignalConditioner  →  PeakDetector  →  HR / RR
                     │                    ├──→  HRVEngine          (on new RR)
                     │                    └──→  BloodPressureEstimator (on new beat)
                     └──→  QualityAnalyzer
    Sample  →  ChannelWindow (red, green)  →  SpO2Calibrator        (every ~0.5 s)

Every call to `process()` runs to completion and returns an immutable
`VitalSignsSnapshot`.  Nothing here blocks, sleeps or performs I/O; the
threaded runtime lives in `ppg/streaming.py`.

Each pipeline owns its components exclusively.  Session calibration (age,
channel names, strategy names, SpO2 table) is fixed at construction through
`PipelineConfig`; a new session means `reset()` or a new pipeline.
"""

from dataclasses import dataclass

from config import (
    BP_DEFAULT_AGE,
    HRV_MIN_INTERVALS,
    NOMINAL_SAMPLE_RATE,
    PPG_CHANNEL,
    SPO2_CALIBRATION_TABLE,
    SPO2_CHANNELS,
    SPO2_UPDATE_SAMPLES,
)
from features.hr import detect_irregular_rhythm
from features.hrv import HRVEngine, HRVMetrics
from model.bp_model import BloodPressureEstimator, BPResult, create_model
from model.spo2 import ChannelWindow, SpO2Calibrator, SpO2Result
from model.stress import estimate_stress
from ppg.conditioner import SignalConditioner
from ppg.peaks import PeakDetector
from ppg.quality import QualityAnalyzer
from ppg.types import InvalidReason, Peak, Sample
from utils.logger import get_logger

logger = get_logger("ppg.pipeline")

_CHANNELS = ("red", "green", "blue")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable per-session configuration."""

    age: float = BP_DEFAULT_AGE
    ppg_channel: str = PPG_CHANNEL
    spo2_channels: tuple[str, str] = SPO2_CHANNELS
    sample_rate: float = NOMINAL_SAMPLE_RATE
    quality_strategy: str = "periodicity"
    bp_model: str = "additive"
    spo2_table: tuple[tuple[float, float], ...] = SPO2_CALIBRATION_TABLE

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}.")
        if self.age <= 0:
            raise ValueError(f"age must be positive, got {self.age}.")
        for name in (self.ppg_channel, *self.spo2_channels):
            if name not in _CHANNELS:
                raise ValueError(f"Unknown channel '{name}'. Choose from {list(_CHANNELS)}.")


@dataclass(frozen=True)
class HeartRate:
    bpm: int
    is_peak: bool
    quality: int
    is_irregular: bool = False


@dataclass(frozen=True)
class VitalSignsSnapshot:
    timestamp_ms: float
    heart_rate: HeartRate
    blood_pressure: BPResult
    hrv: HRVMetrics | None = None
    spo2: SpO2Result | None = None
    quality_reason: InvalidReason = InvalidReason.NONE
    perfusion_index: float = 0.0
    stress: dict | None = None

    def as_dict(self) -> dict:
        """JSON-ready view (HRV and SpO2 are None until available)."""
        spo2 = None
        if self.spo2 is not None:
            spo2 = {
                "value": int(round(self.spo2.spo2)),
                "confidence": int(round(self.spo2.confidence)),
                "is_valid": self.spo2.is_valid,
                "reason": None if self.spo2.invalid_reason is InvalidReason.NONE
                else self.spo2.invalid_reason.value,
            }
        return {
            "timestamp_ms": self.timestamp_ms,
            "heart_rate": {
                "bpm": self.heart_rate.bpm,
                "is_peak": self.heart_rate.is_peak,
                "quality": self.heart_rate.quality,
                "is_irregular": self.heart_rate.is_irregular,
            },
            "hrv": self.hrv.as_dict() if self.hrv is not None else None,
            "spo2": spo2,
            "blood_pressure": self.blood_pressure.as_dict(),
            "quality_reason": self.quality_reason.value,
            "perfusion_index": round(self.perfusion_index, 3),
            "stress": self.stress,
        }


class VitalSignsPipeline:
    """
    Stateful pipeline turning `Sample`s into `VitalSignsSnapshot`s.

    Parameters
    ----------
    config : PipelineConfig   Session calibration; defaults are used if None.
    """

    def __init__(self, config: PipelineConfig | None = None):
        self._config = config if config is not None else PipelineConfig()
        cfg = self._config

        self._conditioner = SignalConditioner(fs=cfg.sample_rate)
        self._detector = PeakDetector()
        self._quality = QualityAnalyzer(strategy=cfg.quality_strategy, fs=cfg.sample_rate)
        self._hrv_engine = HRVEngine()
        self._bp = BloodPressureEstimator(age=cfg.age, model=create_model(cfg.bp_model))
        self._spo2 = SpO2Calibrator(calibration_table=cfg.spo2_table)
        self._spo2_window = ChannelWindow()

        self._reset_outputs()
        logger.info(
            "VitalSignsPipeline created — channel=%s, quality=%s, bp_model=%s, age=%.0f",
            cfg.ppg_channel, cfg.quality_strategy, cfg.bp_model, cfg.age,
        )

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def sample_count(self) -> int:
        return self._sample_count

    @property
    def bp_estimator(self) -> BloodPressureEstimator:
        return self._bp

    # ── Public API ───────────────────────────────────────────────────────────

    def process(self, sample: Sample) -> VitalSignsSnapshot:
        """Run one sample through every stage and return the current vitals."""
        self._sample_count += 1
        cfg = self._config

        conditioned = self._conditioner.process(sample.timestamp_ms, sample.channel(cfg.ppg_channel))
        beat = self._detector.process(conditioned.timestamp_ms, conditioned.value)
        quality = self._quality.analyze(conditioned, sample)

        self._bp.add_sample(conditioned.timestamp_ms, conditioned.value)
        if beat.is_peak and beat.peak is not None:
            self._on_beat(beat.peak, beat.rr_ms)

        self._spo2_window.push(sample.channel(cfg.spo2_channels[0]),
                               sample.channel(cfg.spo2_channels[1]))
        if self._sample_count % SPO2_UPDATE_SAMPLES == 0:
            self._update_spo2()

        bpm = int(round(beat.bpm)) if quality.is_valid else 0
        snapshot = VitalSignsSnapshot(
            timestamp_ms=sample.timestamp_ms,
            heart_rate=HeartRate(
                bpm=bpm,
                is_peak=beat.is_peak,
                quality=quality.quality,
                is_irregular=self._irregular,
            ),
            blood_pressure=self._bp_result,
            hrv=self._hrv,
            spo2=self._spo2_result,
            quality_reason=quality.invalid_reason,
            perfusion_index=quality.perfusion_index,
            stress=self._stress,
        )

        if self._sample_count % 150 == 0:
            logger.info(
                "Vitals @ %d samples: HR=%d BPM (q=%d, %s), BP=%d/%d, SpO2=%s",
                self._sample_count, bpm, quality.quality, quality.invalid_reason.value,
                self._bp_result.systolic, self._bp_result.diastolic,
                f"{self._spo2_result.spo2:.0f}%" if self._spo2_result else "--",
            )
        return snapshot

    def reset(self) -> None:
        """Clear every buffer, accumulator and cached output."""
        self._conditioner.reset()
        self._detector.reset()
        self._quality.reset()
        self._bp.reset()
        self._spo2.reset()
        self._spo2_window.reset()
        self._reset_outputs()
        logger.info("Pipeline reset.")

    # ── Private ──────────────────────────────────────────────────────────────

    def _reset_outputs(self) -> None:
        self._sample_count = 0
        self._hrv: HRVMetrics | None = None
        self._stress: dict | None = None
        self._irregular = False
        self._spo2_result: SpO2Result | None = None
        self._bp_result: BPResult = self._bp.estimate()

    def _on_beat(self, peak: Peak, rr_ms: float | None) -> None:
        self._bp.add_peak(peak, rr_ms)
        if rr_ms is not None:
            rr = self._detector.rr_intervals()
            self._irregular = detect_irregular_rhythm(rr)
            if len(rr) >= HRV_MIN_INTERVALS:
                hrv = self._hrv_engine.calculate(rr)
                self._hrv = None if hrv.is_empty else hrv
                self._stress = estimate_stress(self._detector.bpm, self._hrv) if self._hrv is not None else None
        self._bp_result = self._bp.estimate(self._hrv)

    def _update_spo2(self) -> None:
        components = self._spo2_window.ac_dc()
        if components is None:
            return
        self._spo2_result = self._spo2.calculate(
            components.red_ac, components.red_dc, components.green_ac, components.green_dc,
        )
