"""
ppg/quality.py — Signal-quality gating
=======================================
Decides whether the current waveform is a real fingertip pulsation and
scores it 0–100.

Features (computed every sample)
--------------------------------
* **Periodicity** — normalised autocorrelation of the last ~2 s of the
  band-passed signal, evaluated only at lags that correspond to 40–180 BPM
  (lags are derived from the *measured* sample rate).  The maximum
  correlation in that lag range is the score; 0 for a flat signal.
* **Variation strength** — coefficient of variation of the last ~1 s of the
  raw signal, mapped linearly from CV≈0.01 (static surface) to CV≈0.05
  (strong pulsation).
* **Perfusion index** — AC amplitude / DC level × 100.
* Spectral concentration, baseline stability and finger confidence for the
  multi-channel strategy.

Scoring strategies
------------------
    "periodicity"  : 60 % periodicity + 30 % variation + 10 % perfusion
    "multichannel" : SNR / stability / finger-confidence weighted, used when
                     full RGB frames with coverage data are available

Quality and perfusion index are *outputs only*; neither is fed back into its
own computation.
"""

from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from config import (
    CV_MOTION,
    CV_PULSATILE,
    CV_STATIC,
    GOOD_PERFUSION_INDEX,
    GOOD_SNR,
    MAX_SATURATION_RATIO,
    MIN_COVERAGE_RATIO,
    MIN_DC_LEVEL,
    MIN_PERIODICITY,
    MIN_VARIATION_SCORE,
    NOMINAL_SAMPLE_RATE,
    PERIODICITY_MAX_BPM,
    PERIODICITY_MIN_BPM,
    PERIODICITY_WINDOW_S,
    QUALITY_BUFFER,
    QUALITY_MIN_SAMPLES,
    QUALITY_NEUTRAL_SCORE,
    TISSUE_RED_GREEN_RATIO,
    VARIATION_WINDOW_S,
)
from features.hr import spectral_peak
from ppg.buffer import RingBuffer
from ppg.types import ConditionedSample, InvalidReason, Sample
from utils.logger import get_logger

logger = get_logger("ppg.quality")


@dataclass(frozen=True)
class QualityFeatures:
    """Normalised inputs handed to a scoring strategy (all in [0, 1] unless noted)."""

    periodicity: float
    variation: float          # Variation-strength score
    cv: float                 # Raw coefficient of variation (unscaled)
    perfusion_index: float    # Percent, unscaled
    perfusion: float          # Perfusion score
    snr: float                # Spectral concentration
    stability: float
    finger_confidence: float


@dataclass(frozen=True)
class QualityResult:
    quality: int
    perfusion_index: float
    is_valid: bool
    invalid_reason: InvalidReason = InvalidReason.NONE
    metrics: dict = field(default_factory=dict)


# ── Strategies ───────────────────────────────────────────────────────────────

QualityStrategy = Callable[[QualityFeatures], float]


def periodicity_strategy(f: QualityFeatures) -> float:
    """Default weighting: periodicity first, then pulsation strength."""
    return 100.0 * (0.6 * f.periodicity + 0.3 * f.variation + 0.1 * f.perfusion)


def multichannel_strategy(f: QualityFeatures) -> float:
    """Weighting for full RGB input: SNR, stability and finger confidence."""
    return 100.0 * (
        0.30 * f.snr
        + 0.25 * f.periodicity
        + 0.20 * f.stability
        + 0.25 * f.finger_confidence
    )


# Supported strategy names → callable
_STRATEGIES: dict[str, QualityStrategy] = {
    "periodicity": periodicity_strategy,
    "multichannel": multichannel_strategy,
}


def available_strategies() -> list[str]:
    return list(_STRATEGIES)


# ── Analyzer ─────────────────────────────────────────────────────────────────


class QualityAnalyzer:
    """
    Per-sample quality scorer.

    Parameters
    ----------
    strategy : str    One of `available_strategies()`.
    fs       : float  Fallback sample rate when timestamps are unusable.
    """

    def __init__(self, strategy: str = "periodicity", fs: float = NOMINAL_SAMPLE_RATE):
        if strategy not in _STRATEGIES:
            raise ValueError(
                f"Unknown quality strategy '{strategy}'. Choose from {list(_STRATEGIES)}."
            )
        self._strategy_name = strategy
        self._strategy = _STRATEGIES[strategy]
        self._fs = fs

        self._raw: RingBuffer[float] = RingBuffer(QUALITY_BUFFER)
        self._filtered: RingBuffer[float] = RingBuffer(QUALITY_BUFFER)
        self._baseline: RingBuffer[float] = RingBuffer(QUALITY_BUFFER)
        self._times: RingBuffer[float] = RingBuffer(QUALITY_BUFFER)
        self._frame_count = 0
        logger.info("QualityAnalyzer created — strategy=%s", strategy)

    @property
    def strategy(self) -> str:
        return self._strategy_name

    # ── Public API ───────────────────────────────────────────────────────────

    def analyze(self, conditioned: ConditionedSample, sample: Sample | None = None) -> QualityResult:
        """Score the waveform including the given conditioned sample."""
        self._frame_count += 1

        # A frame that is clearly not covered by tissue flushes the history
        # so stale pulsation cannot keep the result valid.
        if sample is not None and self._no_tissue(sample):
            self._clear_buffers()
            return QualityResult(0, 0.0, False, InvalidReason.NO_FINGER)

        self._raw.push(conditioned.raw)
        self._filtered.push(conditioned.filtered)
        self._baseline.push(conditioned.baseline)
        self._times.push(conditioned.timestamp_ms)

        if len(self._raw) < QUALITY_MIN_SAMPLES:
            return QualityResult(QUALITY_NEUTRAL_SCORE, 0.0, True, InvalidReason.NONE)

        features = self._features(sample)
        quality = int(round(float(np.clip(self._strategy(features), 0.0, 100.0))))
        is_valid, reason = self._validate(features)

        if self._frame_count % 150 == 0:
            logger.info(
                "SQI: q=%d, periodicity=%.2f, cv=%.3f, PI=%.2f%%, valid=%s",
                quality, features.periodicity, features.cv, features.perfusion_index, is_valid,
            )

        return QualityResult(
            quality=quality,
            perfusion_index=features.perfusion_index,
            is_valid=is_valid,
            invalid_reason=reason,
            metrics={
                "periodicity": round(features.periodicity, 3),
                "variation": round(features.variation, 3),
                "cv": round(features.cv, 4),
                "snr": round(features.snr, 3),
                "stability": round(features.stability, 3),
                "finger_confidence": round(features.finger_confidence, 3),
            },
        )

    def reset(self) -> None:
        self._clear_buffers()
        self._frame_count = 0

    # ── Private: features ────────────────────────────────────────────────────

    def _features(self, sample: Sample | None) -> QualityFeatures:
        fs = self._sample_rate()
        raw = np.asarray(self._raw.snapshot(), dtype=np.float64)
        filtered = np.asarray(self._filtered.snapshot(), dtype=np.float64)

        periodic_window = filtered[-max(2, int(round(PERIODICITY_WINDOW_S * fs))):]
        periodicity = self._periodicity(periodic_window, fs)

        recent_raw = raw[-max(2, int(round(VARIATION_WINDOW_S * fs))):]
        dc = float(np.mean(recent_raw))
        cv = float(np.std(recent_raw) / dc) if dc > MIN_DC_LEVEL else 0.0
        variation = float(np.clip((cv - CV_STATIC) / (CV_PULSATILE - CV_STATIC), 0.0, 1.0))

        recent_ac = filtered[-len(recent_raw):]
        ac_amplitude = float(recent_ac.max() - recent_ac.min()) / 2.0
        perfusion_index = ac_amplitude / dc * 100.0 if dc > MIN_DC_LEVEL else 0.0
        perfusion = float(np.clip(perfusion_index / GOOD_PERFUSION_INDEX, 0.0, 1.0))

        _, concentration = spectral_peak(periodic_window, fs)
        snr = float(np.clip(concentration / GOOD_SNR, 0.0, 1.0))

        return QualityFeatures(
            periodicity=periodicity,
            variation=variation,
            cv=cv,
            perfusion_index=perfusion_index,
            perfusion=perfusion,
            snr=snr,
            stability=self._stability(),
            finger_confidence=self._finger_confidence(sample, variation, periodicity),
        )

    def _sample_rate(self) -> float:
        times = self._times.snapshot()
        if len(times) < 2 or times[-1] <= times[0]:
            return self._fs
        span = times[-1] - times[0]
        return (len(times) - 1) * 1000.0 / span

    @staticmethod
    def _periodicity(signal: np.ndarray, fs: float) -> float:
        n = signal.size
        std = signal.std()
        if n < 4 or std < 1e-9:
            return 0.0
        z = (signal - signal.mean()) / std
        min_lag = max(1, int(round(fs * 60.0 / PERIODICITY_MAX_BPM)))
        max_lag = min(n - 2, int(round(fs * 60.0 / PERIODICITY_MIN_BPM)))
        best = 0.0
        for lag in range(min_lag, max_lag + 1):
            corr = float(np.dot(z[:-lag], z[lag:]) / (n - lag))
            best = max(best, corr)
        return float(np.clip(best, 0.0, 1.0))

    def _stability(self) -> float:
        baseline = np.asarray(self._baseline.snapshot()[-10:], dtype=np.float64)
        mean = abs(float(baseline.mean()))
        cv = float(baseline.std()) / max(mean, 1.0)
        # A 4 % drift of the DC level over ten samples counts as unstable.
        return float(np.clip(1.0 - cv / 0.04, 0.0, 1.0))

    @staticmethod
    def _finger_confidence(sample: Sample | None, variation: float, periodicity: float) -> float:
        pulse = 0.35 * min(1.0, variation + periodicity)
        if sample is None:
            return 0.2 + pulse
        confidence = pulse
        rg_ratio = sample.red / max(sample.green, 0.1)
        if rg_ratio >= 2.5:
            confidence += 0.35
        elif rg_ratio >= TISSUE_RED_GREEN_RATIO:
            confidence += 0.2
        if sample.coverage_ratio is not None:
            confidence += 0.3 * sample.coverage_ratio
        else:
            confidence += 0.15
        if sample.saturation_ratio is not None and sample.saturation_ratio > MAX_SATURATION_RATIO / 2:
            confidence *= 0.5
        return float(np.clip(confidence, 0.0, 1.0))

    # ── Private: validation ──────────────────────────────────────────────────

    def _validate(self, f: QualityFeatures) -> tuple[bool, InvalidReason]:
        dc = float(np.mean(self._raw.snapshot()))
        if dc <= MIN_DC_LEVEL or (f.cv == 0.0 and f.periodicity == 0.0):
            return False, InvalidReason.NO_SIGNAL
        if f.cv > CV_MOTION and f.stability < 0.2:
            return False, InvalidReason.MOTION_ARTIFACT
        if f.variation < MIN_VARIATION_SCORE:
            return False, InvalidReason.LOW_PULSATILITY
        if f.periodicity < MIN_PERIODICITY:
            return False, InvalidReason.TOO_NOISY
        return True, InvalidReason.NONE

    @staticmethod
    def _no_tissue(sample: Sample) -> bool:
        if sample.coverage_ratio is not None and sample.coverage_ratio < MIN_COVERAGE_RATIO:
            return True
        return sample.saturation_ratio is not None and sample.saturation_ratio > MAX_SATURATION_RATIO

    def _clear_buffers(self) -> None:
        self._raw.clear()
        self._filtered.clear()
        self._baseline.clear()
        self._times.clear()
