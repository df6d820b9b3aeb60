"""
model/bp_model.py — Blood Pressure Estimation (pulse morphology)
==================================================================

⚠️⚠️⚠️  CRITICAL DISCLAIMER ⚠️⚠️⚠️
This module provides an *ESTIMATED* blood pressure, NOT a measured one.
A single fingertip camera cannot measure true pulse-transit time; the
inter-peak interval is used as a stand-in, and the regression weights are
heuristic.  Neither model has been validated on clinical cuff readings.

USE THIS OUTPUT ONLY AS A ROUGH WELLNESS INDICATOR.
DO NOT make medical decisions based on these estimates.
⚠️⚠️⚠️

────────────────────────────────────────────────────────────────────────
Feature vector
────────────────────────────────────────────────────────────────────────
Per accepted pulse (see features/morphology.py):

    [ptt_ms, amplitude, rise_samples, reflection_index, age, rmssd]

The last `BP_FEATURE_HISTORY` pulses are averaged before prediction.
`rmssd` is 0 when HRV is not yet available.

Models (selected by name)
-------------------------
"additive" (default) — closed-form weighted sum:

    Systolic  = 160.5 − 0.042·PTT + 0.35·(A − A₀) − 0.18·(rise − 8) + 10·(RI − 0.5)
    Diastolic = 105.2 − 0.028·PTT + 0.25·(A − A₀) − 0.12·(rise − 8) +  7·(RI − 0.5)

    + age correction   0.8 / 0.4 mmHg per year above 30
    + HRV correction   RMSSD > 50 ms → −5 / −3,  RMSSD < 20 ms → +8 / +5

    where A₀ is the conditioner's target amplitude.

"forest" — RandomForest regressor trained on synthetic subjects whose
targets follow the additive relationships plus Gaussian scatter
(σ = 6 / 4 mmHg).  It learns the same trends while smoothing the hard
thresholds of the HRV correction.

Post-processing (all models)
----------------------------
    * per-session calibration offsets are added,
    * systolic clamped to [85, 200], diastolic to [45, 120],
    * pulse pressure forced into [20, 80] by moving diastolic only,
    * MAP = D + (S − D) / 3.

With fewer than 8 pulses the estimator answers with an age-adjusted
population baseline (120/80 at 30 years) at confidence 0.3, so the UI
never shows 0/0.
────────────────────────────────────────────────────────────────────────
"""

import os
import pickle
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from sklearn.ensemble import RandomForestRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from config import (
    BP_AGE_BASELINE,
    BP_AMPLITUDE_PLAUSIBLE,
    BP_BASELINE_CONFIDENCE,
    BP_CALIBRATION_RATE,
    BP_DEFAULT_AGE,
    BP_DIASTOLIC_RANGE,
    BP_FEATURE_HISTORY,
    BP_MIN_CONFIDENCE,
    BP_MIN_FEATURES,
    BP_MODEL_PATH,
    BP_PTT_PLAUSIBLE_MS,
    BP_PULSE_PRESSURE_RANGE,
    BP_RR_HISTORY,
    BP_SYSTOLIC_RANGE,
    BP_USE_PRETRAINED,
    GAIN_TARGET_AMPLITUDE,
    HRV_RR_MAX_MS,
    HRV_RR_MIN_MS,
)
from features.hrv import HRVMetrics
from features.morphology import PulseMorphology, extract_pulse
from ppg.buffer import RingBuffer
from ppg.types import Peak
from utils.logger import get_logger

logger = get_logger("model.bp")

# ── Feature names (must match the order used during training) ────────────────
FEATURE_NAMES = ["ptt_ms", "amplitude", "rise_samples", "reflection_index", "age", "rmssd"]
N_SYNTHETIC = 5000
RANDOM_SEED = 42

# Waveform kept for morphology: two slow beats at 30 Hz
_WAVEFORM_CAPACITY = 150


@dataclass(frozen=True)
class BpFeatures:
    ptt_ms: float
    amplitude: float
    rise_samples: float
    reflection_index: float
    age: float
    rmssd: float = 0.0

    def as_vector(self) -> list[float]:
        return [self.ptt_ms, self.amplitude, self.rise_samples,
                self.reflection_index, self.age, self.rmssd]


@dataclass(frozen=True)
class BPResult:
    systolic: int
    diastolic: int
    map: int
    confidence: float
    ptt: float = 0.0
    morphology: PulseMorphology | None = None

    def as_dict(self) -> dict:
        return {
            "systolic": self.systolic,
            "diastolic": self.diastolic,
            "map": self.map,
            "confidence": round(self.confidence, 2),
            "ptt_ms": round(self.ptt, 1),
        }


# ── Models ───────────────────────────────────────────────────────────────────


class BpModel(Protocol):
    def predict(self, features: BpFeatures) -> tuple[float, float]:
        ...


def additive_pressure(ptt_ms, amplitude, rise_samples, reflection_index, age, rmssd):
    """
    Closed-form systolic / diastolic regression.

    Works element-wise on numpy arrays as well as on scalars, which is how
    the synthetic training set for the forest model is labelled.
    """
    amp = np.asarray(amplitude, dtype=np.float64) - GAIN_TARGET_AMPLITUDE
    rise = np.asarray(rise_samples, dtype=np.float64) - 8.0
    ri = np.asarray(reflection_index, dtype=np.float64) - 0.5

    systolic = 160.5 - 0.042 * np.asarray(ptt_ms) + 0.35 * amp - 0.18 * rise + 10.0 * ri
    diastolic = 105.2 - 0.028 * np.asarray(ptt_ms) + 0.25 * amp - 0.12 * rise + 7.0 * ri

    years = np.maximum(np.asarray(age, dtype=np.float64) - BP_AGE_BASELINE, 0.0)
    systolic = systolic + 0.8 * years
    diastolic = diastolic + 0.4 * years

    rmssd = np.asarray(rmssd, dtype=np.float64)
    relaxed = rmssd > 50.0
    stressed = (rmssd > 0.0) & (rmssd < 20.0)
    systolic = systolic - 5.0 * relaxed + 8.0 * stressed
    diastolic = diastolic - 3.0 * relaxed + 5.0 * stressed
    return systolic, diastolic


class AdditiveBpModel:
    """Closed-form model; see module docstring."""

    def predict(self, features: BpFeatures) -> tuple[float, float]:
        systolic, diastolic = additive_pressure(*features.as_vector())
        return float(systolic), float(diastolic)


def _generate_synthetic_data(n_samples: int = N_SYNTHETIC,
                             seed: int = RANDOM_SEED) -> tuple[np.ndarray, np.ndarray]:
    """
    Generate a synthetic training set of (features, [systolic, diastolic]).

    The correlations are *heuristic*, not derived from real patient data.

    Returns
    -------
    X : ndarray, shape (n_samples, 6)   Feature matrix (FEATURE_NAMES order).
    y : ndarray, shape (n_samples, 2)   [Systolic, Diastolic] targets.
    """
    rng = np.random.default_rng(seed)

    age = rng.integers(18, 80, size=n_samples).astype(float)

    # Inter-beat interval: 45–150 BPM, slightly shorter with age
    ptt = rng.uniform(400.0, 1300.0, size=n_samples) - 1.5 * (age - 40.0)
    ptt = np.clip(ptt, 350.0, 1400.0)

    amplitude = np.clip(rng.normal(GAIN_TARGET_AMPLITUDE, 6.0, size=n_samples), 2.0, 60.0)
    rise = np.clip(rng.normal(8.0, 2.5, size=n_samples), 2.0, 20.0)

    # Stiffer arteries → stronger reflected wave
    reflection = np.clip(rng.normal(0.4, 0.2, size=n_samples) + 0.004 * (age - 40.0), 0.0, 1.5)

    # A third of the pulses arrive before HRV is available (RMSSD = 0)
    rmssd = np.clip(rng.normal(40.0, 18.0, size=n_samples) - 0.3 * (age - 40.0), 5.0, 120.0)
    rmssd[rng.random(n_samples) < 0.3] = 0.0

    systolic, diastolic = additive_pressure(ptt, amplitude, rise, reflection, age, rmssd)
    systolic = systolic + rng.normal(0, 6.0, size=n_samples)
    diastolic = diastolic + rng.normal(0, 4.0, size=n_samples)

    X = np.column_stack([ptt, amplitude, rise, reflection, age, rmssd])
    y = np.column_stack([systolic, diastolic])
    return X, y


class ForestBpModel:
    """
    RandomForest regressor trained on synthetic data.

    Parameters
    ----------
    n_samples    : int        Size of the synthetic training set.
    n_estimators : int        Number of trees.
    model_path   : str | None Where to persist the fitted pipeline (skipped if None).
    use_pretrained : bool     Load `model_path` instead of training when it exists.
    """

    def __init__(
        self,
        n_samples: int = N_SYNTHETIC,
        n_estimators: int = 100,
        model_path: str | None = None,
        use_pretrained: bool = BP_USE_PRETRAINED,
    ):
        if model_path and use_pretrained and os.path.exists(model_path):
            logger.info("Loading pre-trained BP model from %s …", model_path)
            with open(model_path, "rb") as f:
                self._pipeline: Pipeline = pickle.load(f)
        else:
            self._pipeline = self._train(n_samples, n_estimators, model_path)

    def predict(self, features: BpFeatures) -> tuple[float, float]:
        preds = self._pipeline.predict(np.array([features.as_vector()]))[0]   # shape (2,)
        return float(preds[0]), float(preds[1])

    @staticmethod
    def _train(n_samples: int, n_estimators: int, model_path: str | None) -> Pipeline:
        logger.info("Generating %d synthetic training samples…", n_samples)
        X, y = _generate_synthetic_data(n_samples)

        pipeline = Pipeline([
            ("scaler", StandardScaler()),
            ("rf", RandomForestRegressor(
                n_estimators=n_estimators,
                max_depth=8,
                min_samples_leaf=10,
                random_state=RANDOM_SEED,
                n_jobs=-1,
            )),
        ])

        logger.info("Training RandomForest BP model…")
        pipeline.fit(X, y)
        logger.info("Training complete.")

        if model_path:
            try:
                os.makedirs(os.path.dirname(model_path) or ".", exist_ok=True)
                with open(model_path, "wb") as f:
                    pickle.dump(pipeline, f)
                logger.info("Model saved to %s", model_path)
            except OSError as e:
                logger.warning("Could not save model to disk: %s", e)

        return pipeline


# Supported model names → factory
_MODELS = {
    "additive": AdditiveBpModel,
    "forest": ForestBpModel,
}


def available_models() -> list[str]:
    return list(_MODELS)


def create_model(name: str = "additive", **kwargs) -> BpModel:
    """Instantiate a BP model by name (`kwargs` go to its constructor)."""
    if name not in _MODELS:
        raise ValueError(f"Unknown BP model '{name}'. Choose from {list(_MODELS)}.")
    if name == "forest":
        kwargs.setdefault("model_path", BP_MODEL_PATH if BP_USE_PRETRAINED else None)
    return _MODELS[name](**kwargs)


# ── Estimator ────────────────────────────────────────────────────────────────


class BloodPressureEstimator:
    """
    Accumulates per-pulse morphology and turns it into a BP estimate.

    The estimator keeps its own copy of the conditioned waveform; feed every
    sample through `add_sample` and every accepted beat through `add_peak`.
    Morphology for beat k−1 is measured when beat k arrives, so the whole
    pulse (including its dicrotic notch) is available.

    ⚠️  The returned values are ESTIMATES, not clinical measurements.
    """

    def __init__(self, age: float = BP_DEFAULT_AGE, model: BpModel | None = None):
        self._age = age
        self._model: BpModel = model if model is not None else AdditiveBpModel()

        self._values: RingBuffer[float] = RingBuffer(_WAVEFORM_CAPACITY)
        self._times: RingBuffer[float] = RingBuffer(_WAVEFORM_CAPACITY)
        self._pulses: RingBuffer[PulseMorphology] = RingBuffer(BP_FEATURE_HISTORY)
        self._ptt: RingBuffer[float] = RingBuffer(BP_RR_HISTORY)
        self._peaks: list[Peak] = []
        self._sample_count = 0

        self._systolic_offset = 0.0
        self._diastolic_offset = 0.0
        self._last: BPResult | None = None

    @property
    def age(self) -> float:
        return self._age

    @property
    def feature_count(self) -> int:
        return len(self._pulses)

    # ── Public API ───────────────────────────────────────────────────────────

    def add_sample(self, timestamp_ms: float, value: float) -> None:
        self._values.push(value)
        self._times.push(timestamp_ms)
        self._sample_count += 1

    def add_peak(self, peak: Peak, rr_ms: float | None = None) -> PulseMorphology | None:
        """
        Register an accepted beat.

        `peak.index` must count samples the same way `add_sample` does (the
        pipeline feeds the detector and the estimator the same stream).
        `rr_ms` is the interval closing at this beat, or None when it was
        rejected.  Returns the morphology measured for the previous beat.
        """
        self._peaks = (self._peaks + [peak])[-3:]
        if rr_ms is not None and HRV_RR_MIN_MS <= rr_ms <= HRV_RR_MAX_MS:
            self._ptt.push(rr_ms)
        if len(self._peaks) < 2:
            return None

        offset = self._sample_count - len(self._values)
        previous = self._peaks[-2].index - offset
        current = self._peaks[-1].index - offset
        start = self._peaks[-3].index - offset if len(self._peaks) == 3 else 0
        start = max(0, start)

        pulse = extract_pulse(
            np.asarray(self._values.snapshot(), dtype=np.float64),
            np.asarray(self._times.snapshot(), dtype=np.float64),
            peak=previous, end=current, start=start,
        )
        if pulse is not None and rr_ms is not None:
            self._pulses.push(pulse)
        return pulse

    def estimate(self, hrv: HRVMetrics | None = None) -> BPResult:
        """Current estimate; population baseline until enough pulses exist."""
        if len(self._pulses) < BP_MIN_FEATURES or not len(self._ptt):
            result = self._baseline()
        else:
            result = self._regress(hrv)
        self._last = result
        return result

    def calibrate(self, reference_systolic: float, reference_diastolic: float) -> None:
        """Nudge per-session offsets towards a cuff reading (30 % of the error)."""
        last = self._last if self._last is not None else self.estimate()
        self._systolic_offset += BP_CALIBRATION_RATE * (reference_systolic - last.systolic)
        self._diastolic_offset += BP_CALIBRATION_RATE * (reference_diastolic - last.diastolic)
        logger.info("BP calibration offsets now %+.1f / %+.1f mmHg",
                    self._systolic_offset, self._diastolic_offset)

    def reset(self) -> None:
        self._values.clear()
        self._times.clear()
        self._pulses.clear()
        self._ptt.clear()
        self._peaks = []
        self._sample_count = 0
        self._systolic_offset = 0.0
        self._diastolic_offset = 0.0
        self._last = None
        logger.debug("BP estimator reset.")

    # ── Private ──────────────────────────────────────────────────────────────

    def _baseline(self) -> BPResult:
        years = self._age - BP_AGE_BASELINE
        return self._finalise(120.0 + 0.5 * years, 80.0 + 0.3 * years,
                              BP_BASELINE_CONFIDENCE, 0.0, None)

    def _regress(self, hrv: HRVMetrics | None) -> BPResult:
        pulses = self._pulses.snapshot()
        amplitudes = np.array([p.amplitude for p in pulses])
        ptt = float(np.mean(self._ptt.snapshot()))
        rmssd = hrv.temporal.rmssd if hrv is not None and not hrv.is_empty else 0.0

        features = BpFeatures(
            ptt_ms=ptt,
            amplitude=float(amplitudes.mean()),
            rise_samples=float(np.mean([p.rise_samples for p in pulses])),
            reflection_index=float(np.mean([p.reflection_index for p in pulses])),
            age=self._age,
            rmssd=rmssd,
        )
        systolic, diastolic = self._model.predict(features)
        confidence = self._confidence(ptt, amplitudes)
        return self._finalise(systolic, diastolic, confidence, ptt, pulses[-1])

    def _confidence(self, ptt: float, amplitudes: np.ndarray) -> float:
        confidence = 0.9
        if not BP_PTT_PLAUSIBLE_MS[0] <= ptt <= BP_PTT_PLAUSIBLE_MS[1]:
            confidence *= 0.7
        mean_amp = float(amplitudes.mean())
        if not BP_AMPLITUDE_PLAUSIBLE[0] <= mean_amp <= BP_AMPLITUDE_PLAUSIBLE[1]:
            confidence *= 0.7
        if mean_amp > 0 and amplitudes.std() / mean_amp > 0.4:
            confidence *= 0.8
        rr = np.asarray(self._ptt.snapshot())
        if rr.size >= 2 and rr.std() / rr.mean() > 0.3:
            confidence *= 0.8
        return float(max(BP_MIN_CONFIDENCE, confidence))

    def _finalise(self, systolic: float, diastolic: float, confidence: float,
                  ptt: float, morphology: PulseMorphology | None) -> BPResult:
        sys_int = int(round(np.clip(systolic + self._systolic_offset, *BP_SYSTOLIC_RANGE)))
        dia_int = int(round(diastolic + self._diastolic_offset))

        # Pulse pressure window, moving diastolic only
        low = max(BP_DIASTOLIC_RANGE[0], sys_int - BP_PULSE_PRESSURE_RANGE[1])
        high = min(BP_DIASTOLIC_RANGE[1], sys_int - BP_PULSE_PRESSURE_RANGE[0])
        dia_int = int(min(max(dia_int, low), high))

        return BPResult(
            systolic=sys_int,
            diastolic=dia_int,
            map=int(round(dia_int + (sys_int - dia_int) / 3.0)),
            confidence=confidence,
            ptt=ptt,
            morphology=morphology,
        )
