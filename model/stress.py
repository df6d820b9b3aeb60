"""
model/stress.py — Autonomic stress indicator
=============================================

⚠️  Wellness indicator only.  A minute of fingertip PPG says something
    about vagal tone, not about psychological stress, which has many
    causes this signal cannot see.

────────────────────────────────────────────────────────────────────────
Scoring
────────────────────────────────────────────────────────────────────────
Vagal (parasympathetic) activity shows up as fast beat-to-beat changes,
which RMSSD measures.  The level is read off two RMSSD cut-points:

    RMSSD ≥ STRESS_RMSSD_HIGH (45 ms)   →  Low
    RMSSD ≥ STRESS_RMSSD_MED  (25 ms)   →  Moderate
    otherwise                           →  High

The 0–100 score interpolates RMSSD through the knots below, then mixes in
the HRV engine's stress index at 30 %:

    RMSSD (ms)   0    25    45    95+
    score       95    60    25     0

A heart rate above 90 BPM adds 10 points and moves the level up one step.
────────────────────────────────────────────────────────────────────────
"""

import numpy as np

from config import STRESS_RMSSD_HIGH, STRESS_RMSSD_MED
from features.hrv import HRVMetrics
from utils.logger import get_logger

logger = get_logger("model.stress")

_LEVELS = ("Low", "Moderate", "High")

_SCORE_KNOTS_MS = (0.0, STRESS_RMSSD_MED, STRESS_RMSSD_HIGH, STRESS_RMSSD_HIGH + 50.0)
_SCORE_VALUES = (95.0, 60.0, 25.0, 0.0)

_INDEX_WEIGHT = 0.3
_TACHY_BPM = 90.0
_TACHY_PENALTY = 10.0

# (minimum RR count, label), checked in order
_CONFIDENCE_STEPS = ((100, "High"), (40, "Medium"), (0, "Low"))

_DESCRIPTIONS = {
    "Low": (
        "Beat-to-beat variability is high, which points to a relaxed, "
        "vagally dominated state."
    ),
    "Moderate": (
        "Variability is in the middle range: some autonomic activation. "
        "A few slow breaths before the next reading may help."
    ),
    "High": (
        "Variability is low, a pattern seen with stress, fatigue or recent "
        "exercise. Rest for a few minutes and measure again."
    ),
}

_UNKNOWN = {
    "level": "Unknown",
    "score": 50.0,
    "confidence": "Low",
    "description": (
        "Not enough beat intervals yet. Keep the fingertip still over the "
        "camera for about half a minute."
    ),
}


def _level_for(rmssd_ms: float) -> int:
    if rmssd_ms >= STRESS_RMSSD_HIGH:
        return 0
    return 1 if rmssd_ms >= STRESS_RMSSD_MED else 2


def estimate_stress(hr_bpm: float, hrv: HRVMetrics | None) -> dict:
    """
    Turn an HRV record into a stress level and score.

    Parameters
    ----------
    hr_bpm : float              Current heart rate.
    hrv    : HRVMetrics | None  HRV record; None or the empty record gives "Unknown".

    Returns
    -------
    dict  level, score (0–100, higher is more stressed), confidence
          ("Low" / "Medium" / "High", from the RR count) and description.
    """
    if hrv is None or hrv.is_empty:
        return dict(_UNKNOWN)

    rmssd = hrv.temporal.rmssd
    level = _level_for(rmssd)
    rmssd_score = float(np.interp(rmssd, _SCORE_KNOTS_MS, _SCORE_VALUES))
    score = (1.0 - _INDEX_WEIGHT) * rmssd_score + _INDEX_WEIGHT * hrv.indices.stress_index

    if hr_bpm > _TACHY_BPM:
        score += _TACHY_PENALTY
        level = min(level + 1, len(_LEVELS) - 1)

    confidence = next(label for floor, label in _CONFIDENCE_STEPS if hrv.num_intervals >= floor)
    label = _LEVELS[level]
    score = round(float(np.clip(score, 0.0, 100.0)), 1)

    logger.debug("Stress: %s (score %.1f, RMSSD %.1f ms, %s confidence)",
                 label, score, rmssd, confidence)
    return {
        "level": label,
        "score": score,
        "confidence": confidence,
        "description": _DESCRIPTIONS[label],
    }
