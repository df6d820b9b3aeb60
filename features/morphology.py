"""
features/morphology.py — Pulse-wave morphology
===============================================
Extracts the per-beat shape features used by the blood-pressure regression:

    amplitude         peak − preceding valley
    rise_samples      valley → peak distance in samples
    rise_ms           the same distance in milliseconds (from timestamps)
    notch_depth       peak − dicrotic-notch value
    reflection_index  notch_depth / amplitude

Dicrotic notch
--------------
Scanning forward from the systolic peak, the running minimum is tracked;
the scan stops once the waveform climbs back by `BP_NOTCH_REBOUND` of the
pulse amplitude above that minimum (the reflected wave arriving).  If no
rebound occurs before the next beat, the notch is the lowest point scanned,
which yields a reflection index near 1.
"""

from dataclasses import dataclass

import numpy as np

from config import BP_NOTCH_REBOUND


@dataclass(frozen=True)
class PulseMorphology:
    amplitude: float
    rise_samples: int
    rise_ms: float
    notch_depth: float
    reflection_index: float


def extract_pulse(values: np.ndarray, times: np.ndarray, peak: int, end: int,
                  start: int = 0) -> PulseMorphology | None:
    """
    Measure the beat whose systolic peak sits at `peak`.

    Parameters
    ----------
    values : ndarray   Conditioned waveform.
    times  : ndarray   Matching timestamps (ms).
    peak   : int       Index of the beat's peak in `values`.
    end    : int       Index of the next beat's peak (exclusive scan limit).
    start  : int       Earliest index the preceding valley may sit at.

    Returns
    -------
    PulseMorphology, or None when the indices do not describe a usable beat.
    """
    if not 0 <= start < peak < end <= values.size:
        return None

    valley = start + int(np.argmin(values[start:peak]))
    amplitude = float(values[peak] - values[valley])
    if amplitude <= 0:
        return None

    rebound = BP_NOTCH_REBOUND * amplitude
    notch_value = values[peak]
    for value in values[peak + 1: end]:
        if value < notch_value:
            notch_value = value
        elif value - notch_value >= rebound:
            break

    notch_depth = float(values[peak] - notch_value)
    return PulseMorphology(
        amplitude=amplitude,
        rise_samples=peak - valley,
        rise_ms=float(times[peak] - times[valley]),
        notch_depth=notch_depth,
        reflection_index=float(np.clip(notch_depth / amplitude, 0.0, 1.5)),
    )
