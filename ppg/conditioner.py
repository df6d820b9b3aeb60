"""
ppg/conditioner.py — Per-sample baseline, band-pass & adaptive gain
====================================================================
Turns the raw brightness of a finger-covered camera region into a zero-mean,
band-limited pulse waveform with a usable amplitude.

Stages (per sample)
-------------------
1. **Baseline** — exponentially-weighted DC tracker

       b_t = b_{t-1}·(1 − α) + x_t·α

   with a *two-speed* α: large for the first few samples (fast lock-on),
   small afterwards (stable tracking).  AC = x_t − b_t.

2. **Band-pass** — Butterworth, 0.5–4.0 Hz at the nominal 30 Hz frame rate.
   Coefficients are designed once with scipy and streamed through
   `sosfilt` with an explicit delay line, so each call costs one tiny
   filter step rather than a full-signal filtfilt.

3. **Adaptive gain** — a short-window dynamic-range estimate rescales the
   filtered AC:

       gain = clamp(target / max(range, ε), min_gain, max_gain)

   smoothed so that the gain does not jump mid-beat.  Fingertip pulsations
   are physically tiny (often < 1 % of DC); without the gain stage the
   downstream thresholds would have to know the camera's exposure.
"""

import warnings

import numpy as np
from scipy.signal import butter, sosfilt

from config import (
    BASELINE_FAST_ALPHA,
    BASELINE_FAST_SAMPLES,
    BASELINE_SLOW_ALPHA,
    BP_HIGH_HZ,
    BP_LOW_HZ,
    FILTER_ORDER,
    GAIN_EPSILON,
    GAIN_MAX,
    GAIN_MIN,
    GAIN_SMOOTHING,
    GAIN_TARGET_AMPLITUDE,
    GAIN_WINDOW,
    NOMINAL_SAMPLE_RATE,
)
from ppg.buffer import RingBuffer
from ppg.types import ConditionedSample
from utils.logger import get_logger

logger = get_logger("ppg.conditioner")


def design_bandpass(fs: float) -> np.ndarray:
    """
    Return second-order sections for a Butterworth band-pass tuned to the
    cardiac band at the given sampling rate.

    Parameters
    ----------
    fs : float
        Sampling frequency in Hz (typically the camera FPS).

    Returns
    -------
    sos : ndarray, shape (n_sections, 6)
    """
    if fs <= 0:
        raise ValueError(f"Sampling rate must be positive, got {fs}.")

    # Nyquist frequency
    nyq = fs / 2.0

    # Normalise cutoff frequencies to [0, 1] relative to Nyquist
    low = BP_LOW_HZ / nyq
    high = BP_HIGH_HZ / nyq

    # If the camera FPS is too low the high cutoff would exceed Nyquist.
    if high >= 1.0:
        high = 0.95
        warnings.warn(
            f"Sampling rate ({fs}) is too low for the requested upper cutoff "
            f"({BP_HIGH_HZ} Hz).  Clamping to {high * nyq:.2f} Hz.",
            stacklevel=2,
        )

    return butter(FILTER_ORDER, [low, high], btype="band", output="sos")


class SignalConditioner:
    """
    Stateful baseline / band-pass / gain chain for one PPG channel.

    Parameters
    ----------
    fs              : float  Nominal sampling rate the band-pass is designed for.
    target_amplitude: float  Peak-to-peak amplitude the gain stage aims for.
    min_gain, max_gain : float  Gain clamp.
    gain_window     : int    Samples in the dynamic-range window.
    """

    def __init__(
        self,
        fs: float = NOMINAL_SAMPLE_RATE,
        target_amplitude: float = GAIN_TARGET_AMPLITUDE,
        min_gain: float = GAIN_MIN,
        max_gain: float = GAIN_MAX,
        gain_window: int = GAIN_WINDOW,
    ):
        if min_gain <= 0 or max_gain < min_gain:
            raise ValueError(f"Invalid gain clamp [{min_gain}, {max_gain}].")
        self._sos = design_bandpass(fs)
        self._target = target_amplitude
        self._min_gain = min_gain
        self._max_gain = max_gain
        self._range_window: RingBuffer[float] = RingBuffer(gain_window)

        self._zi = np.zeros((self._sos.shape[0], 2))
        self._baseline = 0.0
        self._gain = 1.0
        self._count = 0

    # ── Public API ───────────────────────────────────────────────────────────

    def process(self, timestamp_ms: float, value: float) -> ConditionedSample:
        """Condition one raw value and return every intermediate stage."""
        # ── Baseline ──────────────────────────────────────────────────────
        if self._count == 0:
            self._baseline = value
        else:
            alpha = BASELINE_FAST_ALPHA if self._count < BASELINE_FAST_SAMPLES else BASELINE_SLOW_ALPHA
            self._baseline = self._baseline * (1.0 - alpha) + value * alpha
        self._count += 1
        ac = value - self._baseline

        # ── Band-pass (one streaming step) ────────────────────────────────
        out, self._zi = sosfilt(self._sos, [ac], zi=self._zi)
        filtered = float(out[0])

        # ── Adaptive gain ─────────────────────────────────────────────────
        self._range_window.push(filtered)
        window = self._range_window.snapshot()
        dynamic_range = max(window) - min(window)
        wanted = self._target / max(dynamic_range, GAIN_EPSILON)
        wanted = min(self._max_gain, max(self._min_gain, wanted))
        if self._count == 1:
            self._gain = wanted
        else:
            self._gain += (wanted - self._gain) * GAIN_SMOOTHING

        return ConditionedSample(
            timestamp_ms=timestamp_ms,
            raw=value,
            baseline=self._baseline,
            ac=ac,
            filtered=filtered,
            value=filtered * self._gain,
            gain=self._gain,
        )

    @property
    def baseline(self) -> float:
        return self._baseline

    @property
    def gain(self) -> float:
        return self._gain

    def reset(self) -> None:
        """Clear baseline, filter delay lines and gain history."""
        self._zi.fill(0.0)
        self._baseline = 0.0
        self._gain = 1.0
        self._count = 0
        self._range_window.clear()
        logger.debug("Conditioner reset.")
