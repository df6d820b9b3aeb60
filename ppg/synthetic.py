"""
ppg/synthetic.py — Deterministic synthetic fingertip PPG
=========================================================
Produces camera-like `Sample`s without hardware, for the CLI demo and the
test-suite.

Beat shape
----------
Each beat is the sum of two Gaussians on the beat phase φ ∈ [0, 1):

    forward wave    exp(−½·((φ − 0.30) / 0.10)²)
    reflected wave  0.20 · exp(−½·((φ − 0.55) / 0.10)²)

The reflected wave shows up as a shoulder on the down-slope.  Both waves
are kept broad so that, after band-passing, a beat has a single maximum,
and both have decayed by the beat boundary so consecutive beats join
smoothly.  The camera sees the same pulsation on every channel, scaled
per channel so that the red/green ratio-of-ratios equals `ratio_r`.

Beat-to-beat variability (`rr_jitter_ms`) and additive sensor noise
(`noise`) come from a seeded numpy Generator, so a given seed always
yields the same stream.
"""

import numpy as np

from config import NOMINAL_SAMPLE_RATE
from ppg.types import Sample


def beat_shape(phase: np.ndarray) -> np.ndarray:
    """Normalised single-beat waveform (peak ≈ 1) evaluated at phases in [0, 1)."""
    forward = np.exp(-0.5 * ((phase - 0.30) / 0.10) ** 2)
    reflected = 0.20 * np.exp(-0.5 * ((phase - 0.55) / 0.10) ** 2)
    return forward + reflected


def synthetic_ppg(
    duration_s: float = 10.0,
    bpm: float = 72.0,
    fs: float = NOMINAL_SAMPLE_RATE,
    dc: float = 150.0,
    amplitude: float = 7.5,
    ratio_r: float = 1.0,
    rr_jitter_ms: float = 0.0,
    noise: float = 0.0,
    start_ms: float = 0.0,
    coverage_ratio: float | None = None,
    seed: int | None = 0,
) -> list[Sample]:
    """
    Generate a synthetic PPG recording.

    Parameters
    ----------
    duration_s   : float  Length of the recording in seconds.
    bpm          : float  Mean heart rate.
    fs           : float  Sample rate (Hz); timestamps are k·1000/fs.
    dc           : float  Red-channel DC level (0–255 scale).
    amplitude    : float  Red-channel pulsation (half peak-to-peak).
    ratio_r      : float  Target ratio-of-ratios (AC_r/DC_r) / (AC_g/DC_g).
    rr_jitter_ms : float  Std-dev of beat-to-beat interval variability.
    noise        : float  Std-dev of additive Gaussian noise on every channel.
    start_ms     : float  Timestamp of the first sample.
    coverage_ratio : float | None  Passed through to every sample.
    seed         : int | None  Seed for the numpy Generator.

    Returns
    -------
    list[Sample]
    """
    if fs <= 0 or bpm <= 0 or ratio_r <= 0:
        raise ValueError("fs, bpm and ratio_r must be positive.")

    rng = np.random.default_rng(seed)
    n = int(round(duration_s * fs))
    t_ms = np.arange(n) * 1000.0 / fs

    # Beat onsets with optional interval variability
    period = 60000.0 / bpm
    n_beats = int(np.ceil(duration_s * 1000.0 / period)) + 2
    intervals = period + rng.normal(0.0, rr_jitter_ms, size=n_beats) if rr_jitter_ms > 0 \
        else np.full(n_beats, period)
    intervals = np.clip(intervals, 0.4 * period, 1.6 * period)
    onsets = np.concatenate([[0.0], np.cumsum(intervals)])

    beat = np.searchsorted(onsets, t_ms, side="right") - 1
    phase = (t_ms - onsets[beat]) / intervals[beat]
    pulse = 2.0 * beat_shape(phase) - 1.0          # ≈ [−1, 1]

    green_dc = 0.4 * dc
    blue_dc = 0.2 * dc
    red = dc + amplitude * pulse
    green = green_dc + (amplitude / dc / ratio_r) * green_dc * pulse
    blue = blue_dc + 0.5 * (amplitude / dc) * blue_dc * pulse

    if noise > 0:
        red = red + rng.normal(0.0, noise, size=n)
        green = green + rng.normal(0.0, noise, size=n)
        blue = blue + rng.normal(0.0, noise, size=n)

    return [
        Sample(
            timestamp_ms=float(start_ms + t_ms[k]),
            red=float(red[k]),
            green=float(green[k]),
            blue=float(blue[k]),
            coverage_ratio=coverage_ratio,
        )
        for k in range(n)
    ]
