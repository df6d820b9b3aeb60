"""
features/hr.py — Heart-rate helpers shared by the streaming components
=======================================================================
Three small, stateless estimators:

1. **Median-interval BPM** (time domain)
   `60000 / median(RR)` over the most recent valid intervals.  The median
   is used instead of the mean so that a single missed or doubled beat
   does not drag the reading.

2. **Spectral peak** (frequency domain)
   Zero-padded FFT of a short waveform window; returns the dominant
   frequency inside the cardiac band together with its *spectral
   concentration* (peak power / in-band power), which the multi-channel
   quality strategy uses as an SNR proxy.

3. **Coarse irregularity flag**
   Fraction of successive RR changes larger than 20 %.  This is *not*
   arrhythmia classification — only a hint that the rhythm is unsteady.
"""

import numpy as np

from config import BP_HIGH_HZ, BP_LOW_HZ
from utils.logger import get_logger

logger = get_logger("features.hr")

# Physiological BPM bounds (hard clip)
HR_MIN_BPM = 30.0
HR_MAX_BPM = 240.0

IRREGULAR_JUMP = 0.20       # Relative RR change counted as a jump
IRREGULAR_FRACTION = 0.25   # Share of jumps that raises the flag
IRREGULAR_MIN_INTERVALS = 8


def median_bpm(rr_intervals: list[float], last: int = 5) -> float:
    """
    Instantaneous heart rate from the median of the last `last` RR intervals.

    Parameters
    ----------
    rr_intervals : list[float]   RR intervals in milliseconds, oldest first.
    last         : int           How many of the most recent intervals to use.

    Returns
    -------
    bpm : float   0.0 when no interval is available.
    """
    if not rr_intervals:
        return 0.0
    median_rr = float(np.median(rr_intervals[-last:]))
    if median_rr <= 0:
        return 0.0
    return float(np.clip(60000.0 / median_rr, HR_MIN_BPM, HR_MAX_BPM))


def spectral_peak(signal: np.ndarray, fs: float) -> tuple[float, float]:
    """
    Dominant cardiac frequency of a waveform window.

    Parameters
    ----------
    signal : ndarray, shape (N,)   Band-passed waveform.
    fs     : float                 Sampling frequency (Hz).

    Returns
    -------
    hr_bpm        : float   Dominant frequency in BPM (0.0 if undeterminable).
    concentration : float   Peak power / in-band power in [0, 1].
    """
    signal = np.asarray(signal, dtype=np.float64)
    if signal.size < 8 or fs <= 0 or not np.any(signal != signal[0]):
        return 0.0, 0.0

    centred = signal - signal.mean()
    # Zero-pad to next power of 2 for efficient FFT
    n_fft = max(256, 1 << (centred.size - 1).bit_length())
    freqs = np.fft.rfftfreq(n_fft, d=1.0 / fs)
    spectrum = np.abs(np.fft.rfft(centred, n=n_fft)) ** 2

    cardiac_mask = (freqs >= BP_LOW_HZ) & (freqs <= BP_HIGH_HZ)
    if not cardiac_mask.any():
        return 0.0, 0.0

    band = spectrum[cardiac_mask]
    total = band.sum()
    if total <= 0:
        return 0.0, 0.0

    peak = int(np.argmax(band))
    hr_bpm = float(freqs[cardiac_mask][peak] * 60.0)
    # Count the two neighbouring bins as part of the peak — zero-padding
    # spreads a pure tone over adjacent bins.
    lo, hi = max(0, peak - 2), min(band.size, peak + 3)
    concentration = float(band[lo:hi].sum() / total)
    return hr_bpm, min(1.0, concentration)


def detect_irregular_rhythm(rr_intervals: list[float]) -> bool:
    """True when the recent rhythm shows frequent large beat-to-beat jumps."""
    if len(rr_intervals) < IRREGULAR_MIN_INTERVALS:
        return False
    rr = np.asarray(rr_intervals[-IRREGULAR_MIN_INTERVALS:], dtype=np.float64)
    jumps = np.abs(np.diff(rr)) / np.maximum(rr[:-1], 1.0)
    fraction = float(np.mean(jumps > IRREGULAR_JUMP))
    if fraction >= IRREGULAR_FRACTION:
        logger.debug("Irregular rhythm: %.0f%% of RR changes exceed %.0f%%.",
                     fraction * 100, IRREGULAR_JUMP * 100)
        return True
    return False
