import numpy as np
import pytest

from ppg.synthetic import beat_shape
from ppg.types import Peak


@pytest.fixture
def sine_wave():
    """Factory: (timestamps_ms, values) of a clean sine sampled at `fs`."""

    def make(freq: float, fs: float = 30.0, duration: float = 15.0, amplitude: float = 10.0):
        n = int(round(duration * fs))
        t = np.arange(n) / fs
        return t * 1000.0, amplitude * np.sin(2.0 * np.pi * freq * t)

    return make


@pytest.fixture
def pulse_train():
    """
    Factory: a conditioned-looking pulse waveform with known beat positions.

    Returns (timestamps_ms, values, peak_indices) where the peaks are the
    sample maxima of each beat.
    """

    def make(n_beats: int = 12, period: int = 25, fs: float = 30.0, amplitude: float = 20.0):
        n = n_beats * period
        phase = (np.arange(n) % period) / period
        values = amplitude * (beat_shape(phase) - 0.5)
        times = np.arange(n) * 1000.0 / fs
        peak_indices = [b * period + int(np.argmax(values[b * period:(b + 1) * period]))
                        for b in range(n_beats)]
        return times, values, peak_indices

    return make


@pytest.fixture
def feed_beats():
    """Push a waveform into a BloodPressureEstimator, reporting each peak as it passes."""

    def feed(estimator, times, values, peak_indices, fs: float = 30.0):
        peaks = set(peak_indices)
        previous = None
        morphologies = []
        for i, (t, v) in enumerate(zip(times, values)):
            estimator.add_sample(t, v)
            if i in peaks:
                rr = None if previous is None else (i - previous) * 1000.0 / fs
                morphologies.append(
                    estimator.add_peak(Peak(index=i, time=t, value=v, prominence=1.0), rr))
                previous = i
        return morphologies

    return feed
