import numpy as np
import pytest

from features.hr import detect_irregular_rhythm, median_bpm, spectral_peak


def test_median_bpm_ignores_a_single_outlier():
    assert median_bpm([800.0, 810.0, 790.0, 2000.0, 800.0]) == pytest.approx(75.0)


def test_median_bpm_uses_only_recent_intervals():
    rr = [500.0] * 10 + [1000.0] * 5
    assert median_bpm(rr, last=5) == pytest.approx(60.0)


@pytest.mark.parametrize("rr, expected", [([], 0.0), ([100.0], 240.0), ([5000.0], 30.0)])
def test_median_bpm_edges(rr, expected):
    assert median_bpm(rr) == expected


def test_spectral_peak_finds_tone(sine_wave):
    _, values = sine_wave(1.2, duration=10.0)
    bpm, concentration = spectral_peak(values, 30.0)
    assert bpm == pytest.approx(72.0, abs=4.0)
    assert concentration > 0.5


def test_noise_is_less_concentrated_than_a_tone(sine_wave):
    _, tone = sine_wave(1.2, duration=10.0)
    noise = np.random.default_rng(3).normal(0.0, 10.0, tone.size)
    assert spectral_peak(noise, 30.0)[1] < spectral_peak(tone, 30.0)[1]


@pytest.mark.parametrize("signal", [np.zeros(100), np.ones(4), np.full(60, 7.0)])
def test_spectral_peak_degenerate_input(signal):
    assert spectral_peak(signal, 30.0) == (0.0, 0.0)


def test_steady_rhythm_is_regular():
    assert not detect_irregular_rhythm([800.0] * 12)


def test_alternating_rhythm_is_irregular():
    assert detect_irregular_rhythm([600.0, 1000.0] * 5)


def test_irregularity_needs_enough_intervals():
    assert not detect_irregular_rhythm([600.0, 1000.0] * 3)
