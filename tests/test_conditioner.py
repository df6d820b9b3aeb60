import numpy as np
import pytest

from ppg.conditioner import SignalConditioner, design_bandpass


def test_design_bandpass_returns_sections():
    sos = design_bandpass(30.0)
    assert sos.ndim == 2
    assert sos.shape[1] == 6


def test_design_bandpass_rejects_bad_rate():
    with pytest.raises(ValueError):
        design_bandpass(0.0)


def test_invalid_gain_clamp_rejected():
    with pytest.raises(ValueError):
        SignalConditioner(min_gain=2.0, max_gain=1.0)


def test_first_sample_sets_baseline():
    cond = SignalConditioner()
    out = cond.process(0.0, 123.0)
    assert out.baseline == 123.0
    assert out.ac == 0.0
    assert out.raw == 123.0


def test_baseline_tracks_dc_level():
    cond = SignalConditioner()
    for k in range(300):
        cond.process(k * 1000.0 / 30.0, 80.0 + 0.5 * np.sin(2 * np.pi * 1.2 * k / 30.0))
    assert cond.baseline == pytest.approx(80.0, abs=1.0)


def test_gain_brings_pulse_towards_target(sine_wave):
    times, values = sine_wave(1.2, duration=12.0, amplitude=2.0)
    cond = SignalConditioner(target_amplitude=20.0)
    outputs = [cond.process(t, 100.0 + v) for t, v in zip(times, values)]

    tail = np.array([o.value for o in outputs[-60:]])
    assert 10.0 < tail.max() - tail.min() < 30.0
    assert cond.gain == pytest.approx(outputs[-1].gain)


def test_reset_restores_initial_behaviour(sine_wave):
    times, values = sine_wave(1.5, duration=3.0)
    fresh = SignalConditioner()
    expected = [fresh.process(t, 50.0 + v) for t, v in zip(times[:20], values[:20])]

    used = SignalConditioner()
    for t, v in zip(times, values):
        used.process(t, 200.0 + 3 * v)
    used.reset()
    assert used.baseline == 0.0
    assert used.gain == 1.0

    again = [used.process(t, 50.0 + v) for t, v in zip(times[:20], values[:20])]
    assert again == expected
