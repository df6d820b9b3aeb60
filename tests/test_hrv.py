import numpy as np
import pytest

from features.hrv import HRVEngine, HRVMetrics, approximate_entropy, dfa, sample_entropy


def alternating(n, a=800.0, b=850.0):
    return [a if i % 2 == 0 else b for i in range(n)]


def test_too_few_intervals_give_sentinel():
    result = HRVEngine().calculate(alternating(19))
    assert result == HRVMetrics.empty()
    assert result.is_empty
    assert result.num_intervals == 0


def test_out_of_range_intervals_are_dropped_before_counting():
    rr = alternating(19) + [250.0, 2500.0, 100.0]
    assert HRVEngine().calculate(rr).is_empty

    rr = alternating(20) + [250.0, 2500.0]
    assert HRVEngine().calculate(rr).num_intervals == 20


def test_temporal_metrics_of_alternating_rhythm():
    result = HRVEngine().calculate(alternating(40))
    temporal = result.temporal
    assert not result.is_empty
    assert temporal.mean_rr == pytest.approx(825.0)
    assert temporal.sdnn == pytest.approx(25.0)
    assert temporal.rmssd == pytest.approx(50.0)
    assert temporal.pnn50 == 0.0
    assert temporal.pnn20 == pytest.approx(100.0)
    assert temporal.cv == pytest.approx(25.0 / 825.0 * 100.0)


def test_poincare_sd1_tracks_rmssd():
    rng = np.random.default_rng(1)
    rr = list(800.0 + rng.normal(0.0, 40.0, size=80))
    result = HRVEngine().calculate(rr)
    nl = result.non_linear
    assert nl.sd1 == pytest.approx(result.temporal.rmssd / np.sqrt(2.0), rel=0.05)
    assert nl.sd2 > 0.0


def test_frequency_metrics_are_consistent():
    rng = np.random.default_rng(2)
    rr = list(850.0 + rng.normal(0.0, 30.0, size=60))
    freq = HRVEngine().calculate(rr).frequency
    assert freq.lf >= 0.0 and freq.hf >= 0.0
    assert freq.total_power == pytest.approx(freq.vlf + freq.lf + freq.hf)
    assert freq.lf_norm + freq.hf_norm == pytest.approx(100.0)
    assert freq.lf_hf_ratio == pytest.approx(freq.lf / freq.hf)


def test_indices_stay_in_range():
    rng = np.random.default_rng(4)
    rr = list(780.0 + rng.normal(0.0, 50.0, size=100))
    indices = HRVEngine().calculate(rr).indices
    assert 0.0 <= indices.stress_index <= 100.0
    assert 0.0 <= indices.recovery_index <= 100.0
    assert -1.0 <= indices.autonomic_balance <= 1.0
    assert 0.0 <= indices.health_score <= 100.0


def test_dfa_needs_enough_beats():
    assert dfa(np.full(10, 800.0), 4, 16) == 0.0


def test_dfa_of_white_noise_is_near_half():
    rng = np.random.default_rng(5)
    alpha = dfa(800.0 + rng.normal(0.0, 30.0, size=400), 4, 16)
    assert 0.3 < alpha < 0.8


def test_entropy_of_regular_series_is_low():
    rng = np.random.default_rng(6)
    regular = np.array(alternating(200))
    noisy = 800.0 + rng.normal(0.0, 30.0, size=200)
    assert approximate_entropy(regular) < approximate_entropy(noisy)
    assert sample_entropy(noisy) > 0.0


def test_as_dict_has_every_group():
    d = HRVEngine().calculate(alternating(30)).as_dict()
    assert set(d) == {"temporal", "frequency", "non_linear", "indices", "num_intervals"}
    assert d["num_intervals"] == 30


def test_custom_minimum():
    assert not HRVEngine(min_intervals=5).calculate(alternating(6)).is_empty
