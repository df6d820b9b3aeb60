import numpy as np
import pytest

from features.hrv import HRVMetrics, TemporalMetrics
from features.morphology import PulseMorphology
from model.bp_model import (
    FEATURE_NAMES,
    AdditiveBpModel,
    BloodPressureEstimator,
    BpFeatures,
    ForestBpModel,
    additive_pressure,
    available_models,
    create_model,
)


class FixedModel:
    def __init__(self, systolic, diastolic):
        self.value = (systolic, diastolic)

    def predict(self, features):
        return self.value


@pytest.fixture
def trained(pulse_train, feed_beats):
    """Factory: an estimator that has seen `n_beats` regular beats at 72 BPM."""

    def make(estimator, n_beats=12):
        feed_beats(estimator, *pulse_train(n_beats=n_beats))
        return estimator

    return make


# ── Models ───────────────────────────────────────────────────────────────────


def test_model_registry():
    assert available_models() == ["additive", "forest"]
    assert isinstance(create_model("additive"), AdditiveBpModel)
    with pytest.raises(ValueError):
        create_model("neural")


def test_feature_vector_order():
    features = BpFeatures(800.0, 20.0, 8.0, 0.5, 40.0, 30.0)
    assert len(features.as_vector()) == len(FEATURE_NAMES)
    assert features.as_vector()[FEATURE_NAMES.index("age")] == 40.0


def test_additive_reference_point():
    # At the reference morphology only PTT moves the estimate
    systolic, diastolic = AdditiveBpModel().predict(BpFeatures(1000.0, 20.0, 8.0, 0.5, 30.0))
    assert systolic == pytest.approx(160.5 - 42.0)
    assert diastolic == pytest.approx(105.2 - 28.0)


def test_additive_age_and_hrv_corrections():
    base = additive_pressure(900.0, 20.0, 8.0, 0.5, 30.0, 0.0)
    older = additive_pressure(900.0, 20.0, 8.0, 0.5, 50.0, 0.0)
    relaxed = additive_pressure(900.0, 20.0, 8.0, 0.5, 30.0, 60.0)
    stressed = additive_pressure(900.0, 20.0, 8.0, 0.5, 30.0, 15.0)

    assert older[0] - base[0] == pytest.approx(16.0)
    assert older[1] - base[1] == pytest.approx(8.0)
    assert relaxed[0] - base[0] == pytest.approx(-5.0)
    assert relaxed[1] - base[1] == pytest.approx(-3.0)
    assert stressed[0] - base[0] == pytest.approx(8.0)
    assert stressed[1] - base[1] == pytest.approx(5.0)


def test_additive_is_vectorised():
    ptt = np.array([600.0, 900.0, 1200.0])
    systolic, diastolic = additive_pressure(ptt, 20.0, 8.0, 0.5, 30.0, 0.0)
    assert systolic.shape == (3,)
    assert np.all(np.diff(systolic) < 0)
    assert np.all(systolic > diastolic)


def test_forest_model_learns_plausible_pressures(tmp_path):
    path = tmp_path / "forest.pkl"
    model = ForestBpModel(n_samples=400, n_estimators=10, model_path=str(path))
    systolic, diastolic = model.predict(BpFeatures(850.0, 20.0, 8.0, 0.5, 40.0, 35.0))
    assert systolic > diastolic
    assert 80.0 < systolic < 200.0
    assert path.exists()

    reloaded = ForestBpModel(model_path=str(path), use_pretrained=True)
    assert reloaded.predict(BpFeatures(850.0, 20.0, 8.0, 0.5, 40.0, 35.0)) == (systolic, diastolic)


# ── Estimator ────────────────────────────────────────────────────────────────


def test_baseline_at_reference_age():
    result = BloodPressureEstimator(age=30).estimate()
    assert (result.systolic, result.diastolic, result.map) == (120, 80, 93)
    assert result.confidence == pytest.approx(0.3)


def test_baseline_is_age_adjusted():
    result = BloodPressureEstimator(age=50).estimate()
    assert (result.systolic, result.diastolic, result.map) == (130, 86, 101)


def test_add_peak_measures_previous_beat(pulse_train, feed_beats):
    estimator = BloodPressureEstimator()
    morphologies = feed_beats(estimator, *pulse_train(n_beats=3))

    assert morphologies[0] is None
    assert isinstance(morphologies[1], PulseMorphology)
    assert morphologies[1].amplitude > 15.0
    assert estimator.feature_count == 2


def test_baseline_until_enough_pulses(trained):
    estimator = trained(BloodPressureEstimator(age=30), n_beats=8)
    assert estimator.feature_count == 7
    assert estimator.estimate().confidence == pytest.approx(0.3)


def test_regression_after_enough_pulses(trained):
    estimator = trained(BloodPressureEstimator())
    result = estimator.estimate()

    assert estimator.feature_count == 10
    assert result.confidence == pytest.approx(0.9)
    assert result.ptt == pytest.approx(25 * 1000.0 / 30.0)
    assert result.morphology is not None
    assert 85 <= result.systolic <= 200
    assert 20 <= result.systolic - result.diastolic <= 80
    assert result.map == round(result.diastolic + (result.systolic - result.diastolic) / 3)


def test_high_rmssd_lowers_estimate(trained):
    estimator = trained(BloodPressureEstimator())
    plain = estimator.estimate()
    relaxed = estimator.estimate(HRVMetrics(temporal=TemporalMetrics(rmssd=60.0), num_intervals=30))

    assert relaxed.systolic == plain.systolic - 5
    assert relaxed.diastolic == plain.diastolic - 3


def test_empty_hrv_is_ignored(trained):
    estimator = trained(BloodPressureEstimator())
    assert estimator.estimate(HRVMetrics.empty()) == estimator.estimate()


@pytest.mark.parametrize("raw, expected", [
    ((250.0, 40.0), (200, 120)),   # systolic capped, pulse pressure ≤ 80
    ((90.0, 88.0), (90, 70)),      # pulse pressure ≥ 20
    ((60.0, 30.0), (85, 45)),      # systolic floor, diastolic floor
    ((130.0, 85.0), (130, 85)),    # untouched
])
def test_outputs_are_clamped(trained, raw, expected):
    estimator = trained(BloodPressureEstimator(model=FixedModel(*raw)))
    result = estimator.estimate()
    assert (result.systolic, result.diastolic) == expected


def test_calibration_nudges_towards_reference():
    estimator = BloodPressureEstimator(age=30)
    estimator.estimate()
    estimator.calibrate(130.0, 85.0)
    result = estimator.estimate()
    assert result.systolic == 123
    assert result.diastolic in (81, 82)


def test_reset_clears_calibration_and_pulses(trained):
    estimator = trained(BloodPressureEstimator(age=30))
    estimator.calibrate(160.0, 100.0)
    estimator.reset()

    assert estimator.feature_count == 0
    result = estimator.estimate()
    assert (result.systolic, result.diastolic) == (120, 80)


def test_as_dict_keys():
    d = BloodPressureEstimator().estimate().as_dict()
    assert set(d) == {"systolic", "diastolic", "map", "confidence", "ptt_ms"}
