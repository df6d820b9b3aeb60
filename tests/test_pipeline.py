import pytest

from ppg.pipeline import PipelineConfig, VitalSignsPipeline
from ppg.synthetic import synthetic_ppg
from ppg.types import InvalidReason


def run(pipeline, samples):
    return [pipeline.process(sample) for sample in samples]


@pytest.mark.parametrize("kwargs", [
    {"sample_rate": 0},
    {"age": 0},
    {"ppg_channel": "infrared"},
    {"spo2_channels": ("red", "uv")},
])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(**kwargs)


def test_unknown_strategy_or_model_rejected():
    with pytest.raises(ValueError):
        VitalSignsPipeline(PipelineConfig(quality_strategy="magic"))
    with pytest.raises(ValueError):
        VitalSignsPipeline(PipelineConfig(bp_model="oracle"))


def test_steady_72_bpm_recording():
    pipeline = VitalSignsPipeline()
    snapshots = run(pipeline, synthetic_ppg(duration_s=10.0, bpm=72.0))
    last = snapshots[-1]

    assert pipeline.sample_count == 300
    assert last.timestamp_ms == pytest.approx(299 * 1000.0 / 30.0)
    assert last.quality_reason is InvalidReason.NONE
    assert abs(last.heart_rate.bpm - 72) <= 2
    assert not last.heart_rate.is_irregular
    assert last.perfusion_index > 0.0
    assert sum(s.heart_rate.is_peak for s in snapshots) >= 10

    assert last.spo2 is not None
    assert last.spo2.is_valid
    assert last.spo2.spo2 == pytest.approx(97.0, abs=1.0)

    # 10 s is not enough for HRV
    assert last.hrv is None
    assert last.stress is None
    assert 85 <= last.blood_pressure.systolic <= 200


def test_heart_rate_starts_at_zero():
    snapshots = run(VitalSignsPipeline(), synthetic_ppg(duration_s=1.0))
    assert all(s.heart_rate.bpm == 0 for s in snapshots)
    assert snapshots[0].spo2 is None


def test_green_channel_detection():
    pipeline = VitalSignsPipeline(PipelineConfig(ppg_channel="green"))
    last = run(pipeline, synthetic_ppg(duration_s=10.0, bpm=90.0))[-1]
    assert abs(last.heart_rate.bpm - 90) <= 2


def test_uncovered_lens_reports_zero_bpm():
    pipeline = VitalSignsPipeline()
    run(pipeline, synthetic_ppg(duration_s=10.0))
    snapshots = run(pipeline, synthetic_ppg(duration_s=1.0, start_ms=10000.0, coverage_ratio=0.05))
    for snapshot in snapshots:
        assert snapshot.heart_rate.bpm == 0
        assert snapshot.quality_reason is InvalidReason.NO_FINGER


def test_long_recording_yields_hrv_and_stress():
    pipeline = VitalSignsPipeline()
    last = run(pipeline, synthetic_ppg(duration_s=40.0, bpm=72.0, rr_jitter_ms=30.0, seed=11))[-1]

    assert last.hrv is not None
    assert last.hrv.num_intervals >= 20
    assert last.hrv.temporal.rmssd > 0.0
    assert last.stress is not None
    assert last.stress["level"] in {"Low", "Moderate", "High"}
    assert last.blood_pressure.confidence > 0.3


def test_reset_matches_fresh_pipeline():
    samples = synthetic_ppg(duration_s=6.0, noise=0.2, seed=5)
    fresh = run(VitalSignsPipeline(), samples)

    pipeline = VitalSignsPipeline()
    run(pipeline, synthetic_ppg(duration_s=8.0, bpm=110.0, seed=9))
    pipeline.bp_estimator.calibrate(150.0, 95.0)
    pipeline.reset()

    assert pipeline.sample_count == 0
    assert run(pipeline, samples) == fresh


def test_snapshot_as_dict_is_json_ready():
    last = run(VitalSignsPipeline(), synthetic_ppg(duration_s=5.0))[-1]
    d = last.as_dict()

    assert set(d) == {"timestamp_ms", "heart_rate", "hrv", "spo2", "blood_pressure",
                      "quality_reason", "perfusion_index", "stress"}
    assert set(d["heart_rate"]) == {"bpm", "is_peak", "quality", "is_irregular"}
    assert d["spo2"]["value"] == 97
    assert d["spo2"]["reason"] is None
    assert isinstance(d["quality_reason"], str)
