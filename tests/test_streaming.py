import threading

import pytest

from ppg.pipeline import VitalSignsPipeline
from ppg.streaming import LatestValue, PipelineWorker, SampleChannel
from ppg.synthetic import synthetic_ppg
from ppg.types import Sample


def sample(k):
    return Sample(k * 33.3, 150.0, 60.0, 30.0)


class ExplodingPipeline:
    def __init__(self):
        self.resets = 0

    def process(self, sample):
        raise RuntimeError("sensor fault")

    def reset(self):
        self.resets += 1


# ── SampleChannel ────────────────────────────────────────────────────────────


def test_channel_drops_oldest_when_full():
    channel = SampleChannel(capacity=3)
    dropped = [channel.put(sample(k)) for k in range(5)]

    assert dropped == [False, False, False, True, True]
    assert channel.dropped == 2
    assert len(channel) == 3
    assert [channel.get(timeout=0.01).timestamp_ms for _ in range(3)] == [
        sample(k).timestamp_ms for k in (2, 3, 4)
    ]


def test_channel_get_times_out_when_empty():
    assert SampleChannel().get(timeout=0.01) is None


def test_channel_clear_reports_backlog():
    channel = SampleChannel(capacity=8)
    for k in range(5):
        channel.put(sample(k))
    assert channel.clear() == 5
    assert len(channel) == 0
    assert channel.capacity == 8


def test_channel_capacity_must_be_positive():
    with pytest.raises(ValueError):
        SampleChannel(capacity=0)


def test_latest_value_cell():
    cell = LatestValue()
    assert cell.get() is None
    cell.set(1)
    cell.set(2)
    assert cell.get() == 2
    cell.clear()
    assert cell.get() is None


# ── PipelineWorker ───────────────────────────────────────────────────────────


@pytest.fixture
def worker():
    w = PipelineWorker(VitalSignsPipeline(), poll_seconds=0.01)
    yield w
    w.stop()


def test_worker_processes_submitted_samples(worker):
    samples = synthetic_ppg(duration_s=1.5)
    worker.start()
    assert worker.is_running
    for s in samples:
        worker.submit(s)

    assert worker.wait_idle(timeout=10.0)
    assert worker.processed == len(samples)
    assert worker.latest.get().timestamp_ms == samples[-1].timestamp_ms
    assert worker.error is None


def test_worker_stop_joins_thread(worker):
    worker.start()
    worker.stop()
    assert not worker.is_running


def test_reset_while_running_clears_state(worker):
    worker.start()
    for s in synthetic_ppg(duration_s=1.0):
        worker.submit(s)
    assert worker.wait_idle(timeout=10.0)

    assert worker.request_reset(timeout=5.0)
    assert worker.latest.get() is None
    assert worker.processed == 0

    worker.submit(sample(0))
    assert worker.wait_idle(timeout=10.0)
    assert worker.processed == 1


def test_reset_without_thread_runs_inline():
    pipeline = ExplodingPipeline()
    worker = PipelineWorker(pipeline)
    worker.submit(sample(0))
    worker.latest.set("stale")

    assert worker.request_reset()
    assert pipeline.resets == 1
    assert worker.latest.get() is None
    assert len(worker.channel) == 0
    assert worker.wait_idle(timeout=0.1)


def test_pipeline_failure_is_reported():
    worker = PipelineWorker(ExplodingPipeline(), poll_seconds=0.01)
    for k in range(5):
        worker.submit(sample(k))
    worker.start()

    assert worker.wait_idle(timeout=5.0)
    worker.stop()
    assert not worker.is_running
    assert "RuntimeError" in worker.error
    assert worker.processed == 0
    assert worker.latest.get() is None


class CuffEstimator:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def calibrate(self, systolic, diastolic):
        if self.error is not None:
            raise self.error
        self.calls.append((systolic, diastolic, threading.current_thread().name))


class EchoPipeline:
    def __init__(self, estimator):
        self.bp_estimator = estimator

    def process(self, sample):
        return sample

    def reset(self):
        pass


def test_calibration_is_applied_by_the_worker():
    estimator = CuffEstimator()
    worker = PipelineWorker(EchoPipeline(estimator), poll_seconds=0.01)
    worker.start()
    try:
        for k in range(20):
            worker.submit(sample(k))
        assert worker.request_calibration(132.0, 84.0, timeout=5.0)
    finally:
        worker.stop()

    assert estimator.calls == [(132.0, 84.0, "ppg-worker")]


def test_calibration_without_thread_runs_inline():
    estimator = CuffEstimator()
    assert PipelineWorker(EchoPipeline(estimator)).request_calibration(120.0, 80.0)
    assert estimator.calls == [(120.0, 80.0, threading.current_thread().name)]


def test_calibration_error_reaches_the_caller():
    worker = PipelineWorker(EchoPipeline(CuffEstimator(ValueError("bad cuff"))), poll_seconds=0.01)
    worker.start()
    try:
        with pytest.raises(ValueError, match="bad cuff"):
            worker.request_calibration(120.0, 80.0, timeout=5.0)
        assert worker.is_running
        assert worker.error is None
    finally:
        worker.stop()
