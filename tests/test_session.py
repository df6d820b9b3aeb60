import threading
import time

import pytest

import api.session
from api.session import MonitoringSession, SessionError
from ppg.types import Sample


class FakeCamera:
    instances = []

    def __init__(self, sink):
        self.sink = sink
        self.released = False
        FakeCamera.instances.append(self)

    def open(self):
        return True

    def release(self):
        self.released = True


class RecordingEstimator:
    def __init__(self):
        self.calls = []

    def calibrate(self, systolic, diastolic):
        self.calls.append((systolic, diastolic, threading.current_thread().name))


class StubPipeline:
    """Stands in for VitalSignsPipeline; fails on every sample when `fail` is set."""

    fail = False
    instances = []

    def __init__(self, config=None):
        self.bp_estimator = RecordingEstimator()
        StubPipeline.instances.append(self)

    def process(self, sample):
        if StubPipeline.fail:
            raise RuntimeError("sensor fault")
        return sample

    def reset(self):
        pass


@pytest.fixture(autouse=True)
def stubs(monkeypatch):
    FakeCamera.instances = []
    StubPipeline.instances = []
    StubPipeline.fail = False
    monkeypatch.setattr(api.session, "CameraSampleSource", FakeCamera)
    monkeypatch.setattr(api.session, "VitalSignsPipeline", StubPipeline)


@pytest.fixture
def session():
    s = MonitoringSession()
    yield s
    s.stop()


def wait_for_status(session, status, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if session.status == status:
            return True
        time.sleep(0.01)
    return False


def test_worker_failure_releases_camera(session):
    StubPipeline.fail = True
    session.start("camera")
    session.submit([Sample(0.0, 150.0, 60.0, 30.0)])

    assert wait_for_status(session, "error")
    assert FakeCamera.instances[0].released
    assert "RuntimeError" in session.error_message

    session.reset()
    assert session.status == "idle"
    assert session.error_message is None


def test_reset_after_unobserved_failure_releases_camera(session):
    StubPipeline.fail = True
    session.start("camera")
    session.submit([Sample(0.0, 150.0, 60.0, 30.0)], wait=True)

    session.reset()
    assert FakeCamera.instances[0].released
    assert session.status == "idle"
    assert session.counters() == (0, 0)


def test_reset_of_stopped_session_goes_idle(session):
    session.start("camera")
    session.stop()
    assert FakeCamera.instances[0].released
    assert session.status == "stopped"

    session.reset()
    assert session.status == "idle"
    assert session.latest() is None


def test_calibration_runs_on_worker_thread(session):
    session.start("push")
    session.calibrate_bp(130.0, 85.0)

    assert StubPipeline.instances[0].bp_estimator.calls == [(130.0, 85.0, "ppg-worker")]


def test_calibration_of_stopped_session_runs_inline(session):
    session.start("push")
    session.stop()
    session.calibrate_bp(118.0, 76.0)

    calls = StubPipeline.instances[0].bp_estimator.calls
    assert calls == [(118.0, 76.0, threading.current_thread().name)]


def test_calibration_needs_a_session(session):
    with pytest.raises(SessionError):
        session.calibrate_bp(120.0, 80.0)
