import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from ppg.synthetic import synthetic_ppg


def payload(samples):
    return {"samples": [
        {"timestamp_ms": s.timestamp_ms, "red": s.red, "green": s.green, "blue": s.blue}
        for s in samples
    ]}


def push(client, samples, batch=50):
    for i in range(0, len(samples), batch):
        response = client.post("/session/samples?wait=true", json=payload(samples[i: i + batch]))
        assert response.status_code == 200
        assert response.json()["dropped"] == 0


@pytest.fixture
def client():
    with TestClient(create_app()) as c:
        yield c


@pytest.fixture
def running(client):
    assert client.post("/session/start", json={"source": "push"}).status_code == 200
    return client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_idle_session(client):
    status = client.get("/session/status").json()
    assert status["status"] == "idle"
    assert status["samples_processed"] == 0
    assert status["config"]["age"] == 35

    assert client.get("/vitals/latest").status_code == 404
    assert client.post("/session/samples", json=payload(synthetic_ppg(duration_s=0.1))).status_code == 409
    assert client.post("/session/stop").status_code == 409
    assert client.post("/session/calibrate", json={"systolic": 120, "diastolic": 80}).status_code == 409


def test_config_is_validated(client):
    assert client.post("/session/config", json={"age": 5}).status_code == 422
    assert client.post("/session/config", json={"ppg_channel": "infrared"}).status_code == 422
    assert client.post("/session/config", json={"bp_model": "oracle"}).status_code == 422

    response = client.post("/session/config", json={"age": 52, "quality_strategy": "multichannel"})
    assert response.status_code == 200
    config = client.get("/session/status").json()["config"]
    assert config["age"] == 52
    assert config["quality_strategy"] == "multichannel"


def test_running_session_rejects_second_start_and_config(running):
    assert running.post("/session/start").status_code == 409
    assert running.post("/session/config", json={"age": 40}).status_code == 409
    assert running.get("/session/status").json()["status"] == "running"


def test_empty_batch_rejected(running):
    assert running.post("/session/samples", json={"samples": []}).status_code == 422


def test_vitals_after_pushing_samples(running):
    samples = synthetic_ppg(duration_s=10.0, bpm=72.0)
    push(running, samples)

    status = running.get("/session/status").json()
    assert status["samples_processed"] == len(samples)
    assert status["samples_dropped"] == 0
    assert status["source"] == "push"

    vitals = running.get("/vitals/latest").json()
    assert "NOT a medical device" in vitals["disclaimer"]
    assert abs(vitals["heart_rate"]["bpm"] - 72) <= 2
    assert vitals["quality_reason"] == "NONE"
    assert vitals["spo2"]["is_valid"]
    assert vitals["blood_pressure"]["unit"] == "mmHg"
    assert vitals["hrv"] is None


def test_calibration(running):
    push(running, synthetic_ppg(duration_s=1.0))
    assert running.post("/session/calibrate", json={"systolic": 80, "diastolic": 90}).status_code == 422
    assert running.post("/session/calibrate", json={"systolic": 300, "diastolic": 90}).status_code == 422
    assert running.post("/session/calibrate", json={"systolic": 135, "diastolic": 88}).status_code == 200


def test_reset_while_running_clears_vitals(running):
    push(running, synthetic_ppg(duration_s=2.0))
    assert running.get("/vitals/latest").status_code == 200

    assert running.post("/session/reset").status_code == 200
    assert running.get("/vitals/latest").status_code == 404
    status = running.get("/session/status").json()
    assert status["status"] == "running"
    assert status["samples_processed"] == 0


def test_stop_then_reset(running):
    push(running, synthetic_ppg(duration_s=1.0))
    assert running.post("/session/stop").status_code == 200
    assert running.get("/session/status").json()["status"] == "stopped"
    assert running.get("/vitals/latest").status_code == 200
    assert running.post("/session/stop").status_code == 409

    assert running.post("/session/reset").status_code == 200
    assert running.get("/session/status").json()["status"] == "idle"
    assert running.get("/vitals/latest").status_code == 404
