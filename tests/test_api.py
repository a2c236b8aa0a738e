import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.session import MonitorSession
from model.calibration import CalibrationStore
from ppg.synthetic import synthetic_ppg


@pytest.fixture
def client(tmp_path):
    store = CalibrationStore(str(tmp_path / "calibration.json"))
    app = create_app(MonitorSession(calibration_store=store))
    with TestClient(app) as c:
        yield c


def _post_stream(client: TestClient, duration_s: float = 10.0, batch: int = 30):
    timestamps, values = synthetic_ppg(duration_s=duration_s, bpm=75.0)
    response = None
    for i in range(0, timestamps.shape[0], batch):
        samples = [
            {"timestamp": float(t), "value": float(v)}
            for t, v in zip(timestamps[i:i + batch], values[i:i + batch])
        ]
        response = client.post("/samples", json={"samples": samples})
        assert response.status_code == 200
    return response


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_reading_is_404_before_samples(client):
    assert client.get("/reading").status_code == 404


def test_samples_produce_a_reading(client):
    body = _post_stream(client).json()
    assert body["reading"]["status"] == "ok"
    assert body["reading"]["heart_rate"] == pytest.approx(75.0, abs=2.0)
    assert body["peaks"]
    assert body["rejected"] == 0
    assert "sensitivity" in body["tuning"]

    latest = client.get("/reading").json()
    assert latest["reading"] == body["reading"]
    assert client.get("/health").json()["cycles"] == 20


def test_out_of_order_samples_are_counted(client):
    samples = [{"timestamp": t, "value": 100.0} for t in (0.0, 20.0, 10.0, 30.0)]
    body = client.post("/samples", json={"samples": samples}).json()
    assert body["rejected"] == 1
    assert body["reading"]["status"] == "insufficient_signal"
    assert body["reading"]["heart_rate"] is None


def test_calibration_round_trip(client, tmp_path):
    assert client.get("/calibration").status_code == 404

    response = client.post("/calibration", json={"systolic": 120, "diastolic": 80})
    assert response.status_code == 200
    assert response.json()["systolic"] == 120

    stored = client.get("/calibration").json()
    assert (stored["systolic"], stored["diastolic"]) == (120, 80)
    assert (tmp_path / "calibration.json").exists()


def test_invalid_calibration_is_422_and_keeps_previous(client):
    client.post("/calibration", json={"systolic": 118, "diastolic": 78})
    for systolic, diastolic in ((65, 80), (110, 120)):
        response = client.post("/calibration", json={"systolic": systolic, "diastolic": diastolic})
        assert response.status_code == 422
    assert client.get("/calibration").json()["systolic"] == 118


def test_calibrated_stream_reports_blood_pressure(client):
    client.post("/calibration", json={"systolic": 120, "diastolic": 80})
    reading = _post_stream(client).json()["reading"]
    assert reading["systolic"] is not None
    assert reading["systolic"] > reading["diastolic"]


def test_reset_clears_stream_but_keeps_calibration(client):
    client.post("/calibration", json={"systolic": 120, "diastolic": 80})
    _post_stream(client, duration_s=2.0)
    assert client.post("/reset").status_code == 200
    assert client.get("/reading").status_code == 404
    assert client.get("/calibration").status_code == 200
