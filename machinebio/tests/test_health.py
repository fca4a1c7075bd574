from fastapi.testclient import TestClient

from machinebio.main import app

client = TestClient(app)


def test_read_main():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_metrics_health():
    response = client.get("/metrics/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_prometheus_exposition():
    response = client.get("/metrics/prometheus")
    assert response.status_code == 200
    assert "machinebio_guesses_submitted_total" in response.text
