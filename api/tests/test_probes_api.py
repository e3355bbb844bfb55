"""
Tests for probe endpoints.

RQ is patched at the api.routes.probes import site; no Redis is needed.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from fastapi import status

from api.queue import QueueUnavailableError


def test_create_probe_enqueues_job(client):
    """Test that POST /probes enqueues a job and returns 202 with its id."""
    with patch("api.routes.probes.enqueue_probe_job", return_value="job-123") as mock_enqueue:
        response = client.post("/probes", json={"url": "https://order.example.com/menu", "runs": 2})

    assert response.status_code == status.HTTP_202_ACCEPTED
    assert response.json() == {"job_id": "job-123", "status": "queued"}
    mock_enqueue.assert_called_once_with("https://order.example.com/menu", 2)


def test_create_probe_defaults_runs(client):
    """Test that runs is optional and passed through as None."""
    with patch("api.routes.probes.enqueue_probe_job", return_value="job-1") as mock_enqueue:
        response = client.post("/probes", json={"url": "https://order.example.com/"})

    assert response.status_code == status.HTTP_202_ACCEPTED
    mock_enqueue.assert_called_once_with("https://order.example.com/", None)


def test_create_probe_rejects_invalid_url(client):
    """Test that a non-URL is rejected with 422."""
    with patch("api.routes.probes.enqueue_probe_job") as mock_enqueue:
        response = client.post("/probes", json={"url": "not a url"})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    mock_enqueue.assert_not_called()


def test_create_probe_rejects_too_many_runs(client):
    """Test that runs above the cap are rejected."""
    response = client.post("/probes", json={"url": "https://order.example.com/", "runs": 9})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_create_probe_redis_unavailable(client):
    """Test that a queue failure maps to 503."""
    with patch(
        "api.routes.probes.enqueue_probe_job",
        side_effect=QueueUnavailableError("Failed to connect to Redis"),
    ):
        response = client.post("/probes", json={"url": "https://order.example.com/"})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


def test_get_probe_not_found(client):
    """Test that GET /probes/{id} returns 404 for an unknown job."""
    with patch("api.routes.probes.fetch_job", return_value=None):
        response = client.get("/probes/missing")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert "not found" in response.json()["detail"].lower()


def test_get_probe_queued(client):
    """Test that a queued job reports its status without a result."""
    job = MagicMock()
    job.get_status.return_value = "queued"
    with patch("api.routes.probes.fetch_job", return_value=job):
        response = client.get("/probes/job-123")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "queued"
    assert data["result"] is None
    job.return_value.assert_not_called()


def test_get_probe_finished_includes_result(client):
    """Test that a finished job carries the probe result."""
    job = MagicMock()
    job.get_status.return_value = "finished"
    job.return_value.return_value = {"target": "https://order.example.com/", "injectabilityScore": 80}
    with patch("api.routes.probes.fetch_job", return_value=job):
        response = client.get("/probes/job-123")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "finished"
    assert data["result"]["injectabilityScore"] == 80


def test_get_probe_failed_has_summary(client):
    """Test that a failed job reports a generic summary, not the traceback."""
    job = MagicMock()
    job.get_status.return_value = "failed"
    with patch("api.routes.probes.fetch_job", return_value=job):
        response = client.get("/probes/job-123")

    data = response.json()
    assert data["status"] == "failed"
    assert data["error_summary"] == "Probe failed"


def test_get_probe_redis_unavailable(client):
    """Test that a Redis outage while polling maps to 503."""
    with patch("api.routes.probes.fetch_job", side_effect=QueueUnavailableError("down")):
        response = client.get("/probes/job-123")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
