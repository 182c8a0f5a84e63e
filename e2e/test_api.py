"""Diagnostics API tests."""

import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from core.monitor import MonitorService
from detection.engine import DetectionEngine
from detection.thresholds import ThresholdResolver
from main import create_app
from notify.dispatcher import NotificationDispatcher
from schemas.thresholds import DetectionThresholds
from sources.fixture import FixtureRecordSource

from conftest import STUCK, FailingSource, FakeClock


def make_client(source, clock):
    engine = DetectionEngine(ThresholdResolver(DetectionThresholds(threshold_checks=1)), clock=clock)
    service = MonitorService(source, engine, NotificationDispatcher([]), lookback=timedelta(hours=1))
    return TestClient(create_app(service, run_loop=False))


@pytest.fixture
def client(tmp_path):
    clock = FakeClock()
    path = tmp_path / "f.json"
    path.write_text(json.dumps({"records": STUCK}))
    with make_client(FixtureRecordSource(path, clock=clock), clock) as c:
        yield c


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "last_poll": None}


def test_latest_poll_404_before_first_poll(client):
    assert client.get("/api/polls/latest").status_code == 404


def test_check_runs_a_poll(client):
    res = client.post("/api/check")
    assert res.status_code == 200
    body = res.json()
    assert body["job_count"] == 2
    assert [a["job_id"] for a in body["alerts"]] == ["indexer_x"]
    assert body["alerts"][0]["kind"] == "long_running"
    assert body["transitions"][0]["to_state"] == "alerting"

    latest = client.get("/api/polls/latest")
    assert latest.status_code == 200
    assert latest.json()["polled_at"] == body["polled_at"]
    assert client.get("/health").json()["last_poll"] is not None


def test_jobs_listed_after_poll(client):
    assert client.get("/api/jobs").json() == {"count": 0, "jobs": []}

    client.post("/api/check")
    body = client.get("/api/jobs").json()
    assert body["count"] == 2
    assert [j["job_id"] for j in body["jobs"]] == ["backend_ok", "indexer_x"]


def test_single_job(client):
    client.post("/api/check")
    job = client.get("/api/jobs/indexer_x").json()
    assert job["group"] == "index"
    assert job["health_state"] == "alerting"
    assert job["consecutive_stuck"] == 1
    assert job["counters"] == {"long_running": 1}


def test_unknown_job_404(client):
    assert client.get("/api/jobs/nope").status_code == 404


def test_scheduler_state(client):
    client.post("/api/check")
    body = client.get("/api/scheduler").json()
    assert body["consecutive_inactive"] == 0
    assert body["last_checked"] is not None


def test_check_503_when_source_fails():
    with make_client(FailingSource(), FakeClock()) as c:
        res = c.post("/api/check")
        assert res.status_code == 503
        assert c.get("/api/polls/latest").status_code == 404
