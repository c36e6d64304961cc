"""Tests for the status and scan API."""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from listingwatch.config import AppConfig, ProjectConfig
from listingwatch.db.store import MemoryStore
from listingwatch.jobs import queue
from listingwatch.main import create_app
from tests.fakes import FakeStrategy, RecordingNotifier, item_urls

CIVIC_URL = "https://www.yad2.co.il/vehicles/cars?model=civic"


class SlowStrategy(FakeStrategy):
    async def fetch(self, url):
        await asyncio.sleep(0.3)
        return await super().fetch(url)


@pytest.fixture
def store():
    return MemoryStore({"civic": ["a", "b"], "lastUpdated": "2024-05-01T10:00:00+00:00"})


def make_client(store, strategy=None, notifier=None):
    queue.clear()
    config = AppConfig(projects=[ProjectConfig(topic="civic", url=CIVIC_URL)])
    strategy = strategy or FakeStrategy({CIVIC_URL: item_urls(["a", "b", "c"])})
    notifier = notifier or RecordingNotifier()
    app = create_app(config=config, components=(store, strategy, notifier), dry_run=True)
    return TestClient(app)


def wait_for(client, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = client.get(f"/api/scan/{job_id}").json()
        if status["status"] not in queue.ACTIVE_STATES:
            return status
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


class TestStateEndpoints:
    def test_stats(self, store):
        with make_client(store) as client:
            body = client.get("/api/stats").json()
        assert body["last_updated"] == "2024-05-01T10:00:00+00:00"
        assert body["topics"]["civic"]["current_listings"] == 2

    def test_topic(self, store):
        with make_client(store) as client:
            body = client.get("/api/topics/civic").json()
        assert body == {"topic": "civic", "seen_ids": ["a", "b"]}

    def test_unknown_topic(self, store):
        with make_client(store) as client:
            assert client.get("/api/topics/lancer").status_code == 404

    def test_health(self, store):
        with make_client(store) as client:
            assert client.get("/api/health").json()["ok"] is True


class TestScanEndpoints:
    def test_scan_runs_in_background(self, store):
        notifier = RecordingNotifier()
        with make_client(store, notifier=notifier) as client:
            started = client.post("/api/scan", json={"force_notify": True}).json()
            assert started["status"] == "queued"

            status = wait_for(client, started["job_id"])

        assert status["status"] == "completed"
        assert status["started_at"] is not None
        assert status["completed_at"] is not None
        assert set(status) == {
            "job_id", "status", "created_at", "started_at", "completed_at", "error", "result",
        }
        assert status["result"]["topics"]["civic"]["new"] == 1
        assert len(notifier.sent) == 1

    def test_second_scan_rejected_while_active(self, store):
        strategy = SlowStrategy({CIVIC_URL: item_urls(["a", "b"])})
        with make_client(store, strategy=strategy) as client:
            first = client.post("/api/scan").json()
            second = client.post("/api/scan")
            assert second.status_code == 409
            wait_for(client, first["job_id"])

    def test_unknown_job(self, store):
        with make_client(store) as client:
            assert client.get("/api/scan/does-not-exist").status_code == 404
