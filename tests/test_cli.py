"""Tests for the scan CLI."""

import json

import pytest

from listingwatch.db.store import MemoryStore
from listingwatch.notify.telegram import LogNotifier
from listingwatch import cli
from tests.fakes import FakeStrategy, item_urls

CIVIC_URL = "https://www.yad2.co.il/vehicles/cars?model=civic"


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "projects": [{"topic": "civic", "url": CIVIC_URL}],
    }), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TELEGRAM_API_TOKEN", "CHAT_ID", "GITHUB_EVENT_NAME"):
        monkeypatch.delenv(name, raising=False)


def use_fakes(monkeypatch, pages):
    notifier = LogNotifier()
    store = MemoryStore()
    monkeypatch.setattr(
        cli, "build_components",
        lambda config, dry_run=False: (store, FakeStrategy(pages), notifier),
    )
    return store, notifier


class TestMain:
    def test_missing_config(self, tmp_path):
        assert cli.main(["--config", str(tmp_path / "missing.json")]) == 1

    def test_dry_run_scan(self, monkeypatch, config_path):
        store, notifier = use_fakes(monkeypatch, {CIVIC_URL: item_urls(["a"])})

        assert cli.main(["--config", str(config_path), "--dry-run", "--force-notify"]) == 0
        assert notifier.sent == ["Scan of civic: no new listings"]

    def test_missing_credentials_fail(self, monkeypatch, config_path):
        use_fakes(monkeypatch, {CIVIC_URL: item_urls(["a"])})
        assert cli.main(["--config", str(config_path)]) == 1

    def test_failed_topic_fails_run(self, monkeypatch, config_path):
        from listingwatch.scraper.base_strategy import FetchError
        use_fakes(monkeypatch, {CIVIC_URL: FetchError("blocked")})
        assert cli.main(["--config", str(config_path), "--dry-run"]) == 1

    def test_bad_interval(self, monkeypatch, config_path):
        use_fakes(monkeypatch, {})
        assert cli.main(["--config", str(config_path), "--loop", "--interval", "90"]) == 1


class TestCycleFailed:
    def test_aborted(self):
        assert cli.cycle_failed({"status": "aborted", "topics": {}}) is True

    def test_all_completed(self):
        report = {"status": "completed", "topics": {"civic": {"status": "completed"}}}
        assert cli.cycle_failed(report) is False
