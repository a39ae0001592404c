# tests/test_scheduler.py
from unittest.mock import MagicMock, patch

import pytest
import requests

import run_update
from fipecache import notify, scheduler
from fipecache.exceptions import UpstreamError
from fipecache.models import FipeUpdate


@pytest.fixture
def wired(monkeypatch, session_factory, fake_client):
    monkeypatch.setattr(scheduler, "SessionLocal", session_factory)
    monkeypatch.setattr(scheduler, "FipeClient", lambda: fake_client)
    report = MagicMock()
    failure = MagicMock()
    monkeypatch.setattr(scheduler, "send_refresh_report", report)
    monkeypatch.setattr(scheduler, "send_refresh_failure", failure)
    return report, failure


def test_refresh_if_stale_runs_once_per_window(wired, db):
    report, _ = wired

    assert scheduler.refresh_if_stale()["brands"] == 3
    assert scheduler.refresh_if_stale() is None
    assert db.query(FipeUpdate).count() == 1
    report.assert_called_once()


def test_forced_refresh_ignores_staleness(wired, db):
    scheduler.refresh_if_stale()
    assert scheduler.refresh_if_stale(force=True) is not None
    assert db.query(FipeUpdate).count() == 2


def test_failed_refresh_notifies_and_raises(wired, fake_client):
    _, failure = wired
    fake_client.failures.add("brands")
    with pytest.raises(UpstreamError):
        scheduler.refresh_if_stale()
    failure.assert_called_once()


def test_notifications_are_skipped_without_webhook(monkeypatch):
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    with patch("fipecache.notify.requests.post") as post:
        assert notify.send_refresh_report({"brands": 1}, 1.5) is False
    post.assert_not_called()


def test_notification_errors_are_not_raised(monkeypatch):
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.test/x")
    with patch("fipecache.notify.requests.post", side_effect=requests.ConnectionError("down")):
        assert notify.send_refresh_failure("boom") is False
    with patch("fipecache.notify.requests.post") as post:
        assert notify.send_refresh_report({"brands": 1, "models": 2}, 3.0) is True
    assert "Models: 2" in post.call_args.kwargs["json"]["blocks"][0]["text"]["text"]


def test_cli_exit_codes(monkeypatch, capsys):
    monkeypatch.setattr(run_update, "refresh_if_stale",
                        lambda force: {"brands": 3, "models": 5, "years": 6, "values": 6})
    assert run_update.main([]) == 0
    assert "Brands: 3" in capsys.readouterr().out

    monkeypatch.setattr(run_update, "refresh_if_stale", lambda force: None)
    assert run_update.main(["--force"]) == 0

    def broken(force):
        raise UpstreamError("FIPE down")

    monkeypatch.setattr(run_update, "refresh_if_stale", broken)
    assert run_update.main([]) == 1


def test_refresh_closes_client(wired, fake_client):
    scheduler.refresh_if_stale()
    assert fake_client.closed is True

    fake_client.closed = False
    assert scheduler.refresh_if_stale() is None
    assert fake_client.closed is True
