import datetime as dt
import json

import app.worker as worker
from app.services import dispatch as dispatch_module
from app.settings import settings

NOW = dt.datetime(2026, 10, 16, 8, 0)


def _patch(monkeypatch, session_factory, provider):
    monkeypatch.setattr(worker, "SessionLocal", session_factory)
    monkeypatch.setattr(worker, "utcnow", lambda: NOW)
    monkeypatch.setattr(dispatch_module, "get_call_provider", lambda: provider)


def test_once_prints_report(monkeypatch, capsys, session_factory, provider, make_user, make_med, load_med):
    _patch(monkeypatch, session_factory, provider)
    med = make_med(make_user(), "Aspirin", "08:00")

    assert worker.main(["--once"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["success"] is True
    assert report["batches_triggered"] == 1
    assert len(provider.requests) == 1
    assert load_med(med).retry_count == 1


def test_once_exit_code_on_failed_run(monkeypatch, capsys, session_factory, failing_provider, make_user, make_med):
    _patch(monkeypatch, session_factory, failing_provider)
    make_med(make_user(), "Aspirin", "08:00")

    assert worker.main(["--once"]) == 1
    assert json.loads(capsys.readouterr().out)["success"] is False


def test_once_without_provider_config_and_nothing_due(monkeypatch, capsys, session_factory):
    monkeypatch.setattr(worker, "SessionLocal", session_factory)
    monkeypatch.setattr(worker, "utcnow", lambda: NOW)
    monkeypatch.setattr(settings, "CALL_PROVIDER", "http")
    monkeypatch.setattr(settings, "CALL_PROVIDER_URL", None)

    assert worker.main(["--once"]) == 0
    assert json.loads(capsys.readouterr().out)["batches_triggered"] == 0
