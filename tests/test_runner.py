"""Tests for the command-line runner."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from autopilot import runner

from fakes import make_queue


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("CODEGEN_API_KEY", "CODEGEN_BASE_URL", "AUTOPILOT_CHECK_INTERVAL"):
        monkeypatch.delenv(name, raising=False)


def _service(request: httpx.Request) -> httpx.Response:
    bodies = {
        "/v1/repositories": {"data": [{"id": "repo-1", "name": "main"}]},
        "/v1/queue": {"data": make_queue(failed=4, queued=11, running=1)},
        "/v1/dashboard/stats": {"data": {"failedActions": 1, "totalActions": 10}},
        "/v1/health": {"data": {"status": "healthy", "checks": {}}},
    }
    if request.url.path not in bodies:
        return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": request.url.path}})
    return httpx.Response(200, json=bodies[request.url.path])


def test_single_cycle_returns_status() -> None:
    settings = {
        "codegen": {"api_key": "secret", "base_url": "https://codegen.test/v1"},
        "autopilot": {"autostart": True, "auto_optimize": False},
    }

    status = asyncio.run(runner.run(settings, once=True, transport=httpx.MockTransport(_service)))

    assert status["is_running"] is False
    assert status["cycle_count"] == 1
    assert status["consecutive_failures"] == 0
    assert status["last_error"] is None
    assert status["decision_count"] == 1
    assert status["last_decision"]["trigger"] == "critical_issues_detected"

    metrics = {m["name"]: m["value"] for m in status["metrics"]}
    assert metrics["queue.failed"] == 4
    assert metrics["queue.pending"] == 11
    assert metrics["queue.running"] == 1
    assert metrics["system.load"] == pytest.approx(0.5 / 16 + 0.03)


def test_main_rejects_missing_api_key(tmp_path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("autopilot:\n  check_interval: 10\n")

    assert runner.main(["--config", str(path), "--once"]) == 2
