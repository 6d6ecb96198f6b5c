from __future__ import annotations

import pytest

from watchtrail.core.config import settings
from watchtrail.tests.utils import register_and_login


def _snapshot(*, remaining: float = 0.0, failed: int = 0, last_error: str | None = None) -> dict:
    return {
        "tmdb": {
            "circuit": {
                "failure_streak": 0,
                "open_until": 0.0,
                "remaining_cooldown": remaining,
                "current_backoff": 15.0,
                "opened_count": 1 if remaining else 0,
            },
            "operations": {
                "show_details": {
                    "started": failed + 1,
                    "succeeded": 1,
                    "failed": failed,
                    "skipped": 0,
                    "last_latency_ms": 95.5,
                    "last_error": last_error,
                }
            },
        }
    }


@pytest.mark.asyncio
async def test_health_hides_detail_without_auth(client, monkeypatch):
    called = False

    async def _snapshot_stub() -> dict:
        nonlocal called
        called = True
        return {}

    monkeypatch.setattr("watchtrail.main.catalog_monitor.snapshot", _snapshot_stub)

    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert called is False


@pytest.mark.asyncio
async def test_health_reports_catalog_and_jobs_for_signed_in_users(client, monkeypatch):
    async def _snapshot_stub() -> dict:
        return _snapshot()

    monkeypatch.setattr("watchtrail.main.catalog_monitor.snapshot", _snapshot_stub)
    auth = await register_and_login(client, prefix="health")

    payload = (await auth.get("/health")).json()
    assert payload["status"] == "ok"
    assert payload["catalog"]["sources"]["tmdb"]["state"] == "ok"
    assert payload["catalog"]["issues"] == []
    assert payload["jobs"]["status"] == "offline"


@pytest.mark.asyncio
async def test_health_degrades_on_open_circuit_or_errors(client, monkeypatch):
    async def _snapshot_stub() -> dict:
        return _snapshot(remaining=12.25, failed=3, last_error="Server error 503")

    monkeypatch.setattr("watchtrail.main.catalog_monitor.snapshot", _snapshot_stub)
    auth = await register_and_login(client, prefix="health")

    payload = (await auth.get("/api/health")).json()
    assert payload["status"] == "degraded"
    tmdb = payload["catalog"]["sources"]["tmdb"]
    assert tmdb["state"] == "degraded"
    assert tmdb["circuit_open"] is True
    assert tmdb["failure_total"] == 3
    reasons = {issue["reason"] for issue in payload["catalog"]["issues"]}
    assert reasons == {"circuit_open", "last_error", "repeated_failures"}
    assert payload["catalog"]["issues"][0]["remaining_cooldown"] == 12.25


@pytest.mark.asyncio
async def test_health_allows_allowlisted_hosts(client, monkeypatch):
    async def _snapshot_stub() -> dict:
        return {}

    monkeypatch.setattr("watchtrail.main.catalog_monitor.snapshot", _snapshot_stub)
    monkeypatch.setattr(settings, "health_allowlist", ["testserver"])

    payload = (await client.get("/health")).json()
    assert payload["status"] == "ok"
    assert payload["catalog"] == {"sources": {}, "issues": []}
