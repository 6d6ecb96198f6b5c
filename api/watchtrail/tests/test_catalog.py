"""Catalog client tests: auth selection, payload mapping, retries and circuit breaking."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from watchtrail.catalog import http as catalog_http
from watchtrail.catalog import tmdb
from watchtrail.catalog.http import ExternalAPIError, fetch_json
from watchtrail.catalog.observability import CatalogCircuitOpen, CatalogMonitor, catalog_monitor
from watchtrail.catalog.tmdb import TMDBCatalog
from watchtrail.core.config import settings


def test_tmdb_auth_prefers_bearer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "tmdb_api_auth_header", "preferred-token")
    monkeypatch.setattr(settings, "tmdb_api_key", "api-key")

    headers, params = TMDBCatalog()._auth()

    assert headers["Authorization"] == "Bearer preferred-token"
    assert "api_key" not in params


def test_tmdb_auth_uses_api_key_when_header_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "tmdb_api_auth_header", None)
    monkeypatch.setattr(settings, "tmdb_api_key", "api-key")

    headers, params = TMDBCatalog()._auth()

    assert "Authorization" not in headers
    assert params["api_key"] == "api-key"


def test_tmdb_auth_errors_without_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "tmdb_api_auth_header", None)
    monkeypatch.setattr(settings, "tmdb_api_key", None)

    with pytest.raises(ExternalAPIError):
        TMDBCatalog()._auth()


@pytest.mark.asyncio
async def test_show_details_mapping_skips_specials(monkeypatch: pytest.MonkeyPatch) -> None:
    requested: list[str] = []

    async def _fake_fetch(url, **kwargs):
        requested.append(url)
        return {
            "id": 1399,
            "name": "Dragons",
            "poster_path": "/poster.jpg",
            "first_air_date": "2011-04-17",
            "number_of_seasons": 2,
            "number_of_episodes": 20,
            "episode_run_time": [60, 0],
            "seasons": [
                {"season_number": 0, "episode_count": 5},
                {"season_number": 1, "episode_count": 10},
                {"season_number": 2, "episode_count": 10},
            ],
        }

    monkeypatch.setattr(tmdb, "fetch_json", _fake_fetch)
    details = await TMDBCatalog(auth_token="token", base_url="https://tmdb.test/3/").get_show_details(1399)

    assert requested == ["https://tmdb.test/3/tv/1399"]
    assert details.title == "Dragons"
    assert details.poster == f"{tmdb.IMAGE_BASE}/poster.jpg"
    assert details.first_air_date.year == 2011
    assert details.episode_runtimes == [60]
    assert details.season_episode_counts == {1: 10, 2: 10}


@pytest.mark.asyncio
async def test_season_details_mapping(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_fetch(url, **kwargs):
        return {
            "name": "Season 2",
            "episodes": [
                {"episode_number": 1, "name": "Opener", "air_date": "2026-11-01", "runtime": 55},
                {"episode_number": None, "name": "broken"},
                {"episode_number": 2, "name": "TBA", "air_date": ""},
            ],
        }

    monkeypatch.setattr(tmdb, "fetch_json", _fake_fetch)
    season = await TMDBCatalog(auth_token="token").get_season_details(1399, 2)

    assert [episode.episode_number for episode in season.episodes] == [1, 2]
    assert season.episodes[0].air_date.isoformat() == "2026-11-01"
    assert season.episodes[1].air_date is None


@pytest.mark.asyncio
async def test_catalog_failures_open_the_circuit(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    async def _failing_fetch(url, **kwargs):
        nonlocal calls
        calls += 1
        raise ExternalAPIError("Server error 503", status_code=503)

    monkeypatch.setattr(tmdb, "fetch_json", _failing_fetch)
    catalog = TMDBCatalog(auth_token="token")
    for _ in range(3):
        with pytest.raises(ExternalAPIError):
            await catalog.get_movie_details(603)

    with pytest.raises(CatalogCircuitOpen):
        await catalog.get_movie_details(603)
    assert calls == 3

    snapshot = await catalog_monitor.snapshot()
    assert snapshot["tmdb"]["operations"]["movie_details"]["failed"] == 3
    assert snapshot["tmdb"]["operations"]["movie_details"]["skipped"] == 1
    assert snapshot["tmdb"]["circuit"]["opened_count"] == 1


@pytest.mark.asyncio
async def test_monitor_recovers_after_cooldown() -> None:
    monitor = CatalogMonitor(circuit_threshold=1, base_backoff_seconds=0.01, max_backoff_seconds=0.02)

    async def failing_call() -> None:
        raise ExternalAPIError("boom")

    async def ok_call() -> str:
        return "ok"

    with pytest.raises(ExternalAPIError):
        await monitor.track("tmdb", "show_details", failing_call)
    assert monitor.allow_call("tmdb") is False

    await asyncio.sleep(0.02)
    assert await monitor.track("tmdb", "show_details", ok_call, context={"tmdb_id": 1}) == "ok"

    snapshot = await monitor.snapshot()
    assert snapshot["tmdb"]["operations"]["show_details"]["succeeded"] == 1
    assert snapshot["tmdb"]["operations"]["show_details"]["last_error"] is None
    assert snapshot["tmdb"]["circuit"]["failure_streak"] == 0


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.AsyncClient

    def _client(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(catalog_http.httpx, "AsyncClient", _client)


@pytest.mark.asyncio
async def test_fetch_json_does_not_retry_client_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    hits = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal hits
        hits += 1
        return httpx.Response(404, json={"status_message": "not found"})

    _patch_transport(monkeypatch, handler)
    with pytest.raises(ExternalAPIError) as excinfo:
        await fetch_json("https://tmdb.test/3/tv/1", attempts=3)

    assert excinfo.value.status_code == 404
    assert hits == 1


@pytest.mark.asyncio
async def test_fetch_json_retries_server_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    responses = [httpx.Response(502), httpx.Response(200, json={"id": 1})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    _patch_transport(monkeypatch, handler)
    assert await fetch_json("https://tmdb.test/3/tv/1", params={"api_key": "k"}, attempts=2) == {"id": 1}
    assert responses == []
