"""Client-side cache, optimistic ledger and episode tracker."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport

from watchtrail.client import EntityCache, EpisodeTracker, OptimisticLedger, QueueTracker, WatchtrailClient
from watchtrail.client.cache import LIBRARY, QUEUE
from watchtrail.client.http import WatchtrailAPIError
from watchtrail.client.optimistic import create_command, delete_command, update_command
from watchtrail.main import app
from watchtrail.models.library import EpisodeStatus
from watchtrail.tracking.reconcile import EpisodeUpdate

FIXED_NOW = datetime(2026, 10, 19, 18, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_cache_refetches_only_when_stale() -> None:
    cache = EntityCache()
    loads = 0

    async def loader():
        nonlocal loads
        loads += 1
        return [{"id": "a", "title": f"load {loads}"}]

    assert (await cache.read(QUEUE, loader))[0]["title"] == "load 1"
    assert (await cache.read(QUEUE, loader))[0]["title"] == "load 1"
    cache.invalidate(QUEUE)
    assert cache.is_stale(QUEUE)
    assert (await cache.read(QUEUE, loader))[0]["title"] == "load 2"
    assert loads == 2


def test_cache_hands_out_copies() -> None:
    cache = EntityCache()
    cache.put(LIBRARY, {"id": "x", "episodes": []})
    record = cache.get(LIBRARY, "x")
    record["episodes"].append({"season_number": 1})
    assert cache.get(LIBRARY, "x")["episodes"] == []


def test_update_inverse_restores_exact_prior_record() -> None:
    cache = EntityCache()
    prior = {"id": "x", "progress": 10, "rating": None}
    cache.put(LIBRARY, prior)
    ledger = OptimisticLedger()

    token = ledger.apply(update_command(cache, LIBRARY, "x", {"progress": 60, "rating": 9}))
    assert cache.get(LIBRARY, "x")["progress"] == 60
    ledger.rollback(token)

    assert cache.get(LIBRARY, "x") == prior
    assert ledger.pending == 0


def test_create_and_delete_inverses() -> None:
    cache = EntityCache()
    ledger = OptimisticLedger()

    token = ledger.apply(create_command(cache, QUEUE, {"id": "tmp-1", "title": "Pending"}))
    ledger.rollback(token)
    assert cache.get(QUEUE, "tmp-1") is None

    cache.put(QUEUE, {"id": "q1", "title": "Keep"})
    token = ledger.apply(delete_command(cache, QUEUE, "q1"))
    assert cache.get(QUEUE, "q1") is None
    ledger.rollback(token)
    assert cache.get(QUEUE, "q1") == {"id": "q1", "title": "Keep"}


def test_confirm_discards_the_inverse() -> None:
    cache = EntityCache()
    cache.put(LIBRARY, {"id": "x", "progress": 0})
    ledger = OptimisticLedger()

    token = ledger.apply(update_command(cache, LIBRARY, "x", {"progress": 40}))
    ledger.confirm(token)
    ledger.rollback(token)

    assert cache.get(LIBRARY, "x")["progress"] == 40


def _api(client) -> WatchtrailClient:
    return WatchtrailClient("http://testserver", transport=ASGITransport(app=app))


@pytest.mark.asyncio
async def test_tracker_matches_server_progress(client):
    api = _api(client)
    await api.register("tracker@example.com", "supersecret123")
    show = await api.create_item({"tmdb_id": 1399, "media_type": "TV", "title": "Dragons", "total_episodes": 20})

    cache = EntityCache()
    tracker = EpisodeTracker(api, cache, clock=lambda: FIXED_NOW)
    seen: list[int] = []
    original_update = api.update_item

    async def _spy(item_id, payload):
        seen.append(cache.get(LIBRARY, item_id)["progress"])
        return await original_update(item_id, payload)

    api.update_item = _spy

    saved = await tracker.mark_episodes(
        show["id"], [EpisodeUpdate(1, n, EpisodeStatus.WATCHED) for n in range(1, 11)]
    )
    assert seen == [50]
    assert saved["progress"] == 50

    saved = await tracker.mark_episode(show["id"], 1, 11, EpisodeStatus.WATCHED)
    assert seen[-1] == saved["progress"] == 55
    assert (saved["current_season"], saved["current_episode"]) == (1, 11)

    saved = await tracker.mark_episodes(
        show["id"], [EpisodeUpdate(1, n, EpisodeStatus.SKIPPED) for n in range(12, 21)]
    )
    assert seen[-1] == saved["progress"] == 100
    assert len(cache.get(LIBRARY, show["id"])["episodes"]) == 20
    await api.aclose()


@pytest.mark.asyncio
async def test_tracker_unmarking_agrees_with_server(client):
    api = _api(client)
    await api.register("unmark@example.com", "supersecret123")
    show = await api.create_item({"tmdb_id": 77, "media_type": "TV", "title": "Unmarked", "total_episodes": 20})
    tracker = EpisodeTracker(api, EntityCache(), clock=lambda: FIXED_NOW)

    assert (await tracker.mark_episode(show["id"], 1, 5, EpisodeStatus.WATCHED))["progress"] == 5
    assert (await tracker.mark_episode(show["id"], 1, 5, EpisodeStatus.UNWATCHED))["progress"] == 0

    saved = await tracker.mark_episodes(
        show["id"], [EpisodeUpdate(1, n, EpisodeStatus.UNWATCHED) for n in range(1, 11)]
    )
    assert saved["progress"] == 0
    assert (saved["current_season"], saved["current_episode"]) == (1, 10)
    assert (await tracker.mark_episode(show["id"], 1, 1, EpisodeStatus.WATCHED))["progress"] == 5
    assert (await api.get_item(show["id"]))["progress"] == 5
    await api.aclose()


@pytest.mark.asyncio
async def test_tracker_rolls_back_when_the_server_refuses(client):
    api = _api(client)
    await api.register("rollback@example.com", "supersecret123")
    show = await api.create_item({"tmdb_id": 5, "media_type": "TV", "title": "Five", "total_episodes": 4})
    cache = EntityCache()
    cache.put(LIBRARY, await api.get_item(show["id"]))
    before = cache.get(LIBRARY, show["id"])

    async def _refuse(item_id, payload):
        raise WatchtrailAPIError(500, "boom")

    api.update_item = _refuse
    tracker = EpisodeTracker(api, cache)

    with pytest.raises(WatchtrailAPIError):
        await tracker.mark_episode(show["id"], 1, 1, EpisodeStatus.WATCHED)

    assert cache.get(LIBRARY, show["id"]) == before
    assert tracker.ledger.pending == 0
    await api.aclose()


@pytest.mark.asyncio
async def test_queue_tracker_adds_and_removes_optimistically(client):
    api = _api(client)
    await api.register("queue-tracker@example.com", "supersecret123")
    cache = EntityCache()
    tracker = QueueTracker(api, cache)
    seen: list[list[str]] = []
    original_add = api.add_to_queue

    async def _spy(payload):
        seen.append([record["id"] for record in cache.all(QUEUE)])
        return await original_add(payload)

    api.add_to_queue = _spy
    first = await tracker.add({"content_id": "1", "content_type": "MOVIE", "title": "One", "tmdb_id": 1})
    assert seen[0][0].startswith("pending-")
    assert [record["id"] for record in cache.all(QUEUE)] == [first["id"]]

    second = await tracker.add({"content_id": "2", "content_type": "MOVIE", "title": "Two", "tmdb_id": 2})
    assert second["position"] == 2

    with pytest.raises(WatchtrailAPIError):
        await tracker.add({"content_id": "2", "content_type": "MOVIE", "title": "Two", "tmdb_id": 2})
    assert {record["id"] for record in cache.all(QUEUE)} == {first["id"], second["id"]}
    assert tracker.ledger.pending == 0

    await tracker.remove(first["id"])
    assert cache.get(QUEUE, first["id"]) is None
    assert cache.is_stale(QUEUE)
    assert [record["title"] for record in await api.get_queue()] == ["Two"]
    await api.aclose()


@pytest.mark.asyncio
async def test_queue_tracker_restores_entry_when_removal_fails(client):
    api = _api(client)
    await api.register("queue-restore@example.com", "supersecret123")
    cache = EntityCache()
    tracker = QueueTracker(api, cache)
    entry = await tracker.add({"content_id": "9", "content_type": "MOVIE", "title": "Nine", "tmdb_id": 9})

    async def _refuse(item_id):
        raise WatchtrailAPIError(503, "unavailable")

    api.remove_from_queue = _refuse
    with pytest.raises(WatchtrailAPIError):
        await tracker.remove(entry["id"])
    assert cache.get(QUEUE, entry["id"]) == entry
    await api.aclose()


@pytest.mark.asyncio
async def test_client_surfaces_api_errors(client):
    api = _api(client)
    await api.register("errors@example.com", "supersecret123")
    await api.add_to_queue({"content_id": "1", "content_type": "MOVIE", "title": "One", "tmdb_id": 1})

    with pytest.raises(WatchtrailAPIError) as excinfo:
        await api.add_to_queue({"content_id": "1", "content_type": "MOVIE", "title": "One", "tmdb_id": 1})
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail == "Already in queue"
    await api.aclose()
