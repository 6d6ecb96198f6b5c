from __future__ import annotations

import uuid

import pytest

from watchtrail.tests.utils import create_show, register_and_login


def _episodes(season: int, episodes: range, status: str) -> list[dict]:
    return [{"season_number": season, "episode_number": number, "status": status} for number in episodes]


@pytest.mark.asyncio
async def test_episode_progress_end_to_end(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=20)
    base = f"/api/library/items/{show['id']}"

    res = await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(1, 11), "WATCHED")})
    assert res.status_code == 200
    assert res.json()["progress"] == 50

    res = await auth.put(f"{base}/episodes/1/11", json={"status": "WATCHED"})
    assert res.status_code == 200
    body = res.json()
    assert body["progress"] == 55
    assert (body["current_season"], body["current_episode"]) == (1, 11)

    res = await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(12, 21), "SKIPPED")})
    body = res.json()
    assert body["progress"] == 100
    assert (body["current_season"], body["current_episode"]) == (1, 20)
    # Finishing every episode does not complete the show on its own.
    assert body["status"] == "PLANNED"
    assert len(body["episodes"]) == 20


@pytest.mark.asyncio
async def test_single_episode_upsert_is_idempotent(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=10)
    url = f"/api/library/items/{show['id']}/episodes/1/3"

    first = (await auth.put(url, json={"status": "WATCHED"})).json()
    second = (await auth.put(url, json={"status": "WATCHED"})).json()

    assert first["progress"] == second["progress"] == 10
    assert len(second["episodes"]) == 1


@pytest.mark.asyncio
async def test_bulk_update_carries_untouched_episodes_forward(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=10)
    base = f"/api/library/items/{show['id']}"

    await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(1, 4), "WATCHED")})
    res = await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(4, 6), "SKIPPED")})

    keys = {(e["season_number"], e["episode_number"]): e["status"] for e in res.json()["episodes"]}
    assert keys == {(1, 1): "WATCHED", (1, 2): "WATCHED", (1, 3): "WATCHED", (1, 4): "SKIPPED", (1, 5): "SKIPPED"}
    assert res.json()["progress"] == 50


@pytest.mark.asyncio
async def test_progress_never_decreases_as_marks_accumulate(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=12)
    previous = 0
    for episode in range(1, 13):
        status = "SKIPPED" if episode % 4 == 0 else "WATCHED"
        res = await auth.put(f"/api/library/items/{show['id']}/episodes/1/{episode}", json={"status": status})
        assert res.json()["progress"] >= previous
        previous = res.json()["progress"]
    assert previous == 100


@pytest.mark.asyncio
async def test_unmarking_an_episode_returns_progress_to_zero(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=20)
    url = f"/api/library/items/{show['id']}/episodes/1/5"

    assert (await auth.put(url, json={"status": "WATCHED"})).json()["progress"] == 5
    body = (await auth.put(url, json={"status": "UNWATCHED"})).json()
    assert body["progress"] == 0
    assert (body["current_season"], body["current_episode"]) == (1, 5)
    assert body["episodes"][0]["watched_at"] is None


@pytest.mark.asyncio
async def test_season_marked_unwatched_then_rewatched_only_grows(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=20)
    base = f"/api/library/items/{show['id']}"

    res = await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(1, 11), "UNWATCHED")})
    assert res.json()["progress"] == 0
    assert (res.json()["current_season"], res.json()["current_episode"]) == (1, 10)

    res = await auth.put(f"{base}/episodes/1/1", json={"status": "WATCHED"})
    assert res.json()["progress"] == 5


@pytest.mark.asyncio
async def test_patch_replaces_episode_set_and_applies_status_side_effects(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=4)
    base = f"/api/library/items/{show['id']}"
    await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(1, 3), "WATCHED")})

    res = await auth.patch(
        base,
        json={"status": "WATCHING", "rating": 8, "watched_episodes": _episodes(1, range(3, 5), "WATCHED")},
    )
    assert res.status_code == 200
    body = res.json()
    assert {(e["season_number"], e["episode_number"]) for e in body["episodes"]} == {(1, 3), (1, 4)}
    assert body["progress"] == 50
    assert body["rating"] == 8
    assert body["status"] == "WATCHING"
    assert body["start_date"] is not None


@pytest.mark.asyncio
async def test_unknown_total_reports_zero_progress_and_missing_metadata(client):
    auth = await register_and_login(client)
    show = await create_show(auth, total_episodes=None)
    assert show["metadata_missing"] is True

    res = await auth.put(f"/api/library/items/{show['id']}/episodes/1/1", json={"status": "WATCHED"})
    assert res.json()["progress"] == 0


@pytest.mark.asyncio
async def test_create_enriches_totals_from_catalog(client, catalog):
    catalog.add_show(777, {1: 10, 2: 6}, poster="https://image.example/p.jpg")
    auth = await register_and_login(client)

    show = await create_show(auth, tmdb_id=777, total_episodes=None)

    assert show["total_episodes"] == 16
    assert show["total_seasons"] == 2
    assert show["season_episode_counts"] == {"1": 10, "2": 6}
    assert show["metadata_missing"] is False


@pytest.mark.asyncio
async def test_duplicate_title_conflicts(client):
    auth = await register_and_login(client)
    await create_show(auth, tmdb_id=42)
    res = await auth.post("/api/library/items", json={"tmdb_id": 42, "media_type": "TV", "title": "Again"})
    assert res.status_code == 409


@pytest.mark.asyncio
async def test_validation_bounds(client):
    auth = await register_and_login(client)
    show = await create_show(auth)
    assert (await auth.patch(f"/api/library/items/{show['id']}", json={"rating": 11})).status_code == 422
    assert (
        await auth.put(f"/api/library/items/{show['id']}/episodes/1/0", json={"status": "WATCHED"})
    ).status_code == 422


@pytest.mark.asyncio
async def test_episode_updates_rejected_for_movies(client):
    auth = await register_and_login(client)
    res = await auth.post("/api/library/items", json={"tmdb_id": 9, "media_type": "MOVIE", "title": "Film", "total_runtime": 100})
    movie = res.json()
    res = await auth.put(f"/api/library/items/{movie['id']}/episodes/1/1", json={"status": "WATCHED"})
    assert res.status_code == 400
    res = await auth.patch(f"/api/library/items/{movie['id']}", json={"rating": 6, "watched_episodes": _episodes(1, range(1, 3), "WATCHED")})
    assert res.status_code == 400
    detail = (await auth.get(f"/api/library/items/{movie['id']}")).json()
    assert detail["episodes"] == []
    assert detail["rating"] is None


@pytest.mark.asyncio
async def test_other_users_items_are_forbidden(client):
    owner = await register_and_login(client, prefix="owner")
    intruder = await register_and_login(client, prefix="intruder")
    show = await create_show(owner)

    assert (await intruder.get(f"/api/library/items/{show['id']}")).status_code == 403
    assert (await intruder.get(f"/api/library/items/{uuid.uuid4()}")).status_code == 404


@pytest.mark.asyncio
async def test_listing_filters_and_pages(client):
    auth = await register_and_login(client)
    for tmdb_id in range(1, 4):
        await create_show(auth, tmdb_id=tmdb_id)
    await auth.post("/api/library/items", json={"tmdb_id": 50, "media_type": "MOVIE", "title": "Film", "status": "COMPLETED"})

    res = await auth.get("/api/library/items", params={"media_type": "TV", "limit": 2})
    page = res.json()
    assert len(page["items"]) == 2
    assert page["next_cursor"]

    rest = (await auth.get("/api/library/items", params={"media_type": "TV", "limit": 2, "cursor": page["next_cursor"]})).json()
    assert len(rest["items"]) == 1
    assert rest["next_cursor"] is None
    ids = {item["id"] for item in page["items"]} | {item["id"] for item in rest["items"]}
    assert len(ids) == 3

    completed = (await auth.get("/api/library/items", params={"status": "COMPLETED"})).json()
    assert [item["media_type"] for item in completed["items"]] == ["MOVIE"]

    assert (await auth.get("/api/library/items", params={"cursor": "not-a-cursor"})).status_code == 400


@pytest.mark.asyncio
async def test_search_matches_titles_case_insensitively(client):
    auth = await register_and_login(client)
    other = await register_and_login(client, prefix="other")
    await create_show(auth, tmdb_id=1)
    await create_show(auth, tmdb_id=2)
    await create_show(other, tmdb_id=3)
    await auth.post("/api/library/items", json={"tmdb_id": 50, "media_type": "MOVIE", "title": "Show Me Love"})

    body = (await auth.get("/api/library/items/search", params={"q": "sHoW"})).json()
    assert body["count"] == 3
    assert body["query"] == "sHoW"
    assert {item["title"] for item in body["items"]} == {"Show 1", "Show 2", "Show Me Love"}

    movies = (await auth.get("/api/library/items/search", params={"q": "show", "media_type": "MOVIE"})).json()
    assert [item["title"] for item in movies["items"]] == ["Show Me Love"]
    limited = (await auth.get("/api/library/items/search", params={"q": "show", "limit": 1})).json()
    assert limited["count"] == 1

    assert (await auth.get("/api/library/items/search", params={"q": "%"})).json()["count"] == 0
    assert (await auth.get("/api/library/items/search", params={"q": ""})).status_code == 422


@pytest.mark.asyncio
async def test_bulk_library_operations(client):
    auth = await register_and_login(client)
    first = await create_show(auth, tmdb_id=1)
    second = await create_show(auth, tmdb_id=2)
    ids = [first["id"], second["id"]]

    res = await auth.post("/api/library/items/bulk/status", json={"ids": ids + [first["id"]], "status": "COMPLETED"})
    assert res.json() == {"updated_count": 2}
    detail = (await auth.get(f"/api/library/items/{first['id']}")).json()
    assert detail["status"] == "COMPLETED"
    assert detail["finish_date"] is not None
    assert detail["progress"] == 100

    res = await auth.post("/api/library/items/bulk/rating", json={"ids": ids, "rating": 7})
    assert res.json() == {"updated_count": 2}
    assert (await auth.get(f"/api/library/items/{second['id']}")).json()["rating"] == 7

    res = await auth.post("/api/library/items/bulk/dates", json={"ids": ids, "start_date": "2026-01-02T00:00:00Z"})
    assert res.json() == {"updated_count": 2}

    res = await auth.post("/api/library/items/bulk/delete", json={"ids": ids})
    assert res.json() == {"deleted_count": 2}
    assert (await auth.get("/api/library/items")).json()["items"] == []


@pytest.mark.asyncio
async def test_bulk_operations_check_every_id_first(client):
    owner = await register_and_login(client, prefix="owner")
    other = await register_and_login(client, prefix="other")
    mine = await create_show(owner, tmdb_id=1)
    theirs = await create_show(other, tmdb_id=2)

    res = await owner.post("/api/library/items/bulk/rating", json={"ids": [mine["id"], theirs["id"]], "rating": 3})
    assert res.status_code == 403
    res = await owner.post("/api/library/items/bulk/rating", json={"ids": [mine["id"], str(uuid.uuid4())], "rating": 3})
    assert res.status_code == 404
    assert (await owner.get(f"/api/library/items/{mine['id']}")).json()["rating"] is None


@pytest.mark.asyncio
async def test_delete_removes_episodes_and_notes(client):
    auth = await register_and_login(client)
    show = await create_show(auth)
    base = f"/api/library/items/{show['id']}"
    await auth.put(f"{base}/episodes/1/1", json={"status": "WATCHED"})
    await auth.post("/api/notes", json={"watched_item_id": show["id"], "content": "Great pilot"})

    assert (await auth.delete(base)).status_code == 204
    assert (await auth.get(base)).status_code == 404
    assert (await auth.get("/api/stats/navigation-counts")).json() == {"queue": 0, "library": 0, "notes": 0}


@pytest.mark.asyncio
async def test_progress_summary(client, catalog):
    catalog.add_show(88, {1: 3, 2: 2})
    auth = await register_and_login(client)
    show = await create_show(auth, tmdb_id=88, total_episodes=None)
    base = f"/api/library/items/{show['id']}"
    await auth.post(f"{base}/episodes/bulk", json={"episodes": _episodes(1, range(1, 4), "WATCHED")})

    summary = (await auth.get(f"{base}/progress")).json()
    assert summary["watched"] == 3
    assert summary["remaining"] == 2
    assert summary["percentage"] == 60
    assert summary["next_episode"] == {"season_number": 2, "episode_number": 1}
    assert [season["percentage"] for season in summary["seasons"]] == [100, 0]


@pytest.mark.asyncio
async def test_refresh_details_updates_totals_and_progress(client, catalog):
    auth = await register_and_login(client)
    show = await create_show(auth, tmdb_id=31, total_episodes=None)
    base = f"/api/library/items/{show['id']}"
    await auth.put(f"{base}/episodes/1/1", json={"status": "WATCHED"})

    assert (await auth.post(f"{base}/refresh-details")).status_code == 502

    catalog.add_show(31, {1: 4})
    res = await auth.post(f"{base}/refresh-details")
    assert res.status_code == 200
    assert res.json()["total_episodes"] == 4
    assert res.json()["progress"] == 25


@pytest.mark.asyncio
async def test_refresh_all_details_reports_failures(client, catalog):
    auth = await register_and_login(client)
    await create_show(auth, tmdb_id=1, total_episodes=None)
    await create_show(auth, tmdb_id=2, total_episodes=None)
    catalog.add_show(1, {1: 5})

    res = await auth.post("/api/library/items/refresh-details", params={"only_missing": True})
    assert res.status_code == 200
    body = res.json()
    assert body["updated"] == 1
    assert body["failed"] == 1
    assert body["errors"][0]["title"] == "Show 2"
