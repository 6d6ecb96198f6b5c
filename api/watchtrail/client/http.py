"""Async httpx client for the Watchtrail REST API."""

from __future__ import annotations

from typing import Any

import httpx

Record = dict[str, Any]


class WatchtrailAPIError(Exception):
    """Non-2xx response from the API; ``detail`` carries the server's message."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class WatchtrailClient:
    """Thin wrapper over ``httpx.AsyncClient`` that speaks the ``/api`` routes.

    Pass ``transport`` to run against an in-process app (``httpx.ASGITransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/") + "/api", timeout=timeout, transport=transport)
        if token:
            self.set_token(token)

    async def __aenter__(self) -> "WatchtrailClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def set_token(self, token: str) -> None:
        self._http.headers["Authorization"] = f"Bearer {token}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._http.request(method, path, **kwargs)
        if response.is_error:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise WatchtrailAPIError(response.status_code, detail)
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        return response.json()

    # auth
    async def register(self, email: str, password: str, display_name: str | None = None) -> Record:
        data = await self._request(
            "POST", "/auth/register", json={"email": email, "password": password, "display_name": display_name}
        )
        self.set_token(data["access_token"])
        return data

    async def login(self, email: str, password: str) -> Record:
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.set_token(data["access_token"])
        return data

    async def me(self) -> Record:
        return await self._request("GET", "/me")

    # library
    async def list_items(self, **filters: Any) -> Record:
        params = {key: value for key, value in filters.items() if value is not None}
        return await self._request("GET", "/library/items", params=params)

    async def search_items(self, text: str, **filters: Any) -> Record:
        params = {"q": text, **{key: value for key, value in filters.items() if value is not None}}
        return await self._request("GET", "/library/items/search", params=params)

    async def get_item(self, item_id: str) -> Record:
        return await self._request("GET", f"/library/items/{item_id}")

    async def create_item(self, payload: Record) -> Record:
        return await self._request("POST", "/library/items", json=payload)

    async def update_item(self, item_id: str, payload: Record) -> Record:
        return await self._request("PATCH", f"/library/items/{item_id}", json=payload)

    async def delete_item(self, item_id: str) -> None:
        await self._request("DELETE", f"/library/items/{item_id}")

    async def update_episode(self, item_id: str, season_number: int, episode_number: int, status: str) -> Record:
        return await self._request(
            "PUT", f"/library/items/{item_id}/episodes/{season_number}/{episode_number}", json={"status": status}
        )

    async def bulk_update_episodes(self, item_id: str, episodes: list[Record]) -> Record:
        return await self._request("POST", f"/library/items/{item_id}/episodes/bulk", json={"episodes": episodes})

    async def progress(self, item_id: str) -> Record:
        return await self._request("GET", f"/library/items/{item_id}/progress")

    # queue
    async def get_queue(self) -> list[Record]:
        return await self._request("GET", "/queue")

    async def get_history(self) -> list[Record]:
        return await self._request("GET", "/queue/history")

    async def add_to_queue(self, payload: Record) -> Record:
        return await self._request("POST", "/queue", json=payload)

    async def add_next_episode(self, payload: Record) -> Record:
        return await self._request("POST", "/queue/next-episode", json=payload)

    async def remove_from_queue(self, item_id: str) -> None:
        await self._request("DELETE", f"/queue/{item_id}")

    async def reorder(self, item_id: str, position: int) -> list[Record]:
        return await self._request("POST", f"/queue/{item_id}/reorder", json={"position": position})

    async def mark_watched(self, item_id: str) -> Record:
        return await self._request("POST", f"/queue/{item_id}/watched")

    async def bulk_queue(self, action: str, ids: list[str]) -> Record:
        """Run one of ``watched``, ``remove``, ``move-to-top`` or ``move-to-bottom``."""
        return await self._request("POST", f"/queue/bulk/{action}", json={"ids": [str(i) for i in ids]})

    async def clear_watched(self) -> Record:
        return await self._request("DELETE", "/queue/watched")

    async def clear_queue(self) -> Record:
        return await self._request("DELETE", "/queue")

    # notes, stats, releases
    async def list_notes(self, item_id: str) -> Record:
        return await self._request("GET", f"/library/items/{item_id}/notes")

    async def create_note(self, payload: Record) -> Record:
        return await self._request("POST", "/notes", json=payload)

    async def delete_note(self, note_id: str) -> None:
        await self._request("DELETE", f"/notes/{note_id}")

    async def navigation_counts(self) -> Record:
        return await self._request("GET", "/stats/navigation-counts")

    async def upcoming(self, days: int | None = None) -> Record:
        return await self._request("GET", "/releases/upcoming", params={"days": days} if days else None)
