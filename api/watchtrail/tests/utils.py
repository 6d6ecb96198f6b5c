"""Shared helpers for API tests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from httpx import AsyncClient


@dataclass(slots=True)
class AuthContext:
    """Registered user plus the bearer header for its requests."""

    client: AsyncClient
    user: dict[str, Any]
    token: str

    @property
    def user_id(self) -> str:
        return str(self.user["id"])

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def get(self, url: str, **kwargs: Any):
        return await self.client.get(url, headers=self.headers, **kwargs)

    async def post(self, url: str, **kwargs: Any):
        return await self.client.post(url, headers=self.headers, **kwargs)

    async def put(self, url: str, **kwargs: Any):
        return await self.client.put(url, headers=self.headers, **kwargs)

    async def patch(self, url: str, **kwargs: Any):
        return await self.client.patch(url, headers=self.headers, **kwargs)

    async def delete(self, url: str, **kwargs: Any):
        return await self.client.delete(url, headers=self.headers, **kwargs)


async def register_and_login(client: AsyncClient, *, prefix: str = "user") -> AuthContext:
    """Register a new user and log in, returning its auth context."""
    suffix = uuid.uuid4().hex[:8]
    email = f"{prefix}_{suffix}@example.com"
    password = "supersecret123"
    creds = {"email": email, "password": password, "display_name": f"{prefix.title()} {suffix}"}

    register_res = await client.post("/api/auth/register", json=creds)
    assert register_res.status_code == 200
    user = register_res.json()["user"]

    login_res = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert login_res.status_code == 200

    return AuthContext(client=client, user=user, token=login_res.json()["access_token"])


async def create_show(auth: AuthContext, *, tmdb_id: int = 1399, total_episodes: int | None = 20, **extra: Any) -> dict:
    payload = {"tmdb_id": tmdb_id, "media_type": "TV", "title": f"Show {tmdb_id}", "total_episodes": total_episodes}
    payload.update(extra)
    res = await auth.post("/api/library/items", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


async def queue_entry(auth: AuthContext, content_id: str, **extra: Any) -> dict:
    payload = {"content_id": content_id, "content_type": "MOVIE", "title": f"Movie {content_id}", "tmdb_id": 500}
    payload.update(extra)
    res = await auth.post("/api/queue", json=payload)
    assert res.status_code == 201, res.text
    return res.json()
