"""TMDB v3 client for the show, season, episode and movie details the tracker needs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from watchtrail.catalog.http import ExternalAPIError, fetch_json
from watchtrail.catalog.observability import catalog_monitor
from watchtrail.core.config import settings
from watchtrail.utils.datetime import parse_date

IMAGE_BASE = "https://image.tmdb.org/t/p/w500"


@dataclass(slots=True)
class EpisodeInfo:
    season_number: int
    episode_number: int
    name: str | None = None
    air_date: date | None = None
    runtime: int | None = None


@dataclass(slots=True)
class SeasonDetails:
    season_number: int
    name: str | None = None
    episodes: list[EpisodeInfo] = field(default_factory=list)


@dataclass(slots=True)
class ShowDetails:
    tmdb_id: int
    title: str
    poster: str | None = None
    first_air_date: date | None = None
    number_of_seasons: int | None = None
    number_of_episodes: int | None = None
    episode_runtimes: list[int] = field(default_factory=list)
    # Regular seasons only; TMDB season 0 holds specials.
    season_episode_counts: dict[int, int] = field(default_factory=dict)


@dataclass(slots=True)
class MovieDetails:
    tmdb_id: int
    title: str
    poster: str | None = None
    release_date: date | None = None
    runtime: int | None = None


def _poster(path: str | None) -> str | None:
    return f"{IMAGE_BASE}{path}" if path else None


class TMDBCatalog:
    source_name = "tmdb"

    def __init__(self, api_key: str | None = None, auth_token: str | None = None, base_url: str | None = None) -> None:
        self.api_key = api_key or settings.tmdb_api_key
        self.auth_token = auth_token or settings.tmdb_api_auth_header
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")

    def _auth(self) -> tuple[dict[str, str], dict[str, str]]:
        headers: dict[str, str] = {"accept": "application/json"}
        params: dict[str, str] = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        elif self.api_key:
            params["api_key"] = self.api_key
        else:
            raise ExternalAPIError("TMDB API credentials missing; set TMDB_API_AUTH_HEADER or TMDB_API_KEY")
        return headers, params

    async def _get(self, operation: str, path: str, **context: Any) -> dict:
        headers, params = self._auth()
        return await catalog_monitor.track(
            self.source_name,
            operation,
            lambda: fetch_json(f"{self.base_url}{path}", headers=headers, params=params),
            context=context,
        )

    async def get_show_details(self, tmdb_id: int) -> ShowDetails:
        payload = await self._get("show_details", f"/tv/{tmdb_id}", tmdb_id=tmdb_id)
        seasons = {
            int(season["season_number"]): int(season.get("episode_count") or 0)
            for season in payload.get("seasons") or []
            if season.get("season_number")
        }
        return ShowDetails(
            tmdb_id=int(payload.get("id") or tmdb_id),
            title=payload.get("name") or payload.get("original_name") or "",
            poster=_poster(payload.get("poster_path")),
            first_air_date=parse_date(payload.get("first_air_date")),
            number_of_seasons=payload.get("number_of_seasons"),
            number_of_episodes=payload.get("number_of_episodes"),
            episode_runtimes=[int(value) for value in payload.get("episode_run_time") or [] if value],
            season_episode_counts=seasons,
        )

    async def get_season_details(self, tmdb_id: int, season_number: int) -> SeasonDetails:
        payload = await self._get(
            "season_details", f"/tv/{tmdb_id}/season/{season_number}", tmdb_id=tmdb_id, season=season_number
        )
        episodes = [
            EpisodeInfo(
                season_number=season_number,
                episode_number=int(episode["episode_number"]),
                name=episode.get("name"),
                air_date=parse_date(episode.get("air_date")),
                runtime=episode.get("runtime"),
            )
            for episode in payload.get("episodes") or []
            if episode.get("episode_number") is not None
        ]
        return SeasonDetails(season_number=season_number, name=payload.get("name"), episodes=episodes)

    async def get_episode_details(self, tmdb_id: int, season_number: int, episode_number: int) -> EpisodeInfo:
        payload = await self._get(
            "episode_details",
            f"/tv/{tmdb_id}/season/{season_number}/episode/{episode_number}",
            tmdb_id=tmdb_id,
            season=season_number,
            episode=episode_number,
        )
        return EpisodeInfo(
            season_number=season_number,
            episode_number=episode_number,
            name=payload.get("name"),
            air_date=parse_date(payload.get("air_date")),
            runtime=payload.get("runtime"),
        )

    async def get_movie_details(self, tmdb_id: int) -> MovieDetails:
        payload = await self._get("movie_details", f"/movie/{tmdb_id}", tmdb_id=tmdb_id)
        return MovieDetails(
            tmdb_id=int(payload.get("id") or tmdb_id),
            title=payload.get("title") or payload.get("original_title") or "",
            poster=_poster(payload.get("poster_path")),
            release_date=parse_date(payload.get("release_date")),
            runtime=payload.get("runtime"),
        )


_catalog: TMDBCatalog | None = None


def get_catalog() -> TMDBCatalog:
    """Shared catalog client; tests monkeypatch this to stub TMDB."""
    global _catalog
    if _catalog is None:
        _catalog = TMDBCatalog()
    return _catalog
