"""Shared pytest fixtures: isolated database, ASGI client and a stub catalog."""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./watchtrail-test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from passlib.context import CryptContext
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from watchtrail.api.deps import get_db
from watchtrail.catalog import tmdb
from watchtrail.catalog.http import ExternalAPIError
from watchtrail.catalog.observability import catalog_monitor
from watchtrail.catalog.tmdb import EpisodeInfo, MovieDetails, SeasonDetails, ShowDetails
from watchtrail.core import security
from watchtrail.core.config import settings
from watchtrail.db.base import Base
from watchtrail.main import app


@pytest.fixture(autouse=True)
def _use_plaintext_passwords(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(security, "pwd_context", CryptContext(schemes=["plaintext"]))


@dataclass
class FakeCatalog:
    """In-memory stand-in for TMDB; unknown ids fail like a 404."""

    shows: dict[int, ShowDetails] = field(default_factory=dict)
    seasons: dict[tuple[int, int], SeasonDetails] = field(default_factory=dict)
    movies: dict[int, MovieDetails] = field(default_factory=dict)
    calls: list[tuple] = field(default_factory=list)
    broken: bool = False

    def _lookup(self, table: dict, key, *call):
        self.calls.append(call)
        if self.broken:
            raise ExternalAPIError("catalog unavailable", status_code=503)
        if key not in table:
            raise ExternalAPIError(f"{call[0]} {key} not found", status_code=404)
        return table[key]

    def add_show(self, tmdb_id: int, season_counts: dict[int, int], *, title: str = "Show", poster: str | None = None):
        self.shows[tmdb_id] = ShowDetails(
            tmdb_id=tmdb_id,
            title=title,
            poster=poster,
            number_of_seasons=len(season_counts),
            number_of_episodes=sum(season_counts.values()),
            season_episode_counts=dict(season_counts),
        )
        return self.shows[tmdb_id]

    async def get_show_details(self, tmdb_id: int) -> ShowDetails:
        return self._lookup(self.shows, tmdb_id, "show", tmdb_id)

    async def get_season_details(self, tmdb_id: int, season_number: int) -> SeasonDetails:
        return self._lookup(self.seasons, (tmdb_id, season_number), "season", tmdb_id, season_number)

    async def get_episode_details(self, tmdb_id: int, season_number: int, episode_number: int) -> EpisodeInfo:
        season = self._lookup(self.seasons, (tmdb_id, season_number), "episode", tmdb_id, season_number, episode_number)
        for episode in season.episodes:
            if episode.episode_number == episode_number:
                return episode
        raise ExternalAPIError("episode not found", status_code=404)

    async def get_movie_details(self, tmdb_id: int) -> MovieDetails:
        return self._lookup(self.movies, tmdb_id, "movie", tmdb_id)


@pytest.fixture(autouse=True)
def catalog(monkeypatch: pytest.MonkeyPatch) -> FakeCatalog:
    fake = FakeCatalog()
    monkeypatch.setattr(tmdb, "get_catalog", lambda: fake)
    yield fake
    catalog_monitor.reset()


@pytest_asyncio.fixture()
async def session(tmp_path) -> AsyncSession:
    database_url = settings.test_database_url or settings.database_url
    url = make_url(database_url)
    schema_name: str | None = None
    if url.drivername.startswith("sqlite"):
        # One throwaway database file per test.
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'watchtrail.db'}"
    engine = create_async_engine(database_url, future=True)
    if url.drivername.startswith("postgresql"):
        schema_name = f"test_{uuid.uuid4().hex}"
        engine = engine.execution_options(schema_translate_map={None: schema_name})
    async with engine.begin() as conn:
        if schema_name:
            await conn.exec_driver_sql(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"')
        await conn.run_sync(Base.metadata.create_all)
    TestingSession = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    try:
        async with TestingSession() as session:
            yield session
    finally:
        async with engine.begin() as conn:
            if schema_name:
                await conn.exec_driver_sql(f'DROP SCHEMA IF EXISTS "{schema_name}" CASCADE')
            else:
                await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture()
async def client(session: AsyncSession) -> AsyncClient:
    async def _get_test_db():
        yield session

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as async_client:
        yield async_client
    app.dependency_overrides.pop(get_db, None)
