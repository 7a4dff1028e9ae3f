import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.core.constants import COMPLETED_PROGRESS
from app.models.affinity import UserGenreAffinity
from app.models.content import Episode, EpisodeWithSeries, Series, SeriesWithEpisodeMetrics, WatchProgress
from app.services.ai.errors import ProviderError
from app.services.interactions import InteractionService
from app.services.preferences import PreferenceService
from app.services.recommendation.feed import FeedService
from app.services.streaming import StreamConnectionRegistry

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


class FakeContentStore:
    """In-memory stand-in for ContentStore with the same async surface."""

    def __init__(self):
        self.series: dict[int, Series] = {}
        self.episodes: dict[int, Episode] = {}
        self.likes: dict[int, set[int]] = {}
        self.history: dict[int, dict[int, WatchProgress]] = {}
        self.affinity_blobs: dict[int, str] = {}
        self.trending_writes: list[tuple[int, float]] = []

    def add_series(self, series: Series) -> Series:
        self.series[series.id] = series
        return series

    def add_episode(self, episode: Episode) -> Episode:
        self.episodes[episode.id] = episode
        return episode

    async def get_series(self, series_id: int) -> Series | None:
        return self.series.get(series_id)

    async def list_series(self, published_only: bool = True) -> list[Series]:
        rows = sorted(self.series.values(), key=lambda s: s.id)
        return [s for s in rows if s.is_published or not published_only]

    async def set_trending_score(self, series_id: int, score: float) -> None:
        self.trending_writes.append((series_id, score))
        self.series[series_id] = self.series[series_id].model_copy(update={"trending_score": score})

    async def get_episode(self, episode_id: int) -> Episode | None:
        return self.episodes.get(episode_id)

    async def get_episode_with_series(self, episode_id: int) -> EpisodeWithSeries | None:
        episode = self.episodes.get(episode_id)
        if episode is None or episode.series_id not in self.series:
            return None
        return EpisodeWithSeries(episode=episode, series=self.series[episode.series_id])

    async def list_series_episodes(self, series_id: int) -> list[Episode]:
        rows = [e for e in self.episodes.values() if e.series_id == series_id]
        return sorted(rows, key=lambda e: e.episode_number)

    async def list_published_episodes(self) -> list[EpisodeWithSeries]:
        result = []
        for series in await self.list_series(published_only=True):
            for episode in await self.list_series_episodes(series.id):
                result.append(EpisodeWithSeries(episode=episode, series=series))
        return result

    async def fetch_candidate_episodes(self, exclude_ids: set[int], limit: int) -> list[EpisodeWithSeries]:
        candidates = [c for c in await self.list_published_episodes() if c.episode.id not in exclude_ids]
        return candidates[:limit]

    async def fetch_published_series_with_episode_metrics(self) -> list[SeriesWithEpisodeMetrics]:
        return [
            SeriesWithEpisodeMetrics(series=s, episodes=await self.list_series_episodes(s.id))
            for s in await self.list_series(published_only=True)
        ]

    async def increment_metric(self, episode_id: int, field: str, amount: int = 1) -> int:
        episode = self.episodes[episode_id]
        value = getattr(episode, field) + amount
        self.episodes[episode_id] = episode.model_copy(update={field: value})
        return value

    async def update_completion_rate(self, episode_id: int, progress: float) -> float:
        episode = self.episodes[episode_id]
        views = episode.views
        new_rate = (episode.completion_rate * views + progress) / (views + 1) if views > 0 else progress
        self.episodes[episode_id] = episode.model_copy(update={"completion_rate": new_rate})
        return new_rate

    async def toggle_like(self, episode_id: int, user_id: int) -> bool:
        likers = self.likes.setdefault(episode_id, set())
        if user_id in likers:
            likers.remove(user_id)
            await self.increment_metric(episode_id, "likes_count", -1)
            return False
        likers.add(user_id)
        await self.increment_metric(episode_id, "likes_count", 1)
        return True

    async def get_watch_history(self, user_id: int) -> list[WatchProgress]:
        rows = self.history.get(user_id, {}).values()
        return sorted(rows, key=lambda h: h.last_watched_at, reverse=True)

    async def completed_episode_ids(self, user_id: int) -> set[int]:
        return {h.episode_id for h in await self.get_watch_history(user_id) if h.progress >= COMPLETED_PROGRESS}

    async def upsert_watch_progress(
        self, user_id: int, episode_id: int, progress: float, watch_time: int | None = None
    ) -> WatchProgress:
        existing = self.history.get(user_id, {}).get(episode_id)
        entry = WatchProgress(
            user_id=user_id,
            episode_id=episode_id,
            progress=progress,
            watch_time=(existing.watch_time if existing else 0) + (watch_time or 0),
            completed_at=NOW if progress >= COMPLETED_PROGRESS else (existing.completed_at if existing else None),
        )
        self.history.setdefault(user_id, {})[episode_id] = entry
        return entry

    async def fetch_user_affinity(self, user_id: int) -> UserGenreAffinity:
        return UserGenreAffinity.from_blob(self.affinity_blobs.get(user_id))

    async def persist_user_affinity(self, user_id: int, affinity: UserGenreAffinity) -> None:
        self.affinity_blobs[user_id] = affinity.to_blob()


class FakeProvider:
    """Scripted generation provider."""

    def __init__(self, chunks: list[str] | None = None, error: Exception | None = None, hang: bool = False):
        self.chunks = chunks if chunks is not None else ["Olá", ", ", "mundo"]
        self.error = error
        self.hang = hang
        self.calls: list[tuple[list[dict], Any]] = []
        self.closed = False

    async def generate(self, messages, options) -> str:
        self.calls.append((messages, options))
        if self.error:
            raise self.error
        return "".join(self.chunks)

    async def stream_generation(self, messages, options):
        self.calls.append((messages, options))
        for chunk in self.chunks:
            yield chunk
        if self.error:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def catalog(store: FakeContentStore) -> FakeContentStore:
    """Three published series (drama, acao, comedia) plus a draft, two episodes each."""
    store.add_series(
        Series(id=1, title="Amor Proibido", genre="Drama", trending_score=80, hype_score=40, created_at=NOW)
    )
    store.add_series(
        Series(
            id=2,
            title="Fuga Final",
            genre="Acao",
            trending_score=20,
            hype_score=90,
            created_at=NOW - timedelta(days=10),
        )
    )
    store.add_series(
        Series(
            id=3,
            title="Risos",
            genre="Comedia, Romance",
            trending_score=50,
            hype_score=10,
            created_at=NOW - timedelta(days=60),
        )
    )
    store.add_series(Series(id=4, title="Rascunho", genre="Drama", status="DRAFT", created_at=NOW))

    episode_id = 100
    for series_id in (1, 2, 3, 4):
        for number in (1, 2):
            episode_id += 1
            store.add_episode(
                Episode(
                    id=episode_id,
                    series_id=series_id,
                    episode_number=number,
                    title=f"Ep {number}",
                    views=10 * episode_id % 97,
                    likes_count=episode_id % 7,
                    completion_rate=(episode_id % 10) / 10,
                    created_at=NOW - timedelta(hours=episode_id),
                )
            )
    return store


@pytest.fixture
def preferences(store) -> PreferenceService:
    return PreferenceService(store)


@pytest.fixture
def feed(store, preferences) -> FeedService:
    return FeedService(store, preferences, rng=random.Random(42), carousel_size=10, cache_ttl=60)


@pytest.fixture
def interactions(store, preferences) -> InteractionService:
    return InteractionService(store, preferences)


@pytest.fixture
def registry() -> StreamConnectionRegistry:
    return StreamConnectionRegistry()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def failing_provider() -> FakeProvider:
    return FakeProvider(chunks=["parcial"], error=ProviderError("Upstream returned HTTP 500", status_code=500))


@pytest.fixture
def test_client(catalog, feed, interactions, registry, provider):
    # Import here so settings are loaded with the test environment
    from app.api import deps
    from app.core.app import app
    from app.services.ai.generation import GenerationService

    generation = GenerationService(provider, registry, min_chars=1, max_delay=0)

    app.dependency_overrides[deps.get_feed_service] = lambda: feed
    app.dependency_overrides[deps.get_interaction_service] = lambda: interactions
    app.dependency_overrides[deps.get_stream_registry] = lambda: registry
    app.dependency_overrides[deps.get_generation_service] = lambda: generation
    app.dependency_overrides[deps.get_redis] = lambda: None

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
