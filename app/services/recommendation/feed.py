import asyncio
import random

from cachetools import TTLCache
from loguru import logger

from app.core.config import settings
from app.core.constants import (
    CANDIDATE_POOL_FACTOR,
    COMPLETED_PROGRESS,
    HOME_GENRES,
    SHUFFLE_POOL_FACTOR,
    STARTED_PROGRESS,
)
from app.models.affinity import UserGenreAffinity
from app.models.content import Series
from app.models.feed import ContinueWatchingItem, HomeCarousels, ScoredEpisode, ScoredSeries
from app.services.preferences import PreferenceService
from app.services.recommendation.diversity import nearby_shuffle
from app.services.scoring import ScoringEngine


class FeedService:
    """
    Builds the episode feeds and home carousels.
    """

    def __init__(
        self,
        store,
        preferences: PreferenceService,
        rng: random.Random | None = None,
        carousel_size: int = settings.HOME_CAROUSEL_SIZE,
        cache_ttl: int = settings.HOME_CAROUSEL_CACHE_TTL_SECONDS,
    ) -> None:
        self.store = store
        self.preferences = preferences
        self.rng = rng or random.Random()
        self.carousel_size = carousel_size
        # Anonymous home carousels are identical for everybody
        self._anonymous_cache: TTLCache = TTLCache(maxsize=1, ttl=max(cache_ttl, 1))
        self._cache_enabled = cache_ttl > 0

    def invalidate_cache(self) -> None:
        self._anonymous_cache.clear()

    async def rank_candidates(self, user_id: int, limit: int) -> list[ScoredEpisode]:
        """Score candidate episodes for a user, best first, before any shuffling."""
        affinity = await self.preferences.get_user_affinity(user_id)
        watched = await self.store.completed_episode_ids(user_id)
        candidates = await self.store.fetch_candidate_episodes(watched, limit * CANDIDATE_POOL_FACTOR)

        scored = [
            ScoredEpisode(
                episode=c.episode,
                series=c.series,
                score=ScoringEngine.calculate_episode_score(c.episode, c.series, affinity),
            )
            for c in candidates
        ]
        # sort() is stable: equal scores keep candidate order
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored

    async def get_personalized_feed(self, user_id: int, limit: int = 20, offset: int = 0) -> list[ScoredEpisode]:
        """
        "For you" feed.

        Candidates the user has not finished are scored, sorted and then
        lightly shuffled (max 3 slots) inside the top `limit * 2` for variety.
        """
        if limit <= 0:
            return []
        offset = max(offset, 0)

        ranked = await self.rank_candidates(user_id, limit)
        top = ranked[: min(limit * SHUFFLE_POOL_FACTOR, len(ranked))]
        top = nearby_shuffle(top, self.rng)

        logger.debug(f"Personalized feed for user {user_id}: {len(ranked)} candidates, returning offset {offset}")
        return top[offset : offset + limit]

    async def get_trending_feed(self, limit: int = 20, offset: int = 0) -> list[ScoredEpisode]:
        episodes = await self.store.list_published_episodes()
        episodes.sort(
            key=lambda e: (e.series.trending_score, e.episode.views, e.episode.likes_count),
            reverse=True,
        )
        return [
            ScoredEpisode(episode=e.episode, series=e.series, score=e.series.trending_score)
            for e in episodes[offset : offset + limit]
        ]

    async def get_new_releases(self, limit: int = 20, offset: int = 0) -> list[ScoredEpisode]:
        episodes = await self.store.list_published_episodes()
        episodes.sort(key=lambda e: e.episode.created_at, reverse=True)
        return [ScoredEpisode(episode=e.episode, series=e.series) for e in episodes[offset : offset + limit]]

    async def get_by_genre(self, genre: str, limit: int = 20, offset: int = 0) -> list[ScoredEpisode]:
        needle = UserGenreAffinity.normalize_genre(genre)
        episodes = [e for e in await self.store.list_published_episodes() if needle in e.series.genre.lower()]
        episodes.sort(key=lambda e: (e.episode.views, e.episode.likes_count), reverse=True)
        return [ScoredEpisode(episode=e.episode, series=e.series) for e in episodes[offset : offset + limit]]

    async def get_recommended_series(self, user_id: int, limit: int = 10) -> list[ScoredSeries]:
        affinity = await self.preferences.get_user_affinity(user_id)
        series = (await self.store.list_series(published_only=True))[: limit * 2]
        scored = [ScoredSeries(series=s, score=ScoringEngine.calculate_series_score(s, affinity)) for s in series]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]

    async def get_continue_watching(self, user_id: int, limit: int = 10) -> list[ContinueWatchingItem]:
        history = [
            h for h in await self.store.get_watch_history(user_id) if STARTED_PROGRESS < h.progress < COMPLETED_PROGRESS
        ]
        items = []
        for progress in history:
            found = await self.store.get_episode_with_series(progress.episode_id)
            if found is None:
                continue
            items.append(ContinueWatchingItem(progress=progress, episode=found.episode, series=found.series))
            if len(items) >= limit:
                break
        return items

    def _by_genre(self, series: list[Series]) -> dict[str, list[Series]]:
        carousels = {}
        for genre in HOME_GENRES:
            matching = [s for s in series if genre in s.genre.lower()]
            matching.sort(key=lambda s: s.trending_score, reverse=True)
            carousels[genre] = matching[: self.carousel_size]
        return carousels

    async def get_home_carousels(self, user_id: int | None = None) -> HomeCarousels:
        """
        Home screen rows: trending, new releases, recommended and one per genre.

        Recommended is personalised for identified users and falls back to the
        highest hype score otherwise.
        """
        if user_id is None and self._cache_enabled and "home" in self._anonymous_cache:
            return self._anonymous_cache["home"]

        series = await self.store.list_series(published_only=True)
        size = self.carousel_size

        trending = sorted(series, key=lambda s: s.trending_score, reverse=True)[:size]
        new_releases = sorted(series, key=lambda s: s.created_at, reverse=True)[:size]

        if user_id is not None:
            recommended_task = self.get_recommended_series(user_id, size)
            continue_task = self.get_continue_watching(user_id, size)
            recommended_scored, continue_watching = await asyncio.gather(recommended_task, continue_task)
            recommended = [s.series for s in recommended_scored]
        else:
            recommended = sorted(series, key=lambda s: s.hype_score, reverse=True)[:size]
            continue_watching = []

        carousels = HomeCarousels(
            trending=trending,
            new_releases=new_releases,
            recommended=recommended,
            by_genre=self._by_genre(series),
            continue_watching=continue_watching,
        )
        if user_id is None and self._cache_enabled:
            self._anonymous_cache["home"] = carousels
        return carousels
