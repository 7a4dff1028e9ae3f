import json
from datetime import datetime, timezone

from loguru import logger
from pydantic import ValidationError

from app.core.config import settings
from app.core.constants import (
    AFFINITY_KEY,
    COMPLETED_PROGRESS,
    EPISODE_KEY,
    EPISODE_LIKES_KEY,
    EPISODE_METRICS_KEY,
    SERIES_EPISODES_KEY,
    SERIES_INDEX_KEY,
    SERIES_KEY,
    SERIES_TRENDING_KEY,
    WATCH_HISTORY_KEY,
)
from app.models.affinity import UserGenreAffinity
from app.models.content import Episode, EpisodeWithSeries, Series, SeriesWithEpisodeMetrics, WatchProgress
from app.services.redis_service import RedisService
from app.utils.locks import KeyedLock

METRIC_FIELDS = ("views", "likes_count", "comments_count", "shares_count")


class ContentStore:
    """
    Redis-backed storage for series, episodes, watch history and affinity vectors.

    Layout:
        series:{id}               JSON series row (without trending score)
        series:index              set of series ids
        series:trending           hash series id -> trending score
        series:{id}:episodes      set of episode ids
        episode:{id}              JSON episode row (without counters)
        episode:{id}:metrics      hash of counters + completion_rate
        episode:{id}:likes        set of user ids
        history:{user_id}         hash episode id -> JSON watch progress
        affinity:{user_id}        JSON genre -> weight
    """

    def __init__(self, redis: RedisService, prefix: str | None = None) -> None:
        self.redis = redis
        self.prefix = settings.REDIS_KEY_PREFIX if prefix is None else prefix
        self._locks = KeyedLock()

    def _key(self, template: str, **kwargs) -> str:
        return self.prefix + template.format(**kwargs)

    # Series

    async def save_series(self, series: Series) -> None:
        data = series.model_dump(mode="json", exclude={"trending_score"})
        await self.redis.set(self._key(SERIES_KEY, series_id=series.id), json.dumps(data))
        await self.redis.sadd(self._key(SERIES_INDEX_KEY), series.id)
        await self.set_trending_score(series.id, series.trending_score)

    async def get_series(self, series_id: int) -> Series | None:
        found = await self._load_series([series_id])
        return found.get(series_id)

    async def _load_series(self, series_ids: list[int]) -> dict[int, Series]:
        if not series_ids:
            return {}
        raws = await self.redis.mget([self._key(SERIES_KEY, series_id=sid) for sid in series_ids])
        trending = await self.redis.hgetall(self._key(SERIES_TRENDING_KEY))

        result: dict[int, Series] = {}
        for sid, raw in zip(series_ids, raws):
            if not raw:
                continue
            try:
                data = json.loads(raw)
                data["trending_score"] = float(trending.get(str(sid), 0.0))
                result[sid] = Series.model_validate(data)
            except (json.JSONDecodeError, ValidationError, ValueError) as e:
                logger.warning(f"Skipping unreadable series {sid}: {e}")
        return result

    async def list_series(self, published_only: bool = True) -> list[Series]:
        ids = sorted(int(sid) for sid in await self.redis.smembers(self._key(SERIES_INDEX_KEY)))
        series = (await self._load_series(ids)).values()
        if published_only:
            return [s for s in series if s.is_published]
        return list(series)

    async def set_trending_score(self, series_id: int, score: float) -> None:
        await self.redis.hset(self._key(SERIES_TRENDING_KEY), {str(series_id): score})

    # Episodes

    async def save_episode(self, episode: Episode) -> None:
        static = episode.model_dump(mode="json", exclude={*METRIC_FIELDS, "completion_rate"})
        metrics = {field: getattr(episode, field) for field in METRIC_FIELDS}
        metrics["completion_rate"] = episode.completion_rate

        await self.redis.set(self._key(EPISODE_KEY, episode_id=episode.id), json.dumps(static))
        await self.redis.hset(self._key(EPISODE_METRICS_KEY, episode_id=episode.id), metrics)
        await self.redis.sadd(self._key(SERIES_EPISODES_KEY, series_id=episode.series_id), episode.id)

    async def _load_episodes(self, episode_ids: list[int]) -> list[Episode]:
        if not episode_ids:
            return []
        raws = await self.redis.mget([self._key(EPISODE_KEY, episode_id=eid) for eid in episode_ids])

        episodes = []
        for eid, raw in zip(episode_ids, raws):
            if not raw:
                continue
            metrics = await self.redis.hgetall(self._key(EPISODE_METRICS_KEY, episode_id=eid))
            try:
                data = json.loads(raw)
                for field in METRIC_FIELDS:
                    data[field] = max(int(metrics.get(field, 0)), 0)
                data["completion_rate"] = float(metrics.get("completion_rate", 0.0))
                episodes.append(Episode.model_validate(data))
            except (json.JSONDecodeError, ValidationError, ValueError) as e:
                logger.warning(f"Skipping unreadable episode {eid}: {e}")
        return episodes

    async def get_episode(self, episode_id: int) -> Episode | None:
        episodes = await self._load_episodes([episode_id])
        return episodes[0] if episodes else None

    async def get_episode_with_series(self, episode_id: int) -> EpisodeWithSeries | None:
        episode = await self.get_episode(episode_id)
        if not episode:
            return None
        series = await self.get_series(episode.series_id)
        if not series:
            return None
        return EpisodeWithSeries(episode=episode, series=series)

    async def list_series_episodes(self, series_id: int) -> list[Episode]:
        ids = sorted(int(eid) for eid in await self.redis.smembers(self._key(SERIES_EPISODES_KEY, series_id=series_id)))
        episodes = await self._load_episodes(ids)
        return sorted(episodes, key=lambda e: e.episode_number)

    async def list_published_episodes(self) -> list[EpisodeWithSeries]:
        result = []
        for series in await self.list_series(published_only=True):
            for episode in await self.list_series_episodes(series.id):
                result.append(EpisodeWithSeries(episode=episode, series=series))
        return result

    async def fetch_candidate_episodes(self, exclude_ids: set[int], limit: int) -> list[EpisodeWithSeries]:
        """Episodes from published series, skipping `exclude_ids`, at most `limit`."""
        candidates = []
        for item in await self.list_published_episodes():
            if item.episode.id in exclude_ids:
                continue
            candidates.append(item)
            if len(candidates) >= limit:
                break
        return candidates

    async def fetch_published_series_with_episode_metrics(self) -> list[SeriesWithEpisodeMetrics]:
        return [
            SeriesWithEpisodeMetrics(series=series, episodes=await self.list_series_episodes(series.id))
            for series in await self.list_series(published_only=True)
        ]

    # Episode metrics

    async def increment_metric(self, episode_id: int, field: str, amount: int = 1) -> int | None:
        if field not in METRIC_FIELDS:
            raise ValueError(f"Unknown episode metric: {field}")
        return await self.redis.hincrby(self._key(EPISODE_METRICS_KEY, episode_id=episode_id), field, amount)

    async def update_completion_rate(self, episode_id: int, progress: float) -> float:
        """Fold a reported progress into the running average weighted by views."""
        key = self._key(EPISODE_METRICS_KEY, episode_id=episode_id)
        async with self._locks.hold(("completion", episode_id)):
            metrics = await self.redis.hgetall(key)
            views = int(metrics.get("views", 0))
            current = float(metrics.get("completion_rate", 0.0))
            new_rate = (current * views + progress) / (views + 1) if views > 0 else progress
            await self.redis.hset(key, {"completion_rate": new_rate})
        return new_rate

    async def toggle_like(self, episode_id: int, user_id: int) -> bool:
        """Flip the user's like on an episode. Returns True when the episode is now liked."""
        likes_key = self._key(EPISODE_LIKES_KEY, episode_id=episode_id)
        if await self.redis.sadd(likes_key, user_id):
            await self.increment_metric(episode_id, "likes_count", 1)
            return True
        if await self.redis.srem(likes_key, user_id):
            await self.increment_metric(episode_id, "likes_count", -1)
        return False

    # Watch history

    async def get_watch_history(self, user_id: int) -> list[WatchProgress]:
        raw = await self.redis.hgetall(self._key(WATCH_HISTORY_KEY, user_id=user_id))
        history = []
        for episode_id, blob in raw.items():
            try:
                history.append(WatchProgress.model_validate_json(blob))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping unreadable watch progress {user_id}/{episode_id}: {e}")
        return sorted(history, key=lambda h: h.last_watched_at, reverse=True)

    async def completed_episode_ids(self, user_id: int) -> set[int]:
        return {h.episode_id for h in await self.get_watch_history(user_id) if h.progress >= COMPLETED_PROGRESS}

    async def upsert_watch_progress(
        self, user_id: int, episode_id: int, progress: float, watch_time: int | None = None
    ) -> WatchProgress:
        key = self._key(WATCH_HISTORY_KEY, user_id=user_id)
        async with self._locks.hold(("history", user_id)):
            existing = {h.episode_id: h for h in await self.get_watch_history(user_id)}.get(episode_id)
            now = datetime.now(timezone.utc)
            completed_at = now if progress >= COMPLETED_PROGRESS else None

            if existing:
                entry = existing.model_copy(
                    update={
                        "progress": progress,
                        "watch_time": existing.watch_time + (watch_time or 0),
                        "last_watched_at": now,
                        "completed_at": completed_at or existing.completed_at,
                    }
                )
            else:
                entry = WatchProgress(
                    user_id=user_id,
                    episode_id=episode_id,
                    progress=progress,
                    watch_time=watch_time or 0,
                    last_watched_at=now,
                    completed_at=completed_at,
                )
            await self.redis.hset(key, {str(episode_id): entry.model_dump_json()})
        return entry

    # Affinity

    async def fetch_user_affinity(self, user_id: int) -> UserGenreAffinity:
        blob = await self.redis.get(self._key(AFFINITY_KEY, user_id=user_id))
        return UserGenreAffinity.from_blob(blob)

    async def persist_user_affinity(self, user_id: int, affinity: UserGenreAffinity) -> None:
        await self.redis.set(self._key(AFFINITY_KEY, user_id=user_id), affinity.to_blob())
