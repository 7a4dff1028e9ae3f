from loguru import logger

from app.core.constants import COMPLETED_PROGRESS, PREFERENCE_PROGRESS
from app.models.content import EpisodeWithSeries, WatchProgress
from app.services.preferences import PreferenceService


class EpisodeNotFoundError(LookupError):
    pass


class InteractionService:
    """
    Records viewer interactions on episodes and feeds them back into the
    engagement counters and the viewer's genre affinity.
    """

    def __init__(self, store, preferences: PreferenceService) -> None:
        self.store = store
        self.preferences = preferences

    async def _require_episode(self, episode_id: int) -> EpisodeWithSeries:
        found = await self.store.get_episode_with_series(episode_id)
        if found is None:
            raise EpisodeNotFoundError(f"Episode {episode_id} not found")
        return found

    async def record_view(self, episode_id: int) -> None:
        await self._require_episode(episode_id)
        await self.store.increment_metric(episode_id, "views")

    async def toggle_like(self, episode_id: int, user_id: int) -> bool:
        found = await self._require_episode(episode_id)
        is_liked = await self.store.toggle_like(episode_id, user_id)
        if is_liked:
            await self.preferences.update_user_preferences(user_id, found.series.genre, "like")
        return is_liked

    async def record_share(self, episode_id: int, user_id: int | None = None) -> None:
        found = await self._require_episode(episode_id)
        await self.store.increment_metric(episode_id, "shares_count")
        if user_id is not None:
            await self.preferences.update_user_preferences(user_id, found.series.genre, "share")

    async def update_progress(
        self, user_id: int, episode_id: int, progress: float, watch_time: int | None = None
    ) -> WatchProgress:
        """
        Store a viewer's watch progress (0-1) for an episode.

        Also folds the progress into the episode's running completion rate and,
        past the halfway mark, credits the series genre with a view (or a
        complete once the episode is finished).
        """
        if not 0.0 <= progress <= 1.0:
            raise ValueError("progress must be between 0 and 1")

        found = await self._require_episode(episode_id)
        entry = await self.store.upsert_watch_progress(user_id, episode_id, progress, watch_time)
        new_rate = await self.store.update_completion_rate(episode_id, progress)
        logger.debug(f"Episode {episode_id} completion rate is now {new_rate:.3f}")

        if progress >= PREFERENCE_PROGRESS:
            action = "complete" if progress >= COMPLETED_PROGRESS else "view"
            await self.preferences.update_user_preferences(user_id, found.series.genre, action)
        return entry
