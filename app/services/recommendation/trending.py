from collections.abc import Callable

from loguru import logger

from app.services.scoring import ScoringEngine


class TrendingUpdater:
    """
    Full recompute of series trending scores from episode engagement.

    Each series is written independently; readers may observe a mix of old and
    new scores while a pass is running.
    """

    def __init__(self, store, on_updated: Callable[[], None] | None = None) -> None:
        self.store = store
        self.on_updated = on_updated

    async def update_trending_scores(self) -> dict[int, float]:
        scores: dict[int, float] = {}
        for item in await self.store.fetch_published_series_with_episode_metrics():
            episodes = item.episodes
            score = ScoringEngine.calculate_trending_score(
                views=sum(ep.views for ep in episodes),
                likes=sum(ep.likes_count for ep in episodes),
                comments=sum(ep.comments_count for ep in episodes),
                shares=sum(ep.shares_count for ep in episodes),
            )
            await self.store.set_trending_score(item.series.id, score)
            scores[item.series.id] = score

        logger.info(f"Updated trending scores for {len(scores)} series")
        if self.on_updated:
            self.on_updated()
        return scores
