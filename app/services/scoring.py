import math
from datetime import datetime, timezone

from app.core import constants
from app.models.affinity import UserGenreAffinity
from app.models.content import Episode, Series


class ScoringEngine:
    """
    Ranking scores for episodes and series.

    Every method is pure: given the same metrics and affinity vector it returns
    the same number, always in [0, 1]. Missing or malformed inputs fall back to
    zero-weight components instead of raising.
    """

    WEIGHT_COMPLETION_RATE = constants.WEIGHT_COMPLETION_RATE
    WEIGHT_LIKE_RATIO = constants.WEIGHT_LIKE_RATIO
    WEIGHT_TRENDING = constants.WEIGHT_TRENDING
    WEIGHT_GENRE_AFFINITY = constants.WEIGHT_GENRE_AFFINITY

    @staticmethod
    def _unit(value: float | None) -> float:
        try:
            value = float(value or 0.0)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(value):
            return 0.0
        return min(max(value, 0.0), 1.0)

    @staticmethod
    def like_ratio(episode: Episode) -> float:
        # Likes are counted in the denominator too; existing rankings depend on it.
        total_interactions = episode.views + episode.likes_count
        if total_interactions <= 0:
            return 0.0
        return episode.likes_count / total_interactions

    @classmethod
    def trending_normalized(cls, series: Series) -> float:
        return cls._unit(series.trending_score / constants.MAX_TRENDING_SCORE)

    @classmethod
    def genre_affinity(cls, series: Series, affinity: UserGenreAffinity | None) -> float:
        if affinity is None:
            return 0.0
        return cls._unit(min(affinity.get(series.genre), constants.MAX_GENRE_WEIGHT) / constants.MAX_GENRE_WEIGHT)

    @classmethod
    def calculate_episode_score(
        cls, episode: Episode, series: Series, affinity: UserGenreAffinity | None = None
    ) -> float:
        """
        score = completion*0.35 + like_ratio*0.25 + trending*0.20 + genre_affinity*0.20
        """
        completion_score = cls._unit(episode.completion_rate) * cls.WEIGHT_COMPLETION_RATE
        like_score = cls.like_ratio(episode) * cls.WEIGHT_LIKE_RATIO
        trending_score = cls.trending_normalized(series) * cls.WEIGHT_TRENDING
        affinity_score = cls.genre_affinity(series, affinity) * cls.WEIGHT_GENRE_AFFINITY

        return completion_score + like_score + trending_score + affinity_score

    @staticmethod
    def recency_bonus(created_at: datetime, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        days_since = (now - created_at).days
        if days_since < 7:
            return constants.SERIES_RECENCY_BONUS_WEEK
        if days_since < 30:
            return constants.SERIES_RECENCY_BONUS_MONTH
        return 0.0

    @classmethod
    def calculate_series_score(
        cls, series: Series, affinity: UserGenreAffinity | None = None, now: datetime | None = None
    ) -> float:
        """
        score = trending*0.3 + hype*0.2 + genre_affinity*0.3 + recency bonus (0.2 / 0.1 / 0)
        """
        trending_score = cls.trending_normalized(series) * constants.SERIES_WEIGHT_TRENDING
        hype_score = cls._unit(series.hype_score / 100.0) * constants.SERIES_WEIGHT_HYPE
        affinity_score = cls.genre_affinity(series, affinity) * constants.SERIES_WEIGHT_GENRE_AFFINITY
        recency_score = cls.recency_bonus(series.created_at, now)

        return trending_score + hype_score + affinity_score + recency_score

    @staticmethod
    def calculate_trending_score(views: int, likes: int, comments: int, shares: int) -> float:
        """Aggregate engagement into a 0-100 trending score."""
        raw = (
            views * constants.TRENDING_POINTS_VIEW
            + likes * constants.TRENDING_POINTS_LIKE
            + comments * constants.TRENDING_POINTS_COMMENT
            + shares * constants.TRENDING_POINTS_SHARE
        )
        return min(raw / constants.TRENDING_DIVISOR, constants.MAX_TRENDING_SCORE)
