from datetime import datetime, timezone

from pydantic import BaseModel, Field

from app.core.constants import STATUS_PUBLISHED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Series(BaseModel):
    """Series row plus the metrics the ranking needs."""

    id: int
    title: str = ""
    genre: str = ""
    cover_url: str | None = None
    status: str = STATUS_PUBLISHED
    trending_score: float = Field(default=0.0, ge=0.0, description="Recomputed in batch, 0-100")
    hype_score: float = Field(default=0.0, ge=0.0, description="Set editorially, 0-100")
    total_episodes: int = 0
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == STATUS_PUBLISHED


class Episode(BaseModel):
    """Episode row with its engagement counters."""

    id: int
    series_id: int
    episode_number: int = 1
    title: str = ""
    thumbnail_url: str | None = None
    video_url: str | None = None
    duration: int = 0
    views: int = Field(default=0, ge=0)
    likes_count: int = Field(default=0, ge=0)
    comments_count: int = Field(default=0, ge=0)
    shares_count: int = Field(default=0, ge=0)
    completion_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=_utcnow)


class EpisodeWithSeries(BaseModel):
    episode: Episode
    series: Series


class SeriesWithEpisodeMetrics(BaseModel):
    series: Series
    episodes: list[Episode] = Field(default_factory=list)


class WatchProgress(BaseModel):
    user_id: int
    episode_id: int
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    watch_time: int = 0
    last_watched_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
