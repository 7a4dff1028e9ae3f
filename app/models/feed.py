from pydantic import BaseModel, Field

from app.models.content import Episode, Series, WatchProgress


class ScoredEpisode(BaseModel):
    episode: Episode
    series: Series
    score: float = 0.0


class ScoredSeries(BaseModel):
    series: Series
    score: float = 0.0


class ContinueWatchingItem(BaseModel):
    progress: WatchProgress
    episode: Episode
    series: Series


class HomeCarousels(BaseModel):
    trending: list[Series] = Field(default_factory=list)
    new_releases: list[Series] = Field(default_factory=list, serialization_alias="newReleases")
    recommended: list[Series] = Field(default_factory=list)
    by_genre: dict[str, list[Series]] = Field(default_factory=dict, serialization_alias="byGenre")
    continue_watching: list[ContinueWatchingItem] = Field(default_factory=list, serialization_alias="continueWatching")


class Pagination(BaseModel):
    limit: int
    offset: int
    has_more: bool
