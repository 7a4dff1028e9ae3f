"""
Core constants used across the application. Keep these simple and documented.
"""

# Episode ranking weights (sum to 1.0)
WEIGHT_COMPLETION_RATE: float = 0.35
WEIGHT_LIKE_RATIO: float = 0.25
WEIGHT_TRENDING: float = 0.20
WEIGHT_GENRE_AFFINITY: float = 0.20

# Series ranking weights; recency bonus is added on top (max 0.2)
SERIES_WEIGHT_TRENDING: float = 0.3
SERIES_WEIGHT_HYPE: float = 0.2
SERIES_WEIGHT_GENRE_AFFINITY: float = 0.3
SERIES_RECENCY_BONUS_WEEK: float = 0.2
SERIES_RECENCY_BONUS_MONTH: float = 0.1

# Affinity bookkeeping
ACTION_WEIGHTS: dict[str, int] = {
    "view": 1,
    "like": 3,
    "complete": 5,
    "share": 4,
}
MAX_GENRE_WEIGHT: float = 100.0
MAX_TOTAL_AFFINITY: float = 200.0

# Trending recompute: raw engagement points per interaction
TRENDING_POINTS_VIEW: int = 1
TRENDING_POINTS_LIKE: int = 5
TRENDING_POINTS_COMMENT: int = 3
TRENDING_POINTS_SHARE: int = 10
TRENDING_DIVISOR: float = 1000.0
MAX_TRENDING_SCORE: float = 100.0

# Feed shaping
CANDIDATE_POOL_FACTOR: int = 3
SHUFFLE_POOL_FACTOR: int = 2
SHUFFLE_MAX_DISPLACEMENT: int = 3
COMPLETED_PROGRESS: float = 0.9
STARTED_PROGRESS: float = 0.05
PREFERENCE_PROGRESS: float = 0.5
HOME_GENRES: tuple[str, ...] = ("acao", "romance", "terror", "comedia", "drama")

# Series lifecycle
STATUS_DRAFT: str = "DRAFT"
STATUS_PUBLISHED: str = "PUBLISHED"
STATUS_ARCHIVED: str = "ARCHIVED"

# Redis keys (prefix is prepended by the store)
SERIES_KEY: str = "series:{series_id}"
SERIES_INDEX_KEY: str = "series:index"
SERIES_TRENDING_KEY: str = "series:trending"
SERIES_EPISODES_KEY: str = "series:{series_id}:episodes"
EPISODE_KEY: str = "episode:{episode_id}"
EPISODE_METRICS_KEY: str = "episode:{episode_id}:metrics"
EPISODE_LIKES_KEY: str = "episode:{episode_id}:likes"
WATCH_HISTORY_KEY: str = "history:{user_id}"
AFFINITY_KEY: str = "affinity:{user_id}"

# Stream wire messages
STREAM_STATUS_CONNECTED: str = "conectado"
STREAM_STOPPED_MESSAGE: str = "Conexão interrompida pelo usuário"
ANONYMOUS_USER_ID: int = 0
