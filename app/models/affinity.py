import json
import math

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from app.core.constants import MAX_GENRE_WEIGHT, MAX_TOTAL_AFFINITY


class UserGenreAffinity(BaseModel):
    """
    Per-user genre interest vector.

    Keys are lowercase genre names, values are weights in [0, 100]. The vector
    is never deleted, only decayed: when the total weight grows past 200 every
    weight is scaled down proportionally.
    """

    weights: dict[str, float] = Field(default_factory=dict)

    @staticmethod
    def normalize_genre(genre: str | None) -> str:
        return (genre or "").strip().lower()

    def get(self, genre: str | None) -> float:
        return self.weights.get(self.normalize_genre(genre), 0.0)

    def total(self) -> float:
        return sum(self.weights.values())

    def add(self, genre: str, amount: float) -> float:
        """Add `amount` to a genre, capped at 100. Returns the new weight."""
        key = self.normalize_genre(genre)
        new_weight = min(self.weights.get(key, 0.0) + amount, MAX_GENRE_WEIGHT)
        self.weights[key] = new_weight
        return new_weight

    def renormalize(self, limit: float = MAX_TOTAL_AFFINITY) -> bool:
        """Scale all weights by limit/total when the total exceeds limit."""
        total = self.total()
        if total <= limit:
            return False
        factor = limit / total
        for key in self.weights:
            self.weights[key] = self.weights[key] * factor
        return True

    def top_genres(self, limit: int = 5) -> list[tuple[str, float]]:
        return sorted(self.weights.items(), key=lambda x: x[1], reverse=True)[:limit]

    # Persistence boundary

    def to_blob(self) -> str:
        return json.dumps(self.weights)

    @classmethod
    def from_blob(cls, blob: str | bytes | None) -> "UserGenreAffinity":
        """
        Rebuild an affinity vector from its stored JSON blob.

        Anything unparsable (bad JSON, wrong shape, weights that are not finite
        non-negative numbers) yields an empty vector.
        """
        if not blob:
            return cls()
        try:
            data = json.loads(blob)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            weights = {cls.normalize_genre(k): float(v) for k, v in data.items()}
            bad = [k for k, v in weights.items() if not math.isfinite(v) or v < 0]
            if bad:
                raise ValueError(f"invalid weights for {bad}")
            return cls(weights=weights)
        except (json.JSONDecodeError, ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable affinity blob: {e}")
            return cls()
