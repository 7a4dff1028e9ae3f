from loguru import logger

from app.core.constants import ACTION_WEIGHTS
from app.models.affinity import UserGenreAffinity
from app.utils.locks import KeyedLock


class PreferenceService:
    """
    Keeps each user's genre affinity vector up to date.

    Updates for the same user are serialised with an in-process lock so that
    rapid double interactions never lose an increment.
    """

    def __init__(self, store) -> None:
        self.store = store
        self._user_locks = KeyedLock()

    async def get_user_affinity(self, user_id: int) -> UserGenreAffinity:
        return await self.store.fetch_user_affinity(user_id)

    async def update_user_preferences(
        self, user_id: int, genre: str | None, action: str, weight: float = 1
    ) -> UserGenreAffinity | None:
        """
        Apply one interaction to the user's affinity vector.

        Args:
            user_id: User performing the interaction
            genre: Genre of the series interacted with (case-insensitive)
            action: One of view, like, complete, share
            weight: Multiplier for the action weight

        Returns:
            The persisted vector, or None when the interaction was ignored
        """
        genre_key = UserGenreAffinity.normalize_genre(genre)
        if not genre_key:
            logger.debug(f"Ignoring {action} for user {user_id}: no genre")
            return None
        if action not in ACTION_WEIGHTS:
            logger.warning(f"Ignoring unknown preference action '{action}' for user {user_id}")
            return None

        added = ACTION_WEIGHTS[action] * weight
        async with self._user_locks.hold(user_id):
            affinity = await self.store.fetch_user_affinity(user_id)
            new_weight = affinity.add(genre_key, added)
            if affinity.renormalize():
                logger.debug(f"Decayed affinity for user {user_id} (total capped at 200)")
            await self.store.persist_user_affinity(user_id, affinity)

        logger.info(f"Updated preferences for user {user_id}: {genre_key} = {new_weight}")
        return affinity
