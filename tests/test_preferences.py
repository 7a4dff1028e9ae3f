import asyncio

import pytest

from app.models.affinity import UserGenreAffinity


async def test_actions_add_their_weights(preferences, store):
    await preferences.update_user_preferences(7, "Drama", "view")
    await preferences.update_user_preferences(7, "drama", "like")
    await preferences.update_user_preferences(7, "DRAMA", "complete")
    await preferences.update_user_preferences(7, "Drama", "share")

    affinity = await store.fetch_user_affinity(7)
    assert affinity.weights == {"drama": 1 + 3 + 5 + 4}


async def test_weight_multiplier(preferences, store):
    await preferences.update_user_preferences(7, "Acao", "like", weight=2)
    assert (await store.fetch_user_affinity(7)).get("acao") == 6


async def test_genre_weight_is_capped_at_100(preferences, store):
    store.affinity_blobs[7] = UserGenreAffinity(weights={"drama": 98}).to_blob()

    await preferences.update_user_preferences(7, "Drama", "complete")

    assert (await store.fetch_user_affinity(7)).get("drama") == 100


async def test_total_is_renormalised_to_200(preferences, store):
    store.affinity_blobs[7] = UserGenreAffinity(weights={"drama": 100, "acao": 100}).to_blob()

    await preferences.update_user_preferences(7, "Terror", "complete")

    affinity = await store.fetch_user_affinity(7)
    assert affinity.total() == pytest.approx(200)
    assert affinity.get("terror") == pytest.approx(5 * 200 / 205)
    assert affinity.get("drama") == pytest.approx(100 * 200 / 205)


async def test_unknown_action_and_blank_genre_are_ignored(preferences, store):
    assert await preferences.update_user_preferences(7, "Drama", "bookmark") is None
    assert await preferences.update_user_preferences(7, "   ", "like") is None
    assert await preferences.update_user_preferences(7, None, "like") is None
    assert 7 not in store.affinity_blobs


async def test_concurrent_updates_do_not_lose_increments(preferences, store):
    real_fetch = store.fetch_user_affinity

    async def slow_fetch(user_id):
        affinity = await real_fetch(user_id)
        await asyncio.sleep(0)
        return affinity

    store.fetch_user_affinity = slow_fetch

    await asyncio.gather(*(preferences.update_user_preferences(7, "Drama", "view") for _ in range(20)))

    assert (await real_fetch(7)).get("drama") == 20
    assert len(preferences._user_locks) == 0


@pytest.mark.parametrize(
    "blob",
    [
        "not json",
        "[1, 2]",
        '{"drama": "lots"}',
        b"\xff\xfe",
        '{"drama": NaN}',
        '{"drama": Infinity}',
        '{"drama": -5}',
    ],
)
def test_corrupt_blob_recovers_to_empty(blob):
    assert UserGenreAffinity.from_blob(blob).weights == {}


def test_blob_keys_are_normalised():
    affinity = UserGenreAffinity.from_blob('{"Drama ": 10, "ACAO": 2.5}')
    assert affinity.weights == {"drama": 10.0, "acao": 2.5}


async def test_nan_blob_is_replaced_on_next_update(preferences, store):
    store.affinity_blobs[7] = '{"drama": NaN, "acao": 40}'

    await preferences.update_user_preferences(7, "Drama", "like")

    affinity = await store.fetch_user_affinity(7)
    assert affinity.weights == {"drama": 3}
