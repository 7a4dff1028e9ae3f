import random
from typing import TypeVar

from app.core.constants import SHUFFLE_MAX_DISPLACEMENT

T = TypeVar("T")


def nearby_shuffle(items: list[T], rng: random.Random, max_displacement: int = SHUFFLE_MAX_DISPLACEMENT) -> list[T]:
    """
    Lightly perturb an already ranked list.

    Walking from the end, every element is swapped with a slot at most
    `max_displacement - 1` positions earlier; element positions are tracked so
    that no element ends up more than `max_displacement` slots away from where
    it started. Returns a new list; `items` is left untouched.
    """
    result = list(items)
    if len(result) < 2 or max_displacement <= 0:
        return result

    origin = list(range(len(result)))
    for i in range(len(result) - 1, 0, -1):
        max_swap = min(max_displacement, i)
        j = i - rng.randrange(max_swap)
        if j == i:
            continue
        # Skip swaps that would carry either element too far from its rank
        if abs(origin[j] - i) > max_displacement or abs(origin[i] - j) > max_displacement:
            continue
        result[i], result[j] = result[j], result[i]
        origin[i], origin[j] = origin[j], origin[i]

    return result
