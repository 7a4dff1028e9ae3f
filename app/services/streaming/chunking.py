import time
from collections.abc import AsyncIterator, Callable

from app.core.config import settings


async def coalesce_chunks(
    source: AsyncIterator[str],
    min_chars: int = settings.STREAM_CHUNK_MIN_CHARS,
    max_delay: float = settings.STREAM_CHUNK_MAX_DELAY_MS / 1000,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[str]:
    """
    Merge small upstream text chunks into larger writes.

    A block is flushed once it holds `min_chars` characters or `max_delay`
    seconds have passed since the previous flush (checked as chunks arrive).
    Whatever is pending is flushed when the source ends or raises. Order is
    always preserved.
    """
    pending: list[str] = []
    pending_len = 0
    last_flush = clock()

    try:
        async for chunk in source:
            if not chunk:
                continue
            pending.append(chunk)
            pending_len += len(chunk)
            if pending_len >= min_chars or clock() - last_flush >= max_delay:
                yield "".join(pending)
                pending, pending_len = [], 0
                last_flush = clock()
    except Exception:
        # Hand over what already arrived before the error surfaces
        if pending:
            yield "".join(pending)
        raise

    if pending:
        yield "".join(pending)
