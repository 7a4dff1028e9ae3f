import pytest

from app.services.streaming import EventChannel, coalesce_chunks, encode_sse


class StepClock:
    """Advances by `step` seconds every time it is read."""

    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


async def _source(chunks, error: Exception | None = None):
    for chunk in chunks:
        yield chunk
    if error:
        raise error


async def _collect(agen):
    return [item async for item in agen]


def test_encode_sse_keeps_non_ascii():
    assert encode_sse({"error": "Conexão interrompida"}) == 'data: {"error": "Conexão interrompida"}\n\n'


async def test_channel_delivers_events_until_closed():
    channel = EventChannel()
    channel.send({"status": "conectado"})
    channel.send({"text": "oi"})
    channel.close()
    channel.send({"text": "dropped"})

    assert await _collect(channel.events()) == [{"status": "conectado"}, {"text": "oi"}]
    assert channel.closed
    assert not channel.writable


async def test_channel_close_is_idempotent():
    channel = EventChannel()
    channel.close()
    channel.close()
    assert await _collect(channel.iter_sse()) == []


async def test_small_chunks_are_merged_by_size():
    chunks = ["a" * 20, "b" * 20, "c" * 20, "d" * 5]
    merged = await _collect(coalesce_chunks(_source(chunks), min_chars=50, max_delay=10, clock=StepClock(0.0)))

    assert merged == ["a" * 20 + "b" * 20 + "c" * 20, "d" * 5]


async def test_slow_chunks_are_flushed_by_time():
    merged = await _collect(coalesce_chunks(_source(["x", "y", "z"]), min_chars=50, max_delay=0.3, clock=StepClock(0.5)))
    assert merged == ["x", "y", "z"]


async def test_coalescing_preserves_text_and_order():
    chunks = [str(i) for i in range(100)]
    merged = await _collect(coalesce_chunks(_source(chunks), min_chars=7, max_delay=10, clock=StepClock(0.0)))
    assert "".join(merged) == "".join(chunks)


async def test_pending_text_is_flushed_before_error():
    received = []
    with pytest.raises(RuntimeError):
        async for text in coalesce_chunks(
            _source(["par", "tial"], RuntimeError("boom")), min_chars=50, max_delay=10, clock=StepClock(0.0)
        ):
            received.append(text)
    assert received == ["partial"]


async def test_empty_chunks_are_skipped():
    merged = await _collect(coalesce_chunks(_source(["", "a", ""]), min_chars=1, max_delay=10, clock=StepClock(0.0)))
    assert merged == ["a"]
