import threading

import pytest

from app.core.constants import STREAM_STOPPED_MESSAGE
from app.services.streaming import DuplicateConnectionError, StreamConnectionRegistry


class RecordingStream:
    def __init__(self, writable: bool = True, fail_on_send: bool = False):
        self.writable = writable
        self.fail_on_send = fail_on_send
        self.events: list[dict] = []
        self.close_calls = 0

    def send(self, payload):
        if self.fail_on_send:
            raise BrokenPipeError("client went away")
        self.events.append(payload)

    def close(self):
        self.close_calls += 1
        self.writable = False


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_stop_twice_returns_true_then_false(registry):
    stream = RecordingStream()
    cancelled = []
    registry.register("c1", 7, stream, lambda: cancelled.append("c1"))

    assert registry.stop("c1") is True
    assert registry.stop("c1") is False
    assert cancelled == ["c1"]
    assert stream.events == [{"error": STREAM_STOPPED_MESSAGE, "done": True}]
    assert stream.close_calls == 1
    assert "c1" not in registry


def test_finish_after_stop_is_a_noop(registry):
    stream = RecordingStream()
    registry.register("c1", 7, stream)

    registry.stop("c1")
    registry.finish("c1")
    registry.finish("c1")

    assert stream.close_calls == 1


def test_stop_after_finish_returns_false(registry):
    stream = RecordingStream()
    cancelled = []
    registry.register("c1", 7, stream, lambda: cancelled.append(True))

    registry.finish("c1")

    assert registry.stop("c1") is False
    assert cancelled == []
    assert stream.events == []


def test_stop_unknown_id(registry):
    assert registry.stop("missing") is False


def test_stop_skips_write_when_client_is_gone(registry):
    stream = RecordingStream(writable=False)
    registry.register("c1", 7, stream)

    assert registry.stop("c1") is True
    assert stream.events == []
    assert stream.close_calls == 1


def test_stop_survives_failing_cancel_and_write(registry):
    stream = RecordingStream(fail_on_send=True)

    def broken_cancel():
        raise RuntimeError("already aborted")

    registry.register("c1", 7, stream, broken_cancel)

    assert registry.stop("c1") is True
    assert stream.close_calls == 1
    assert len(registry) == 0


def test_duplicate_registration_raises(registry):
    registry.register("c1", 7, RecordingStream())
    with pytest.raises(DuplicateConnectionError):
        registry.register("c1", 8, RecordingStream())


def test_list_connections_by_owner(registry):
    registry.register("a", 7, RecordingStream())
    registry.register("b", 8, RecordingStream())
    registry.register("c", 7, RecordingStream())
    registry.finish("c")

    assert registry.list_connections(7) == ["a"]
    assert registry.list_connections(8) == ["b"]
    assert registry.list_connections(9) == []


def test_cleanup_zero_stops_everything():
    registry = StreamConnectionRegistry(clock=FakeClock())
    streams = [RecordingStream() for _ in range(3)]
    for index, stream in enumerate(streams):
        registry.register(f"c{index}", 0, stream)

    assert registry.cleanup_old_connections(0) == 3
    assert len(registry) == 0
    assert all(s.events == [{"error": STREAM_STOPPED_MESSAGE, "done": True}] for s in streams)


def test_cleanup_only_sweeps_stale_connections():
    clock = FakeClock()
    registry = StreamConnectionRegistry(clock=clock)
    registry.register("old", 7, RecordingStream())
    clock.now += 1800
    registry.register("fresh", 7, RecordingStream())
    clock.now += 1

    assert registry.cleanup_old_connections(1800 * 1000) == 1
    assert "old" not in registry
    assert "fresh" in registry


def test_concurrent_stop_and_finish_close_once(registry):
    for _ in range(200):
        stream = RecordingStream()
        registry.register("race", 7, stream)
        results = []
        barrier = threading.Barrier(2)

        def stopper():
            barrier.wait()
            results.append(registry.stop("race"))

        def finisher():
            barrier.wait()
            registry.finish("race")

        threads = [threading.Thread(target=stopper), threading.Thread(target=finisher)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stream.close_calls == (1 if results == [True] else 0)
        assert "race" not in registry
