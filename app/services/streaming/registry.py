import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from app.core.constants import STREAM_STOPPED_MESSAGE


class OutputStream(Protocol):
    """Client-facing side of a stream connection."""

    @property
    def writable(self) -> bool: ...

    def send(self, payload: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


class DuplicateConnectionError(RuntimeError):
    """Raised when a connection id is registered twice (a caller bug)."""


@dataclass
class StreamConnection:
    id: str
    owner_user_id: int
    stream: OutputStream
    cancel: Callable[[], Any] | None = None
    created_at: float = 0.0
    closed: bool = False


class StreamConnectionRegistry:
    """
    Table of in-flight cancellable output streams.

    Every entry moves OPEN -> CLOSED exactly once, through `stop`, `finish` or
    the age-based sweep; whichever gets the table lock first wins and the rest
    become no-ops. The lock only guards the table, cancellation and client
    writes happen after it is released.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._connections: dict[str, StreamConnection] = {}

    def register(
        self,
        connection_id: str,
        owner_user_id: int,
        stream: OutputStream,
        cancel: Callable[[], Any] | None = None,
    ) -> StreamConnection:
        connection = StreamConnection(
            id=connection_id,
            owner_user_id=owner_user_id,
            stream=stream,
            cancel=cancel,
            created_at=self._clock(),
        )
        with self._lock:
            if connection_id in self._connections:
                raise DuplicateConnectionError(f"Connection {connection_id} is already registered")
            self._connections[connection_id] = connection

        logger.info(f"Connection registered: {connection_id} (user {owner_user_id})")
        return connection

    def _claim(self, connection_id: str) -> StreamConnection | None:
        """Remove an OPEN entry and mark it CLOSED. Returns None if someone else got there first."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None or connection.closed:
                return None
            connection.closed = True
            return connection

    def stop(self, connection_id: str) -> bool:
        """
        Client-requested cancellation.

        Aborts the upstream call, writes a final cancelled event if the client
        is still reachable and closes the client stream. Returns False when
        there was nothing to stop.
        """
        connection = self._claim(connection_id)
        if connection is None:
            logger.info(f"Stop requested for unknown or finished connection: {connection_id}")
            return False

        if connection.cancel is not None:
            try:
                connection.cancel()
            except Exception as e:
                logger.warning(f"Failed to cancel upstream for connection {connection_id}: {e}")

        try:
            if connection.stream.writable:
                connection.stream.send({"error": STREAM_STOPPED_MESSAGE, "done": True})
        except Exception as e:
            logger.warning(f"Could not write stop event to connection {connection_id}, probably already closed: {e}")
        finally:
            connection.stream.close()

        logger.info(f"Connection stopped: {connection_id}")
        return True

    def finish(self, connection_id: str) -> None:
        """Normal completion; the consumer has already sent its final event."""
        if self._claim(connection_id) is not None:
            logger.info(f"Connection finished normally: {connection_id}")

    def list_connections(self, owner_user_id: int) -> list[str]:
        with self._lock:
            return [
                cid for cid, conn in self._connections.items() if conn.owner_user_id == owner_user_id and not conn.closed
            ]

    def cleanup_old_connections(self, max_age_ms: float) -> int:
        """Stop every open connection at least `max_age_ms` old. Returns how many were stopped."""
        now = self._clock()
        with self._lock:
            stale = [cid for cid, conn in self._connections.items() if (now - conn.created_at) * 1000 >= max_age_ms]

        cleaned = sum(1 for cid in stale if self.stop(cid))
        if cleaned:
            logger.info(f"Connection cleanup: {cleaned} stale connections removed")
        return cleaned

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections
