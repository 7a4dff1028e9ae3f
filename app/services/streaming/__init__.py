from .channel import EventChannel, encode_sse
from .chunking import coalesce_chunks
from .registry import DuplicateConnectionError, StreamConnection, StreamConnectionRegistry

__all__ = [
    "DuplicateConnectionError",
    "EventChannel",
    "StreamConnection",
    "StreamConnectionRegistry",
    "coalesce_chunks",
    "encode_sse",
]
