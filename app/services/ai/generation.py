import asyncio
import uuid
from collections.abc import AsyncIterator

from loguru import logger

from app.core.config import settings
from app.core.constants import ANONYMOUS_USER_ID, STREAM_STATUS_CONNECTED
from app.models.generation import GenerationOptions
from app.services.ai import GenerationProvider
from app.services.ai.errors import ProviderError
from app.services.streaming import EventChannel, StreamConnectionRegistry, coalesce_chunks


class GenerationService:
    """
    Bridges an upstream generation provider and client event streams.

    Each streamed request gets a registry entry whose cancel handle aborts the
    pump task, so `/ai/stop-generation` and the stale sweep can tear it down.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        registry: StreamConnectionRegistry,
        min_chars: int = settings.STREAM_CHUNK_MIN_CHARS,
        max_delay: float = settings.STREAM_CHUNK_MAX_DELAY_MS / 1000,
    ):
        self.provider = provider
        self.registry = registry
        self.min_chars = min_chars
        self.max_delay = max_delay

    async def generate(self, messages: list[dict], options: GenerationOptions) -> str:
        return await self.provider.generate(messages, options)

    def start_stream(
        self, messages: list[dict], options: GenerationOptions, user_id: int | None = None
    ) -> tuple[str, EventChannel]:
        """Open a stream and return its connection id and the channel feeding the client."""
        connection_id = str(uuid.uuid4())
        channel = EventChannel()
        channel.send({"status": STREAM_STATUS_CONNECTED, "connectionId": connection_id})

        task = asyncio.create_task(self._pump(connection_id, channel, messages, options))
        self.registry.register(connection_id, user_id or ANONYMOUS_USER_ID, channel, task.cancel)
        return connection_id, channel

    async def _pump(
        self, connection_id: str, channel: EventChannel, messages: list[dict], options: GenerationOptions
    ) -> None:
        try:
            chunks = coalesce_chunks(
                self.provider.stream_generation(messages, options),
                min_chars=self.min_chars,
                max_delay=self.max_delay,
            )
            async for text in chunks:
                channel.send({"text": text})
            channel.send({"done": True})
        except asyncio.CancelledError:
            # whoever cancelled reports it to the client
            logger.info(f"Generation cancelled: {connection_id}")
            self.registry.finish(connection_id)
            channel.close()
            raise
        except ProviderError as e:
            logger.warning(f"Provider error on connection {connection_id}: {e.message}")
            channel.send({"error": e.message})
        except Exception as e:
            logger.exception(f"Unexpected error while streaming connection {connection_id}: {e}")
            channel.send({"error": "Erro ao gerar resposta"})

        self.registry.finish(connection_id)
        channel.close()

    async def stream_response(self, connection_id: str, channel: EventChannel) -> AsyncIterator[str]:
        """SSE body for the HTTP response. A client that goes away stops its connection."""
        try:
            async for frame in channel.iter_sse():
                yield frame
        finally:
            if connection_id in self.registry:
                logger.info(f"Client disconnected from connection {connection_id}")
                self.registry.stop(connection_id)
