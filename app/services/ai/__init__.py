from collections.abc import AsyncIterator
from typing import Protocol

from app.core.config import Settings
from app.models.generation import GenerationOptions
from app.services.ai.errors import ProviderError


class GenerationProvider(Protocol):
    async def generate(self, messages: list[dict], options: GenerationOptions) -> str: ...

    def stream_generation(self, messages: list[dict], options: GenerationOptions) -> AsyncIterator[str]: ...

    async def close(self) -> None: ...


def get_provider(config: Settings) -> GenerationProvider:
    """Build the upstream provider selected by AI_PROVIDER."""
    if config.AI_PROVIDER == "gemini":
        from app.services.ai.gemini import GeminiProvider

        return GeminiProvider(model=config.DEFAULT_GEMINI_MODEL, api_key=config.GEMINI_API_KEY)

    from app.services.ai.openrouter import OpenRouterProvider

    return OpenRouterProvider(
        api_key=config.OPENROUTER_API_KEY,
        base_url=config.OPENROUTER_BASE_URL,
        timeout=config.OPENROUTER_TIMEOUT_SECONDS,
    )


__all__ = ["GenerationProvider", "ProviderError", "get_provider"]
