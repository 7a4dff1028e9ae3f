"""
Background loops run for the lifetime of the app.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger


class PeriodicTask:
    """Run `func` every `interval` seconds on the event loop until stopped."""

    def __init__(self, name: str, interval: float, func: Callable[[], Any | Awaitable[Any]]):
        self.name = name
        self.interval = interval
        self.func = func
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Any:
        result = self.func()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Background task '{self.name}' failed: {e}")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"Background task '{self.name}' started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Background task '{self.name}' stopped")
