"""
Progress Reporting

Sinks that receive GenerationProgress updates from the graph pipeline.

    - ProgressChannel: bounded asyncio.Queue drained with ``async for``;
      a full channel drops its oldest update
    - CallbackProgressSink: wraps a plain callable

Publishing never raises into the pipeline.

Example:
    >>> channel = ProgressChannel(maxsize=32)
    >>> pipeline = GraphPipeline(..., progress=channel)
    >>> task = asyncio.create_task(pipeline.generate(request))
    >>> task.add_done_callback(lambda _: channel.close())
    >>> async for update in channel:
    ...     print(update.percent_complete, update.message)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

from graphex_kg.types.graph import GenerationProgress

if TYPE_CHECKING:
    from graphex_kg.config import KGConfig

logger = logging.getLogger(__name__)

_CLOSED = object()


class ProgressSink(ABC):
    """Receiver of pipeline progress updates."""

    @abstractmethod
    def publish(self, update: GenerationProgress) -> None:
        ...

    def close(self) -> None:
        """Signal that no more updates follow."""


class ProgressChannel(ProgressSink):
    """
    Bounded async stream of progress updates.

    Args:
        maxsize: Updates buffered before the oldest is dropped
    """

    def __init__(self, maxsize: int = 64) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._drained = False
        self.dropped = 0

    @classmethod
    def from_config(cls, config: "KGConfig") -> "ProgressChannel":
        return cls(maxsize=config.progress_buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, update: GenerationProgress) -> None:
        if self._closed:
            logger.debug(f"Progress after close ignored: {update.stage.value}")
            return
        self._put(update)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def _put(self, item: object) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    def __aiter__(self) -> "ProgressChannel":
        return self

    async def __anext__(self) -> GenerationProgress:
        if self._drained:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._drained = True
            raise StopAsyncIteration
        return item


class CallbackProgressSink(ProgressSink):
    """Calls a function per update; its exceptions are logged and dropped."""

    def __init__(self, callback: Callable[[GenerationProgress], None]) -> None:
        self.callback = callback

    def publish(self, update: GenerationProgress) -> None:
        try:
            self.callback(update)
        except Exception as e:
            # Progress consumers must not abort generation
            logger.warning(f"Progress callback failed at {update.stage.value}: {e}")
