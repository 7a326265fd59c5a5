"""Cancellable chunk streams.

A ``ChunkStream`` wraps the async generator a provider produces. It is
pull-based, finite and not restartable; ``cancel()`` stops production and
releases the upstream connection, including when no chunk was ever pulled.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

from sitegen.models.generation import ResponseChunk

logger = logging.getLogger(__name__)


class ChunkStream:
    """Async iterator over ``ResponseChunk`` values with first-class cancellation.

    Args:
        source: Async iterator producing the chunks
        label: Name used in log messages
        on_close: Coroutine function releasing the upstream; awaited by
            ``cancel()`` after the source is closed
    """

    def __init__(self, source: AsyncIterator[ResponseChunk], label: Optional[str] = None,
                 on_close: Optional[Callable[[], Awaitable[Any]]] = None):
        self._source = source
        self._on_close = on_close
        self._closed = False
        self.label = label or 'stream'

    @classmethod
    def from_chunks(cls, chunks: Iterable[ResponseChunk], label: Optional[str] = None) -> 'ChunkStream':
        """Build a stream that replays a fixed sequence of chunks."""
        items = list(chunks)

        async def _replay():
            for chunk in items:
                yield chunk

        return cls(_replay(), label=label)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> 'ChunkStream':
        return self

    async def __anext__(self) -> ResponseChunk:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            self._closed = True
            raise

    async def cancel(self) -> None:
        """Drop remaining production and close the upstream producer. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._source, 'aclose', None)
            if aclose is not None:
                await aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()
        logger.debug(f"Cancelled chunk stream {self.label}")
