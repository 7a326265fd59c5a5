"""Provider Adapter Base
=====================

Every backend exposes the same capability surface:

- ``is_enabled()``: server-side execution, switched on, credential present
  and the backend SDK importable;
- ``generate(request)``: a ``ChunkStream`` of normalized ``ResponseChunk``.

Opening the upstream connection happens eagerly inside ``generate`` so that
connection-time failures reach the Recovery Layer as exceptions. Once the
stream is handed out it never raises: errors and idle timeouts become a
single ``error`` chunk with ``done=True``, and a clean finish is always
marked by a ``text`` chunk carrying the completion marker.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from sitegen.constants import AIModel, AIProvider, ChunkType, COMPLETION_MARKER
from sitegen.models.generation import GenerationRequest, ResponseChunk
from sitegen.services.streams import ChunkStream
from sitegen.utils.errors import ProviderTimeoutError, ProviderUnavailableError, UnsupportedModelError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional web developer creating production websites.\n"
    "Requirements:\n"
    "1. Generate valid, modern HTML/CSS/JS\n"
    "2. Ensure WCAG 2.1 AA compliance\n"
    "3. Mobile-first responsive design\n"
    "4. Performance-optimized (LCP < 2.5s)\n"
    "5. SEO-friendly structure\n"
    "6. Cross-browser compatible\n"
    "7. Clean, maintainable code"
)


def build_user_message(request: GenerationRequest) -> str:
    """Serialize operation, prompt and context into the user turn."""
    context = json.dumps(request.context.to_dict(), ensure_ascii=False)
    return (
        f"Operation: {request.operation.value}\n"
        f"Prompt: {request.prompt}\n"
        f"Context: {context}\n\n"
        f"End with {COMPLETION_MARKER} when done."
    )


class UpstreamDeltas:
    """Text deltas from an open upstream call plus the callback that releases it.

    ``aclose`` releases the connection even when iteration never started,
    which closing a bare async generator would not do.
    """

    def __init__(self, deltas: AsyncIterator[str], release: Optional[Callable[[], Awaitable[Any]]] = None):
        self._deltas = deltas
        self._release = release
        self._released = False

    def __aiter__(self) -> 'UpstreamDeltas':
        return self

    async def __anext__(self) -> str:
        return await self._deltas.__anext__()

    async def aclose(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            aclose = getattr(self._deltas, 'aclose', None)
            if aclose is not None:
                await aclose()
        finally:
            if self._release is not None:
                await self._release()


class ProviderAdapter(ABC):
    """Base class for generation backends."""

    provider: AIProvider
    MODEL_MAP: Dict[AIModel, str] = {}
    supports_streaming: bool = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        enabled: bool = True,
        server_side: bool = True,
        timeout: float = 60.0,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.enabled = enabled
        self.server_side = server_side
        self.timeout = timeout
        self.temperature = temperature

    @property
    def name(self) -> str:
        return self.provider.value

    def sdk_available(self) -> bool:
        """Whether the backend's client library could be imported."""
        return True

    def is_enabled(self) -> bool:
        return self.server_side and self.enabled and bool(self.api_key) and self.sdk_available()

    def resolve_model(self, model: AIModel) -> str:
        """Map an abstract model identifier to this provider's model name.

        Raises:
            UnsupportedModelError: The provider cannot serve ``model``
        """
        try:
            return self.MODEL_MAP[model]
        except KeyError:
            raise UnsupportedModelError(
                f"Model '{model}' is not supported by provider '{self.name}'",
                provider=self.name,
            ) from None

    def build_messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_message(request)},
        ]

    async def generate(self, request: GenerationRequest) -> ChunkStream:
        """Open a generation against this backend.

        Raises:
            ProviderUnavailableError: Adapter disabled or misconfigured
            UnsupportedModelError: Requested model not served here
            ProviderTimeoutError: Upstream did not answer within ``timeout``
            Exception: Connection-time failures from the backend client
        """
        if not self.is_enabled():
            raise ProviderUnavailableError(
                f"Provider '{self.name}' is not available (disabled, missing credentials or SDK)",
                provider=self.name,
            )
        model_name = self.resolve_model(request.model)
        label = f"{self.name}:{model_name}"

        try:
            if request.stream and self.supports_streaming:
                deltas = await asyncio.wait_for(self._open_stream(request, model_name), timeout=self.timeout)
                logger.debug(f"Opened stream {label}")
                return ChunkStream(
                    self._stream_chunks(deltas, model_name),
                    label=label,
                    on_close=lambda: _close_quietly(deltas),
                )

            text = await asyncio.wait_for(self._complete(request, model_name), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                f"Provider '{self.name}' did not respond within {self.timeout}s",
                provider=self.name,
            ) from None
        return ChunkStream.from_chunks([
            self._chunk(ChunkType.TEXT, text or '', model_name),
            self._chunk(ChunkType.TEXT, COMPLETION_MARKER, model_name, done=True),
        ], label=label)

    @abstractmethod
    async def _open_stream(self, request: GenerationRequest, model_name: str) -> AsyncIterator[str]:
        """Connect upstream and return an async iterator of text deltas.

        Adapters holding a connection return ``UpstreamDeltas`` so the
        connection is released however the stream ends.
        """

    @abstractmethod
    async def _complete(self, request: GenerationRequest, model_name: str) -> str:
        """Perform one blocking completion and return its full text."""

    def _chunk(self, chunk_type: ChunkType, content: str, model_name: str,
               done: bool = False, tokens: Optional[int] = None) -> ResponseChunk:
        return ResponseChunk(
            type=chunk_type,
            content=content,
            done=done,
            tokens=tokens,
            provider=self.name,
            model=model_name,
        )

    async def _stream_chunks(self, deltas: AsyncIterator[str], model_name: str) -> AsyncIterator[ResponseChunk]:
        failure: Optional[str] = None
        try:
            while True:
                try:
                    delta = await asyncio.wait_for(deltas.__anext__(), timeout=self.timeout)
                except StopAsyncIteration:
                    break
                if delta:
                    yield self._chunk(ChunkType.TOKEN, delta, model_name)
        except asyncio.TimeoutError:
            failure = f"{self.name} stream timed out after {self.timeout}s without output"
        except Exception as e:
            failure = f"{self.name} stream failed: {e}"
        finally:
            await _close_quietly(deltas)

        if failure is not None:
            logger.warning(failure)
            yield self._chunk(ChunkType.ERROR, failure, model_name, done=True)
            return
        yield self._chunk(ChunkType.TEXT, COMPLETION_MARKER, model_name, done=True)


async def _close_quietly(resource: Any) -> None:
    closer = getattr(resource, 'aclose', None) or getattr(resource, 'close', None)
    if closer is None:
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.debug(f"Error closing upstream stream: {e}")
