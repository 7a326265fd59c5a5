"""OpenAI chat completions adapter."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Callable, Optional

from sitegen.constants import AIModel, AIProvider
from sitegen.models.generation import GenerationRequest
from sitegen.services.providers.base import ProviderAdapter, UpstreamDeltas

try:
    from openai import AsyncOpenAI
    OPENAI_AVAILABLE = True
except ImportError:  # pragma: no cover - depends on installed extras
    AsyncOpenAI = None  # type: ignore[assignment,misc]
    OPENAI_AVAILABLE = False

logger = logging.getLogger(__name__)


class OpenAIAdapter(ProviderAdapter):
    provider = AIProvider.OPENAI
    MODEL_MAP = {
        AIModel.AUTO: 'gpt-4o-mini',
        AIModel.GPT_4O_MINI: 'gpt-4o-mini',
        AIModel.GPT_4_1: 'gpt-4.1',
        AIModel.GPT_4O: 'gpt-4o',
    }

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 client_factory: Optional[Callable[..., Any]] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.base_url = base_url
        self._client_factory = client_factory

    def sdk_available(self) -> bool:
        return self._client_factory is not None or OPENAI_AVAILABLE

    def _new_client(self):
        # One client per generation: Flask drives each stream on its own event loop
        factory = self._client_factory or AsyncOpenAI
        return factory(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)

    async def _open_stream(self, request: GenerationRequest, model_name: str) -> AsyncIterator[str]:
        client = self._new_client()
        try:
            stream = await client.chat.completions.create(
                model=model_name,
                messages=self.build_messages(request),
                temperature=self.temperature,
                stream=True,
            )
        except Exception:
            await client.close()
            raise
        return UpstreamDeltas(self._iter_deltas(stream), client.close)

    async def _iter_deltas(self, stream) -> AsyncIterator[str]:
        async for event in stream:
            if not event.choices:
                continue
            content = event.choices[0].delta.content
            if content:
                yield content

    async def _complete(self, request: GenerationRequest, model_name: str) -> str:
        client = self._new_client()
        try:
            response = await client.chat.completions.create(
                model=model_name,
                messages=self.build_messages(request),
                temperature=self.temperature,
            )
        finally:
            await client.close()
        return response.choices[0].message.content or ''
