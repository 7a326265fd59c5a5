"""Google Gemini adapter built on the ``google-genai`` SDK."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Callable, Optional

from sitegen.constants import AIModel, AIProvider
from sitegen.models.generation import GenerationRequest
from sitegen.services.providers.base import ProviderAdapter, SYSTEM_PROMPT, build_user_message

try:
    from google import genai
    from google.genai import types as genai_types
    GENAI_AVAILABLE = True
except ImportError:  # pragma: no cover - depends on installed extras
    genai = None  # type: ignore[assignment]
    genai_types = None  # type: ignore[assignment]
    GENAI_AVAILABLE = False

logger = logging.getLogger(__name__)


class GeminiAdapter(ProviderAdapter):
    provider = AIProvider.GEMINI
    MODEL_MAP = {
        AIModel.AUTO: 'gemini-1.5-flash',
        AIModel.GEMINI_15_FLASH: 'gemini-1.5-flash',
        AIModel.GEMINI_15_PRO: 'gemini-1.5-pro',
    }

    def __init__(self, api_key: Optional[str] = None,
                 client_factory: Optional[Callable[..., Any]] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self._client_factory = client_factory

    def sdk_available(self) -> bool:
        return self._client_factory is not None or GENAI_AVAILABLE

    def _new_client(self):
        if self._client_factory is not None:
            return self._client_factory(api_key=self.api_key)
        return genai.Client(api_key=self.api_key)

    def _config(self):
        if genai_types is None:
            return {'system_instruction': SYSTEM_PROMPT, 'temperature': self.temperature}
        return genai_types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            temperature=self.temperature,
        )

    async def _open_stream(self, request: GenerationRequest, model_name: str) -> AsyncIterator[str]:
        client = self._new_client()
        stream = await client.aio.models.generate_content_stream(
            model=model_name,
            contents=build_user_message(request),
            config=self._config(),
        )
        return self._iter_deltas(stream)

    async def _iter_deltas(self, stream) -> AsyncIterator[str]:
        async for chunk in stream:
            text = getattr(chunk, 'text', None)
            if text:
                yield text

    async def _complete(self, request: GenerationRequest, model_name: str) -> str:
        client = self._new_client()
        response = await client.aio.models.generate_content(
            model=model_name,
            contents=build_user_message(request),
            config=self._config(),
        )
        return response.text or ''
