"""OpenRouter adapter
==================

Talks to the OpenRouter chat completions endpoint directly with aiohttp and
decodes its server-sent event stream with the same incremental parser the
client transport uses. Non-200 answers raise ``ProviderHTTPError`` carrying
the upstream status so the Recovery Layer can classify 429/5xx as transient.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, Optional

import aiohttp

from sitegen.constants import AIModel, AIProvider
from sitegen.models.generation import GenerationRequest
from sitegen.realtime.sse import SSEStreamParser
from sitegen.services.providers.base import ProviderAdapter, UpstreamDeltas
from sitegen.utils.errors import ProviderHTTPError

logger = logging.getLogger(__name__)

STREAM_DONE = '[DONE]'


class OpenRouterAdapter(ProviderAdapter):
    provider = AIProvider.OPENROUTER
    API_URL = "https://openrouter.ai/api/v1/chat/completions"
    MODEL_MAP = {
        AIModel.AUTO: 'anthropic/claude-3.5-sonnet',
        AIModel.CLAUDE_35_SONNET: 'anthropic/claude-3.5-sonnet',
        AIModel.CLAUDE_3_OPUS: 'anthropic/claude-3-opus',
    }

    def __init__(self, api_key: Optional[str] = None, site_url: str = 'http://localhost:5000',
                 site_name: str = 'SiteGen',
                 session_factory: Optional[Callable[[], Any]] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.site_url = site_url
        self.site_name = site_name
        self._session_factory = session_factory or aiohttp.ClientSession

    def _headers(self) -> Dict[str, str]:
        """Build request headers."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.site_url,
            "X-Title": self.site_name,
            "Content-Type": "application/json",
            "X-Request-ID": str(uuid.uuid4()),
        }

    def _payload(self, request: GenerationRequest, model_name: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": model_name,
            "messages": self.build_messages(request),
            "temperature": self.temperature,
            "stream": stream,
        }

    async def _post(self, session, request: GenerationRequest, model_name: str, stream: bool):
        response = await session.post(
            self.API_URL,
            json=self._payload(request, model_name, stream),
            headers=self._headers(),
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.timeout, sock_read=self.timeout),
        )
        if response.status != 200:
            text = await response.text()
            response.release()
            raise ProviderHTTPError(
                f"OpenRouter API error {response.status}: {text[:200]}",
                status=response.status,
                provider=self.name,
            )
        return response

    async def _open_stream(self, request: GenerationRequest, model_name: str) -> AsyncIterator[str]:
        session = self._session_factory()
        try:
            response = await self._post(session, request, model_name, stream=True)
        except Exception:
            await session.close()
            raise

        async def release():
            response.release()
            await session.close()

        return UpstreamDeltas(self._iter_deltas(response), release)

    async def _iter_deltas(self, response) -> AsyncIterator[str]:
        parser = SSEStreamParser()
        async for raw in response.content.iter_any():
            for event in parser.feed(raw.decode('utf-8', errors='replace')):
                if event.data == STREAM_DONE:
                    return
                delta = _extract_delta(event.data)
                if delta:
                    yield delta

    async def _complete(self, request: GenerationRequest, model_name: str) -> str:
        async with self._session_factory() as session:
            response = await self._post(session, request, model_name, stream=False)
            try:
                data = await response.json()
            finally:
                response.release()
        choices = data.get('choices') or []
        if not choices:
            error = data.get('error', {})
            message = error.get('message') if isinstance(error, dict) else str(error)
            raise ProviderHTTPError(f"Malformed OpenRouter response: {message or 'missing choices'}",
                                    status=502, provider=self.name)
        return choices[0].get('message', {}).get('content') or ''


def _extract_delta(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    if data.get('error'):
        error = data['error']
        message = error.get('message') if isinstance(error, dict) else str(error)
        raise ProviderHTTPError(f"OpenRouter stream error: {message}", status=502, provider='openrouter')
    choices = data.get('choices') or []
    if not choices:
        return None
    return (choices[0].get('delta') or {}).get('content')
