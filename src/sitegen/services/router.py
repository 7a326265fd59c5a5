"""Generation Router
=================

Selects a provider adapter for a request and wraps selection plus
invocation in the Recovery Layer:

- downgrade: the same request with the model forced to ``auto``;
- fallback: a small placeholder document announcing that generation is
  temporarily unavailable, terminated by the completion marker.

Selection order: the requested model's provider when it is enabled, then
(for ``auto`` only) the first enabled provider in priority order.
"""

from __future__ import annotations

import html
import logging
from dataclasses import replace
from typing import Optional

from sitegen.constants import (
    AIModel,
    ChunkType,
    COMPLETION_MARKER,
    ExecutionContext,
    FALLBACK_MARKER,
    FALLBACK_MESSAGE,
)
from sitegen.models.generation import GenerationRequest, ResponseChunk
from sitegen.services.providers.base import ProviderAdapter
from sitegen.services.providers.registry import ProviderRegistry
from sitegen.services.recovery import RecoveryOptions, with_recovery
from sitegen.services.streams import ChunkStream
from sitegen.utils.errors import ExecutionContextError, NoProviderAvailableError

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = 'fallback'

FALLBACK_TEMPLATE = (
    '<!doctype html>\n'
    '<html lang="en">\n'
    '<head>\n'
    '<meta charset="utf-8">\n'
    '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
    '<title>Generation unavailable</title>\n'
    '</head>\n'
    '<body>\n'
    '<main>\n'
    '<h1>AI generation temporarily unavailable</h1>\n'
    '<p>{message}</p>\n'
    '</main>\n'
    '</body>\n'
    '</html>\n'
)


def fallback_stream(message: str = FALLBACK_MESSAGE) -> ChunkStream:
    """Placeholder stream used once every provider attempt has failed."""
    def chunk(content: str, done: bool = False) -> ResponseChunk:
        return ResponseChunk(type=ChunkType.TEXT, content=content, done=done,
                             provider=FALLBACK_PROVIDER, model=AIModel.AUTO.value)

    return ChunkStream.from_chunks([
        chunk(FALLBACK_MARKER + '\n'),
        chunk(FALLBACK_TEMPLATE.format(message=html.escape(message, quote=True))),
        chunk(COMPLETION_MARKER, done=True),
    ], label=FALLBACK_PROVIDER)


class GenerationRouter:
    """Provider selection with retry, downgrade and fallback."""

    def __init__(self, registry: ProviderRegistry,
                 recovery_options: Optional[RecoveryOptions] = None,
                 execution_context: ExecutionContext = ExecutionContext.SERVER):
        self.registry = registry
        self.recovery_options = recovery_options or RecoveryOptions()
        self.execution_context = ExecutionContext(execution_context)

    @property
    def is_server_side(self) -> bool:
        return self.execution_context != ExecutionContext.CLIENT

    def select_adapter(self, model: AIModel) -> ProviderAdapter:
        """Pick the adapter serving ``model``.

        Raises:
            NoProviderAvailableError: No enabled provider can serve the request
        """
        adapter = self.registry.adapter_for_model(model)
        if adapter is not None and adapter.is_enabled():
            return adapter
        if model == AIModel.AUTO:
            for candidate in self.registry.by_priority():
                if candidate.is_enabled():
                    return candidate
        raise NoProviderAvailableError(details={'model': model.value})

    async def _invoke(self, request: GenerationRequest) -> ChunkStream:
        adapter = self.select_adapter(request.model)
        logger.info(f"Routing {request.operation.value} (model={request.model.value}) to {adapter.name}")
        return await adapter.generate(request)

    def _options_for(self, request: GenerationRequest) -> RecoveryOptions:
        async def downgrade() -> ChunkStream:
            return await self._invoke(request.with_model(AIModel.AUTO))

        options = replace(self.recovery_options, on_downgrade=downgrade)
        if self.execution_context == ExecutionContext.TEST:
            options = replace(options, log_error=None)
        return options

    async def generate_stream(self, request: GenerationRequest) -> ChunkStream:
        """Produce one normalized chunk stream for ``request``.

        Raises:
            ExecutionContextError: Called from a client execution context
            AppError: Configuration errors that survive their single retry
        """
        if not self.is_server_side:
            raise ExecutionContextError("Generation router must run server-side")

        async def operation() -> ChunkStream:
            return await self._invoke(request)

        async def fallback() -> ChunkStream:
            logger.warning(f"All providers failed for {request.operation.value}; serving fallback document")
            return fallback_stream()

        return await with_recovery(operation, fallback, self._options_for(request))
