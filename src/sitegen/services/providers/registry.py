"""Provider registry: explicit lookup tables for adapter selection."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sitegen.constants import AIModel, AIProvider, ExecutionContext
from sitegen.services.providers.base import ProviderAdapter
from sitegen.services.providers.gemini_provider import GeminiAdapter
from sitegen.services.providers.openai_provider import OpenAIAdapter
from sitegen.services.providers.openrouter_provider import OpenRouterAdapter

logger = logging.getLogger(__name__)

MODEL_PROVIDERS: Dict[AIModel, AIProvider] = {
    AIModel.GPT_4O_MINI: AIProvider.OPENAI,
    AIModel.GPT_4_1: AIProvider.OPENAI,
    AIModel.GPT_4O: AIProvider.OPENAI,
    AIModel.GEMINI_15_FLASH: AIProvider.GEMINI,
    AIModel.GEMINI_15_PRO: AIProvider.GEMINI,
    AIModel.CLAUDE_35_SONNET: AIProvider.OPENROUTER,
    AIModel.CLAUDE_3_OPUS: AIProvider.OPENROUTER,
}

DEFAULT_PROVIDER_PRIORITY = (AIProvider.OPENAI, AIProvider.GEMINI, AIProvider.OPENROUTER)


class ProviderRegistry:
    """Maps providers to adapters and models to providers."""

    def __init__(self, adapters: Iterable[ProviderAdapter] = (),
                 priority: Iterable[AIProvider] = DEFAULT_PROVIDER_PRIORITY,
                 model_providers: Optional[Mapping[AIModel, AIProvider]] = None):
        self._adapters: Dict[AIProvider, ProviderAdapter] = {}
        for adapter in adapters:
            self.register(adapter)
        self.priority: List[AIProvider] = list(priority)
        self.model_providers: Dict[AIModel, AIProvider] = dict(model_providers or MODEL_PROVIDERS)

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.provider] = adapter

    def get(self, provider: AIProvider) -> Optional[ProviderAdapter]:
        return self._adapters.get(provider)

    def provider_for(self, model: AIModel) -> Optional[AIProvider]:
        return self.model_providers.get(model)

    def adapter_for_model(self, model: AIModel) -> Optional[ProviderAdapter]:
        provider = self.provider_for(model)
        return self._adapters.get(provider) if provider else None

    def by_priority(self) -> List[ProviderAdapter]:
        return [self._adapters[p] for p in self.priority if p in self._adapters]

    def enabled_providers(self) -> List[str]:
        return [a.name for a in self.by_priority() if a.is_enabled()]

    def status(self) -> Dict[str, Any]:
        return {
            adapter.name: {'enabled': adapter.is_enabled(), 'sdk': adapter.sdk_available()}
            for adapter in self._adapters.values()
        }


def parse_priority(value: Any) -> List[AIProvider]:
    """Parse a comma separated provider list, skipping unknown names."""
    if not value:
        return list(DEFAULT_PROVIDER_PRIORITY)
    names = value.split(',') if isinstance(value, str) else list(value)
    priority = []
    for name in names:
        try:
            priority.append(AIProvider(str(name).strip().lower()))
        except ValueError:
            logger.warning(f"Ignoring unknown provider in PROVIDER_PRIORITY: {name}")
    return priority or list(DEFAULT_PROVIDER_PRIORITY)


def build_provider_registry(config: Mapping[str, Any]) -> ProviderRegistry:
    """Create adapters for every known backend from app configuration."""
    server_side = config.get('RUNTIME_CONTEXT', ExecutionContext.SERVER.value) != ExecutionContext.CLIENT.value
    common = {
        'server_side': server_side,
        'timeout': float(config.get('PROVIDER_TIMEOUT', 60.0)),
        'temperature': float(config.get('PROVIDER_TEMPERATURE', 0.7)),
    }
    adapters = [
        OpenAIAdapter(
            api_key=config.get('OPENAI_API_KEY'),
            base_url=config.get('OPENAI_BASE_URL'),
            enabled=bool(config.get('ENABLE_OPENAI', True)),
            **common,
        ),
        GeminiAdapter(
            api_key=config.get('GOOGLE_API_KEY'),
            enabled=bool(config.get('ENABLE_GEMINI', True)),
            **common,
        ),
        OpenRouterAdapter(
            api_key=config.get('OPENROUTER_API_KEY'),
            site_url=config.get('OPENROUTER_SITE_URL', 'http://localhost:5000'),
            site_name=config.get('OPENROUTER_SITE_NAME', 'SiteGen'),
            enabled=bool(config.get('ENABLE_OPENROUTER', False)),
            **common,
        ),
    ]
    registry = ProviderRegistry(adapters, priority=parse_priority(config.get('PROVIDER_PRIORITY')))
    logger.info(f"Provider registry ready; enabled: {registry.enabled_providers() or 'none'}")
    return registry
