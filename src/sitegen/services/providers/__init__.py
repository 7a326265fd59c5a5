"""Provider adapters translating generation requests into normalized chunk streams."""

from .base import ProviderAdapter, SYSTEM_PROMPT, build_user_message
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter
from .openrouter_provider import OpenRouterAdapter
from .registry import (
    DEFAULT_PROVIDER_PRIORITY,
    MODEL_PROVIDERS,
    ProviderRegistry,
    build_provider_registry,
)

__all__ = [
    'ProviderAdapter',
    'SYSTEM_PROMPT',
    'build_user_message',
    'GeminiAdapter',
    'OpenAIAdapter',
    'OpenRouterAdapter',
    'DEFAULT_PROVIDER_PRIORITY',
    'MODEL_PROVIDERS',
    'ProviderRegistry',
    'build_provider_registry',
]
