import sys
from pathlib import Path

# Ensure the application package under src/ is importable when running tests
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / 'src'
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import pytest
from unittest.mock import AsyncMock

from sitegen.constants import AIModel, AIProvider, ExecutionContext
from sitegen.factory import create_app
from sitegen.services.providers.base import ProviderAdapter, UpstreamDeltas
from sitegen.services.providers.registry import ProviderRegistry
from sitegen.services.recovery import RecoveryOptions
from sitegen.services.router import GenerationRouter


class ScriptedAdapter(ProviderAdapter):
    """Adapter whose upstream is a fixed list of text deltas.

    ``failures`` are raised, in order, by the next connection attempts
    before the deltas are served. A delta that is an exception instance is
    raised mid-stream.
    """

    MODEL_MAP = {
        AIModel.AUTO: 'scripted-model',
        AIModel.GPT_4O_MINI: 'scripted-model',
        AIModel.GEMINI_15_FLASH: 'scripted-model',
    }

    def __init__(self, provider=AIProvider.OPENAI, deltas=('<h1>Hello</h1>', '<!-- COMPLETE -->'),
                 failures=(), api_key='test-key', **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.provider = provider
        self.deltas = list(deltas)
        self.failures = list(failures)
        self.calls = 0
        self.closed = False

    async def _open_stream(self, request, model_name):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return UpstreamDeltas(self._iter_deltas(), self._release)

    async def _iter_deltas(self):
        for delta in self.deltas:
            if isinstance(delta, BaseException):
                raise delta
            yield delta

    async def _release(self):
        self.closed = True

    async def _complete(self, request, model_name):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return ''.join(d for d in self.deltas if isinstance(d, str))


@pytest.fixture
def scripted_adapter():
    """The ``ScriptedAdapter`` class, for tests building their own upstreams."""
    return ScriptedAdapter


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def make_router(no_sleep):
    """Build a test-context router over the given adapters with instant backoff."""
    def _make(*adapters, max_retries=2, context=ExecutionContext.TEST):
        registry = ProviderRegistry(adapters)
        options = RecoveryOptions(max_retries=max_retries, initial_delay=0.0, jitter=False, sleep=no_sleep)
        return GenerationRouter(registry, options, execution_context=context)
    return _make


@pytest.fixture
def app():
    """Create application for the tests."""
    app = create_app('testing')
    yield app


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()
