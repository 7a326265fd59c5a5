"""Tests for the streamed generation service and credit settlement."""

import asyncio
from unittest.mock import Mock

import pytest

from sitegen.constants import COMPLETION_MARKER, StreamEventType
from sitegen.realtime.sse import SSEStreamParser
from sitegen.services.admission import AdmissionController
from sitegen.services.counter_store import InMemoryCounterStore
from sitegen.services.credits import CreditsService
from sitegen.services.generation_stream import GenerationStreamService
from sitegen.services.pipeline import GenerationPipeline
from sitegen.services.rate_limiter import RateLimitConfig, SlidingWindowRateLimiter


@pytest.fixture
def build_service(make_router):
    def _build(*adapters, starting_balance=100, max_requests=100, pipeline=None):
        store = InMemoryCounterStore()
        credits = CreditsService(store, starting_balance=starting_balance)
        limiter = SlidingWindowRateLimiter(store, RateLimitConfig(max_requests=max_requests))
        pipeline = pipeline or GenerationPipeline(make_router(*adapters, max_retries=1))
        return GenerationStreamService(AdmissionController(credits, limiter), pipeline), credits
    return _build


def _events(service, user_id='u', description='A bakery site', **kwargs):
    async def run():
        return [event async for event in service.run(user_id, description, **kwargs)]
    return asyncio.run(run())


def _names(events):
    return [e.event.value for e in events]


@pytest.mark.unit
class TestGenerationStreamService:
    """Test event sequences and reservation settlement."""

    def test_successful_generation_commits(self, build_service, scripted_adapter):
        service, credits = build_service(scripted_adapter(deltas=['<h1>Hello</h1>', COMPLETION_MARKER]))

        events = _events(service)

        names = _names(events)
        assert names[:3] == ['reserved', 'credits', 'progress']
        assert names[-1] == 'done'
        assert 'data' in names and 'validation' in names
        assert events[0].data == {'amount': 10}
        assert events[1].data == {'remaining': 90}
        assert events[-1].data['success'] is True
        assert '<h1>Hello</h1>' in events[-1].data['result']['website']['pages'][0]['html']
        assert asyncio.run(credits.get_balance('u')) == 90

    def test_admission_rejection(self, build_service, scripted_adapter):
        adapter = scripted_adapter()
        service, _ = build_service(adapter, starting_balance=0)

        events = _events(service)

        assert _names(events) == ['error', 'done']
        assert events[0].data['status'] == 402
        assert events[0].data['reason'] == 'insufficient_credits'
        assert events[1].data == {'success': False, 'reason': 'insufficient_credits'}
        assert adapter.calls == 0

    def test_rate_limited(self, build_service, scripted_adapter):
        service, _ = build_service(scripted_adapter(), max_requests=1)
        _events(service)
        events = _events(service)
        assert events[0].data['status'] == 429
        assert events[0].data['reason'] == 'insufficient_rate_limit'

    def test_degraded_output_is_refunded(self, build_service, scripted_adapter):
        adapter = scripted_adapter(deltas=['<p>partial</p>', RuntimeError('connection lost')])
        service, credits = build_service(adapter)

        events = _events(service)

        assert events[-2].event == StreamEventType.CREDITS
        assert events[-2].data == {'remaining': 100}
        assert events[-1].data['success'] is False
        assert events[-1].data['degraded'] is True
        assert asyncio.run(credits.get_balance('u')) == 100

    def test_fallback_output_is_refunded(self, build_service, scripted_adapter):
        adapter = scripted_adapter(failures=[asyncio.TimeoutError()] * 10)
        service, credits = build_service(adapter)

        events = _events(service)

        assert events[-1].data['success'] is False
        assert asyncio.run(credits.get_balance('u')) == 100

    def test_app_error_reports_status(self, build_service, scripted_adapter):
        service, credits = build_service(scripted_adapter(enabled=False))

        events = _events(service)

        assert _names(events)[-2:] == ['error', 'done']
        assert events[-2].data['status'] == 503
        assert events[-2].data['message'] == 'No AI provider available for requested model'
        assert events[-1].data == {'success': False}
        assert asyncio.run(credits.get_balance('u')) == 100

    def test_unexpected_error_is_generic(self, build_service):
        async def broken(*args, **kwargs):
            raise RuntimeError('boom')
            yield  # pragma: no cover

        pipeline = Mock()
        pipeline.stream_website = broken
        service, credits = build_service(pipeline=pipeline)

        events = _events(service)

        assert events[-2].data == {'status': 500, 'message': 'Generation failed'}
        assert asyncio.run(credits.get_balance('u')) == 100

    def test_cancel_refunds_and_aborts(self, build_service, scripted_adapter):
        adapter = scripted_adapter(deltas=['<p>1</p>', '<p>2</p>', '<p>3</p>', COMPLETION_MARKER])
        service, credits = build_service(adapter)

        async def run():
            cancel = asyncio.Event()
            seen = []
            async for event in service.run('u', 'site', cancel=cancel):
                seen.append(event)
                if event.event == StreamEventType.DATA:
                    cancel.set()
            return seen, await credits.get_balance('u')

        events, balance = asyncio.run(run())
        assert events[-1].event == StreamEventType.ABORTED
        assert events[-1].data == {}
        assert balance == 100
        assert adapter.closed is True

    def test_abandoned_stream_refunds(self, build_service, scripted_adapter):
        service, credits = build_service(scripted_adapter(deltas=['<p>1</p>', '<p>2</p>', COMPLETION_MARKER]))

        async def run():
            agen = service.run('u', 'site')
            first = await agen.__anext__()
            mid_balance = await credits.get_balance('u')
            await agen.aclose()
            return first, mid_balance, await credits.get_balance('u')

        first, mid_balance, final_balance = asyncio.run(run())
        assert first.event == StreamEventType.RESERVED
        assert mid_balance == 90
        assert final_balance == 100

    def test_encoded_stream_parses_back(self, build_service, scripted_adapter):
        service, _ = build_service(scripted_adapter(deltas=['<h1>Hi</h1>', COMPLETION_MARKER]))

        async def run():
            return [block async for block in service.stream('u', 'site')]

        blocks = asyncio.run(run())
        assert blocks[0] == 'event: reserved\ndata: {"amount":10}\n\n'

        parser = SSEStreamParser()
        decoded = [e for block in blocks for e in parser.feed(block)]
        assert decoded[1].event == 'credits'
        assert decoded[1].data == {'remaining': 90}
        assert decoded[-1].event == 'done'
        assert decoded[-1].data['success'] is True

    def test_encoded_fragments_decode_as_text(self, build_service, scripted_adapter):
        service, _ = build_service(scripted_adapter(deltas=['<p>Since', ' 2024', 'true', ' null', COMPLETION_MARKER]))

        async def run():
            return [block async for block in service.stream('u', 'site')]

        parser = SSEStreamParser()
        decoded = [e for block in asyncio.run(run()) for e in parser.feed(block)]
        fragments = [e.data['html'] for e in decoded if e.event == 'data']
        assert fragments == ['<p>Since', ' 2024', 'true', ' null']
