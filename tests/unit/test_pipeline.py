"""Tests for the generation pipeline: prompt, accumulation and validation."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from sitegen.constants import (
    AIModel,
    AIProvider,
    ChunkType,
    COMPLETION_MARKER,
    ContentTone,
    DesignConstraintType,
    DesignStyle,
    FALLBACK_MARKER,
    SafetyLevel,
)
from sitegen.models.generation import Brand, ResponseChunk, ThemeTokens, UserPreferences, WebsiteSnapshot
from sitegen.services.content_safety import ContentSafetyLayer
from sitegen.services.pipeline import (
    ChunkAccumulator,
    GenerateWebsiteOptions,
    GenerationPipeline,
    build_generation_request,
    build_website_prompt,
    ensure_document,
)
from sitegen.services.streams import ChunkStream
from sitegen.utils.errors import NoProviderAvailableError


def _text(content, done=False, chunk_type=ChunkType.TEXT, tokens=None):
    return ResponseChunk(type=chunk_type, content=content, done=done, tokens=tokens)


async def _collect(agen):
    return [event async for event in agen]


@pytest.mark.unit
class TestChunkAccumulator:
    """Test chunk accumulation and stop conditions."""

    def test_marker_is_stripped(self):
        """Fragments concatenate in order and the completion marker is removed."""
        acc = ChunkAccumulator()
        fragments = [acc.add(chunk) for chunk in (
            _text('<h1>Hello</h1>'),
            _text('<p>Content</p>'),
            _text(COMPLETION_MARKER, done=True),
        )]
        assert ''.join(fragments) == '<h1>Hello</h1><p>Content</p>'
        assert acc.result() == '<h1>Hello</h1><p>Content</p>'
        assert acc.finished is True
        assert acc.degraded is False

    def test_marker_split_across_tokens_is_not_emitted(self):
        acc = ChunkAccumulator()
        first = acc.add(_text('<p>a</p><!-- COMP', chunk_type=ChunkType.TOKEN))
        second = acc.add(_text('LETE -->', chunk_type=ChunkType.TOKEN))
        assert first == '<p>a</p>'
        assert second == ''
        assert acc.finished is True
        assert acc.result() == '<p>a</p>'

    def test_held_back_prefix_is_released_when_it_is_not_the_marker(self):
        acc = ChunkAccumulator()
        assert acc.add(_text('<p>a</p><!-- C', chunk_type=ChunkType.TOKEN)) == '<p>a</p>'
        assert acc.add(_text('omment --><p>b</p>', chunk_type=ChunkType.TOKEN)) == '<!-- Comment --><p>b</p>'
        assert acc.add(_text('<', chunk_type=ChunkType.TOKEN)) == ''
        assert acc.add(_text('/main>', chunk_type=ChunkType.TOKEN)) == '</main>'
        assert acc.finished is False

    def test_held_back_prefix_is_released_on_done(self):
        acc = ChunkAccumulator()
        assert acc.add(_text('<p>end</p><!-', chunk_type=ChunkType.TOKEN)) == '<p>end</p>'
        assert acc.add(_text('', done=True)) == '<!-'
        assert acc.result() == '<p>end</p><!-'

    def test_token_counting(self):
        acc = ChunkAccumulator()
        acc.add(_text('a', chunk_type=ChunkType.TOKEN))
        acc.add(_text('b', chunk_type=ChunkType.TOKEN, tokens=5))
        assert acc.token_count == 6

    def test_stops_at_marker_without_done(self):
        acc = ChunkAccumulator()
        acc.add(_text('<p>x</p>' + COMPLETION_MARKER))
        assert acc.finished is True
        assert acc.add(_text('<p>ignored</p>')) == ''
        assert acc.result() == '<p>x</p>'

    def test_error_chunk_appends_visible_marker(self):
        acc = ChunkAccumulator()
        acc.add(_text('<p>partial</p>'))
        fragment = acc.add(_text('stream failed -- reset', chunk_type=ChunkType.ERROR, done=True))
        assert fragment.startswith('\n<!-- ERROR: ')
        assert '--' not in fragment[len('\n<!--'):-len('-->')]
        assert acc.errored is True
        assert acc.degraded is True
        assert acc.finished is True
        assert acc.result().startswith('<p>partial</p>')

    def test_fallback_marker_marks_degraded(self):
        acc = ChunkAccumulator()
        acc.add(_text(FALLBACK_MARKER + '\n<p>placeholder</p>'))
        assert acc.degraded is True
        assert acc.errored is False

    def test_remaining_chunks_are_not_consumed(self):
        consumed = []

        async def source():
            for content in ('<p>a</p>', COMPLETION_MARKER, '<p>late</p>'):
                consumed.append(content)
                yield _text(content)

        stream = ChunkStream(source())
        router = Mock(generate_stream=AsyncMock(return_value=stream))
        result = asyncio.run(GenerationPipeline(router).generate_website('x'))

        assert consumed == ['<p>a</p>', COMPLETION_MARKER]
        assert '<p>late</p>' not in result.website.html
        assert stream.closed is True


@pytest.mark.unit
class TestPromptAndDocument:
    """Test prompt construction and document wrapping."""

    def test_prompt_includes_preferences_and_brand(self):
        prefs = UserPreferences(
            design_style=DesignStyle.BOLD,
            content_tone=ContentTone.TECHNICAL,
            brand=Brand(name='Crumbs', primary_color='#aa3300'),
        )
        prompt = build_website_prompt('  Bakery landing page  ', prefs)
        assert 'Description: Bakery landing page' in prompt
        assert 'Design style: bold' in prompt
        assert 'Content tone: technical' in prompt
        assert '- Name: Crumbs' in prompt
        assert '- Primary color: #aa3300' in prompt
        assert prompt.endswith(f'Include {COMPLETION_MARKER} at the end.')

    def test_request_carries_fixed_constraints(self):
        request = build_generation_request('x', UserPreferences(), model=AIModel.GPT_4O)
        types = [c.type for c in request.context.constraints]
        assert types == [
            DesignConstraintType.A11Y,
            DesignConstraintType.PERFORMANCE,
            DesignConstraintType.SEO,
            DesignConstraintType.BRAND,
            DesignConstraintType.BUDGET,
        ]
        assert request.context.constraints[1].details == {'budget': 'LCP<2.5s'}
        assert request.model == AIModel.GPT_4O
        assert request.stream is True

    def test_fragment_is_wrapped(self):
        doc = ensure_document('<h1>Hi</h1>')
        assert doc.startswith('<!doctype html>')
        assert '<html lang="en">' in doc
        assert '<title>Generated Site</title>' in doc
        assert '<main>\n<h1>Hi</h1>\n</main>' in doc

    def test_empty_output_gets_placeholder(self):
        assert 'New Site' in ensure_document('   ')

    def test_full_document_untouched(self):
        doc = '<!doctype html><html lang="de"><body>x</body></html>'
        assert ensure_document(doc) == doc


@pytest.mark.unit
class TestGenerationPipeline:
    """Test end-to-end pipeline runs over scripted providers."""

    def test_generate_website(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<h1>Hello</h1>', '<p>Content</p>', COMPLETION_MARKER])
        pipeline = GenerationPipeline(make_router(adapter))
        result = asyncio.run(pipeline.generate_website('A greeting page'))

        assert '<h1>Hello</h1><p>Content</p>' in result.website.html
        assert COMPLETION_MARKER not in result.website.html
        assert result.website.pages[0].path == '/'
        assert result.website.metadata.provider == AIProvider.OPENAI.value
        assert result.website.metadata.tokens_used >= 3
        assert result.degraded is False
        assert result.validation.passed is True
        assert adapter.closed is True

    def test_stream_event_order(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<h1>Hi</h1>', COMPLETION_MARKER])
        pipeline = GenerationPipeline(make_router(adapter))
        events = asyncio.run(_collect(pipeline.stream_website('hi')))

        types = [e.type for e in events]
        assert types[:2] == ['progress', 'progress']
        assert types[-4:] == ['progress', 'validation', 'progress', 'result']
        assert [e.data for e in events if e.type == 'data'] == [{'html': '<h1>Hi</h1>'}]
        assert [e.data['pct'] for e in events if e.type == 'progress'] == [5, 10, 80, 100]

    def test_numeric_looking_tokens_stay_text(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<p>Est.', ' 2024', 'true', ' null', COMPLETION_MARKER])
        pipeline = GenerationPipeline(make_router(adapter))
        events = asyncio.run(_collect(pipeline.stream_website('x')))

        fragments = [e.data['html'] for e in events if e.type == 'data']
        assert fragments == ['<p>Est.', ' 2024', 'true', ' null']

    def test_snapshot_theme_is_carried_into_artifact(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<h1>Hi</h1>', COMPLETION_MARKER])
        theme = ThemeTokens(colors={'primary': '#aa3300'}, fonts={'body': 'Inter'})
        pipeline = GenerationPipeline(make_router(adapter))
        result = asyncio.run(pipeline.generate_website('x', snapshot=WebsiteSnapshot(theme=theme)))

        assert result.website.theme == theme
        assert result.to_dict()['website']['theme']['colors'] == {'primary': '#aa3300'}

    def test_closing_after_first_progress_releases_upstream(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<h1>Hi</h1>', COMPLETION_MARKER])
        pipeline = GenerationPipeline(make_router(adapter))

        async def run():
            agen = pipeline.stream_website('x')
            seen = [await agen.__anext__(), await agen.__anext__()]
            await agen.aclose()
            return seen

        events = asyncio.run(run())
        assert [e.data['stage'] for e in events] == ['routing', 'generating']
        assert adapter.closed is True

    def test_safety_level_option(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<img src="a.png">', COMPLETION_MARKER])
        seen = []

        def factory(level):
            seen.append(level)
            return ContentSafetyLayer(level)

        pipeline = GenerationPipeline(make_router(adapter), safety_layer_factory=factory)
        result = asyncio.run(pipeline.generate_website(
            'x', options=GenerateWebsiteOptions(safety_level=SafetyLevel.MODERATE)
        ))
        assert seen == [SafetyLevel.MODERATE]
        assert result.validation.passed is True

    def test_provider_error_chunk_is_degraded(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<p>partial</p>', RuntimeError('connection dropped')])
        pipeline = GenerationPipeline(make_router(adapter))
        result = asyncio.run(pipeline.generate_website('x'))
        assert result.degraded is True
        assert '<!-- ERROR:' in result.website.html

    def test_persistent_outage_serves_fallback(self, make_router, scripted_adapter):
        adapter = scripted_adapter(failures=[asyncio.TimeoutError()] * 10)
        pipeline = GenerationPipeline(make_router(adapter, max_retries=1))
        result = asyncio.run(pipeline.generate_website('x'))
        assert result.degraded is True
        assert 'AI generation temporarily unavailable' in result.website.html
        assert result.website.html.startswith(FALLBACK_MARKER)

    def test_no_provider_raises(self, make_router, scripted_adapter):
        pipeline = GenerationPipeline(make_router(scripted_adapter(enabled=False), max_retries=0))
        with pytest.raises(NoProviderAvailableError):
            asyncio.run(pipeline.generate_website('x'))

    def test_cancel_stops_before_validation(self, make_router, scripted_adapter):
        adapter = scripted_adapter(deltas=['<p>1</p>', '<p>2</p>', '<p>3</p>', COMPLETION_MARKER])
        pipeline = GenerationPipeline(make_router(adapter))

        async def run():
            cancel = asyncio.Event()
            seen = []
            async for event in pipeline.stream_website('x', cancel=cancel):
                seen.append(event)
                if event.type == 'data':
                    cancel.set()
            return seen

        events = asyncio.run(run())
        assert [e.type for e in events] == ['progress', 'progress', 'data']
        assert adapter.closed is True
