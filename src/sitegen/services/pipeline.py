"""Generation Pipeline
===================

Turns a site description into a validated ``Website`` artifact:

1. build the structured prompt and a ``GenerationRequest`` with the fixed
   constraint list;
2. open a chunk stream through the router;
3. accumulate chunks until the completion marker, a ``done`` chunk or an
   ``error`` chunk;
4. wrap partial output in a minimal document so it always renders;
5. validate with the Content Safety Layer.

``stream_website`` runs the same steps but yields progress, markup
fragments and the validation result as they happen, and stops reading
(cancelling the upstream stream) as soon as its cancel event is set.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, List, Optional, Tuple

from sitegen.constants import (
    AIModel,
    AIOperation,
    ChunkType,
    COMPLETION_MARKER,
    DesignConstraintType,
    FALLBACK_MARKER,
    SafetyLevel,
)
from sitegen.models.generation import (
    DesignConstraint,
    GenerationContext,
    GenerationIssue,
    GenerationMetadata,
    GenerationRequest,
    ResponseChunk,
    UserPreferences,
    ValidationResult,
    Website,
    WebsitePage,
    WebsiteSnapshot,
)
from sitegen.services.content_safety import ContentSafetyLayer
from sitegen.services.router import GenerationRouter

logger = logging.getLogger(__name__)

GENERATED_BY = 'sitegen-pipeline'
DEFAULT_CONFIDENCE = 0.8

WEBSITE_REQUIREMENTS = (
    "Valid, modern HTML5 with semantic landmarks",
    "WCAG 2.1 AA accessibility",
    "Mobile-first responsive layout",
    "Largest Contentful Paint under 2.5s",
    "SEO-friendly structure (title, meta description, heading hierarchy)",
    "Cross-browser compatibility",
    "Clean, maintainable code with no inline event handlers",
)

DEFAULT_CONSTRAINTS: Tuple[DesignConstraint, ...] = (
    DesignConstraint(DesignConstraintType.A11Y),
    DesignConstraint(DesignConstraintType.PERFORMANCE, {'budget': 'LCP<2.5s'}),
    DesignConstraint(DesignConstraintType.SEO),
    DesignConstraint(DesignConstraintType.BRAND, {'preserve': True}),
    DesignConstraint(DesignConstraintType.BUDGET, {'tokens': 'auto'}),
)

DOCUMENT_SCAFFOLD = (
    '<!doctype html>\n'
    '<html lang="en">\n'
    '<head>\n'
    '<meta charset="utf-8">\n'
    '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
    '<title>Generated Site</title>\n'
    '</head>\n'
    '<body>\n'
    '<main>\n'
    '{body}\n'
    '</main>\n'
    '</body>\n'
    '</html>\n'
)
EMPTY_BODY = '<h1>New Site</h1><p>No content produced.</p>'
HTML_TAG = re.compile(r'<html[\s>]', re.IGNORECASE)


def build_website_prompt(description: str, preferences: UserPreferences) -> str:
    """Structured prompt: fixed requirements, then preferences and brand."""
    lines = [
        "Create a complete, production-ready single-page website.",
        "",
        f"Description: {description.strip()}",
        "",
        "Requirements:",
    ]
    lines.extend(f"{i}. {req}" for i, req in enumerate(WEBSITE_REQUIREMENTS, start=1))
    lines += [
        "",
        "User Preferences:",
        f"- Design style: {preferences.design_style.value}",
        f"- Content tone: {preferences.content_tone.value}",
        f"- Performance priority: {preferences.performance_priority.value}",
    ]
    brand = preferences.brand
    if brand is not None:
        lines += ["", "Brand:"]
        for label, value in (
            ("Name", brand.name),
            ("Primary color", brand.primary_color),
            ("Secondary color", brand.secondary_color),
            ("Font family", brand.font_family),
            ("Logo", brand.logo_url),
        ):
            if value:
                lines.append(f"- {label}: {value}")
    lines += ["", f"Include {COMPLETION_MARKER} at the end."]
    return "\n".join(lines)


def build_generation_request(description: str, preferences: UserPreferences,
                             snapshot: Optional[WebsiteSnapshot] = None,
                             model: AIModel = AIModel.AUTO,
                             operation: AIOperation = AIOperation.GENERATE_PAGE) -> GenerationRequest:
    return GenerationRequest(
        prompt=build_website_prompt(description, preferences),
        context=GenerationContext(
            current_design=snapshot,
            user_preferences=preferences,
            constraints=DEFAULT_CONSTRAINTS,
        ),
        model=model,
        stream=True,
        operation=operation,
    )


def ensure_document(markup: str) -> str:
    """Wrap fragments (anything without an ``<html>`` tag) in a minimal document."""
    if HTML_TAG.search(markup):
        return markup
    return DOCUMENT_SCAFFOLD.replace('{body}', markup.strip() or EMPTY_BODY)


class ChunkAccumulator:
    """Applies chunks in production order and tracks stop conditions.

    ``add`` returns only text that is safe to show: a trailing run that could
    be the start of the completion marker is held back until the next chunk
    settles it.
    """

    def __init__(self):
        self._parts: List[str] = []
        self._emitted = 0
        self.token_count = 0
        self.finished = False
        self.errored = False
        self.error_message: Optional[str] = None
        self.provider: Optional[str] = None
        self.model: Optional[str] = None

    @property
    def text(self) -> str:
        return ''.join(self._parts)

    def add(self, chunk: ResponseChunk) -> str:
        """Apply one chunk; returns the visible fragment it released."""
        if self.finished:
            return ''
        if chunk.provider:
            self.provider, self.model = chunk.provider, chunk.model

        if chunk.type == ChunkType.ERROR:
            self.errored = True
            self.error_message = chunk.content
            # Closing comment delimiters inside the message would end the marker early
            marker = f"\n<!-- ERROR: {html.escape(chunk.content).replace('--', '&#45;&#45;')} -->"
            self._parts.append(marker)
            self.finished = True
            return self._release()

        if chunk.type in (ChunkType.TOKEN, ChunkType.TEXT):
            self._parts.append(chunk.content)
            self.token_count += chunk.tokens if chunk.tokens is not None else 1

        if chunk.done or COMPLETION_MARKER in self.text:
            self.finished = True
        return self._release()

    def _release(self) -> str:
        if self.finished:
            visible = self.text.replace(COMPLETION_MARKER, '')
            end = len(visible)
        else:
            visible = self.text
            end = len(visible) - _marker_prefix_length(visible)
        fragment = visible[self._emitted:end]
        self._emitted = max(self._emitted, end)
        return fragment

    @property
    def degraded(self) -> bool:
        """Output came from the fallback document or ended in an error."""
        return self.errored or FALLBACK_MARKER in self.text

    def result(self) -> str:
        """Accumulated markup with the completion marker stripped and trimmed."""
        return self.text.replace(COMPLETION_MARKER, '').strip()


def _marker_prefix_length(text: str) -> int:
    """Length of the longest suffix of ``text`` that starts the completion marker."""
    for size in range(min(len(text), len(COMPLETION_MARKER) - 1), 0, -1):
        if COMPLETION_MARKER.startswith(text[-size:]):
            return size
    return 0


@dataclass
class GenerateWebsiteOptions:
    model: AIModel = AIModel.AUTO
    operation: AIOperation = AIOperation.GENERATE_PAGE
    safety_level: SafetyLevel = SafetyLevel.STRICT


@dataclass
class GenerateWebsiteResult:
    website: Website
    validation: ValidationResult
    issues: Tuple[GenerationIssue, ...]
    degraded: bool = False

    def to_dict(self):
        return {
            'website': self.website.to_dict(),
            'validation': self.validation.to_dict(),
            'issues': [i.to_dict() for i in self.issues],
            'degraded': self.degraded,
        }


@dataclass
class PipelineEvent:
    """Incremental pipeline output: ``progress``, ``data``, ``validation`` or ``result``."""
    type: str
    data: Any = None
    result: Optional[GenerateWebsiteResult] = field(default=None, repr=False)


class GenerationPipeline:
    """Prompt, route, accumulate and validate."""

    def __init__(self, router: GenerationRouter,
                 safety_layer_factory: Callable[[SafetyLevel], ContentSafetyLayer] = ContentSafetyLayer):
        self.router = router
        self.safety_layer_factory = safety_layer_factory

    async def generate_website(self, description: str, preferences: Optional[UserPreferences] = None,
                               snapshot: Optional[WebsiteSnapshot] = None,
                               options: Optional[GenerateWebsiteOptions] = None) -> GenerateWebsiteResult:
        """Generate and validate a site in one call."""
        result = None
        async for event in self.stream_website(description, preferences, snapshot, options):
            if event.type == 'result':
                result = event.result
        return result

    async def stream_website(self, description: str, preferences: Optional[UserPreferences] = None,
                             snapshot: Optional[WebsiteSnapshot] = None,
                             options: Optional[GenerateWebsiteOptions] = None,
                             cancel: Optional[asyncio.Event] = None) -> AsyncIterator[PipelineEvent]:
        """Yield pipeline events; the last one is ``result`` unless cancelled.

        Raises:
            AppError: Routing failures that the Recovery Layer re-raised
        """
        options = options or GenerateWebsiteOptions()
        preferences = preferences or UserPreferences()
        request = build_generation_request(description, preferences, snapshot, options.model, options.operation)

        yield PipelineEvent('progress', {'pct': 5, 'stage': 'routing'})
        stream = await self.router.generate_stream(request)
        acc = ChunkAccumulator()
        try:
            yield PipelineEvent('progress', {'pct': 10, 'stage': 'generating'})
            async for chunk in stream:
                if cancel is not None and cancel.is_set():
                    break
                fragment = acc.add(chunk)
                if fragment:
                    yield PipelineEvent('data', {'html': fragment})
                if acc.finished:
                    break
        finally:
            await stream.cancel()

        if cancel is not None and cancel.is_set():
            logger.info(f"Generation cancelled after {acc.token_count} tokens")
            return

        yield PipelineEvent('progress', {'pct': 80, 'stage': 'validating'})
        markup = ensure_document(acc.result())
        safety = self.safety_layer_factory(options.safety_level)
        validation = safety.validate(markup)
        yield PipelineEvent('validation', validation.to_dict())

        website = Website(
            pages=[WebsitePage(id='index', path='/', title='Home', html=markup)],
            metadata=GenerationMetadata(
                generated_by=GENERATED_BY,
                model=acc.model or options.model.value,
                provider=acc.provider,
                tokens_used=acc.token_count,
                confidence=DEFAULT_CONFIDENCE,
            ),
            theme=snapshot.theme if snapshot else None,
        )
        result = GenerateWebsiteResult(
            website=website,
            validation=validation,
            issues=validation.issues,
            degraded=acc.degraded,
        )
        yield PipelineEvent('progress', {'pct': 100, 'stage': 'complete'})
        yield PipelineEvent('result', result.to_dict(), result=result)
