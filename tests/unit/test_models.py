"""
Unit tests for the generation data model.

Covers the camelCase JSON helpers and the defaults applied to unknown
preference values.
"""
import pytest

from sitegen.constants import AIModel, ChunkType, ContentTone, DesignStyle, IssueType, Severity
from sitegen.models.generation import (
    Brand,
    GenerationIssue,
    GenerationMetadata,
    GenerationRequest,
    ResponseChunk,
    UserPreferences,
    ValidationResult,
    Website,
    WebsitePage,
)


@pytest.mark.unit
class TestUserPreferences:
    """Test UserPreferences parsing."""

    def test_defaults_for_empty_body(self):
        prefs = UserPreferences.from_dict(None)
        assert prefs.design_style == DesignStyle.MINIMAL
        assert prefs.content_tone == ContentTone.FRIENDLY
        assert prefs.brand is None

    def test_unknown_values_fall_back(self):
        prefs = UserPreferences.from_dict({'designStyle': 'brutalist', 'contentTone': 'casual'})
        assert prefs.design_style == DesignStyle.MINIMAL
        assert prefs.content_tone == ContentTone.CASUAL

    def test_brand_typography(self):
        prefs = UserPreferences.from_dict({
            'designStyle': 'bold',
            'brand': {'name': 'Crumbs', 'primaryColor': '#c60', 'typography': {'fontFamily': 'Inter', 'scale': 1.25}},
        })
        assert prefs.brand == Brand(name='Crumbs', primary_color='#c60', font_family='Inter', type_scale=1.25)
        assert prefs.to_dict()['brand']['typography'] == {'fontFamily': 'Inter', 'scale': 1.25}
        assert prefs.to_dict()['designStyle'] == 'bold'


@pytest.mark.unit
class TestValueTypes:
    """Test request, chunk and validation helpers."""

    def test_with_model_copies(self):
        request = GenerationRequest(prompt='x', model=AIModel.GPT_4O_MINI)
        downgraded = request.with_model(AIModel.AUTO)
        assert downgraded.model == AIModel.AUTO
        assert request.model == AIModel.GPT_4O_MINI
        assert downgraded.prompt == 'x'

    def test_chunk_dict_omits_empty_fields(self):
        chunk = ResponseChunk(type=ChunkType.TEXT, content='<p>')
        assert chunk.to_dict() == {'type': 'text', 'content': '<p>', 'done': False}

    def test_ai_fixes_available(self):
        issue = GenerationIssue(id='a11y-1', type=IssueType.ACCESSIBILITY, message='m',
                                severity=Severity.MEDIUM, ai_fixable=True)
        result = ValidationResult(passed=False, issues=(issue,), confidence_score=0.6)
        payload = result.to_dict()
        assert payload['aiFixesAvailable'] is True
        assert payload['issues'][0]['aiFixable'] is True

    def test_website_html_is_first_page(self):
        site = Website(pages=[WebsitePage(id='index', path='/', title='Home', html='<html></html>')],
                       metadata=GenerationMetadata(generated_by='sitegen', model='gpt-4o-mini'))
        assert site.html == '<html></html>'
        assert site.to_dict()['metadata']['tokensUsed'] == 0
