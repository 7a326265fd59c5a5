"""Generation Data Model
=====================

Value types passed between the router, the providers, the pipeline and the
safety layer. Requests, chunks and validation results are frozen; the
``to_dict``/``from_dict`` helpers use the camelCase keys of the JSON API.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sitegen.constants import (
    AIModel,
    AIOperation,
    ChunkType,
    ContentTone,
    DesignConstraintType,
    DesignStyle,
    IssueType,
    PerformancePriority,
    Severity,
)


# ===========================
# PREFERENCES & CONTEXT
# ===========================

@dataclass
class Brand:
    """Brand constraints supplied by the user."""
    name: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    font_family: Optional[str] = None
    type_scale: Optional[float] = None
    logo_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['Brand']:
        if not data:
            return None
        typography = data.get('typography') or {}
        return cls(
            name=data.get('name'),
            primary_color=data.get('primaryColor'),
            secondary_color=data.get('secondaryColor'),
            font_family=typography.get('fontFamily') or data.get('fontFamily'),
            type_scale=typography.get('scale'),
            logo_url=data.get('logoUrl'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'primaryColor': self.primary_color,
            'secondaryColor': self.secondary_color,
        }
        if self.font_family or self.type_scale:
            result['typography'] = {'fontFamily': self.font_family, 'scale': self.type_scale}
        if self.logo_url:
            result['logoUrl'] = self.logo_url
        return result


@dataclass
class UserPreferences:
    """Design preferences collected from the generation form."""
    design_style: DesignStyle = DesignStyle.MINIMAL
    content_tone: ContentTone = ContentTone.FRIENDLY
    performance_priority: PerformancePriority = PerformancePriority.BALANCED
    brand: Optional[Brand] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'UserPreferences':
        """Build preferences from the request body, falling back to defaults
        for missing or unknown values."""
        data = data or {}
        return cls(
            design_style=_coerce(DesignStyle, data.get('designStyle'), DesignStyle.MINIMAL),
            content_tone=_coerce(ContentTone, data.get('contentTone'), ContentTone.FRIENDLY),
            performance_priority=_coerce(
                PerformancePriority, data.get('performancePriority'), PerformancePriority.BALANCED
            ),
            brand=Brand.from_dict(data.get('brand')),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'designStyle': self.design_style.value,
            'contentTone': self.content_tone.value,
            'performancePriority': self.performance_priority.value,
        }
        if self.brand is not None:
            result['brand'] = self.brand.to_dict()
        return result


@dataclass(frozen=True)
class DesignConstraint:
    type: DesignConstraintType
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type.value, 'details': dict(self.details)}


@dataclass
class ThemeTokens:
    colors: Dict[str, str] = field(default_factory=dict)
    fonts: Dict[str, str] = field(default_factory=dict)
    spacing: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'colors': dict(self.colors), 'fonts': dict(self.fonts), 'spacing': dict(self.spacing)}


@dataclass
class WebsitePage:
    id: str
    path: str
    title: str
    html: str
    css: str = ''
    js: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'path': self.path,
            'title': self.title,
            'html': self.html,
            'css': self.css,
            'js': self.js,
        }


@dataclass
class WebsiteAssets:
    images: List[str] = field(default_factory=list)
    fonts: List[str] = field(default_factory=list)
    other: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'images': list(self.images), 'fonts': list(self.fonts), 'other': list(self.other)}


@dataclass
class WebsiteSnapshot:
    """An existing design the generation should start from."""
    pages: List[WebsitePage] = field(default_factory=list)
    assets: WebsiteAssets = field(default_factory=WebsiteAssets)
    theme: Optional[ThemeTokens] = None
    overrides: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pages': [p.to_dict() for p in self.pages],
            'assets': self.assets.to_dict(),
            'theme': self.theme.to_dict() if self.theme else None,
            'overrides': dict(self.overrides),
        }


@dataclass(frozen=True)
class GenerationContext:
    current_design: Optional[WebsiteSnapshot] = None
    user_preferences: UserPreferences = field(default_factory=UserPreferences)
    constraints: Tuple[DesignConstraint, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentDesign': self.current_design.to_dict() if self.current_design else None,
            'userPreferences': self.user_preferences.to_dict(),
            'constraints': [c.to_dict() for c in self.constraints],
        }


# ===========================
# REQUEST & CHUNKS
# ===========================

@dataclass(frozen=True)
class GenerationRequest:
    """Immutable request handed from the router to a provider adapter."""
    prompt: str
    context: GenerationContext = field(default_factory=GenerationContext)
    model: AIModel = AIModel.AUTO
    stream: bool = True
    operation: AIOperation = AIOperation.GENERATE_PAGE

    def with_model(self, model: AIModel) -> 'GenerationRequest':
        """Return a copy of this request targeting ``model``."""
        return replace(self, model=model)


@dataclass(frozen=True)
class ResponseChunk:
    type: ChunkType
    content: str
    done: bool = False
    tokens: Optional[int] = None
    provider: Optional[str] = None
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.type.value, 'content': self.content, 'done': self.done}
        if self.tokens is not None:
            result['tokens'] = self.tokens
        if self.provider:
            result['provider'] = self.provider
        if self.model:
            result['model'] = self.model
        return result


# ===========================
# VALIDATION
# ===========================

@dataclass(frozen=True)
class GenerationIssue:
    id: str
    type: IssueType
    message: str
    severity: Severity
    ai_fixable: bool = False
    suggested_fix: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'id': self.id,
            'type': self.type.value,
            'message': self.message,
            'severity': self.severity.value,
            'aiFixable': self.ai_fixable,
        }
        if self.suggested_fix:
            result['suggestedFix'] = self.suggested_fix
        return result


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    issues: Tuple[GenerationIssue, ...] = ()
    confidence_score: float = 1.0

    @property
    def ai_fixes_available(self) -> bool:
        return any(issue.ai_fixable for issue in self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'passed': self.passed,
            'issues': [i.to_dict() for i in self.issues],
            'aiFixesAvailable': self.ai_fixes_available,
            'confidenceScore': self.confidence_score,
        }


# ===========================
# ARTIFACT
# ===========================

@dataclass
class GenerationMetadata:
    generated_by: str
    model: str
    provider: Optional[str] = None
    tokens_used: int = 0
    confidence: float = 0.8
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'generatedBy': self.generated_by,
            'model': self.model,
            'provider': self.provider,
            'tokensUsed': self.tokens_used,
            'confidence': self.confidence,
            'createdAt': self.created_at,
        }


@dataclass
class Website:
    pages: List[WebsitePage]
    metadata: GenerationMetadata
    assets: WebsiteAssets = field(default_factory=WebsiteAssets)
    theme: Optional[ThemeTokens] = None

    @property
    def html(self) -> str:
        """Markup of the first page."""
        return self.pages[0].html if self.pages else ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pages': [p.to_dict() for p in self.pages],
            'assets': self.assets.to_dict(),
            'theme': self.theme.to_dict() if self.theme else None,
            'metadata': self.metadata.to_dict(),
        }


def _coerce(enum_cls, value, default):
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        return default
