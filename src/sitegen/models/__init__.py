"""Data model for generation requests, chunks, validation results and artifacts."""

from .generation import (
    Brand,
    DesignConstraint,
    GenerationContext,
    GenerationIssue,
    GenerationMetadata,
    GenerationRequest,
    ResponseChunk,
    ThemeTokens,
    UserPreferences,
    ValidationResult,
    Website,
    WebsiteAssets,
    WebsitePage,
    WebsiteSnapshot,
)

__all__ = [
    'Brand',
    'DesignConstraint',
    'GenerationContext',
    'GenerationIssue',
    'GenerationMetadata',
    'GenerationRequest',
    'ResponseChunk',
    'ThemeTokens',
    'UserPreferences',
    'ValidationResult',
    'Website',
    'WebsiteAssets',
    'WebsitePage',
    'WebsiteSnapshot',
]
