"""
Flask Extensions
================

Builds the generation services from app configuration and keeps them on
``app.extensions['app_components']``.
"""

from typing import Optional

from flask import Flask, current_app

from sitegen.constants import ExecutionContext, SafetyLevel
from sitegen.services.admission import AdmissionController
from sitegen.services.content_safety import (
    ContentSafetyLayer,
    SoupAccessibilityAuditor,
    SoupSanitizer,
)
from sitegen.services.counter_store import CounterStore, create_counter_store
from sitegen.services.credits import CreditsService
from sitegen.services.generation_stream import GenerationStreamService
from sitegen.services.pipeline import GenerationPipeline
from sitegen.services.providers import ProviderRegistry, build_provider_registry
from sitegen.services.rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from sitegen.services.recovery import RecoveryOptions
from sitegen.services.router import GenerationRouter
from sitegen.utils.logging_config import get_logger

logger = get_logger('extensions')


class AppComponents:
    """Centralized component manager for Flask app."""

    def __init__(self):
        self.store: Optional[CounterStore] = None
        self.credits: Optional[CreditsService] = None
        self.rate_limiter: Optional[SlidingWindowRateLimiter] = None
        self.admission: Optional[AdmissionController] = None
        self.registry: Optional[ProviderRegistry] = None
        self.router: Optional[GenerationRouter] = None
        self.safety_layer: Optional[ContentSafetyLayer] = None
        self.pipeline: Optional[GenerationPipeline] = None
        self.stream_service: Optional[GenerationStreamService] = None

    def init_app(self, app: Flask):
        """Initialize components with Flask app."""
        app.extensions['app_components'] = self

    def set_router(self, router: GenerationRouter):
        """Swap the generation router, keeping the pipeline in sync."""
        self.router = router
        self.registry = router.registry
        if self.pipeline is not None:
            self.pipeline.router = router


def get_components() -> Optional[AppComponents]:
    """Get components from current Flask app."""
    return current_app.extensions.get('app_components')


def init_extensions(app: Flask) -> AppComponents:
    """Wire admission control, routing and the pipeline from ``app.config``."""
    cfg = app.config
    components = AppComponents()

    components.store = create_counter_store(cfg.get('REDIS_URL'))
    components.credits = CreditsService(components.store, starting_balance=int(cfg.get('STARTING_CREDITS', 100)))
    components.rate_limiter = SlidingWindowRateLimiter(components.store, RateLimitConfig(
        window_seconds=float(cfg.get('RATE_LIMIT_WINDOW_SECONDS', 60)),
        max_requests=int(cfg.get('RATE_LIMIT_MAX_REQUESTS', 100)),
    ))
    components.admission = AdmissionController(components.credits, components.rate_limiter)

    execution_context = ExecutionContext(cfg.get('RUNTIME_CONTEXT', ExecutionContext.SERVER.value))
    components.registry = build_provider_registry(cfg)
    components.router = GenerationRouter(
        components.registry,
        RecoveryOptions(
            max_retries=int(cfg.get('RECOVERY_MAX_RETRIES', 2)),
            initial_delay=float(cfg.get('RECOVERY_INITIAL_DELAY', 0.25)),
            jitter=bool(cfg.get('RECOVERY_JITTER', True)),
        ),
        execution_context=execution_context,
    )

    base_layer = ContentSafetyLayer(
        SafetyLevel(cfg.get('SAFETY_LEVEL', SafetyLevel.STRICT.value)),
        sanitizer=SoupSanitizer(),
        auditor=SoupAccessibilityAuditor(),
    )
    components.safety_layer = base_layer
    components.pipeline = GenerationPipeline(components.router, safety_layer_factory=base_layer.with_level)
    components.stream_service = GenerationStreamService(components.admission, components.pipeline)

    components.init_app(app)
    logger.info(
        f"Components initialized (store={components.store.name}, context={execution_context.value}, "
        f"providers={components.registry.enabled_providers() or 'none'})"
    )
    return components
