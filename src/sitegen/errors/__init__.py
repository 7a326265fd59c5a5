"""Error handlers."""

from .handlers import register_error_handlers

__all__ = ['register_error_handlers']
