"""Unified error response utilities and exception hierarchy.

Configuration problems (missing credentials, disabled providers, unsupported
models) and admission rejections are raised as ``AppError`` subclasses so the
HTTP layer can map them to a JSON payload without extra translation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from flask import g, has_request_context, request

HTTP_DEFAULT_STATUS = 500


@dataclass
class AppError(Exception):
    message: str
    http_status: int = 400
    code: Optional[str] = None  # machine readable stable code
    details: Optional[Dict[str, Any]] = None

    def __str__(self):  # pragma: no cover - trivial
        return self.message


@dataclass
class BadRequestError(AppError):
    http_status: int = 400


@dataclass
class PaymentRequiredError(AppError):
    http_status: int = 402
    code: Optional[str] = 'insufficient_credits'


@dataclass
class TooManyRequestsError(AppError):
    http_status: int = 429
    code: Optional[str] = 'insufficient_rate_limit'


@dataclass
class ExecutionContextError(AppError):
    """Generation was invoked outside a server-side context."""
    http_status: int = 500
    code: Optional[str] = 'server_only'


# --- provider errors -------------------------------------------------------

@dataclass
class ProviderError(AppError):
    http_status: int = 502
    provider: Optional[str] = None


@dataclass
class ProviderUnavailableError(ProviderError):
    """Provider disabled, missing credentials or missing its SDK."""
    http_status: int = 503
    code: Optional[str] = 'provider_unavailable'


@dataclass
class UnsupportedModelError(ProviderError):
    http_status: int = 400
    code: Optional[str] = 'unsupported_model'


@dataclass
class NoProviderAvailableError(ProviderError):
    message: str = 'No AI provider available for requested model'
    http_status: int = 503
    code: Optional[str] = 'no_provider'


@dataclass
class ProviderHTTPError(ProviderError):
    """Upstream answered with a non-success status; ``status`` drives retry classification."""
    status: Optional[int] = None
    code: Optional[str] = 'provider_http_error'


@dataclass
class ProviderTimeoutError(ProviderError):
    """No answer from upstream within the adapter timeout."""
    http_status: int = 504
    code: Optional[str] = 'provider_timeout'
    status: Optional[int] = 504


def build_error_payload(message: str, *, status: int, error: str | None = None, **extra: Any) -> Dict[str, Any]:
    in_request = has_request_context()
    payload = {
        'status': 'error',
        'status_code': status,
        'message': message,
        'error': error or message,
        'error_id': getattr(g, 'request_id', None) if in_request else None,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'path': request.path if in_request else None,
    }
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload
