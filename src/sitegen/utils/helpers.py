"""
Utility Functions
=================

Standard JSON response envelopes shared by the API routes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sitegen.utils.errors import build_error_payload


def create_success_response(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    """Create standardized success response."""
    response = {
        'success': True,
        'message': message,
        'timestamp': datetime.now(timezone.utc).isoformat()
    }

    if data is not None:
        response['data'] = data

    return response


def create_error_response(error: str, code: int = 500, details: Optional[Dict[str, Any]] = None,
                          error_type: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Create standardized error response."""
    payload = build_error_payload(
        error,
        status=code,
        error=error_type or error,
        details=details if details else None,
        **extra
    )
    payload.setdefault('success', False)
    payload.setdefault('code', code)
    return payload
