"""
Core API Routes
===============

Health and status endpoints.
"""

from datetime import datetime, timezone

from flask import Blueprint, jsonify

from sitegen.extensions import get_components
from sitegen.utils.async_utils import run_async_safely
from sitegen.utils.helpers import create_error_response, create_success_response

core_bp = Blueprint('core_api', __name__, url_prefix='/api')


@core_bp.route('/health')
def api_health():
    """API health check endpoint."""
    components = get_components()
    store_ok = run_async_safely(components.store.ping())
    body = {
        'status': 'healthy' if store_ok else 'degraded',
        'store': components.store.name,
        'store_connected': store_ok,
        'providers': components.registry.status(),
        'rate_limiter': components.rate_limiter.get_stats(),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    if not store_ok:
        return jsonify(create_error_response("Counter store unreachable", 503, details=body)), 503
    return jsonify(create_success_response(body))
