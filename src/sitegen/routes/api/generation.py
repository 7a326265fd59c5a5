"""Generation API
==============

Endpoints:

POST /api/generate-site
{
  "description": "Landing page for a neighbourhood bakery",
  "preferences": {"designStyle": "minimal", "brand": {"name": "Crumbs"}},
  "userId": "user-123",
  "model": "auto"
}
-> text/event-stream of reserved, credits, progress, data, validation,
   error, done events

GET /api/credits/<user_id>
-> {"userId": "user-123", "credits": 90}
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from sitegen.constants import AIModel, AIOperation, SafetyLevel
from sitegen.extensions import get_components
from sitegen.models.generation import UserPreferences
from sitegen.services.pipeline import GenerateWebsiteOptions
from sitegen.utils.async_utils import iterate_async, run_async_safely
from sitegen.utils.errors import BadRequestError
from sitegen.utils.helpers import create_success_response

logger = logging.getLogger(__name__)

gen_bp = Blueprint('generation', __name__, url_prefix='/api')

SSE_HEADERS = {
    'Cache-Control': 'no-cache',
    'Connection': 'keep-alive',
    'X-Accel-Buffering': 'no',
}


def _enum_field(enum_cls, data, key, default):
    value = data.get(key)
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise BadRequestError(f"Invalid {key} '{value}'; expected one of: {allowed}") from None


@gen_bp.route('/generate-site', methods=['POST'])
def generate_site():
    """Stream a website generation as server-sent events."""
    data = request.get_json(silent=True) or {}

    description = (data.get('description') or '').strip()
    user_id = data.get('userId') or request.headers.get('X-User-Id')
    if not description:
        raise BadRequestError("description is required")
    if not user_id:
        raise BadRequestError("userId is required")

    options = GenerateWebsiteOptions(
        model=_enum_field(AIModel, data, 'model', AIModel.AUTO),
        operation=_enum_field(AIOperation, data, 'operation', AIOperation.GENERATE_PAGE),
        safety_level=_enum_field(
            SafetyLevel, data, 'safetyLevel', SafetyLevel(current_app.config.get('SAFETY_LEVEL', 'strict'))
        ),
    )
    preferences = UserPreferences.from_dict(data.get('preferences'))

    logger.info(f"Generation requested by {user_id} (model={options.model.value})")
    events = get_components().stream_service.stream(str(user_id), description, preferences, None, options)
    return Response(
        stream_with_context(iterate_async(events)),
        mimetype='text/event-stream',
        headers=SSE_HEADERS,
    )


@gen_bp.route('/credits/<user_id>', methods=['GET'])
def get_credits(user_id):
    """Current credit balance, creating the account on first access."""
    account = run_async_safely(get_components().credits.get_account(user_id))
    return jsonify(create_success_response(account.to_dict()))
