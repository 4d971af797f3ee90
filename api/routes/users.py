# SPDX-License-Identifier: Apache-2.0

"""
Account endpoints for the signed-in user.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from middleware.auth import require_jwt, current_user
from middleware.validation import validate_json
from models.requests import UpdateLocationRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

users_tag = Tag(name="Users", description="Account self-service")
users_bp = APIBlueprint(
    'users',
    __name__,
    url_prefix='/api/users',
    abp_tags=[users_tag]
)


@users_bp.patch('/location')
@require_jwt
@validate_json(UpdateLocationRequest)
def update_location(payload: UpdateLocationRequest):
    """
    Report the caller's current position.

    Helpers keep this fresh so nearby-helper searches can find them.
    """
    user_context = current_user()

    with tracer.start_as_current_span("users.location.request") as span:
        span.set_attribute("user.id", user_context.user_id)
        user = current_app.user_service.update_location(user_context, payload.coordinates)
        return jsonify(current_app.hal_formatter.format_user_location(user))
