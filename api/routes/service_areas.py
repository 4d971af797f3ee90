# SPDX-License-Identifier: Apache-2.0

"""
Service area endpoints.

Helpers declare the circles they are willing to cover; only the owning helper
can edit or toggle an area.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
import logging

from middleware.auth import require_jwt, current_user
from middleware.validation import validate_json
from models.requests import ServiceAreaPath, CreateServiceAreaRequest, UpdateServiceAreaRequest

logger = logging.getLogger(__name__)

service_areas_tag = Tag(name="Service Areas", description="Helper coverage areas")
service_areas_bp = APIBlueprint(
    'service_areas',
    __name__,
    url_prefix='/api/service-areas',
    abp_tags=[service_areas_tag]
)


@service_areas_bp.post('')
@require_jwt
@validate_json(CreateServiceAreaRequest)
def create_service_area(payload: CreateServiceAreaRequest):
    """Declare a coverage circle for the calling helper."""
    user_context = current_user()
    area = current_app.service_area_service.create(user_context, payload)
    return jsonify(current_app.hal_formatter.format_service_area(area, user_context)), 201


@service_areas_bp.get('')
@require_jwt
def list_my_service_areas():
    user_context = current_user()
    formatter = current_app.hal_formatter

    areas = current_app.service_area_service.list_mine(user_context)
    items = [formatter.format_service_area(area, user_context) for area in areas]

    return jsonify(formatter.builder.build_list_response(items, '/api/service-areas'))


@service_areas_bp.get('/<area_id>')
@require_jwt
def get_service_area(path: ServiceAreaPath):
    user_context = current_user()
    area = current_app.service_area_service.get_owned(path.area_id, user_context)
    return jsonify(current_app.hal_formatter.format_service_area(area, user_context))


@service_areas_bp.put('/<area_id>')
@require_jwt
@validate_json(UpdateServiceAreaRequest)
def update_service_area(payload: UpdateServiceAreaRequest, path: ServiceAreaPath):
    """Change the radius, city or state of an owned area."""
    user_context = current_user()
    area = current_app.service_area_service.update(path.area_id, user_context, payload)
    return jsonify(current_app.hal_formatter.format_service_area(area, user_context))


@service_areas_bp.post('/<area_id>/deactivate')
@require_jwt
def deactivate_service_area(path: ServiceAreaPath):
    user_context = current_user()
    area = current_app.service_area_service.set_active(path.area_id, user_context, False)
    return jsonify(current_app.hal_formatter.format_service_area(area, user_context))


@service_areas_bp.post('/<area_id>/activate')
@require_jwt
def activate_service_area(path: ServiceAreaPath):
    user_context = current_user()
    area = current_app.service_area_service.set_active(path.area_id, user_context, True)
    return jsonify(current_app.hal_formatter.format_service_area(area, user_context))
