# SPDX-License-Identifier: Apache-2.0

"""
Helper matching endpoints.

Proximity search over helper locations and coverage search over declared
service areas.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from middleware.auth import optional_jwt
from middleware.validation import validate_query
from models.requests import NearbyHelpersQuery, CoveringHelpersQuery

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

helpers_tag = Tag(name="Helpers", description="Helper matching")
helpers_bp = APIBlueprint(
    'helpers',
    __name__,
    url_prefix='/api/helpers',
    abp_tags=[helpers_tag]
)


@helpers_bp.get('/nearby')
@optional_jwt
@validate_query(NearbyHelpersQuery)
def nearby_helpers(params: NearbyHelpersQuery):
    """Helpers whose last known location is within the radius, closest first."""
    formatter = current_app.hal_formatter

    with tracer.start_as_current_span("helpers.nearby.request") as span:
        span.set_attributes({
            "geo.radius_km": params.radius,
            "geo.user_type": params.user_type or "any"
        })

        results = current_app.matcher_service.find_nearby_helpers(
            (params.lng, params.lat),
            params.radius,
            user_type=params.user_type,
            verification_status=params.verification_status,
            active_only=params.active_only,
            limit=params.limit
        )
        items = [formatter.format_helper(helper, round(distance, 3)) for helper, distance in results]

        return jsonify(formatter.builder.build_list_response(
            items, '/api/helpers/nearby', radiusKm=params.radius
        ))


@helpers_bp.get('/covering')
@optional_jwt
@validate_query(CoveringHelpersQuery)
def covering_helpers(params: CoveringHelpersQuery):
    """
    Helpers with an active service area that contains the point.

    Each area is tested against its own radius; a helper appears once, with
    the distance to their closest covering area.
    """
    formatter = current_app.hal_formatter

    with tracer.start_as_current_span("helpers.covering.request") as span:
        results = current_app.matcher_service.find_helpers_covering_location(
            (params.lng, params.lat), params.animal_type
        )
        span.set_attribute("geo.result_count", len(results))

        logger.debug(
            "Covering helpers resolved",
            extra={"lng": params.lng, "lat": params.lat, "count": len(results)}
        )

        items = [formatter.format_helper(helper, round(distance, 3)) for helper, distance in results]
        return jsonify(formatter.builder.build_list_response(items, '/api/helpers/covering'))
