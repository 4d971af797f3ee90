# SPDX-License-Identifier: Apache-2.0

"""
Rescue case endpoints.

This module implements the case lifecycle API: reporting, listing, proximity
browsing, helper assignment, photo-evidenced status updates, transfer,
resolution and reporter sign-off.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from middleware.auth import require_jwt, optional_jwt, current_user
from middleware.error_handler import AuthorizationException
from middleware.validation import validate_json, validate_query
from models.enums import HELPER_TYPES
from models.requests import (
    CasePath, CreateCaseRequest, CaseListQuery, NearbyCasesQuery, OverdueCasesQuery,
    PaginationParams, StatusUpdateRequest, TransferCaseRequest, ReporterRejectRequest
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

cases_tag = Tag(name="Cases", description="Rescue case lifecycle")
cases_bp = APIBlueprint(
    'cases',
    __name__,
    url_prefix='/api/cases',
    abp_tags=[cases_tag]
)


@cases_bp.post('')
@optional_jwt
@validate_json(CreateCaseRequest)
def create_case(payload: CreateCaseRequest):
    """
    Report an animal in need.

    Anonymous reports are accepted; an authenticated reporter is stored as the
    case reporter. Candidate helpers are alerted after the case is stored.
    """
    user_context = current_user()

    with tracer.start_as_current_span("case.create.request") as span:
        span.set_attributes({
            "case.animal_type": payload.animal_type,
            "case.condition": payload.condition,
            "user.authenticated": user_context is not None
        })

        case = current_app.case_service.create_case(payload, user_context)

        logger.info(
            "Case reported",
            extra={
                "case_id": case.id,
                "animal_type": case.animal_type,
                "urgency_level": case.urgency_level,
                "user_id": user_context.user_id if user_context else None
            }
        )

        return jsonify(current_app.hal_formatter.format_case(case, user_context)), 201


@cases_bp.get('')
@optional_jwt
@validate_query(CaseListQuery)
def list_cases(params: CaseListQuery):
    """List cases with filters, newest first."""
    user_context = current_user()
    cases, result = current_app.case_service.list_cases(params, user_context)

    filters = params.model_dump(by_alias=True, exclude={'page', 'page_size'}, exclude_defaults=True)
    if params.status:
        filters['status'] = ','.join(params.status)

    return jsonify(current_app.hal_formatter.format_case_collection(
        cases, result.total, result.page, result.page_size, user_context, filters
    ))


@cases_bp.get('/nearby')
@optional_jwt
@validate_query(NearbyCasesQuery)
def nearby_cases(params: NearbyCasesQuery):
    """Cases around a point, closest first; open cases unless statuses are given."""
    user_context = current_user()
    formatter = current_app.hal_formatter

    with tracer.start_as_current_span("case.nearby.request") as span:
        span.set_attributes({"geo.radius_km": params.radius, "geo.limit": params.limit})

        results = current_app.case_service.find_nearby_cases(
            (params.lng, params.lat), params.radius, params.status, params.limit
        )
        items = [
            formatter.format_case(case, user_context, distanceKm=round(distance, 3))
            for case, distance in results
        ]
        span.set_attribute("geo.result_count", len(items))

        return jsonify(formatter.builder.build_list_response(
            items, '/api/cases/nearby', radiusKm=params.radius
        ))


@cases_bp.get('/overdue')
@require_jwt
@validate_query(OverdueCasesQuery)
def overdue_cases(params: OverdueCasesQuery):
    """Active cases without progress for longer than ``hours``."""
    user_context = current_user()
    formatter = current_app.hal_formatter

    cases = current_app.case_service.find_overdue_cases(params.hours)
    items = [formatter.format_case(case, user_context) for case in cases]

    return jsonify(formatter.builder.build_list_response(
        items, '/api/cases/overdue', hours=params.hours
    ))


@cases_bp.get('/<case_id>')
@optional_jwt
def get_case(path: CasePath):
    """Get a case with the actions available to the caller."""
    case = current_app.case_service.get_case(path.case_id)
    return jsonify(current_app.hal_formatter.format_case(case, current_user()))


@cases_bp.get('/<case_id>/timeline')
@optional_jwt
def case_timeline(path: CasePath):
    case, events = current_app.case_service.get_timeline(path.case_id)
    return jsonify(current_app.hal_formatter.format_timeline(case, events))


@cases_bp.get('/<case_id>/status-updates')
@optional_jwt
@validate_query(PaginationParams)
def list_status_updates(params: PaginationParams, path: CasePath):
    """Status updates of a case, newest first."""
    updates, result = current_app.case_service.list_status_updates(
        path.case_id, params.page, params.page_size
    )
    return jsonify(current_app.hal_formatter.format_status_update_collection(
        path.case_id, updates, result.total, result.page, result.page_size
    ))


@cases_bp.post('/<case_id>/assign')
@require_jwt
def assign_case(path: CasePath):
    """Accept a case as the calling helper."""
    user_context = current_user()

    with tracer.start_as_current_span("case.assign.request") as span:
        span.set_attributes({"case.id": path.case_id, "user.id": user_context.user_id})

        if user_context.user_type not in HELPER_TYPES:
            raise AuthorizationException("Only volunteers and NGOs can accept cases")

        case = current_app.case_service.assign_helper(path.case_id, user_context.user_id)
        return jsonify(current_app.hal_formatter.format_case(case, user_context))


@cases_bp.post('/<case_id>/status-updates')
@require_jwt
@validate_json(StatusUpdateRequest)
def submit_status_update(payload: StatusUpdateRequest, path: CasePath):
    """
    Submit a photo-evidenced progress report.

    The submitted target status is applied to the case in the same operation;
    the response embeds the updated case.
    """
    user_context = current_user()
    formatter = current_app.hal_formatter

    with tracer.start_as_current_span("case.status_update.request") as span:
        span.set_attributes({
            "case.id": path.case_id,
            "status_update.new_status": payload.new_status,
            "status_update.photo_count": len(payload.photos)
        })

        update, case = current_app.case_service.submit_status_update(
            path.case_id, user_context.user_id, payload
        )

        response = formatter.format_status_update(update)
        response['_embedded'] = {'case': formatter.format_case(case, user_context)}
        return jsonify(response), 201


@cases_bp.post('/<case_id>/transfer')
@optional_jwt
@validate_json(TransferCaseRequest)
def transfer_case(payload: TransferCaseRequest, path: CasePath):
    """Reopen a case as critical and alert a wider helper pool."""
    case = current_app.case_service.transfer(path.case_id, payload.reason)
    return jsonify(current_app.hal_formatter.format_case(case, current_user()))


@cases_bp.post('/<case_id>/mark-resolved')
@optional_jwt
def mark_case_resolved(path: CasePath):
    user_context = current_user()
    case = current_app.case_service.mark_resolved(path.case_id, user_context)
    return jsonify(current_app.hal_formatter.format_case(case, user_context))


@cases_bp.post('/<case_id>/reporter-approve')
@optional_jwt
def reporter_approve(path: CasePath):
    """Reporter confirms the claimed resolution; the case closes."""
    user_context = current_user()
    case = current_app.case_service.reporter_approve(path.case_id, user_context)
    return jsonify(current_app.hal_formatter.format_case(case, user_context))


@cases_bp.post('/<case_id>/reporter-reject')
@optional_jwt
@validate_json(ReporterRejectRequest)
def reporter_reject(payload: ReporterRejectRequest, path: CasePath):
    """Reporter disputes the claimed resolution; the case goes back to in progress."""
    user_context = current_user()
    case = current_app.case_service.reporter_reject(path.case_id, user_context, payload.reason)
    return jsonify(current_app.hal_formatter.format_case(case, user_context))
