# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS Level-3 API responses with conditional affordance links.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin, urlencode
import math
from datetime import datetime

from models.entities import Case, CaseMessage, ServiceArea, StatusUpdate, User, UserContext
from models.enums import CaseStatus, ACTIVE_STATUSES, HELPER_TYPES
from models.responses import ErrorResponse, HalLink

PROBLEM_BASE_URL = "https://api.rescueconnect.org/problems"


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        """Build link to parent collection."""
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        action_path = f"{resource_path}/{action}"
        return self.build_link(
            action_path,
            method=method,
            content_type="application/json",
            title=title or action.replace('-', ' ').title()
        )


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _page_link(self, base_path: str, params: Dict[str, Any], page: int, page_size: int, title: str) -> HalLink:
        query = urlencode({**params, 'page': page, 'pageSize': page_size})
        return self.link_builder.build_link(f"{base_path}?{query}", title=title)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, HalLink]:
        """Build pagination links for a collection."""
        params = {key: value for key, value in (query_params or {}).items() if value is not None}
        links = {'self': self._page_link(base_path, params, current_page, page_size, "Current page")}

        if current_page > 1:
            links['first'] = self._page_link(base_path, params, 1, page_size, "First page")
            links['prev'] = self._page_link(base_path, params, current_page - 1, page_size, "Previous page")

        if current_page < total_pages:
            links['next'] = self._page_link(base_path, params, current_page + 1, page_size, "Next page")
            links['last'] = self._page_link(base_path, params, total_pages, page_size, "Last page")

        return links


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on identity and case state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_case_affordances(self, case: Case, user_context: Optional[UserContext]) -> Dict[str, HalLink]:
        """Build conditional affordance links for a case."""
        links = {}
        base_path = f"/api/cases/{case.id}"

        links['self'] = self.link_builder.build_self_link(base_path)
        links['collection'] = self.link_builder.build_collection_link("/api/cases")
        links['timeline'] = self.link_builder.build_link(f"{base_path}/timeline", title="Case timeline")
        links['status_updates'] = self.link_builder.build_link(f"{base_path}/status-updates", title="Status updates")
        links['messages'] = self.link_builder.build_link(f"/api/messages/{case.id}", title="Case conversation")

        if not user_context:
            return links

        user_id = user_context.user_id
        is_helper = user_context.user_type in HELPER_TYPES
        is_assigned = case.is_assigned_to(user_id)
        is_active = case.status in ACTIVE_STATUSES

        if is_helper and not is_assigned and case.status != CaseStatus.CLOSED:
            links['assign'] = self.link_builder.build_action_link(base_path, "assign", title="Accept case")

        if is_assigned and case.status != CaseStatus.CLOSED:
            links['add_status_update'] = self.link_builder.build_action_link(
                base_path, "status-updates", title="Add status update"
            )
            links['transfer'] = self.link_builder.build_action_link(base_path, "transfer", title="Transfer case")

        if is_assigned and is_active and not case.pending_reporter_approval:
            links['mark_resolved'] = self.link_builder.build_action_link(
                base_path, "mark-resolved", title="Mark resolved"
            )

        if case.pending_reporter_approval and case.reporter_id in (None, user_id):
            links['approve'] = self.link_builder.build_action_link(
                base_path, "reporter-approve", title="Approve resolution"
            )
            links['reject'] = self.link_builder.build_action_link(
                base_path, "reporter-reject", title="Reject resolution"
            )

        return links

    def build_service_area_affordances(self, area: ServiceArea, user_context: Optional[UserContext]) -> Dict[str, HalLink]:
        """Build conditional affordance links for a service area."""
        links = {}
        base_path = f"/api/service-areas/{area.id}"

        links['self'] = self.link_builder.build_self_link(base_path)
        links['collection'] = self.link_builder.build_collection_link("/api/service-areas")

        if user_context and user_context.user_id == area.helper_id:
            links['edit'] = self.link_builder.build_link(
                base_path,
                method="PUT",
                content_type="application/json",
                title="Edit service area"
            )
            if area.is_active:
                links['deactivate'] = self.link_builder.build_action_link(base_path, "deactivate")
            else:
                links['activate'] = self.link_builder.build_action_link(base_path, "activate")

        return links


class HalResponseBuilder:
    """Main HAL response builder with comprehensive formatting capabilities."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination_builder = PaginationLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    def with_links(self, data: Dict[str, Any], links: Dict[str, HalLink]) -> Dict[str, Any]:
        response = dict(data)
        response['_links'] = {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with pagination links."""
        total_pages = math.ceil(total / page_size) if page_size > 0 else 1

        pagination_links = self.pagination_builder.build_pagination_links(
            collection_path,
            page,
            total_pages,
            page_size,
            query_params
        )

        response = {
            'total': total,
            'page': page,
            'pageSize': page_size,
            'totalPages': total_pages,
            '_embedded': {
                'items': items
            }
        }
        return self.with_links(response, pagination_links)

    def build_list_response(self, items: List[Dict[str, Any]], path: str, **extra: Any) -> Dict[str, Any]:
        """Unpaginated HAL list."""
        response = {'count': len(items), **extra, '_embedded': {'items': items}}
        return self.with_links(response, {'self': self.link_builder.build_self_link(path)})

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = ErrorResponse(
            type=f"{PROBLEM_BASE_URL}/{error_type}",
            title=title,
            status=status,
            detail=detail,
            instance=instance,
            errors=validation_errors or None
        ).model_dump(exclude_none=True)

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )

        return self.with_links(error_response, links)


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_case(self, case: Case, user_context: Optional[UserContext] = None, **extra: Any) -> Dict[str, Any]:
        """Format a case with state- and identity-dependent affordances."""
        data = case.to_public_dict()
        data.update(extra)
        links = self.builder.affordance_builder.build_case_affordances(case, user_context)
        return self.builder.with_links(data, links)

    def format_case_collection(
        self,
        cases: List[Case],
        total: int,
        page: int,
        page_size: int,
        user_context: Optional[UserContext] = None,
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a page of cases with HAL links."""
        items = [self.format_case(case, user_context) for case in cases]
        return self.builder.build_collection_response(items, total, page, page_size, "/api/cases", filters)

    def format_status_update(self, update: StatusUpdate) -> Dict[str, Any]:
        links = {
            'case': self.builder.link_builder.build_link(f"/api/cases/{update.case_id}", title="Case"),
            'collection': self.builder.link_builder.build_collection_link(
                f"/api/cases/{update.case_id}/status-updates"
            )
        }
        return self.builder.with_links(update.to_public_dict(), links)

    def format_status_update_collection(
        self,
        case_id: str,
        updates: List[StatusUpdate],
        total: int,
        page: int,
        page_size: int
    ) -> Dict[str, Any]:
        items = [self.format_status_update(update) for update in updates]
        return self.builder.build_collection_response(
            items, total, page, page_size, f"/api/cases/{case_id}/status-updates"
        )

    def format_timeline(self, case: Case, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Format case history events; timestamps are rendered as ISO 8601."""
        items = [
            {**event, 'timestamp': _isoformat(event.get('timestamp'))}
            for event in events
        ]
        response = {
            'caseId': case.id,
            'status': case.status,
            'count': len(items),
            '_embedded': {'events': items}
        }
        links = {
            'self': self.builder.link_builder.build_self_link(f"/api/cases/{case.id}/timeline"),
            'case': self.builder.link_builder.build_link(f"/api/cases/{case.id}", title="Case")
        }
        return self.builder.with_links(response, links)

    def format_service_area(self, area: ServiceArea, user_context: Optional[UserContext] = None) -> Dict[str, Any]:
        links = self.builder.affordance_builder.build_service_area_affordances(area, user_context)
        return self.builder.with_links(area.to_public_dict(), links)

    def format_helper(self, helper: User, distance_km: Optional[float] = None) -> Dict[str, Any]:
        """Public helper view with its distance to the query point."""
        data = helper.to_public_dict()
        data.pop("email", None)
        if distance_km is not None:
            data["distanceKm"] = distance_km
        return data

    def format_message(self, message: CaseMessage) -> Dict[str, Any]:
        links = {
            'case': self.builder.link_builder.build_link(f"/api/cases/{message.case_id}", title="Case"),
            'collection': self.builder.link_builder.build_collection_link(f"/api/messages/{message.case_id}")
        }
        return self.builder.with_links(message.to_public_dict(), links)

    def format_message_list(self, case_id: str, messages: List[CaseMessage], user_context: Optional[UserContext] = None) -> Dict[str, Any]:
        """Conversation window; signed-in callers also get a mark-read action."""
        path = f"/api/messages/{case_id}"
        link_builder = self.builder.link_builder
        items = [self.format_message(message) for message in messages]

        links = {
            'self': link_builder.build_self_link(path),
            'case': link_builder.build_link(f"/api/cases/{case_id}", title="Case"),
            'send': link_builder.build_link(path, method="POST", content_type="application/json", title="Send a message")
        }
        if user_context:
            links['mark_read'] = link_builder.build_action_link(path, "mark-read", title="Mark all as read")
            links['unread_count'] = link_builder.build_link(f"{path}/unread-count", title="Unread messages")

        response = {'caseId': case_id, 'count': len(items), '_embedded': {'items': items}}
        return self.builder.with_links(response, links)

    def format_user_location(self, user: User) -> Dict[str, Any]:
        data = {
            'location': user.location.model_dump(mode="json", by_alias=True) if user.location else None,
            'locationUpdatedAt': _isoformat(user.location_updated_at)
        }
        links = {
            'self': self.builder.link_builder.build_self_link("/api/users/location"),
            'nearbyCases': self.builder.link_builder.build_link(
                "/api/cases/nearby", title="Cases near you"
            )
        }
        return self.builder.with_links(data, links)

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Format a validation error response."""
        return self.builder.build_error_response(
            "validation-error",
            "Validation Error",
            400,
            detail,
            instance,
            validation_errors
        )

    def format_authentication_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format an authentication error response."""
        return self.builder.build_error_response(
            "authentication-required",
            "Authentication Required",
            401,
            detail,
            instance
        )

    def format_authorization_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format an authorization error response."""
        return self.builder.build_error_response(
            "insufficient-permissions",
            "Insufficient Permissions",
            403,
            detail,
            instance
        )

    def format_not_found_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a not found error response."""
        return self.builder.build_error_response(
            "resource-not-found",
            "Resource Not Found",
            404,
            detail,
            instance
        )

    def format_conflict_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a conflict error response."""
        return self.builder.build_error_response(
            "resource-conflict",
            "Resource Conflict",
            409,
            detail,
            instance
        )

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a server error response."""
        return self.builder.build_error_response(
            "internal-server-error",
            "Internal Server Error",
            500,
            detail,
            instance
        )


def _isoformat(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value
