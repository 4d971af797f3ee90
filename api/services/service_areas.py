# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Service area management for helpers.
"""

import logging
from typing import List
from opentelemetry import trace

from middleware.error_handler import AuthorizationException, NotFoundException
from models.entities import ServiceArea, UserContext
from models.enums import HELPER_TYPES
from models.requests import CreateServiceAreaRequest, UpdateServiceAreaRequest
from .mongodb import MongoDBService, load_entities

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SERVICE_AREAS = "service_areas"


class ServiceAreaService:
    """Create, edit and toggle helper coverage circles."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def create(self, user_context: UserContext, request: CreateServiceAreaRequest) -> ServiceArea:
        """Declare a new service area owned by the caller."""
        with tracer.start_as_current_span("service_areas.create") as span:
            if user_context.user_type not in HELPER_TYPES:
                raise AuthorizationException("Only volunteers and NGOs can declare service areas")

            area = ServiceArea(
                helper_id=user_context.user_id,
                location=request.location,
                radius=request.radius,
                city=request.city,
                state=request.state,
                created_by=user_context.user_id
            )
            self.mongo_service.create(SERVICE_AREAS, area.to_document(), user_context.user_id)

            span.set_attributes({"service_area.id": area.id, "service_area.radius_km": area.radius})
            logger.info(
                "Service area created",
                extra={"service_area_id": area.id, "helper_id": area.helper_id, "radius_km": area.radius}
            )
            return area

    def list_mine(self, user_context: UserContext) -> List[ServiceArea]:
        documents = self.mongo_service.find(
            SERVICE_AREAS, {"helperId": user_context.user_id}, sort=[("createdAt", -1)]
        )
        return load_entities(ServiceArea, documents)

    def get_owned(self, area_id: str, user_context: UserContext) -> ServiceArea:
        """
        Load a service area owned by the caller.

        Raises:
            NotFoundException: If the area does not exist
            AuthorizationException: If the caller does not own it
        """
        document = self.mongo_service.find_one(SERVICE_AREAS, area_id)
        if not document:
            raise NotFoundException(f"Service area {area_id} not found")

        area = ServiceArea.from_document(document)
        if area.helper_id != user_context.user_id:
            logger.warning(
                "Service area access denied",
                extra={"service_area_id": area_id, "user_id": user_context.user_id}
            )
            raise AuthorizationException("Only the owning helper can manage this service area")
        return area

    def update(self, area_id: str, user_context: UserContext, request: UpdateServiceAreaRequest) -> ServiceArea:
        area = self.get_owned(area_id, user_context)
        changes = request.changes()
        if not changes:
            return area

        updated = ServiceArea.model_validate({**area.model_dump(), **changes})
        self.mongo_service.update_one(
            SERVICE_AREAS, area_id, {field: getattr(updated, field) for field in ("radius", "city", "state")}
        )
        logger.info("Service area updated", extra={"service_area_id": area_id, "fields": list(changes)})
        return updated

    def set_active(self, area_id: str, user_context: UserContext, is_active: bool) -> ServiceArea:
        """Activate or deactivate an owned service area."""
        area = self.get_owned(area_id, user_context)
        if area.is_active != is_active:
            self.mongo_service.update_one(SERVICE_AREAS, area_id, {"isActive": is_active})
            logger.info(
                "Service area activation changed",
                extra={"service_area_id": area_id, "is_active": is_active}
            )
        return area.model_copy(update={"is_active": is_active})
