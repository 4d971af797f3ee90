# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Account updates made by the signed-in user.
"""

import logging
from datetime import datetime
from typing import Sequence
from opentelemetry import trace

from middleware.error_handler import NotFoundException
from models.entities import GeoPoint, User, UserContext
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

USERS = "users"


class UserService:
    """Self-service changes to user accounts."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def update_location(self, user_context: UserContext, coordinates: Sequence[float]) -> User:
        """
        Record the caller's current position.

        The stored point is what nearby-helper searches match against.

        Args:
            user_context: Calling user
            coordinates: [longitude, latitude]

        Returns:
            The updated account

        Raises:
            NotFoundException: If the caller has no account
        """
        with tracer.start_as_current_span("users.update_location") as span:
            span.set_attribute("user.id", user_context.user_id)

            location = GeoPoint(coordinates=list(coordinates))
            updated = self.mongo_service.update_one(USERS, user_context.user_id, {
                "location": location.model_dump(by_alias=True),
                "locationUpdatedAt": datetime.utcnow()
            })
            if not updated:
                raise NotFoundException("User not found")

            document = self.mongo_service.find_one(USERS, user_context.user_id)
            if not document:
                raise NotFoundException("User not found")

            logger.info(
                "Location updated",
                extra={"user_id": user_context.user_id, "user_type": user_context.user_type}
            )
            return User.from_document(document)
