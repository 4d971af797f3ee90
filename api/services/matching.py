# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Geospatial matcher: finds helpers and cases relevant to a point.
"""

import logging
from typing import List, Optional, Sequence, Tuple
from opentelemetry import trace

from domain.geo import distance_km
from domain.matching import (
    CoverageCandidate, inline_candidates, is_eligible_helper,
    merge_candidate_helpers, nearest_by_helper, rank_helpers, select_covering
)
from models.entities import Case, ServiceArea, User, MAX_SERVICE_RADIUS_KM
from models.enums import UserType, VerificationStatus
from .mongodb import MongoDBService, load_entities

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

HELPER_TYPE_VALUES = [UserType.VOLUNTEER.value, UserType.NGO.value]


class GeoMatcherService:
    """Proximity and coverage queries over helpers, service areas and cases."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def find_nearby_helpers(
        self,
        point: Sequence[float],
        radius_km: float,
        user_type: Optional[str] = None,
        verification_status: Optional[str] = VerificationStatus.APPROVED.value,
        active_only: bool = True,
        limit: int = 50
    ) -> List[Tuple[User, float]]:
        """
        Helpers whose last known location lies within the radius, closest first.

        Args:
            point: (longitude, latitude) query point
            radius_km: Search radius in km
            user_type: Restrict to volunteer or ngo
            verification_status: Required verification status (None for any)
            active_only: Only active accounts
            limit: Maximum results

        Returns:
            (helper, distance_km) pairs in ascending distance
        """
        with tracer.start_as_current_span("matcher.find_nearby_helpers") as span:
            filters = {"userType": user_type if user_type else {"$in": HELPER_TYPE_VALUES}}
            if active_only:
                filters["isActive"] = True
            if verification_status:
                filters["profile.verification.status"] = verification_status

            span.set_attributes({
                "geo.radius_km": radius_km,
                "geo.user_type": user_type or "any"
            })

            documents = self.mongo_service.find_near("users", "location", point, radius_km, filters, limit)
            helpers = load_entities(User, documents)

            results = [(helper, distance_km(helper.location.coordinates, point)) for helper in helpers if helper.location]
            span.set_attribute("geo.result_count", len(results))
            return results

    def find_nearby_cases(
        self,
        point: Sequence[float],
        radius_km: float,
        statuses: Optional[List[str]] = None,
        limit: int = 50
    ) -> List[Tuple[Case, float]]:
        """Cases within the radius, closest first."""
        with tracer.start_as_current_span("matcher.find_nearby_cases") as span:
            filters = {"status": {"$in": statuses}} if statuses else None
            span.set_attribute("geo.radius_km", radius_km)

            documents = self.mongo_service.find_near("cases", "location", point, radius_km, filters, limit)
            cases = load_entities(Case, documents)
            return [(case, distance_km(case.location.coordinates, point)) for case in cases]

    def find_helpers_covering_location(
        self,
        point: Sequence[float],
        animal_type: Optional[str] = None
    ) -> List[Tuple[User, float]]:
        """
        Verified, active helpers whose service areas include the point.

        Phase one prefilters service areas with the proximity index using the
        largest allowed radius. Phase two keeps an area only if the point lies
        within that area's own radius.

        Args:
            point: (longitude, latitude) query point
            animal_type: Only helpers handling this animal type (if they declare any)

        Returns:
            (helper, distance to nearest covering area center) pairs, closest first
        """
        with tracer.start_as_current_span("matcher.find_helpers_covering_location") as span:
            area_documents = self.mongo_service.find_near(
                "service_areas", "location", point, MAX_SERVICE_RADIUS_KM, {"isActive": True}
            )
            candidates = [CoverageCandidate.from_service_area(area) for area in load_entities(ServiceArea, area_documents)]

            profile_documents = self.mongo_service.find_within(
                "users", "profile.serviceAreas.location", point, MAX_SERVICE_RADIUS_KM, {"isActive": True}
            )
            candidates.extend(inline_candidates(load_entities(User, profile_documents)))

            matches = select_covering(point, candidates)
            distances = nearest_by_helper(matches)

            span.set_attributes({
                "geo.candidate_areas": len(candidates),
                "geo.covering_areas": len(matches),
                "geo.covering_helpers": len(distances)
            })

            if not distances:
                return []

            helper_documents = self.mongo_service.find_by_ids("users", list(distances), {
                "isActive": True,
                "userType": {"$in": HELPER_TYPE_VALUES},
                "profile.verification.status": VerificationStatus.APPROVED.value
            })
            helpers = [helper for helper in load_entities(User, helper_documents) if is_eligible_helper(helper, animal_type)]

            logger.debug(
                "Coverage match complete",
                extra={
                    "candidate_areas": len(candidates),
                    "covering_areas": len(matches),
                    "eligible_helpers": len(helpers)
                }
            )
            return rank_helpers(helpers, distances)

    def candidate_helpers(
        self,
        point: Sequence[float],
        radius_km: float,
        animal_type: Optional[str] = None,
        nearby_user_type: Optional[str] = None
    ) -> List[User]:
        """
        Helpers to alert about a case: coverage matches first, then nearby helpers.

        Args:
            point: Case location
            radius_km: Radius for the proximity half of the union
            animal_type: Case animal type
            nearby_user_type: Restrict the proximity half to volunteers or NGOs
        """
        covering = [helper for helper, _ in self.find_helpers_covering_location(point, animal_type)]
        nearby = [
            helper for helper, _ in self.find_nearby_helpers(point, radius_km, user_type=nearby_user_type)
            if is_eligible_helper(helper, animal_type)
        ]
        return merge_candidate_helpers(covering, nearby)
