# SPDX-License-Identifier: Apache-2.0

"""
Helper matching domain logic.

Coverage is decided here, per record: a proximity index can only prefilter
candidates because every service area carries its own radius.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models.entities import InlineServiceArea, ServiceArea, User
from models.enums import HELPER_TYPES
from .geo import distance_km


@dataclass(frozen=True)
class CoverageCandidate:
    """A coverage circle owned by a helper."""
    helper_id: str
    center: Tuple[float, float]
    radius_km: float
    is_active: bool = True
    area_id: Optional[str] = None

    @classmethod
    def from_service_area(cls, area: ServiceArea) -> "CoverageCandidate":
        return cls(
            helper_id=area.helper_id,
            center=area.location.as_tuple(),
            radius_km=area.radius,
            is_active=area.is_active,
            area_id=area.id
        )

    @classmethod
    def from_inline(cls, helper_id: str, area: InlineServiceArea) -> "CoverageCandidate":
        return cls(
            helper_id=helper_id,
            center=area.location.as_tuple(),
            radius_km=area.radius,
            is_active=area.is_active
        )


@dataclass(frozen=True)
class CoverageMatch:
    """A candidate whose own radius includes the query point."""
    candidate: CoverageCandidate
    distance_km: float


def select_covering(point: Sequence[float], candidates: Iterable[CoverageCandidate]) -> List[CoverageMatch]:
    """
    Keep only active candidates whose circle includes the point.

    Args:
        point: (longitude, latitude) query point
        candidates: Prefiltered coverage candidates

    Returns:
        Matches ordered by distance to the area center
    """
    matches = []
    for candidate in candidates:
        if not candidate.is_active:
            continue
        distance = distance_km(candidate.center, point)
        if distance <= candidate.radius_km:
            matches.append(CoverageMatch(candidate=candidate, distance_km=distance))

    matches.sort(key=lambda match: match.distance_km)
    return matches


def inline_candidates(users: Iterable[User]) -> List[CoverageCandidate]:
    """Coverage candidates from service areas embedded in helper profiles."""
    return [
        CoverageCandidate.from_inline(user.id, area)
        for user in users
        for area in user.profile.service_areas
    ]


def nearest_by_helper(matches: Iterable[CoverageMatch]) -> Dict[str, float]:
    """Deduplicate matches by helper, keeping the closest area distance."""
    nearest: Dict[str, float] = {}
    for match in matches:
        helper_id = match.candidate.helper_id
        if helper_id not in nearest or match.distance_km < nearest[helper_id]:
            nearest[helper_id] = match.distance_km
    return nearest


def is_eligible_helper(user: User, animal_type: Optional[str] = None) -> bool:
    """Active, verified volunteer or NGO (optionally handling an animal type)."""
    if not user.is_active or user.user_type not in HELPER_TYPES or not user.is_verified:
        return False
    if animal_type and user.profile.animal_types and animal_type not in user.profile.animal_types:
        return False
    return True


def rank_helpers(helpers: Iterable[User], distances: Dict[str, float]) -> List[Tuple[User, float]]:
    """Pair helpers with their distance, closest first."""
    ranked = [(helper, distances[helper.id]) for helper in helpers if helper.id in distances]
    ranked.sort(key=lambda pair: pair[1])
    return ranked


def merge_candidate_helpers(*groups: Iterable[User]) -> List[User]:
    """Union of helper lists preserving first-seen order."""
    seen = set()
    merged = []
    for group in groups:
        for helper in group:
            if helper.id not in seen:
                seen.add(helper.id)
                merged.append(helper)
    return merged
