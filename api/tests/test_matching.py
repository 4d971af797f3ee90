# SPDX-License-Identifier: Apache-2.0

"""
Tests for helper matching.

Covers the per-record coverage post-filter, helper eligibility and the
MongoDB-backed matcher with a mocked storage layer.
"""

import pytest

from domain.matching import (
    CoverageCandidate, select_covering, inline_candidates, nearest_by_helper,
    is_eligible_helper, rank_helpers, merge_candidate_helpers
)
from services.matching import GeoMatcherService
from conftest import CASE_POINT, NEARBY_POINT, stored


class TestSelectCovering:
    """Per-record radius check."""

    def test_area_radius_decides_membership(self):
        wide = CoverageCandidate("helper-1", tuple(NEARBY_POINT), 10)
        narrow = CoverageCandidate("helper-2", tuple(NEARBY_POINT), 3)

        matches = select_covering(CASE_POINT, [narrow, wide])

        assert [match.candidate.helper_id for match in matches] == ["helper-1"]
        assert 5.0 <= matches[0].distance_km <= 6.0

    def test_inactive_area_ignored(self):
        inactive = CoverageCandidate("helper-1", tuple(CASE_POINT), 10, is_active=False)
        assert select_covering(CASE_POINT, [inactive]) == []

    def test_sorted_by_distance(self):
        far = CoverageCandidate("helper-1", tuple(NEARBY_POINT), 50)
        near = CoverageCandidate("helper-2", tuple(CASE_POINT), 1)

        matches = select_covering(CASE_POINT, [far, near])
        assert [match.candidate.helper_id for match in matches] == ["helper-2", "helper-1"]


class TestHelperSelection:

    def test_nearest_by_helper_deduplicates(self):
        matches = select_covering(CASE_POINT, [
            CoverageCandidate("helper-1", tuple(NEARBY_POINT), 10),
            CoverageCandidate("helper-1", tuple(CASE_POINT), 5),
            CoverageCandidate("helper-2", tuple(NEARBY_POINT), 20)
        ])

        nearest = nearest_by_helper(matches)
        assert nearest["helper-1"] == 0.0
        assert set(nearest) == {"helper-1", "helper-2"}

    def test_inline_candidates(self, make_helper):
        helper = make_helper(profile={
            "verification": {"status": "approved"},
            "serviceAreas": [{"location": {"coordinates": CASE_POINT}, "radius": 5, "city": "Bengaluru", "state": "KA"}]
        })

        candidates = inline_candidates([helper])
        assert candidates == [CoverageCandidate(helper.id, tuple(CASE_POINT), 5.0)]

    @pytest.mark.parametrize("overrides", [
        {"is_active": False},
        {"user_type": "reporter"},
        {"profile": {"verification": {"status": "pending"}}}
    ])
    def test_ineligible_helpers(self, make_helper, overrides):
        assert not is_eligible_helper(make_helper(**overrides))

    def test_animal_type_filter(self, make_helper):
        cat_helper = make_helper(profile={"verification": {"status": "approved"}, "animalTypes": ["cat"]})
        generalist = make_helper()

        assert not is_eligible_helper(cat_helper, "dog")
        assert is_eligible_helper(cat_helper, "cat")
        assert is_eligible_helper(generalist, "dog")

    def test_rank_and_merge(self, make_helper):
        first, second = make_helper(), make_helper()
        ranked = rank_helpers([first, second], {first.id: 4.0, second.id: 1.5})

        assert [helper.id for helper, _ in ranked] == [second.id, first.id]
        assert [helper.id for helper in merge_candidate_helpers([first], [second, first])] == [first.id, second.id]


class TestGeoMatcherService:
    """Matcher queries against mocked storage."""

    def test_covering_post_filters_prefilter_results(self, mock_mongo, make_service_area, make_helper):
        covering_helper = make_helper()
        distant_helper = make_helper()
        mock_mongo.find_near.return_value = [
            stored(make_service_area(helper_id=covering_helper.id, radius=10)),
            stored(make_service_area(helper_id=distant_helper.id, radius=3))
        ]
        mock_mongo.find_by_ids.return_value = [stored(covering_helper)]

        results = GeoMatcherService(mock_mongo).find_helpers_covering_location(CASE_POINT)

        assert [helper.id for helper, _ in results] == [covering_helper.id]
        ids = mock_mongo.find_by_ids.call_args[0][1]
        assert ids == [covering_helper.id]
        assert mock_mongo.find_by_ids.call_args[0][2]["profile.verification.status"] == "approved"

    def test_covering_includes_profile_areas(self, mock_mongo, make_helper):
        helper = make_helper(profile={
            "verification": {"status": "approved"},
            "serviceAreas": [{"location": {"coordinates": NEARBY_POINT}, "radius": 8, "city": "Bengaluru", "state": "KA"}]
        })
        mock_mongo.find_within.return_value = [stored(helper)]
        mock_mongo.find_by_ids.return_value = [stored(helper)]

        results = GeoMatcherService(mock_mongo).find_helpers_covering_location(CASE_POINT)

        assert [found.id for found, _ in results] == [helper.id]

    def test_covering_skips_user_lookup_without_matches(self, mock_mongo):
        assert GeoMatcherService(mock_mongo).find_helpers_covering_location(CASE_POINT) == []
        mock_mongo.find_by_ids.assert_not_called()

    def test_nearby_helpers_filters(self, mock_mongo, make_helper):
        helper = make_helper()
        mock_mongo.find_near.return_value = [stored(helper)]

        results = GeoMatcherService(mock_mongo).find_nearby_helpers(CASE_POINT, 10, user_type="ngo")

        collection, field, point, radius, filters, limit = mock_mongo.find_near.call_args[0]
        assert (collection, field, radius) == ("users", "location", 10)
        assert filters == {
            "userType": "ngo",
            "isActive": True,
            "profile.verification.status": "approved"
        }
        assert results[0][0].id == helper.id
        assert 5.0 <= results[0][1] <= 6.0

    def test_candidate_helpers_union(self, mock_mongo, make_service_area, make_helper):
        covering = make_helper()
        nearby = make_helper(name="Meera Nair", email="meera@example.com")

        def find_near(collection, field, point, radius, filters=None, limit=50):
            if collection == "service_areas":
                return [stored(make_service_area(helper_id=covering.id))]
            return [stored(nearby), stored(covering)]

        mock_mongo.find_near.side_effect = find_near
        mock_mongo.find_by_ids.return_value = [stored(covering)]

        helpers = GeoMatcherService(mock_mongo).candidate_helpers(CASE_POINT, 10, "dog")

        assert [helper.id for helper in helpers] == [covering.id, nearby.id]

    def test_nearby_cases_status_filter(self, mock_mongo, make_case):
        mock_mongo.find_near.return_value = [stored(make_case())]

        results = GeoMatcherService(mock_mongo).find_nearby_cases(NEARBY_POINT, 10, ["open"])

        assert mock_mongo.find_near.call_args[0][4] == {"status": {"$in": ["open"]}}
        assert len(results) == 1
