# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for entity and request models.
"""

import pytest
from bson import ObjectId
from pydantic import ValidationError

from models.entities import Case, ContactInfo, GeoPoint, ServiceArea, User, normalize_phone
from models.requests import (
    CreateCaseRequest, CaseListQuery, NearbyHelpersQuery, TransferCaseRequest,
    UpdateServiceAreaRequest, CreateServiceAreaRequest
)


class TestGeoPoint:

    def test_valid_point(self):
        point = GeoPoint(coordinates=[77, 12.5])

        assert point.coordinates == [77.0, 12.5]
        assert point.as_tuple() == (77.0, 12.5)

    @pytest.mark.parametrize("coordinates", [[181, 0], [0, -91], [1.0], [1, 2, 3]])
    def test_invalid_coordinates(self, coordinates):
        with pytest.raises(ValidationError):
            GeoPoint(coordinates=coordinates)

    def test_only_points(self):
        with pytest.raises(ValidationError):
            GeoPoint(type="Polygon", coordinates=[0, 0])


class TestContactInfo:

    @pytest.mark.parametrize("raw", ["+91 98765 43210", "098765-43210", "9876543210"])
    def test_phone_keeps_last_ten_digits(self, raw):
        assert ContactInfo(phone=raw).phone == "9876543210"

    def test_short_phone_rejected(self):
        with pytest.raises(ValidationError):
            ContactInfo(phone="12345")

    def test_email_normalized(self):
        assert ContactInfo(phone="9876543210", email=" Asha@Example.COM ").email == "asha@example.com"

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            ContactInfo(phone="9876543210", email="not-an-email")

    def test_normalize_phone_empty(self):
        assert normalize_phone(None) == ""


class TestCaseDocument:
    """Document mapping for cases."""

    def test_document_is_camel_case(self, make_case):
        case = make_case(assigned_helpers=["h1", "h2", "h1"])
        document = case.to_document()

        assert isinstance(document["_id"], ObjectId)
        assert "id" not in document
        assert document["animalType"] == "dog"
        assert document["assignedHelpers"] == ["h1", "h2"]
        assert document["contactInfo"]["phone"] == "9876543210"
        assert document["location"]["type"] == "Point"

    def test_from_document(self, make_case):
        case = make_case()
        restored = Case.from_document(case.to_document())

        assert restored.id == case.id
        assert restored == case

    def test_is_assigned_to(self, make_case):
        case = make_case(assigned_helpers=["h1"])

        assert case.is_assigned_to("h1")
        assert not case.is_assigned_to("h2")
        assert not case.is_assigned_to(None)


class TestUser:

    def test_public_view_flattens_profile(self, make_helper):
        helper = make_helper(profile={"organization": "Paws Trust", "verification": {"status": "approved"}})
        data = helper.to_public_dict()

        assert "profile" not in data
        assert data["organization"] == "Paws Trust"
        assert data["verificationStatus"] == "approved"
        assert helper.is_helper
        assert helper.is_verified

    def test_reporter_is_not_helper(self):
        user = User(name="Asha", email="ASHA@example.com", phone="+91 98765 43210")

        assert not user.is_helper
        assert user.email == "asha@example.com"
        assert user.phone == "9876543210"


class TestCreateCaseRequest:
    """Incoming case reports."""

    @pytest.fixture
    def payload(self):
        return {
            "animalType": "Cow",
            "condition": "lost",
            "description": "  Calf wandering on the highway divider  ",
            "location": {"coordinates": [77.59, 12.97], "address": "NH 44"},
            "photos": [{"uri": "photos/1.jpg"}, "photos/2.jpg", {"uri": ""}],
            "contactInfo": {"phone": "+91 98765 43210"}
        }

    def test_legacy_values_are_mapped(self, payload):
        request = CreateCaseRequest.model_validate(payload)

        assert request.animal_type == "cattle"
        assert request.condition == "abandoned"
        assert request.description == "Calf wandering on the highway divider"
        assert request.photos == ["photos/1.jpg", "photos/2.jpg"]
        assert request.requires_reporter_approval is True

    def test_snake_case_accepted(self, payload):
        payload["animal_type"] = payload.pop("animalType")
        payload["contact_info"] = payload.pop("contactInfo")

        assert CreateCaseRequest.model_validate(payload).contact_info.phone == "9876543210"

    def test_unknown_animal(self, payload):
        payload["animalType"] = "dragon"
        with pytest.raises(ValidationError):
            CreateCaseRequest.model_validate(payload)

    def test_address_required(self, payload):
        del payload["location"]["address"]
        with pytest.raises(ValidationError):
            CreateCaseRequest.model_validate(payload)


class TestQueryModels:

    def test_case_list_status_csv(self):
        query = CaseListQuery.model_validate({"status": "open, assigned", "pageSize": "50"})

        assert query.status == ["open", "assigned"]
        assert query.page_size == 50
        assert query.page == 1

    def test_case_list_invalid_status(self):
        with pytest.raises(ValidationError):
            CaseListQuery.model_validate({"status": "open,archived"})

    def test_page_size_limit(self):
        with pytest.raises(ValidationError):
            CaseListQuery.model_validate({"pageSize": 500})

    def test_nearby_helpers_defaults(self):
        query = NearbyHelpersQuery.model_validate({"lng": "77.6", "lat": "12.9"})

        assert query.radius == 10
        assert query.verification_status == "approved"
        assert query.active_only is True

    def test_nearby_helpers_rejects_reporters(self):
        with pytest.raises(ValidationError):
            NearbyHelpersQuery.model_validate({"lng": 77.6, "lat": 12.9, "userType": "reporter"})


class TestServiceAreaRequests:

    def test_radius_bounds(self):
        with pytest.raises(ValidationError):
            CreateServiceAreaRequest.model_validate({
                "location": {"coordinates": [77.6, 12.9]}, "radius": 150, "city": "Pune", "state": "MH"
            })

    def test_update_changes_only_sent_fields(self):
        request = UpdateServiceAreaRequest.model_validate({"radius": 15})
        assert request.changes() == {"radius": 15}

    def test_service_area_strips_names(self):
        area = ServiceArea(
            helper_id="h1", location={"coordinates": [77.6, 12.9]}, radius=5, city=" Pune ", state=" MH "
        )
        assert (area.city, area.state) == ("Pune", "MH")


def test_transfer_reason_required():
    with pytest.raises(ValidationError):
        TransferCaseRequest.model_validate({"reason": "   "})
