# SPDX-License-Identifier: Apache-2.0

"""
Tests for helper service area management.
"""

import pytest

from middleware.error_handler import AuthorizationException, NotFoundException
from models.entities import UserContext
from models.requests import CreateServiceAreaRequest, UpdateServiceAreaRequest
from services.service_areas import ServiceAreaService
from conftest import stored, CASE_POINT


@pytest.fixture
def service(mock_mongo):
    return ServiceAreaService(mock_mongo)


class TestCreateServiceArea:

    def test_helper_creates_owned_area(self, service, mock_mongo, helper_context):
        request = CreateServiceAreaRequest.model_validate({
            "location": {"coordinates": CASE_POINT},
            "radius": 15,
            "city": " Bengaluru ",
            "state": "Karnataka"
        })

        area = service.create(helper_context, request)

        collection, document, user_id = mock_mongo.create.call_args[0]
        assert collection == "service_areas"
        assert document["helperId"] == helper_context.user_id
        assert document["isActive"] is True
        assert area.city == "Bengaluru"
        assert user_id == helper_context.user_id

    def test_reporter_cannot_declare_area(self, service, reporter_context):
        request = CreateServiceAreaRequest.model_validate({
            "location": {"coordinates": CASE_POINT}, "radius": 5, "city": "Pune", "state": "MH"
        })

        with pytest.raises(AuthorizationException):
            service.create(reporter_context, request)

    def test_untyped_account_cannot_declare_area(self, service, mock_mongo, helper_context):
        request = CreateServiceAreaRequest.model_validate({
            "location": {"coordinates": CASE_POINT}, "radius": 5, "city": "Pune", "state": "MH"
        })
        untyped = helper_context.model_copy(update={"user_type": None})

        with pytest.raises(AuthorizationException):
            service.create(untyped, request)

        mock_mongo.create.assert_not_called()

    @pytest.mark.parametrize("radius", [0.5, 101])
    def test_radius_bounds(self, radius):
        with pytest.raises(ValueError):
            CreateServiceAreaRequest.model_validate({
                "location": {"coordinates": CASE_POINT}, "radius": radius, "city": "Pune", "state": "MH"
            })


class TestManageServiceArea:
    """Ownership-guarded edits."""

    def test_missing_area(self, service, mock_mongo, helper_context):
        mock_mongo.find_one.return_value = None

        with pytest.raises(NotFoundException):
            service.get_owned("65f000000000000000000000", helper_context)

    def test_non_owner_is_forbidden(self, service, mock_mongo, make_service_area):
        area = make_service_area()
        mock_mongo.find_one.return_value = stored(area)

        with pytest.raises(AuthorizationException):
            service.set_active(area.id, UserContext(user_id="someone-else"), False)

        mock_mongo.update_one.assert_not_called()

    def test_update_radius(self, service, mock_mongo, make_service_area, helper_context):
        area = make_service_area(helper_id=helper_context.user_id)
        mock_mongo.find_one.return_value = stored(area)

        updated = service.update(area.id, helper_context, UpdateServiceAreaRequest(radius=25))

        assert updated.radius == 25
        mock_mongo.update_one.assert_called_once_with(
            "service_areas", area.id, {"radius": 25.0, "city": "Bengaluru", "state": "Karnataka"}
        )

    def test_empty_update_writes_nothing(self, service, mock_mongo, make_service_area, helper_context):
        area = make_service_area(helper_id=helper_context.user_id)
        mock_mongo.find_one.return_value = stored(area)

        service.update(area.id, helper_context, UpdateServiceAreaRequest())

        mock_mongo.update_one.assert_not_called()

    def test_deactivate_and_activate(self, service, mock_mongo, make_service_area, helper_context):
        area = make_service_area(helper_id=helper_context.user_id)
        mock_mongo.find_one.return_value = stored(area)

        deactivated = service.set_active(area.id, helper_context, False)
        assert deactivated.is_active is False
        mock_mongo.update_one.assert_called_once_with("service_areas", area.id, {"isActive": False})

        mock_mongo.update_one.reset_mock()
        service.set_active(area.id, helper_context, True)
        mock_mongo.update_one.assert_not_called()

    def test_list_mine(self, service, mock_mongo, make_service_area, helper_context):
        mock_mongo.find.return_value = [stored(make_service_area(helper_id=helper_context.user_id))]

        areas = service.list_mine(helper_context)

        assert len(areas) == 1
        assert mock_mongo.find.call_args[0][1] == {"helperId": helper_context.user_id}
