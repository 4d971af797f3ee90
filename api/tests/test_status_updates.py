# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for status update validation and record building.
"""

import pytest
from pydantic import ValidationError

from domain.status_updates import (
    validate_status_update, build_status_update, build_reporter_audit_update,
    APPROVAL_DESCRIPTION, REJECTION_DESCRIPTION
)
from models.requests import StatusUpdateRequest

LONG_DESCRIPTION = "Took the dog to the clinic, the wound was cleaned and it is resting now."


class TestValidateStatusUpdate:
    """Validation before any write."""

    def test_valid_update(self):
        result = validate_status_update(LONG_DESCRIPTION, ["a.jpg", "b.jpg"], "stable", "in_progress")

        assert result.is_valid
        assert result.errors == []

    def test_short_description(self):
        result = validate_status_update("Too short", ["a.jpg", "b.jpg"], "stable", "in_progress")

        assert not result.is_valid
        assert result.errors == ["Description must be at least 50 characters"]

    def test_whitespace_does_not_count(self):
        result = validate_status_update(" " * 60 + "short", ["a.jpg", "b.jpg"], "stable", "in_progress")
        assert not result.is_valid

    def test_long_description(self):
        result = validate_status_update("x" * 2001, ["a.jpg", "b.jpg"], "stable", "in_progress")
        assert "Description cannot exceed 2000 characters" in result.errors

    @pytest.mark.parametrize("photos", [[], ["a.jpg"], ["a.jpg", ""]])
    def test_photo_evidence_required(self, photos):
        result = validate_status_update(LONG_DESCRIPTION, photos, "stable", "in_progress")

        assert not result.is_valid
        assert "At least 2 photos are required" in result.errors

    def test_collects_every_error(self):
        result = validate_status_update("short", ["a.jpg"], "fine", "open")

        assert len(result.errors) == 4
        assert "Invalid condition: fine" in result.errors
        assert "Invalid target status: open" in result.errors


class TestStatusUpdateRequest:

    def test_open_is_not_a_valid_target(self, status_update_payload):
        status_update_payload["newStatus"] = "open"
        with pytest.raises(ValidationError):
            StatusUpdateRequest.model_validate(status_update_payload)

    def test_single_photo_rejected(self, status_update_payload):
        status_update_payload["photos"] = ["only-one.jpg"]
        with pytest.raises(ValidationError):
            StatusUpdateRequest.model_validate(status_update_payload)


class TestBuildStatusUpdate:

    def test_records_previous_and_new_status(self, make_case, status_update_payload, now):
        case = make_case(status="assigned", assigned_helpers=["helper-1"])
        request = StatusUpdateRequest.model_validate(status_update_payload)

        update = build_status_update(case, "helper-1", request, now)

        assert update.case_id == case.id
        assert update.author_id == "helper-1"
        assert update.kind == "progress"
        assert update.previous_status == "assigned"
        assert update.new_status == "in_progress"
        assert update.treatment_provided == "Wound cleaned and bandaged"
        assert update.timestamp == now


class TestReporterAuditUpdate:
    """Audit records written on reporter sign-off."""

    def test_approval_record(self, make_case, now):
        case = make_case(status="in_progress", pending_reporter_approval=True)
        update = build_reporter_audit_update(
            case, "reporter-1", "reporter_approval", "in_progress", ["a.jpg", "b.jpg"], now=now
        )

        assert update.new_status == "closed"
        assert update.condition == "recovered"
        assert update.description == APPROVAL_DESCRIPTION
        assert update.photos == ["a.jpg", "b.jpg"]

    def test_rejection_record_includes_reason(self, make_case, now):
        case = make_case(status="in_progress", pending_reporter_approval=True)
        update = build_reporter_audit_update(
            case, "reporter-1", "reporter_rejection", "in_progress", ["a.jpg", "b.jpg"],
            reason="Still limping", now=now
        )

        assert update.new_status == "in_progress"
        assert update.description == f"{REJECTION_DESCRIPTION} Reason: Still limping"

    def test_audit_record_needs_photo_evidence(self, make_case):
        with pytest.raises(ValidationError):
            build_reporter_audit_update(make_case(), "reporter-1", "reporter_approval", "in_progress", ["a.jpg"])
