# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for MongoDB service layer.
"""

import pytest
from unittest.mock import MagicMock, patch
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from domain.geo import km_to_radians
from models.entities import Case
from services.mongodb import MongoDBService, VersionConflictError, load_entities


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def mongodb_service(collection):
    """MongoDB service whose collections are mocks."""
    service = MongoDBService("mongodb://localhost:27017", "rescue_connect_test")
    with patch.object(MongoDBService, 'get_collection', return_value=collection):
        yield service


class TestCrud:
    """Basic document operations."""

    def test_create_adds_timestamps(self, mongodb_service, collection):
        collection.insert_one.side_effect = lambda document: MagicMock(inserted_id=document["_id"])

        doc_id = mongodb_service.create("cases", {"status": "open"}, user_id="user-1")

        document = collection.insert_one.call_args[0][0]
        assert ObjectId.is_valid(doc_id)
        assert document["createdBy"] == "user-1"
        assert "createdAt" in document
        assert "updatedAt" in document

    def test_create_duplicate(self, mongodb_service, collection):
        collection.insert_one.side_effect = DuplicateKeyError("duplicate")

        with pytest.raises(ValueError):
            mongodb_service.create("cases", {"status": "open"})

    def test_find_one_exposes_id(self, mongodb_service, collection):
        object_id = ObjectId()
        collection.find_one.return_value = {"_id": object_id, "status": "open"}

        document = mongodb_service.find_one("cases", str(object_id))

        assert document == {"id": str(object_id), "status": "open"}

    def test_find_one_invalid_id(self, mongodb_service, collection):
        assert mongodb_service.find_one("cases", "not-an-id") is None
        collection.find_one.assert_not_called()

    def test_find_by_ids_skips_invalid(self, mongodb_service, collection):
        valid = ObjectId()
        collection.find.return_value = []

        mongodb_service.find_by_ids("users", [str(valid), "bogus"], {"isActive": True})

        collection.find.assert_called_once_with({"_id": {"$in": [valid]}, "isActive": True})

    def test_find_by_ids_all_invalid(self, mongodb_service, collection):
        assert mongodb_service.find_by_ids("users", ["bogus", None]) == []
        collection.find.assert_not_called()

    @pytest.mark.parametrize("doc_id", [None, 42, ObjectId()])
    def test_non_string_ids_are_rejected(self, mongodb_service, collection, doc_id):
        with pytest.raises(ValueError):
            mongodb_service._validate_object_id(doc_id)

        assert mongodb_service.find_one("cases", doc_id) is None
        collection.find_one.assert_not_called()

    def test_conditional_update(self, mongodb_service, collection):
        doc_id = str(ObjectId())
        collection.update_one.return_value = MagicMock(matched_count=0)

        updated = mongodb_service.update_one("cases", doc_id, {"reminderSent": False}, filters={"reminderSent": True})

        query, operation = collection.update_one.call_args[0]
        assert updated is False
        assert query == {"reminderSent": True, "_id": ObjectId(doc_id)}
        assert operation["$set"]["reminderSent"] is False

    def test_update_many_adds_to_set(self, mongodb_service, collection):
        collection.update_many.return_value = MagicMock(modified_count=3)

        modified = mongodb_service.update_many(
            "messages", {"caseId": "case-1"}, add_to_set={"readBy": "user-1"}
        )

        filters, operation = collection.update_many.call_args[0]
        assert modified == 3
        assert filters == {"caseId": "case-1"}
        assert operation["$addToSet"] == {"readBy": "user-1"}
        assert "updatedAt" in operation["$set"]

    def test_paginate(self, mongodb_service, collection):
        cursor = collection.find.return_value
        cursor.sort.return_value.skip.return_value.limit.return_value = [{"_id": ObjectId()}]
        collection.count_documents.return_value = 41

        result = mongodb_service.paginate("cases", page=3, page_size=20, filters={"status": "open"})

        cursor.sort.return_value.skip.assert_called_once_with(40)
        assert result.total == 41
        assert result.total_pages == 3
        assert len(result.items) == 1


class TestVersionedWrites:
    """Optimistic concurrency."""

    def test_update_guarded_by_version(self, mongodb_service, collection):
        doc_id = str(ObjectId())
        collection.update_one.return_value = MagicMock(matched_count=1)

        new_version = mongodb_service.update_versioned(
            "cases", doc_id, 4, {"status": "assigned"}, add_to_set={"assignedHelpers": "helper-1"}
        )

        query, operation = collection.update_one.call_args[0]
        assert new_version == 5
        assert query == {"_id": ObjectId(doc_id), "version": 4}
        assert operation["$set"]["status"] == "assigned"
        assert "updatedAt" in operation["$set"]
        assert operation["$inc"] == {"version": 1}
        assert operation["$addToSet"] == {"assignedHelpers": "helper-1"}

    def test_stale_version_conflicts(self, mongodb_service, collection):
        collection.update_one.return_value = MagicMock(matched_count=0)

        with pytest.raises(VersionConflictError):
            mongodb_service.update_versioned("cases", str(ObjectId()), 2, {"status": "closed"})

    def test_claim_one_is_atomic(self, mongodb_service, collection):
        object_id = ObjectId()
        collection.find_one_and_update.return_value = {"_id": object_id, "reminderSent": True}
        filters = {"reminderSent": False}

        document = mongodb_service.claim_one("cases", filters, {"reminderSent": True})

        args, kwargs = collection.find_one_and_update.call_args
        assert args[0] == filters
        assert args[1]["$inc"] == {"version": 1}
        assert kwargs["return_document"] == ReturnDocument.AFTER
        assert document["id"] == str(object_id)

    def test_claim_one_nothing_left(self, mongodb_service, collection):
        collection.find_one_and_update.return_value = None
        assert mongodb_service.claim_one("cases", {}, {"reminderSent": True}) is None


class TestGeospatialQueries:

    def test_find_near_builds_sphere_query(self, mongodb_service, collection):
        collection.find.return_value.limit.return_value = []

        mongodb_service.find_near("cases", "location", [77.59, 12.97], 5, filters={"status": "open"}, limit=10)

        query = collection.find.call_args[0][0]
        assert query["location"]["$nearSphere"]["$geometry"] == {"type": "Point", "coordinates": [77.59, 12.97]}
        assert query["location"]["$nearSphere"]["$maxDistance"] == 5000
        assert query["status"] == "open"
        collection.find.return_value.limit.assert_called_once_with(10)

    def test_find_within_uses_center_sphere(self, mongodb_service, collection):
        collection.find.return_value = []

        mongodb_service.find_within("serviceAreas", "location", [77.59, 12.97], 25)

        query = collection.find.call_args[0][0]
        assert query["location"]["$geoWithin"]["$centerSphere"] == [[77.59, 12.97], km_to_radians(25)]


def test_load_entities_skips_invalid(make_case):
    valid = make_case().to_document()
    broken = {"_id": ObjectId(), "status": "archived"}

    cases = load_entities(Case, [valid, broken])

    assert len(cases) == 1
    assert cases[0].id == str(valid["_id"])
