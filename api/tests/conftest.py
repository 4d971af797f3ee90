# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock
from bson import ObjectId
import jwt

# Set test environment before the application module is imported
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['JWT_SECRET'] = 'test-secret'
os.environ['MONGODB_DATABASE'] = 'rescue_connect_test'
os.environ['BASE_URL'] = 'http://localhost:5000'

from models.entities import Case, ServiceArea, User, UserContext
from services.mongodb import MongoDBService

TEST_JWT_SECRET = 'test-secret'

# Two points in Bengaluru, roughly 5.5 km apart
CASE_POINT = [77.5946, 12.9716]
NEARBY_POINT = [77.6400, 12.9500]


@pytest.fixture
def now():
    return datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def make_case():
    """Factory for cases with sensible defaults."""
    def _make_case(**overrides):
        data = {
            "id": str(ObjectId()),
            "reporter_id": None,
            "animal_type": "dog",
            "condition": "injured",
            "description": "Injured dog near the bus stop, limping on its front leg",
            "location": {"coordinates": CASE_POINT, "address": "MG Road bus stop"},
            "photos": ["photos/report-1.jpg"],
            "contact_info": {"phone": "+91 98765 43210", "email": "reporter@example.com", "name": "Asha"},
            "status": "open",
            "urgency_level": "high",
            "requires_reporter_approval": True,
            "version": 0,
            "created_at": datetime(2024, 3, 1, 8, 0, 0),
            "last_status_update": datetime(2024, 3, 1, 8, 0, 0)
        }
        data.update(overrides)
        return Case.model_validate(data)
    return _make_case


@pytest.fixture
def make_helper():
    """Factory for verified, active helpers."""
    def _make_helper(**overrides):
        data = {
            "id": str(ObjectId()),
            "name": "Ravi Kumar",
            "email": "ravi@example.com",
            "phone": "9123456789",
            "user_type": "volunteer",
            "is_active": True,
            "location": {"coordinates": NEARBY_POINT},
            "profile": {"verification": {"status": "approved"}}
        }
        data.update(overrides)
        return User.model_validate(data)
    return _make_helper


@pytest.fixture
def make_service_area():
    def _make_service_area(**overrides):
        data = {
            "id": str(ObjectId()),
            "helper_id": str(ObjectId()),
            "location": {"coordinates": NEARBY_POINT},
            "radius": 10,
            "city": "Bengaluru",
            "state": "Karnataka"
        }
        data.update(overrides)
        return ServiceArea.model_validate(data)
    return _make_service_area


@pytest.fixture
def status_update_payload():
    """Valid status update request body (camelCase, as sent by mobile clients)."""
    return {
        "newStatus": "in_progress",
        "condition": "stable",
        "description": "Picked the dog up and took it to the clinic; the leg is bandaged and it is eating.",
        "photos": ["photos/update-1.jpg", "photos/update-2.jpg"],
        "treatmentProvided": "Wound cleaned and bandaged"
    }


@pytest.fixture
def helper_context():
    return UserContext(
        user_id=str(ObjectId()),
        email="ravi@example.com",
        name="Ravi Kumar",
        user_type="volunteer"
    )


@pytest.fixture
def reporter_context():
    return UserContext(
        user_id=str(ObjectId()),
        email="reporter@example.com",
        phone="9876543210",
        name="Asha",
        user_type="reporter"
    )


@pytest.fixture
def mock_mongo():
    """MongoDB service double; versioned writes succeed by default."""
    mongo = MagicMock(spec=MongoDBService)
    mongo.create.side_effect = lambda collection, document, user_id=None: str(document.get("_id", ObjectId()))
    mongo.update_versioned.side_effect = lambda collection, doc_id, version, updates, add_to_set=None: version + 1
    mongo.find.return_value = []
    mongo.find_by_ids.return_value = []
    mongo.find_near.return_value = []
    mongo.find_within.return_value = []
    return mongo


def make_token(sub: str, secret: str = TEST_JWT_SECRET, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    """Mint an HS256 access token."""
    payload = {
        "sub": sub,
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + expires_in,
        **claims
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Build Authorization headers for a user context."""
    def _auth_headers(user_context: UserContext):
        token = make_token(
            user_context.user_id,
            email=user_context.email,
            phone=user_context.phone,
            name=user_context.name,
            user_type=user_context.user_type
        )
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def flask_app():
    from app import app
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(flask_app):
    with flask_app.test_client() as client:
        yield client


@pytest.fixture
def case_service(flask_app, monkeypatch):
    """Replace the application's case service for endpoint tests."""
    service = MagicMock()
    monkeypatch.setattr(flask_app, 'case_service', service)
    return service


@pytest.fixture
def matcher_service(flask_app, monkeypatch):
    service = MagicMock()
    monkeypatch.setattr(flask_app, 'matcher_service', service)
    return service


@pytest.fixture
def service_area_service(flask_app, monkeypatch):
    service = MagicMock()
    monkeypatch.setattr(flask_app, 'service_area_service', service)
    return service


@pytest.fixture
def message_service(flask_app, monkeypatch):
    service = MagicMock()
    monkeypatch.setattr(flask_app, 'message_service', service)
    return service


@pytest.fixture
def user_service(flask_app, monkeypatch):
    service = MagicMock()
    monkeypatch.setattr(flask_app, 'user_service', service)
    return service


def stored(entity) -> dict:
    """Document form of an entity as returned by the storage layer."""
    document = entity.to_document()
    document["id"] = str(document.pop("_id"))
    return document
