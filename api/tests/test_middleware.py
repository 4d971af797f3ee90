# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for middleware functionality.
"""

import jwt
import pytest
from datetime import timedelta
from flask import Flask, jsonify
from pydantic import BaseModel, Field
from pymongo.errors import ServerSelectionTimeoutError

from conftest import make_token, TEST_JWT_SECRET
from middleware.auth import AuthMiddleware, require_jwt, optional_jwt, current_user
from middleware.error_handler import (
    ErrorHandlerMiddleware, register_custom_error_handlers,
    ConflictException, NotFoundException, AuthorizationException, ServiceUnavailableException
)
from middleware.validation import ValidationMiddleware, validate_json, validate_query
from observability.middleware import resource_attributes
from services.auth import AuthService, TokenValidationError
from services.hal import HalFormatter

BASE_URL = "https://api.example.com"


class EchoRequest(BaseModel):
    name: str = Field(..., min_length=2)
    count: int = Field(default=1, ge=1)


@pytest.fixture
def app():
    """Minimal application wired with the request middleware."""
    app = Flask(__name__)
    hal_formatter = HalFormatter(BASE_URL)
    app.auth_middleware = AuthMiddleware(AuthService(secret=TEST_JWT_SECRET), hal_formatter)
    app.validation_middleware = ValidationMiddleware(BASE_URL)
    ErrorHandlerMiddleware(app, BASE_URL)
    register_custom_error_handlers(app, hal_formatter)

    @app.post('/echo')
    @validate_json(EchoRequest)
    def echo(payload):
        return jsonify(payload.model_dump())

    @app.get('/search')
    @validate_query(EchoRequest)
    def search(params):
        return jsonify(params.model_dump())

    @app.get('/private')
    @require_jwt
    def private():
        return jsonify({"userId": current_user().user_id, "userType": current_user().user_type})

    @app.get('/public')
    @optional_jwt
    def public():
        user = current_user()
        return jsonify({"userId": user.user_id if user else None})

    @app.get('/conflict')
    def conflict():
        raise ConflictException("Case was modified concurrently")

    @app.get('/missing')
    def missing():
        raise NotFoundException("Case not found")

    @app.get('/forbidden')
    def forbidden():
        raise AuthorizationException("Only assigned helpers can do that")

    @app.get('/maintenance')
    def maintenance():
        raise ServiceUnavailableException("Reminders are paused")

    @app.get('/database-down')
    def database_down():
        raise ServerSelectionTimeoutError("localhost:27017: connection refused")

    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestAuthService:
    """Token validation."""

    def test_valid_token(self):
        payload = AuthService(secret=TEST_JWT_SECRET).validate_token(make_token("user-1", user_type="ngo"))

        assert payload["sub"] == "user-1"
        assert payload["user_type"] == "ngo"

    def test_expired_token(self):
        token = make_token("user-1", expires_in=timedelta(minutes=-5))

        with pytest.raises(TokenValidationError, match="expired"):
            AuthService(secret=TEST_JWT_SECRET).validate_token(token)

    def test_wrong_secret(self):
        token = make_token("user-1", secret="another-secret-entirely")

        with pytest.raises(TokenValidationError):
            AuthService(secret=TEST_JWT_SECRET).validate_token(token)

    def test_subject_required(self):
        token = jwt.encode({"email": "a@b.com"}, TEST_JWT_SECRET, algorithm="HS256")

        with pytest.raises(TokenValidationError):
            AuthService(secret=TEST_JWT_SECRET).validate_token(token)


class TestAuthMiddleware:

    def test_require_jwt_builds_context(self, client):
        token = make_token("user-7", user_type="volunteer")
        response = client.get('/private', headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.get_json() == {"userId": "user-7", "userType": "volunteer"}

    def test_missing_token(self, client):
        response = client.get('/private')

        assert response.status_code == 401
        assert response.get_json()["type"].endswith("authentication-required")

    def test_invalid_token(self, client):
        response = client.get('/private', headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_optional_jwt_anonymous(self, client):
        assert client.get('/public').get_json() == {"userId": None}

    def test_optional_jwt_ignores_bad_token(self, client):
        response = client.get('/public', headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 200
        assert response.get_json() == {"userId": None}


class TestValidationMiddleware:
    """Request body and query validation."""

    def test_valid_body(self, client):
        response = client.post('/echo', json={"name": "Asha", "count": 3})

        assert response.status_code == 200
        assert response.get_json() == {"name": "Asha", "count": 3}

    def test_invalid_body(self, client):
        response = client.post('/echo', json={"name": "A", "count": 0})
        body = response.get_json()

        assert response.status_code == 400
        assert body["type"].endswith("validation-error")
        assert {error["field"] for error in body["errors"]} == {"name", "count"}

    def test_wrong_content_type(self, client):
        response = client.post('/echo', data="name=Asha")

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "content-type"

    def test_non_object_body(self, client):
        response = client.post('/echo', json=["Asha"])
        assert response.status_code == 400

    def test_query_params(self, client):
        response = client.get('/search?name=Asha&count=2')
        assert response.get_json() == {"name": "Asha", "count": 2}

    def test_invalid_query_params(self, client):
        response = client.get('/search?count=abc')
        assert response.status_code == 400


class TestErrorHandlers:
    """Problem documents for domain exceptions."""

    @pytest.mark.parametrize("path,status,error_type", [
        ('/conflict', 409, "resource-conflict"),
        ('/missing', 404, "resource-not-found"),
        ('/forbidden', 403, "insufficient-permissions"),
        ('/maintenance', 503, "service-unavailable"),
    ])
    def test_custom_exceptions(self, client, path, status, error_type):
        response = client.get(path)
        body = response.get_json()

        assert response.status_code == status
        assert body["type"] == f"https://api.rescueconnect.org/problems/{error_type}"
        assert body["instance"] == path

    def test_unreachable_database(self, client):
        response = client.get('/database-down')
        body = response.get_json()

        assert response.status_code == 503
        assert body["type"] == "https://api.rescueconnect.org/problems/service-unavailable"
        assert body["detail"] == "Case storage is temporarily unavailable"
        assert "27017" not in body["detail"]

    def test_unknown_route(self, client):
        response = client.get('/does-not-exist')

        assert response.status_code == 404
        assert response.get_json()["status"] == 404


class TestRequestObservability:

    def test_resource_attributes_from_route(self):
        assert resource_attributes({"case_id": "65f0"}) == {"case.id": "65f0"}
        assert resource_attributes({"area_id": "a1"}) == {"service_area.id": "a1"}
        assert resource_attributes(None) == {}
