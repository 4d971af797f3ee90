# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

The resolved identity is stored on ``flask.g.user_context``; handlers that
accept anonymous callers see ``None`` there.
"""

from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from models.entities import UserContext
from services.auth import AuthService, TokenValidationError
from services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation and user context building for
    protected endpoints.
    """

    def __init__(self, auth_service: AuthService, hal_formatter: HalFormatter):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            hal_formatter: Formatter for problem responses
        """
        self.auth_service = auth_service
        self.hal_formatter = hal_formatter

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """
        Build user context from validated token payload and request information.

        Args:
            token_payload: Decoded JWT payload
            request_info: Request metadata (IP, user agent)

        Returns:
            UserContext object for request processing
        """
        return UserContext(
            user_id=str(token_payload["sub"]),
            email=token_payload.get("email"),
            phone=token_payload.get("phone"),
            name=token_payload.get("name"),
            user_type=token_payload.get("user_type"),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for user context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', '')
        }

    def resolve(self) -> Optional[UserContext]:
        """
        Resolve the request identity.

        Returns:
            UserContext, or None when no token was sent

        Raises:
            TokenValidationError: If a token was sent but is invalid
        """
        token = self.extract_token_from_request()
        if not token:
            return None

        token_payload = self.auth_service.validate_token(token)
        return self.build_user_context(token_payload, self.get_request_info())

    def unauthorized(self, detail: str):
        return jsonify(self.hal_formatter.format_authentication_error(detail, request.path)), 401


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator to require JWT authentication for Flask routes.

    Args:
        auth_middleware: Configured AuthMiddleware instance

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span("auth.middleware.validate_request") as span:
                span.set_attribute("auth.operation", "validate_request")

                try:
                    user_context = auth_middleware.resolve()
                except TokenValidationError as e:
                    span.set_attribute("auth.result", "invalid_token")
                    logger.warning(f"Authentication failed: {str(e)}")
                    return auth_middleware.unauthorized(str(e))

                if user_context is None:
                    span.set_attribute("auth.result", "missing_token")
                    logger.warning("Authentication failed: missing token")
                    return auth_middleware.unauthorized("Missing authorization token")

                g.user_context = user_context
                span.set_attributes({
                    "auth.result": "success",
                    "user.id": user_context.user_id
                })

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def optional_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator for optional authentication (user context if a valid token is present).

    Args:
        auth_middleware: Configured AuthMiddleware instance

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                g.user_context = auth_middleware.resolve()
            except TokenValidationError as e:
                # Invalid tokens are treated as anonymous callers
                logger.info(f"Ignoring invalid token on optional auth route: {str(e)}")
                g.user_context = None

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_jwt(f: Callable) -> Callable:
    """Require authentication using the application's AuthMiddleware."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        return require_auth(current_app.auth_middleware)(f)(*args, **kwargs)
    return decorated_function


def optional_jwt(f: Callable) -> Callable:
    """Optional authentication using the application's AuthMiddleware."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        return optional_auth(current_app.auth_middleware)(f)(*args, **kwargs)
    return decorated_function


def current_user() -> Optional[UserContext]:
    """Identity resolved for the current request, if any."""
    return g.get('user_context')
