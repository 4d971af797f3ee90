# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT access token validation.

Tokens are issued by the account service; this API only verifies them with a
shared HS256 secret and exposes the identity claims to request handlers.
"""

import os
import jwt
from typing import Optional, Dict, Any
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT validation service.

    Verifies signature and expiry and requires a subject claim. Token issuance,
    refresh and password handling live outside this API.
    """

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None):
        """
        Initialize the authentication service.

        Args:
            secret: Shared signing secret
            algorithm: JWT algorithm (HS256 by default)
        """
        self.secret = secret or self._get_secret()
        self.algorithm = algorithm or os.getenv("JWT_ALGORITHM", "HS256")

    def _get_secret(self) -> str:
        """Get signing secret from environment or fall back for development."""
        secret = os.getenv("JWT_SECRET")
        if secret:
            return secret

        logger.warning("No JWT_SECRET found, using development secret")
        return "dev-secret-key"

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attribute("auth.operation", "validate_token")

            try:
                payload = jwt.decode(
                    token,
                    self.secret,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub"]}
                )

                span.set_attributes({
                    "auth.validation_result": "success",
                    "user.id": str(payload.get("sub"))
                })

                logger.debug(
                    "Token validated successfully",
                    extra={"user_id": payload.get("sub")}
                )

                return payload

            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")

            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")
