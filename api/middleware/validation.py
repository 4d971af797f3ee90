# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation middleware using Pydantic models.
Provides automatic request body validation and error formatting.
"""

from functools import wraps
from flask import request, jsonify, current_app
from typing import Type, Callable, Dict, Any, List
from pydantic import BaseModel, ValidationError
from opentelemetry import trace
import logging

from services.hal import HalFormatter
from .error_handler import format_validation_errors

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class ValidationMiddleware:
    """Middleware for request validation using Pydantic models."""

    def __init__(self, base_url: str):
        self.hal_formatter = HalFormatter(base_url)

    def error_response(self, detail: str, errors: List[Dict[str, Any]]):
        return jsonify(self.hal_formatter.format_validation_error(detail, request.path, errors)), 400

    def validate_json_body(self, model_class: Type[BaseModel]) -> Callable:
        """
        Decorator to validate JSON request body against Pydantic model.

        The validated model is passed to the route handler as its first
        positional argument.

        Args:
            model_class: Pydantic model class for validation

        Returns:
            Decorator function
        """
        def decorator(f: Callable) -> Callable:
            @wraps(f)
            def decorated_function(*args, **kwargs):
                with tracer.start_as_current_span("validation.validate_json_body") as span:
                    span.set_attributes({
                        "validation.model": model_class.__name__,
                        "http.method": request.method,
                        "http.path": request.path
                    })

                    if not request.is_json:
                        span.set_attribute("validation.result", "invalid_content_type")
                        return self.error_response(
                            "Request must have Content-Type: application/json",
                            [{
                                "field": "content-type",
                                "message": "Expected application/json",
                                "type": "content_type_error",
                                "input": request.content_type
                            }]
                        )

                    json_data = request.get_json(silent=True)
                    if not isinstance(json_data, dict):
                        span.set_attribute("validation.result", "invalid_json")
                        return self.error_response(
                            "Invalid JSON in request body",
                            [{
                                "field": "body",
                                "message": "Request body must be a JSON object",
                                "type": "json_error",
                                "input": None
                            }]
                        )

                    try:
                        validated_data = model_class.model_validate(json_data)
                    except ValidationError as e:
                        span.set_attribute("validation.result", "validation_error")
                        validation_errors = format_validation_errors(e)

                        logger.warning(
                            "Request validation failed",
                            extra={
                                "model": model_class.__name__,
                                "path": request.path,
                                "method": request.method,
                                "errors": validation_errors
                            }
                        )
                        return self.error_response(
                            f"Request validation failed for {model_class.__name__}",
                            validation_errors
                        )

                    span.set_attribute("validation.result", "success")
                    return f(validated_data, *args, **kwargs)

            return decorated_function
        return decorator

    def validate_query_params(self, model_class: Type[BaseModel]) -> Callable:
        """
        Decorator to validate query parameters against Pydantic model.

        Args:
            model_class: Pydantic model class for validation

        Returns:
            Decorator function
        """
        def decorator(f: Callable) -> Callable:
            @wraps(f)
            def decorated_function(*args, **kwargs):
                with tracer.start_as_current_span("validation.validate_query_params") as span:
                    span.set_attributes({
                        "validation.model": model_class.__name__,
                        "http.method": request.method,
                        "http.path": request.path
                    })

                    query_data = request.args.to_dict()

                    # Repeated parameters become lists
                    for key in request.args.keys():
                        values = request.args.getlist(key)
                        if len(values) > 1:
                            query_data[key] = values

                    try:
                        validated_params = model_class.model_validate(query_data)
                    except ValidationError as e:
                        span.set_attribute("validation.result", "validation_error")
                        validation_errors = format_validation_errors(e)

                        logger.warning(
                            "Query parameter validation failed",
                            extra={
                                "model": model_class.__name__,
                                "path": request.path,
                                "method": request.method,
                                "params": query_data,
                                "errors": validation_errors
                            }
                        )
                        return self.error_response(
                            f"Query parameter validation failed for {model_class.__name__}",
                            validation_errors
                        )

                    span.set_attribute("validation.result", "success")
                    return f(validated_params, *args, **kwargs)

            return decorated_function
        return decorator


def validate_json(model_class: Type[BaseModel]) -> Callable:
    """Validate the JSON body with the application's ValidationMiddleware."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            validation_middleware = current_app.validation_middleware
            return validation_middleware.validate_json_body(model_class)(f)(*args, **kwargs)
        return decorated_function
    return decorator


def validate_query(model_class: Type[BaseModel]) -> Callable:
    """Validate query parameters with the application's ValidationMiddleware."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            validation_middleware = current_app.validation_middleware
            return validation_middleware.validate_query_params(model_class)(f)(*args, **kwargs)
        return decorated_function
    return decorator
