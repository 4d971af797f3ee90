"""
Observability Middleware

Flask hooks that instrument requests with OpenTelemetry, tag request spans
with the case or service area being addressed, and log one line per request.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)

# Route parameters copied onto the request span
RESOURCE_ATTRIBUTES = {
    "case_id": "case.id",
    "area_id": "service_area.id"
}


def resource_attributes(view_args) -> dict:
    """Span attributes for the resource a request addresses."""
    return {
        attribute: str(view_args[arg])
        for arg, attribute in RESOURCE_ATTRIBUTES.items()
        if view_args and view_args.get(arg)
    }


def add_observability_middleware(app: Flask):
    """Instrument the app and register request timing and logging hooks."""

    FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def before_request():
        g.start_time = time.time()
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            g.trace_id = format(span.get_span_context().trace_id, "032x")
            span.set_attributes({
                "http.target": request.path,
                "http.user_agent": request.headers.get("User-Agent", ""),
                **resource_attributes(request.view_args)
            })

    @app.after_request
    def after_request(response):
        duration_ms = round((time.time() - g.get('start_time', time.time())) * 1000, 2)
        user = g.get('user_context')
        user_id = user.user_id if user else None

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attributes({
                "http.status_code": response.status_code,
                "http.duration_ms": duration_ms,
                "user.authenticated": user is not None
            })
            if user_id:
                span.set_attribute("user.id", user_id)

        logger.info(
            f"{request.method} {request.path} {response.status_code} {duration_ms}ms",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "user_id": user_id,
                "trace_id": g.get('trace_id'),
                **resource_attributes(request.view_args)
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id

        return response
