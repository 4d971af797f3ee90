"""
Health Check Service

Provides health monitoring for the API dependencies (MongoDB and the AMQP
broker) together with basic system metrics.
"""

import os
import time
import psutil
from datetime import datetime
from typing import Dict, Any, Optional
from opentelemetry import trace

from services.mongodb import MongoDBService
from services.amqp import AMQPService

tracer = trace.get_tracer(__name__)


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class HealthCheckService:
    """Service for system health monitoring."""

    def __init__(self, mongodb_service: MongoDBService, amqp_service: Optional[AMQPService]):
        self.mongodb_service = mongodb_service
        self.amqp_service = amqp_service
        self.service_version = os.getenv('SERVICE_VERSION', '1.0.0')

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including all dependencies and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._check_mongodb_health()
            amqp_health = self._check_amqp_health()

            # MongoDB is required; the broker only degrades the service
            if mongodb_health["status"] != "healthy":
                overall_status = "unhealthy"
            elif amqp_health["status"] not in ("healthy", "disabled"):
                overall_status = "degraded"
            else:
                overall_status = "healthy"

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            health_data = {
                "status": overall_status,
                "service": "rescue-connect-api",
                "version": self.service_version,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": _now(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "amqp": amqp_health
                },
                "system_metrics": self._get_system_metrics(),
                "configuration": self._get_configuration_status()
            }

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.amqp_status": amqp_health["status"]
            })

            return health_data

    def _check_mongodb_health(self) -> Dict[str, Any]:
        """Check MongoDB connectivity."""
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            result = self.mongodb_service.health_check()
            response_time = round((time.time() - start_time) * 1000, 2)

            span.set_attribute("mongodb.status", result.get("status", "unhealthy"))
            return {**result, "response_time_ms": response_time, "last_check": _now()}

    def _check_amqp_health(self) -> Dict[str, Any]:
        """Check AMQP broker connectivity."""
        with tracer.start_as_current_span("health.amqp_check") as span:
            if self.amqp_service is None:
                span.set_attribute("amqp.status", "disabled")
                return {"status": "disabled", "last_check": _now()}

            start_time = time.time()
            is_healthy = self.amqp_service.health_check()
            response_time = round((time.time() - start_time) * 1000, 2)

            status = "healthy" if is_healthy else "unhealthy"
            span.set_attributes({
                "amqp.status": status,
                "amqp.response_time_ms": response_time
            })

            return {
                "status": status,
                "response_time_ms": response_time,
                "exchange": self.amqp_service.config.exchange,
                "last_check": _now()
            }

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            cpu_percent = psutil.cpu_percent(interval=0.1)

            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')

            return {
                "cpu_percent": cpu_percent,
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "disk": {
                    "used_gb": round(disk.used / 1024 / 1024 / 1024, 2),
                    "total_gb": round(disk.total / 1024 / 1024 / 1024, 2),
                    "percent": round((disk.used / disk.total) * 100, 2)
                },
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except Exception as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    def _get_configuration_status(self) -> Dict[str, Any]:
        """Get configuration validation status."""
        config_status = {
            "mongodb_uri_configured": bool(os.getenv('MONGODB_URI')),
            "amqp_configured": bool(os.getenv('AMQP_URL')),
            "jwt_secret_configured": bool(os.getenv('JWT_SECRET')),
            "environment": os.getenv('ENVIRONMENT', 'development')
        }
        config_status["all_critical_configured"] = all(
            config_status[key] for key in ('mongodb_uri_configured', 'jwt_secret_configured')
        )
        return config_status
