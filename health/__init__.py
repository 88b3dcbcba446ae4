"""
Health checks: liveness and Elasticsearch readiness.
"""

from health.service import (
    DependencyHealth,
    HealthStatus,
    HealthCheckService,
)

__all__ = [
    "DependencyHealth",
    "HealthStatus",
    "HealthCheckService",
]
