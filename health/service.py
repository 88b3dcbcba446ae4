"""
Health checks for the Device Events backend.

Liveness only says the process is up. Readiness pings Elasticsearch, the one
dependency the service can't work without.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency
        healthy: Whether the dependency responded
        response_time_ms: Time taken by the check in milliseconds
        error: Failure reason, if any
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    status: str  # "healthy" or "unhealthy"
    timestamp: datetime
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat() + "Z",
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Checks the service's dependencies.

    Attributes:
        es_service_provider: Callable returning the Elasticsearch service;
            called on every readiness check so a failed startup connection
            can recover
        check_timeout: Timeout in seconds for the Elasticsearch ping
    """

    def __init__(self, es_service_provider: Callable[[], Any], check_timeout: float = 5.0):
        self.es_service_provider = es_service_provider
        self.check_timeout = check_timeout

    async def check_liveness(self) -> dict[str, Any]:
        return {
            "status": "alive",
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }

    async def check_health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }

    async def check_readiness(self) -> HealthStatus:
        dependency = await self._check_elasticsearch()
        return HealthStatus(
            status="healthy" if dependency.healthy else "unhealthy",
            timestamp=datetime.utcnow(),
            dependencies=[dependency]
        )

    async def _check_elasticsearch(self) -> DependencyHealth:
        """Ping Elasticsearch within check_timeout seconds."""
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(self._ping_elasticsearch(), timeout=self.check_timeout)
            elapsed_ms = (time.perf_counter() - start_time) * 1000

            if result:
                return DependencyHealth(name="elasticsearch", healthy=True, response_time_ms=elapsed_ms)

            logger.warning(f"Elasticsearch ping returned False after {elapsed_ms:.2f}ms")
            return DependencyHealth(
                name="elasticsearch",
                healthy=False,
                response_time_ms=elapsed_ms,
                error="Elasticsearch ping returned False"
            )
        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Elasticsearch health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(
                name="elasticsearch",
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Elasticsearch health check failed: {e}"
            logger.error(error_msg)
            return DependencyHealth(
                name="elasticsearch",
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )

    async def _ping_elasticsearch(self) -> bool:
        # The client is synchronous; keep the ping off the event loop
        loop = asyncio.get_running_loop()

        def _sync_ping() -> bool:
            return self.es_service_provider().ping()

        return await loop.run_in_executor(None, _sync_ping)
