"""Health checks for the storage backend and the e-signature provider."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from services.document_storage_service import DocumentStorageService
from services.submission_lifecycle_manager import SubmissionLifecycleManager

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    """Health status for a single component."""
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None


async def check_storage_health(storage: DocumentStorageService) -> ComponentHealth:
    """Remote storage reachable -> healthy; serving from local fallback -> degraded."""
    if not storage.initialized:
        return ComponentHealth(status=HealthStatus.UNHEALTHY, message="Storage not initialized")

    start = time.perf_counter()
    access = await storage.check_access()
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    if access.has_access and storage.storage_type == "s3":
        return ComponentHealth(HealthStatus.HEALTHY, "Object storage connection OK", latency_ms)
    if storage.storage_type == "local":
        return ComponentHealth(
            HealthStatus.DEGRADED,
            f"Serving from local fallback storage ({access.error or 'remote not configured'})",
            latency_ms,
        )
    logger.error(f"Storage health check failed: {access.error}")
    return ComponentHealth(HealthStatus.UNHEALTHY, access.error, latency_ms)


async def check_signature_provider_health(manager: SubmissionLifecycleManager) -> ComponentHealth:
    start = time.perf_counter()
    result = await manager.test_connection()
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    if result.success and manager.initialized:
        return ComponentHealth(HealthStatus.HEALTHY, result.message, latency_ms)
    if result.success:
        return ComponentHealth(HealthStatus.DEGRADED, "Provider reachable but manager not initialized", latency_ms)
    return ComponentHealth(HealthStatus.UNHEALTHY, result.message, latency_ms)


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """Determine overall health from component statuses."""
    if all(c.status == HealthStatus.HEALTHY for c in components.values()):
        return HealthStatus.HEALTHY

    if any(c.status == HealthStatus.UNHEALTHY for c in components.values()):
        return HealthStatus.UNHEALTHY

    return HealthStatus.DEGRADED
