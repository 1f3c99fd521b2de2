"""Deployment model - runtime instance realizing a lease."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from leasegate.models.enums import DeploymentStatus, HealthEventStatus, HealthStatus
from leasegate.utils.time import utc_now


class HealthEvent(BaseModel):
    """Single entry in a deployment's health log."""

    timestamp: datetime = Field(default_factory=utc_now)
    status: HealthEventStatus
    message: str


class HealthChecks(BaseModel):
    """Rolling health state maintained by checks and remediation."""

    last_check: datetime = Field(default_factory=utc_now)
    consecutive_failures: int = Field(default=0, ge=0)
    logs: list[HealthEvent] = Field(default_factory=list)


class ResourceUsage(BaseModel):
    """Last observed resource usage."""

    cpu_usage: float = 0.0  # percent
    memory_usage: int = 0  # MB
    storage_usage: int = 0  # MB


class Deployment(BaseModel):
    """Container deployment tied one-to-one with a lease."""

    lease_id: int
    order_id: int
    provider_id: int
    container_id: Optional[str] = None
    image: str
    access_url: Optional[str] = None

    status: DeploymentStatus = DeploymentStatus.PENDING
    health_status: HealthStatus = HealthStatus.UNKNOWN
    health: HealthChecks = Field(default_factory=HealthChecks)
    resources: ResourceUsage = Field(default_factory=ResourceUsage)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def record(self, status: HealthEventStatus, message: str, retention: int) -> None:
        """Append a health log entry, keeping the newest `retention` entries."""
        now = utc_now()
        self.health.logs.append(HealthEvent(timestamp=now, status=status, message=message))
        if len(self.health.logs) > retention:
            del self.health.logs[: len(self.health.logs) - retention]
        self.updated_at = now
