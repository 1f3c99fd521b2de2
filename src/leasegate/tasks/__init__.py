"""LeaseGate background tasks."""

from leasegate.tasks.health import HealthMonitor

__all__ = ["HealthMonitor"]
