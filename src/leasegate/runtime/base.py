"""Container runtime contract consumed by the deployment controller."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from leasegate.models.market import ContainerSpec
from leasegate.utils.time import utc_now

LABEL_PREFIX = "leasegate"


@dataclass
class ContainerStats:
    """Point-in-time resource usage of a running container."""

    cpu_percentage: float = 0.0
    memory_usage: int = 0  # bytes
    memory_limit: int = 0  # bytes


@dataclass
class ContainerState:
    """Result of inspecting a container."""

    running: bool
    exit_code: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stats: Optional[ContainerStats] = None


@dataclass
class ContainerLaunch:
    """Everything the runtime needs to start a lease's workload."""

    lease_id: int
    order_id: int
    spec: ContainerSpec
    requested_at: datetime = field(default_factory=utc_now)

    @property
    def name(self) -> str:
        return f"lease-{self.order_id}-{self.lease_id}"

    @property
    def labels(self) -> dict[str, str]:
        return {
            f"{LABEL_PREFIX}.lease.id": str(self.lease_id),
            f"{LABEL_PREFIX}.order.id": str(self.order_id),
            f"{LABEL_PREFIX}.deployment.time": self.requested_at.isoformat(),
        }


class ContainerRuntime(ABC):
    """Abstract container runtime.

    Implementations raise ``ContainerNotFound`` when the container does not
    exist and ``ContainerRuntimeError`` for every other failure.
    """

    @abstractmethod
    async def create_and_start(self, launch: ContainerLaunch) -> str:
        """Create and start a container, returning its id."""

    @abstractmethod
    async def stop(self, container_id: str) -> None:
        """Stop a container if it is running."""

    @abstractmethod
    async def remove(self, container_id: str) -> None:
        """Force-remove a container."""

    @abstractmethod
    async def inspect(self, container_id: str) -> ContainerState:
        """Report whether the container runs, its exit code and stats."""

    @abstractmethod
    async def logs(self, container_id: str, tail: int) -> str:
        """Return the last ``tail`` log lines with timestamps."""
