"""Container runtimes."""

from leasegate.runtime.base import (
    ContainerLaunch,
    ContainerRuntime,
    ContainerState,
    ContainerStats,
)

__all__ = ["ContainerLaunch", "ContainerRuntime", "ContainerState", "ContainerStats"]
