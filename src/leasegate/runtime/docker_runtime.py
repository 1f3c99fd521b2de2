"""Docker implementation of the container runtime."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

import docker
from docker.errors import DockerException, ImageNotFound, NotFound
from requests.exceptions import RequestException

from leasegate.config import settings
from leasegate.engine.errors import ContainerNotFound, ContainerRuntimeError
from leasegate.runtime.base import (
    ContainerLaunch,
    ContainerRuntime,
    ContainerState,
    ContainerStats,
)
from leasegate.utils.time import parse_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")


def cpu_percentage(stats: dict[str, Any]) -> float:
    """Compute CPU usage percent from a one-shot Docker stats sample."""
    cpu = stats.get("cpu_stats", {})
    precpu = stats.get("precpu_stats", {})
    cpu_delta = cpu.get("cpu_usage", {}).get("total_usage", 0) - precpu.get(
        "cpu_usage", {}
    ).get("total_usage", 0)
    system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
    if cpu_delta <= 0 or system_delta <= 0:
        return 0.0
    online_cpus = cpu.get("online_cpus") or len(cpu.get("cpu_usage", {}).get("percpu_usage") or []) or 1
    return cpu_delta / system_delta * online_cpus * 100.0


class DockerRuntime(ContainerRuntime):
    """Runs lease workloads on a Docker daemon.

    The Docker SDK is synchronous; every call runs in a worker thread so the
    event loop (and the health monitor) never blocks on the daemon.
    """

    def __init__(
        self,
        base_url: str | None = None,
        network: str | None = None,
        stop_timeout_seconds: int | None = None,
    ) -> None:
        try:
            self.client = docker.DockerClient(base_url=base_url or settings.docker_base_url)
        except (DockerException, RequestException) as e:
            raise ContainerRuntimeError("init", str(e)) from e
        self.network = network if network is not None else settings.docker_network
        self.stop_timeout_seconds = (
            stop_timeout_seconds
            if stop_timeout_seconds is not None
            else settings.docker_stop_timeout_seconds
        )
        logger.info("Docker runtime initialized")

    async def create_and_start(self, launch: ContainerLaunch) -> str:
        return await self._run("create", None, self._create_and_start, launch)

    async def stop(self, container_id: str) -> None:
        await self._run("stop", container_id, self._stop, container_id)

    async def remove(self, container_id: str) -> None:
        await self._run("remove", container_id, self._remove, container_id)

    async def inspect(self, container_id: str) -> ContainerState:
        return await self._run("inspect", container_id, self._inspect, container_id)

    async def logs(self, container_id: str, tail: int) -> str:
        return await self._run("logs", container_id, self._logs, container_id, tail)

    async def _run(
        self,
        operation: str,
        container_id: str | None,
        func: Callable[..., T],
        *args: Any,
    ) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except NotFound as e:
            if container_id is None:
                raise ContainerRuntimeError(operation, str(e)) from e
            raise ContainerNotFound(container_id, operation) from e
        except (DockerException, RequestException) as e:
            # docker-py lets transport errors from requests through unwrapped.
            raise ContainerRuntimeError(operation, str(e), container_id) from e

    # ------------------------------------------------------------------
    # Blocking SDK calls
    # ------------------------------------------------------------------

    def _ensure_image(self, image: str) -> None:
        try:
            self.client.images.get(image)
            logger.info(f"Image {image} already present")
        except ImageNotFound:
            logger.info(f"Pulling image {image}")
            self.client.images.pull(image)

    def _create_and_start(self, launch: ContainerLaunch) -> str:
        spec = launch.spec
        self._ensure_image(spec.image)

        command = None
        if spec.command or spec.args:
            command = list(spec.command or []) + list(spec.args or [])

        container = self.client.containers.create(
            image=spec.image,
            name=launch.name,
            command=command,
            environment=dict(spec.env),
            ports={f"{p.container_port}/{p.protocol}": p.host_port for p in spec.ports},
            volumes=[f"{v.host_path}:{v.container_path}" for v in spec.volumes if v.host_path],
            mem_limit=spec.memory * 1024 * 1024 if spec.memory else None,
            nano_cpus=int(spec.cpu * 1_000_000_000) if spec.cpu else None,
            labels=launch.labels,
            network=self.network,
            detach=True,
        )
        try:
            container.start()
        except (DockerException, RequestException):
            container.remove(force=True)
            raise

        logger.info(f"Container {container.id} started for lease {launch.lease_id}")
        return container.id

    def _stop(self, container_id: str) -> None:
        container = self.client.containers.get(container_id)
        if container.status == "running":
            container.stop(timeout=self.stop_timeout_seconds)
            logger.info(f"Container {container_id} stopped")
        else:
            logger.info(f"Container {container_id} is already stopped")

    def _remove(self, container_id: str) -> None:
        self.client.containers.get(container_id).remove(force=True)
        logger.info(f"Container {container_id} removed")

    def _inspect(self, container_id: str) -> ContainerState:
        container = self.client.containers.get(container_id)
        state = container.attrs.get("State", {})
        started_at = parse_timestamp(state.get("StartedAt"))

        if not state.get("Running"):
            return ContainerState(
                running=False,
                exit_code=state.get("ExitCode"),
                started_at=started_at,
                finished_at=parse_timestamp(state.get("FinishedAt")),
            )

        raw = container.stats(stream=False)
        memory = raw.get("memory_stats", {})
        return ContainerState(
            running=True,
            started_at=started_at,
            stats=ContainerStats(
                cpu_percentage=cpu_percentage(raw),
                memory_usage=memory.get("usage", 0),
                memory_limit=memory.get("limit", 0),
            ),
        )

    def _logs(self, container_id: str, tail: int) -> str:
        output = self.client.containers.get(container_id).logs(
            stdout=True, stderr=True, tail=tail, timestamps=True
        )
        return output.decode("utf-8", errors="replace")
