"""Deployment controller - container lifecycle, health checks and remediation."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from leasegate.config import settings
from leasegate.engine.errors import (
    ContainerNotFound,
    ContainerRuntimeError,
    DeploymentFailed,
    DeploymentNotFound,
    InvalidStateTransition,
    LeaseGateError,
)
from leasegate.engine.escrow import EscrowCoordinator
from leasegate.engine.market import UNKNOWN_IMAGE, MarketDirectory
from leasegate.models import (
    ContainerSpec,
    Deployment,
    DeploymentStatus,
    HealthEventStatus,
    HealthStatus,
    Lease,
    Provider,
)
from leasegate.observability.metrics import metrics
from leasegate.runtime.base import ContainerLaunch, ContainerRuntime, ContainerState
from leasegate.store import Store
from leasegate.utils.time import utc_now

logger = logging.getLogger(__name__)

ContainerChanged = Callable[[int, str], Awaitable[None]]

_MB = 1024 * 1024


def access_url(provider: Provider, spec: ContainerSpec) -> Optional[str]:
    """Public URL of a workload, or None when the provider has no hostname."""
    if not provider.hostname:
        return None
    port = None
    if spec.ports:
        port = spec.ports[0].host_port or spec.ports[0].container_port
    if not port:
        port = provider.port or 80
    return f"http://{provider.hostname}:{port}"


class DeploymentController:
    """
    Owns the deployment record of every lease.

    State machine:
        pending -> running <-> failed -> running (remediated)
        any -> stopped (terminal)

    Runtime calls never run under the store lock. Results of a health check
    or remediation are applied only if the deployment still points at the
    container that was inspected and has not been stopped meanwhile.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        market: MarketDirectory,
        escrow: EscrowCoordinator,
        deployments: Store[int, Deployment],
        failure_threshold: int | None = None,
        log_retention: int | None = None,
        log_tail_lines: int | None = None,
        runtime_call_timeout_seconds: float | None = None,
        penalty_token: str | None = None,
        on_container_changed: ContainerChanged | None = None,
    ):
        self.runtime = runtime
        self.market = market
        self.escrow = escrow
        self.deployments = deployments
        self.failure_threshold = failure_threshold or settings.failure_threshold
        self.log_retention = log_retention or settings.health_log_retention
        self.log_tail_lines = log_tail_lines or settings.log_tail_lines
        self.runtime_call_timeout_seconds = (
            runtime_call_timeout_seconds or settings.runtime_call_timeout_seconds
        )
        self.penalty_token = settings.penalty_token if penalty_token is None else penalty_token
        self.on_container_changed = on_container_changed

    # =========================================================================
    # Deploy / stop
    # =========================================================================

    async def deploy(self, lease: Lease) -> Deployment:
        """
        Start the container for a lease and record a running deployment.

        A pending record is claimed before the runtime is called, so a stop
        issued while the container is starting leaves a stopped record that
        the deploy will not overwrite. A container started for a deployment
        that was stopped meanwhile is removed again.

        On failure a pending deployment without a container is recorded with
        the error in its health log, and DeploymentFailed is raised.
        """
        await self.deployments.put(
            lease.lease_id,
            Deployment(
                lease_id=lease.lease_id,
                order_id=lease.order_id,
                provider_id=lease.provider_id,
                image=UNKNOWN_IMAGE,
                status=DeploymentStatus.PENDING,
            ),
        )

        spec: Optional[ContainerSpec] = None
        try:
            order = await self.market.get_order(lease.order_id)
            spec = order.spec
            provider = await self.market.get_provider(lease.provider_id)
            container_id = await self.runtime.create_and_start(
                ContainerLaunch(lease_id=lease.lease_id, order_id=lease.order_id, spec=spec)
            )
        except LeaseGateError as e:
            metrics.inc_counter("deployments.failed")

            def mark_failed(d: Deployment) -> None:
                if d.status == DeploymentStatus.STOPPED:
                    return
                d.image = spec.image if spec else UNKNOWN_IMAGE
                d.record(
                    HealthEventStatus.FAILURE, f"Deployment failed: {e.message}", self.log_retention
                )

            await self.deployments.update(lease.lease_id, mark_failed)
            logger.error(f"Deployment for lease {lease.lease_id} failed: {e.message}")
            raise DeploymentFailed(lease.lease_id, e.message) from e

        applied = False

        def activate(d: Deployment) -> None:
            nonlocal applied
            if d.status == DeploymentStatus.STOPPED or d.container_id is not None:
                return
            applied = True
            d.container_id = container_id
            d.image = spec.image
            d.access_url = access_url(provider, spec)
            d.status = DeploymentStatus.RUNNING
            d.health_status = HealthStatus.UNKNOWN
            d.record(HealthEventStatus.SUCCESS, "Container deployed", self.log_retention)

        deployment = await self.deployments.update(lease.lease_id, activate)
        if not applied:
            logger.info(
                f"Deployment for lease {lease.lease_id} stopped while starting, "
                f"removing container {container_id}"
            )
            await self._discard_container(container_id, best_effort=True)
            return deployment

        metrics.inc_counter("deployments.created")
        logger.info(f"Deployed container {container_id} for lease {lease.lease_id}")
        return deployment

    async def stop(self, lease_id: int) -> Optional[Deployment]:
        """
        Stop and remove a lease's container and mark the deployment stopped.

        Returns None when the lease has no deployment. If remediation swapped
        in a new container while the old one was being removed, the new one
        is removed as well before the deployment is marked stopped. Runtime
        failures propagate and leave the deployment unchanged.
        """
        while True:
            deployment = await self.deployments.get(lease_id)
            if deployment is None:
                return None
            if deployment.status == DeploymentStatus.STOPPED:
                return deployment

            container_id = deployment.container_id
            if container_id:
                await self._discard_container(container_id)

            applied = False

            def mark_stopped(d: Deployment) -> None:
                nonlocal applied
                if d.status == DeploymentStatus.STOPPED or d.container_id != container_id:
                    return
                applied = True
                d.status = DeploymentStatus.STOPPED
                d.record(
                    HealthEventStatus.SUCCESS, "Container stopped and removed", self.log_retention
                )

            stopped = await self.deployments.update(lease_id, mark_stopped)
            if stopped is None:
                return None
            if applied:
                break
            if stopped.status == DeploymentStatus.STOPPED:
                return stopped
            logger.info(
                f"Container of lease {lease_id} changed from {container_id} to "
                f"{stopped.container_id} while stopping, stopping the replacement"
            )

        metrics.inc_counter("deployments.stopped")
        logger.info(f"Stopped deployment for lease {lease_id}")
        return stopped

    # =========================================================================
    # Health
    # =========================================================================

    async def check_health(self, lease_id: int) -> Deployment:
        """Inspect the container, update health state and remediate if due."""
        deployment = await self.get_deployment(lease_id)
        if deployment.status == DeploymentStatus.STOPPED:
            raise InvalidStateTransition(
                "Deployment", lease_id, DeploymentStatus.STOPPED.value, "health_check"
            )

        container_id = deployment.container_id
        state: Optional[ContainerState] = None
        if container_id:
            try:
                state = await asyncio.wait_for(
                    self.runtime.inspect(container_id),
                    timeout=self.runtime_call_timeout_seconds,
                )
            except ContainerNotFound:
                state = None
            except asyncio.TimeoutError as e:
                raise ContainerRuntimeError(
                    "inspect",
                    f"timed out after {self.runtime_call_timeout_seconds}s",
                    container_id,
                ) from e

        metrics.inc_counter("health.checks")
        applied = False

        def apply(d: Deployment) -> None:
            nonlocal applied
            if d.status == DeploymentStatus.STOPPED or d.container_id != container_id:
                return
            applied = True
            d.health.last_check = utc_now()

            if state is not None and state.running:
                d.status = DeploymentStatus.RUNNING
                d.health_status = HealthStatus.HEALTHY
                d.health.consecutive_failures = 0
                if state.stats is not None:
                    d.resources.cpu_usage = state.stats.cpu_percentage
                    d.resources.memory_usage = state.stats.memory_usage // _MB
                d.resources.storage_usage = 0
                d.record(HealthEventStatus.SUCCESS, "Container is healthy", self.log_retention)
                return

            d.status = DeploymentStatus.FAILED
            d.health_status = HealthStatus.UNHEALTHY
            d.health.consecutive_failures += 1
            if state is None:
                message = "Container not found"
            else:
                message = f"Container is not running (exit code {state.exit_code})"
            d.record(HealthEventStatus.FAILURE, message, self.log_retention)

        updated = await self.deployments.update(lease_id, apply)
        if updated is None:
            raise DeploymentNotFound(lease_id)
        if not applied:
            logger.info(f"Discarded stale health result for lease {lease_id}")
            return updated

        if updated.health_status == HealthStatus.UNHEALTHY:
            metrics.inc_counter("health.unhealthy")
            logger.warning(
                f"Deployment for lease {lease_id} unhealthy "
                f"({updated.health.consecutive_failures}/{self.failure_threshold})"
            )
            # Exactly at the threshold: one remediation per failure streak.
            if updated.health.consecutive_failures == self.failure_threshold:
                return await self._remediate(lease_id, container_id)

        return updated

    async def _remediate(self, lease_id: int, old_container_id: Optional[str]) -> Deployment:
        """Replace an unhealthy container; escalate to a penalty on failure."""
        metrics.inc_counter("health.remediations")
        logger.warning(f"Remediating deployment for lease {lease_id}")

        deployment = await self.get_deployment(lease_id)
        new_container_id: Optional[str] = None
        try:
            if old_container_id:
                await self._capture_logs(lease_id, old_container_id)
                await self._discard_container(old_container_id)
            order = await self.market.get_order(deployment.order_id)
            new_container_id = await self.runtime.create_and_start(
                ContainerLaunch(lease_id=lease_id, order_id=deployment.order_id, spec=order.spec)
            )
        except LeaseGateError as e:
            return await self._remediation_failed(lease_id, old_container_id, e)

        applied = False

        def replace(d: Deployment) -> None:
            nonlocal applied
            if d.status == DeploymentStatus.STOPPED or d.container_id != old_container_id:
                return
            applied = True
            d.container_id = new_container_id
            d.status = DeploymentStatus.RUNNING
            d.health_status = HealthStatus.UNKNOWN
            d.health.consecutive_failures = 0
            d.record(
                HealthEventStatus.SUCCESS,
                "Container restarted after being unhealthy",
                self.log_retention,
            )

        updated = await self.deployments.update(lease_id, replace)
        if not applied:
            logger.info(
                f"Deployment for lease {lease_id} changed during remediation, "
                f"removing replacement container {new_container_id}"
            )
            await self._discard_container(new_container_id, best_effort=True)
            return updated if updated is not None else deployment

        logger.info(f"Replaced container {old_container_id} with {new_container_id} for lease {lease_id}")
        if self.on_container_changed is not None:
            await self.on_container_changed(lease_id, new_container_id)
        return updated

    async def _remediation_failed(
        self, lease_id: int, old_container_id: Optional[str], error: LeaseGateError
    ) -> Deployment:
        metrics.inc_counter("health.remediation_failures")
        applied = False

        def mark_failed(d: Deployment) -> None:
            nonlocal applied
            if d.status == DeploymentStatus.STOPPED or d.container_id != old_container_id:
                return
            applied = True
            d.status = DeploymentStatus.FAILED
            d.health_status = HealthStatus.UNHEALTHY
            d.record(
                HealthEventStatus.FAILURE,
                f"Failed to restart container: {error.message}",
                self.log_retention,
            )

        updated = await self.deployments.update(lease_id, mark_failed)
        if updated is None:
            raise DeploymentNotFound(lease_id)
        logger.error(f"Failed to restart container for lease {lease_id}: {error.message}")
        if applied:
            await self._penalize(updated)
        return updated

    async def _penalize(self, deployment: Deployment) -> None:
        """Lock the order price from the provider. Failures are logged only."""
        if not self.penalty_token:
            logger.warning(
                f"No penalty token configured, skipping penalty for lease {deployment.lease_id}"
            )
            return
        try:
            order = await self.market.get_order(deployment.order_id)
            provider = await self.market.get_provider(deployment.provider_id)
            await self.escrow.penalize_provider(
                self.penalty_token, provider.address, order.max_price, deployment.lease_id
            )
        except LeaseGateError as e:
            logger.error(f"Penalty for lease {deployment.lease_id} failed: {e.message}")
            return
        logger.warning(
            f"Penalized provider {deployment.provider_id} for lease {deployment.lease_id}"
        )

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_deployment(self, lease_id: int) -> Deployment:
        deployment = await self.deployments.get(lease_id)
        if deployment is None:
            raise DeploymentNotFound(lease_id)
        return deployment

    async def list_deployments(self) -> list[Deployment]:
        return await self.deployments.values()

    async def get_logs(self, lease_id: int) -> str:
        """Return the tail of the container's logs with timestamps."""
        deployment = await self.get_deployment(lease_id)
        if not deployment.container_id:
            return ""
        return await self.runtime.logs(deployment.container_id, self.log_tail_lines)

    async def supervised_lease_ids(self) -> list[int]:
        """Leases whose container the health monitor should check."""
        supervised = await self.deployments.values(
            lambda d: d.status in (DeploymentStatus.RUNNING, DeploymentStatus.FAILED)
            and d.container_id is not None
        )
        return [d.lease_id for d in supervised]

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _discard_container(self, container_id: str, best_effort: bool = False) -> None:
        """Stop then force-remove; a container that is already gone counts as removed."""
        try:
            try:
                await self.runtime.stop(container_id)
            except ContainerNotFound:
                return
            try:
                await self.runtime.remove(container_id)
            except ContainerNotFound:
                pass
        except ContainerRuntimeError as e:
            if not best_effort:
                raise
            logger.warning(f"Could not remove container {container_id}: {e.message}")

    async def _capture_logs(self, lease_id: int, container_id: str) -> None:
        try:
            logs = await self.runtime.logs(container_id, self.log_tail_lines)
        except ContainerRuntimeError as e:
            logger.info(f"No logs captured for lease {lease_id}: {e.message}")
            return
        if logs:
            logger.info(f"Last logs of container {container_id} (lease {lease_id}):\n{logs}")
