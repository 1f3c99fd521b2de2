"""Lease state machine - creation, completion, cancellation and payments."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel

from leasegate.config import settings
from leasegate.engine.deployments import DeploymentController
from leasegate.engine.errors import (
    DeploymentFailed,
    InvalidStateTransition,
    LeaseNotFound,
    ValidationError,
)
from leasegate.engine.escrow import EscrowCoordinator
from leasegate.engine.market import MarketDirectory
from leasegate.models import (
    DeploymentStatus,
    HealthStatus,
    Lease,
    LeaseState,
    Payment,
    ResourceUsage,
)
from leasegate.models.lease import estimate_end_time
from leasegate.observability.metrics import metrics
from leasegate.store import Store
from leasegate.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Settlement:
    """Payment made to the provider when a lease completes."""

    token: str
    tenant_address: str
    amount: str
    signer: Any = None


class LeaseHealth(BaseModel):
    """Health summary of a lease's deployment."""

    is_healthy: bool
    status: DeploymentStatus
    health_status: HealthStatus
    last_check: datetime
    consecutive_failures: int
    resources: ResourceUsage


class LeaseStateMachine:
    """
    Lease lifecycle.

    Active -> Completed | Canceled, both terminal.

    Deployment is a side effect of creation, not a precondition: a lease
    whose container failed to start stays Active and the failure lives in
    the deployment's health log. Only one transition may be in flight per
    lease; the loser of a race sees InvalidStateTransition.
    """

    def __init__(
        self,
        leases: Store[int, Lease],
        deployments: DeploymentController,
        escrow: EscrowCoordinator,
        market: MarketDirectory,
        block_time_seconds: int | None = None,
    ):
        self.leases = leases
        self.deployments = deployments
        self.escrow = escrow
        self.market = market
        self.block_time_seconds = (
            settings.block_time_seconds if block_time_seconds is None else block_time_seconds
        )
        self._in_flight: set[int] = set()

    # =========================================================================
    # Transitions
    # =========================================================================

    async def create_lease(
        self,
        order_id: int,
        provider_id: int,
        start_block: int,
        end_block: int,
        tenant_address: str,
    ) -> Lease:
        """Create an Active lease and deploy its container."""
        if order_id < 1 or provider_id < 1:
            raise ValidationError("order_id and provider_id must be positive")
        if start_block < 0 or end_block < start_block:
            raise ValidationError(
                f"Invalid block range: start {start_block}, end {end_block}"
            )
        if not tenant_address:
            raise ValidationError("tenant_address must not be empty")

        def build(lease_id: int) -> Lease:
            now = utc_now()
            return Lease(
                lease_id=lease_id,
                order_id=order_id,
                provider_id=provider_id,
                tenant_address=tenant_address,
                start_block=start_block,
                end_block=end_block,
                estimated_end_time=estimate_end_time(
                    start_block, end_block, self.block_time_seconds, now
                ),
                created_at=now,
                updated_at=now,
            )

        lease = await self.leases.create(build, lambda l: l.lease_id)
        metrics.inc_counter("leases.created")
        logger.info(
            f"Created lease {lease.lease_id} for order {order_id} with provider {provider_id}"
        )

        deployment = None
        try:
            deployment = await self.deployments.deploy(lease)
        except DeploymentFailed as e:
            logger.warning(f"Lease {lease.lease_id} is active without a running container: {e}")

        def link(l: Lease) -> None:
            if l.is_terminal() or deployment is None or deployment.container_id is None:
                return
            l.container_id = deployment.container_id
            l.access_url = deployment.access_url
            l.updated_at = utc_now()

        linked = await self.leases.update(lease.lease_id, link)
        if linked is None:
            return lease
        if linked.is_terminal():
            # Ended while deploying; the deployment must not outlive it.
            logger.info(f"Lease {lease.lease_id} ended during deployment, stopping it")
            await self.deployments.stop(lease.lease_id)
        return linked

    async def complete_lease(
        self, lease_id: int, settlement: Optional[Settlement] = None
    ) -> Lease:
        """
        Complete an Active lease.

        An optional settlement is paid first so a failed payment leaves the
        lease untouched. The container is then stopped and the state flips.
        """
        lease = await self._require_active(lease_id, LeaseState.COMPLETED)
        async with self._transition(lease_id, LeaseState.COMPLETED):
            if settlement is not None:
                await self._pay(
                    lease,
                    settlement.token,
                    settlement.tenant_address,
                    settlement.amount,
                    settlement.signer,
                )
            await self.deployments.stop(lease_id)
            completed = await self._flip(lease_id, LeaseState.COMPLETED)

        metrics.inc_counter("leases.completed")
        logger.info(f"Completed lease {lease_id}")
        return completed

    async def cancel_lease(self, lease_id: int) -> Lease:
        """Cancel an Active lease, stopping its container."""
        await self._require_active(lease_id, LeaseState.CANCELED)
        async with self._transition(lease_id, LeaseState.CANCELED):
            await self.deployments.stop(lease_id)
            canceled = await self._flip(lease_id, LeaseState.CANCELED)

        metrics.inc_counter("leases.canceled")
        logger.info(f"Canceled lease {lease_id}")
        return canceled

    async def process_payment(
        self,
        lease_id: int,
        token: str,
        tenant_address: Optional[str],
        amount: str,
        signer: Any = None,
    ) -> Payment:
        """Transfer locked tenant funds to the lease's provider."""
        lease = await self.get_lease(lease_id)
        if lease.is_terminal():
            raise InvalidStateTransition("Lease", lease_id, lease.state.value, "payment")
        return await self._pay(lease, token, tenant_address or lease.tenant_address, amount, signer)

    # =========================================================================
    # Health and queries
    # =========================================================================

    async def check_lease_health(self, lease_id: int) -> LeaseHealth:
        await self.get_lease(lease_id)
        deployment = await self.deployments.check_health(lease_id)
        return LeaseHealth(
            is_healthy=deployment.health_status == HealthStatus.HEALTHY,
            status=deployment.status,
            health_status=deployment.health_status,
            last_check=deployment.health.last_check,
            consecutive_failures=deployment.health.consecutive_failures,
            resources=deployment.resources,
        )

    async def get_lease_logs(self, lease_id: int) -> str:
        await self.get_lease(lease_id)
        return await self.deployments.get_logs(lease_id)

    async def get_lease(self, lease_id: int) -> Lease:
        lease = await self.leases.get(lease_id)
        if lease is None:
            raise LeaseNotFound(lease_id)
        return lease

    async def list_leases(self) -> list[Lease]:
        return await self.leases.values()

    async def list_leases_for_provider(self, provider_id: int) -> list[Lease]:
        return await self.leases.values(lambda l: l.provider_id == provider_id)

    async def list_leases_for_order(self, order_id: int) -> list[Lease]:
        return await self.leases.values(lambda l: l.order_id == order_id)

    async def sync_container(self, lease_id: int, container_id: str) -> None:
        """Follow a container replaced by remediation, unless the lease ended."""

        def follow(l: Lease) -> None:
            if l.is_terminal():
                return
            l.container_id = container_id
            l.updated_at = utc_now()

        await self.leases.update(lease_id, follow)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_active(self, lease_id: int, target: LeaseState) -> Lease:
        lease = await self.get_lease(lease_id)
        if lease.state != LeaseState.ACTIVE:
            raise InvalidStateTransition("Lease", lease_id, lease.state.value, target.value)
        return lease

    @asynccontextmanager
    async def _transition(self, lease_id: int, target: LeaseState) -> AsyncIterator[None]:
        if lease_id in self._in_flight:
            raise InvalidStateTransition("Lease", lease_id, "transitioning", target.value)
        self._in_flight.add(lease_id)
        try:
            yield
        finally:
            self._in_flight.discard(lease_id)

    async def _flip(self, lease_id: int, target: LeaseState) -> Lease:
        def transition(l: Lease) -> None:
            if l.state != LeaseState.ACTIVE:
                raise InvalidStateTransition("Lease", lease_id, l.state.value, target.value)
            l.state = target
            l.updated_at = utc_now()

        updated = await self.leases.update(lease_id, transition)
        if updated is None:
            raise LeaseNotFound(lease_id)
        return updated

    async def _pay(
        self, lease: Lease, token: str, tenant_address: str, amount: str, signer: Any
    ) -> Payment:
        provider = await self.market.get_provider(lease.provider_id)
        return await self.escrow.transfer_locked(
            token,
            tenant_address,
            amount,
            lease.provider_id,
            lease.lease_id,
            signer,
            provider_address=provider.address,
        )
