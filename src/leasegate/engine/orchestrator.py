"""Orchestrator - wires stores, ledger clients, runtime and the health monitor."""

import logging
from typing import Optional

from leasegate.chain.adapter import ChainTransactionAdapter
from leasegate.chain.contracts import (
    EscrowContract,
    OrderBookContract,
    ProviderRegistryContract,
)
from leasegate.config import Settings, settings as default_settings
from leasegate.engine.deployments import DeploymentController
from leasegate.engine.escrow import EscrowCoordinator
from leasegate.engine.leases import LeaseStateMachine
from leasegate.engine.market import MarketDirectory, MarketGateway
from leasegate.models import Bid, Lease
from leasegate.runtime.base import ContainerRuntime
from leasegate.store import InMemoryStore
from leasegate.tasks.health import HealthMonitor

logger = logging.getLogger(__name__)


class Orchestrator:
    """Owns every store and component of one LeaseGate instance."""

    def __init__(
        self,
        adapter: ChainTransactionAdapter,
        runtime: ContainerRuntime,
        market: Optional[MarketDirectory] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.config = config
        self.adapter = adapter
        self.runtime = runtime

        self.escrow_contract = EscrowContract(adapter, config.escrow_contract_id)
        self.order_book = OrderBookContract(adapter, config.order_book_contract_id)
        self.registry = ProviderRegistryContract(adapter, config.provider_registry_contract_id)

        self.escrow = EscrowCoordinator(self.escrow_contract, InMemoryStore("payments"))
        self.market = market or MarketGateway(
            self.order_book,
            self.registry,
            orders=InMemoryStore("orders"),
            providers=InMemoryStore("providers"),
            bids=InMemoryStore("bids"),
            block_time_seconds=config.block_time_seconds,
        )
        self.deployments = DeploymentController(
            runtime,
            self.market,
            self.escrow,
            InMemoryStore("deployments"),
            failure_threshold=config.failure_threshold,
            log_retention=config.health_log_retention,
            log_tail_lines=config.log_tail_lines,
            runtime_call_timeout_seconds=config.runtime_call_timeout_seconds,
            penalty_token=config.penalty_token,
        )
        self.leases = LeaseStateMachine(
            InMemoryStore("leases"),
            self.deployments,
            self.escrow,
            self.market,
            block_time_seconds=config.block_time_seconds,
        )
        self.deployments.on_container_changed = self.leases.sync_container
        self.monitor = HealthMonitor(
            self.deployments,
            interval_seconds=config.health_check_interval_seconds,
            jitter=config.health_check_jitter,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "Orchestrator":
        """Build an orchestrator backed by Soroban RPC and the local Docker daemon."""
        # Imported here so tests with fakes never need a ledger or Docker daemon.
        from leasegate.chain.soroban import SorobanBackend, load_signer
        from leasegate.runtime.docker_runtime import DockerRuntime

        config = config or default_settings
        backend = SorobanBackend(
            rpc_url=config.rpc_url,
            network_passphrase=config.network_passphrase,
            base_fee=config.base_fee,
            tx_timeout_seconds=config.tx_timeout_seconds,
        )
        adapter = ChainTransactionAdapter(
            backend,
            signer=load_signer(config.signer_secret_key),
            poll_interval_seconds=config.tx_poll_interval_seconds,
            poll_max_attempts=config.tx_poll_max_attempts,
        )
        runtime = DockerRuntime(
            base_url=config.docker_base_url,
            network=config.docker_network,
            stop_timeout_seconds=config.docker_stop_timeout_seconds,
        )
        return cls(adapter, runtime, config=config)

    async def start(self) -> None:
        self.monitor.start()
        logger.info("Orchestrator started")

    async def stop(self) -> None:
        await self.monitor.stop()
        await self.adapter.backend.close()
        logger.info("Orchestrator stopped")

    async def accept_bid(self, bid_id: int) -> Lease:
        """Accept a bid on the order book and open a lease starting at the latest block."""
        if not isinstance(self.market, MarketGateway):
            raise TypeError("Bid acceptance requires the ledger-backed market gateway")
        bid = await self.market.accept_bid(bid_id)
        start_block = await self.adapter.latest_block()
        return await self.on_bid_accepted(bid, start_block)

    async def on_bid_accepted(self, bid: Bid, start_block: int) -> Lease:
        """Create the lease for an accepted bid."""
        order = await self.market.get_order(bid.order_id)
        end_block = start_block + order.duration_blocks
        logger.info(
            f"Bid {bid.bid_id} accepted: leasing order {order.order_id} to provider "
            f"{bid.provider_id} for blocks {start_block}-{end_block}"
        )
        return await self.leases.create_lease(
            order_id=order.order_id,
            provider_id=bid.provider_id,
            start_block=start_block,
            end_block=end_block,
            tenant_address=order.tenant_address,
        )
