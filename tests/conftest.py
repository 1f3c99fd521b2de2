"""
Pytest fixtures for LeaseGate tests.

The ledger and the container runtime are replaced with in-memory fakes so
the engine runs end to end without a Soroban node or a Docker daemon.
"""

import asyncio
import itertools
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure test config is set before importing leasegate modules.
os.environ.setdefault("LEASEGATE_ENV", "development")
os.environ.setdefault("LEASEGATE_ESCROW_CONTRACT_ID", "CESCROW")
os.environ.setdefault("LEASEGATE_ORDER_BOOK_CONTRACT_ID", "CORDERBOOK")
os.environ.setdefault("LEASEGATE_PROVIDER_REGISTRY_CONTRACT_ID", "CREGISTRY")
os.environ.setdefault("LEASEGATE_PENALTY_TOKEN", "CTOKEN")

from leasegate.chain.adapter import ChainTransactionAdapter
from leasegate.chain.args import ContractArg
from leasegate.chain.backend import (
    LedgerBackend,
    SendReceipt,
    SendStatus,
    Simulation,
    TransactionReport,
    TransactionStatus,
)
from leasegate.chain.contracts import EscrowContract
from leasegate.config import Settings
from leasegate.engine.deployments import DeploymentController
from leasegate.engine.errors import (
    ContainerNotFound,
    ContainerRuntimeError,
    OrderNotFound,
    ProviderNotFound,
)
from leasegate.engine.escrow import EscrowCoordinator
from leasegate.engine.leases import LeaseStateMachine
from leasegate.engine.market import MarketDirectory
from leasegate.engine.orchestrator import Orchestrator
from leasegate.models import ContainerSpec, Order, PortMapping, Provider
from leasegate.observability.metrics import metrics
from leasegate.runtime.base import (
    ContainerLaunch,
    ContainerRuntime,
    ContainerState,
    ContainerStats,
)
from leasegate.store import InMemoryStore

pytest_plugins = ("pytest_asyncio",)

ESCROW = "CESCROW"
ORDER_BOOK = "CORDERBOOK"
REGISTRY = "CREGISTRY"
TOKEN = "CTOKEN"
TENANT = "GTENANT"
PROVIDER_ADDRESS = "GPROVIDER"
ORCHESTRATOR_SIGNER = "SORCHESTRATOR"


# ============================================================================
# Ledger fake
# ============================================================================


def native(arg: ContractArg) -> Any:
    """Plain Python value of a tagged argument."""
    if arg.kind == "vec":
        return [native(item) for item in arg.value]
    return arg.value


class LedgerRejected(Exception):
    """Raised by a fake contract method to fail the transaction."""


@dataclass
class FakeTx:
    contract_id: str
    method: str
    args: list[Any]
    source: str
    tx_hash: str
    signed_by: Any = None


@dataclass
class FakeMethod:
    handler: Callable[..., Any]
    write: bool


class FakeLedgerBackend(LedgerBackend):
    """
    Scriptable ledger.

    Query methods are answered by simulation. Write methods take effect
    when the transaction is first reported final, so a transaction that
    never finalizes never changes state.
    """

    def __init__(self) -> None:
        self.methods: dict[tuple[str, str], FakeMethod] = {}
        self.simulation_errors: dict[str, str] = {}
        self.send_exceptions: dict[str, Exception] = {}
        self.send_statuses: dict[str, SendStatus] = {}
        self.poll_scripts: dict[str, list[TransactionStatus]] = {}
        self.never_final: set[str] = set()
        self.broadcasts: list[FakeTx] = []
        self.polls: int = 0
        self.block = 1000
        self.closed = False
        self._sent: dict[str, FakeTx] = {}
        self._applied: dict[str, Any] = {}
        self._hashes = itertools.count(1)

    def on(self, contract_id: str, method: str, handler: Callable[..., Any], write: bool = False):
        self.methods[(contract_id, method)] = FakeMethod(handler, write)

    def broadcast_methods(self) -> list[str]:
        return [tx.method for tx in self.broadcasts]

    def signer_address(self, signer: Any) -> str:
        if signer == "invalid":
            raise ValueError("invalid secret seed")
        return f"G{signer}"

    async def build_invocation(self, contract_id, method, args, source):
        return FakeTx(
            contract_id, method, [native(a) for a in args], source, f"tx{next(self._hashes)}"
        )

    async def simulate(self, tx: FakeTx) -> Simulation:
        if tx.method in self.simulation_errors:
            return Simulation(error=self.simulation_errors[tx.method])
        method = self.methods.get((tx.contract_id, tx.method))
        if method is None:
            return Simulation(error=f"HostError: unknown function {tx.method}")
        if method.write:
            return Simulation(has_result=True, writes_state=True, requires_auth=True)
        try:
            result = method.handler(*tx.args)
        except LedgerRejected as e:
            return Simulation(error=f"HostError: {e}")
        return Simulation(result=result, has_result=True)

    async def prepare(self, tx: FakeTx, simulation: Simulation) -> FakeTx:
        return tx

    def sign(self, tx: FakeTx, signer: Any) -> FakeTx:
        tx.signed_by = signer
        return tx

    def transaction_hash(self, tx: FakeTx) -> str:
        return tx.tx_hash

    async def send(self, tx: FakeTx) -> SendReceipt:
        self.broadcasts.append(tx)
        if tx.method in self.send_exceptions:
            raise self.send_exceptions[tx.method]
        status = self.send_statuses.get(tx.method, SendStatus.PENDING)
        if status in (SendStatus.PENDING, SendStatus.DUPLICATE):
            self._sent[tx.tx_hash] = tx
        return SendReceipt(status=status, tx_hash=tx.tx_hash)

    async def get_transaction(self, tx_hash: str) -> TransactionReport:
        self.polls += 1
        tx = self._sent.get(tx_hash)
        if tx is None or tx.method in self.never_final:
            return TransactionReport(status=TransactionStatus.NOT_FOUND)

        script = self.poll_scripts.get(tx.method)
        if script:
            status = script.pop(0)
            if status != TransactionStatus.SUCCESS:
                return TransactionReport(status=status, detail="scripted")

        if tx_hash not in self._applied:
            method = self.methods[(tx.contract_id, tx.method)]
            try:
                self._applied[tx_hash] = method.handler(*tx.args)
            except LedgerRejected as e:
                return TransactionReport(status=TransactionStatus.FAILED, detail=str(e))
        return TransactionReport(
            status=TransactionStatus.SUCCESS, return_value=self._applied[tx_hash]
        )

    async def latest_block(self) -> int:
        return self.block

    async def close(self) -> None:
        self.closed = True


class FakeMarketplaceLedger(FakeLedgerBackend):
    """Fake ledger with escrow, order book and provider registry contracts."""

    def __init__(self) -> None:
        super().__init__()
        self.balances: dict[tuple[str, str], dict[str, int]] = {}
        self.earnings: dict[tuple[int, str], dict[str, int]] = {}
        self.orders: dict[int, dict[str, Any]] = {}
        self.bids: dict[int, dict[str, Any]] = {}
        self.providers: dict[int, dict[str, Any]] = {}
        self.registry_callers: list[str] = []

        self.on(ESCROW, "deposit", self.deposit, write=True)
        self.on(ESCROW, "lock", self.lock, write=True)
        self.on(ESCROW, "transfer_locked", self.transfer_locked, write=True)
        self.on(ESCROW, "withdraw_provider_earnings", self.withdraw, write=True)
        self.on(ESCROW, "get_tenant_balance", self.get_tenant_balance)
        self.on(ESCROW, "get_provider_earnings", self.get_provider_earnings)

        self.on(ORDER_BOOK, "create_order", self.create_order, write=True)
        self.on(ORDER_BOOK, "update_order_to_closed", self.close_order, write=True)
        self.on(ORDER_BOOK, "get_order", self.get_order)
        self.on(ORDER_BOOK, "list_orders", lambda: list(self.orders.values()))
        self.on(ORDER_BOOK, "place_bid", self.place_bid, write=True)
        self.on(ORDER_BOOK, "accept_bid", self.accept_bid, write=True)

        self.on(REGISTRY, "add_provider", self.add_provider, write=True)
        self.on(REGISTRY, "get_provider", self.get_provider)
        self.on(REGISTRY, "get_provider_by_address", self.get_provider_by_address)
        self.on(REGISTRY, "list_provider", lambda: list(self.providers.values()))
        self.on(REGISTRY, "set_trust_level", self.set_trust_level, write=True)
        self.on(REGISTRY, "set_provider_status", self.set_provider_status, write=True)

    def _account(self, token: str, owner: str) -> dict[str, int]:
        return self.balances.setdefault((token, owner), {"unlocked": 0, "locked": 0})

    def _earnings(self, provider_id: int, token: str) -> dict[str, int]:
        return self.earnings.setdefault((provider_id, token), {"earned": 0, "withdrawn": 0})

    # Escrow
    def deposit(self, token, owner, amount):
        self._account(token, owner)["unlocked"] += amount

    def lock(self, token, owner, amount):
        account = self._account(token, owner)
        if account["unlocked"] < amount:
            raise LedgerRejected("insufficient unlocked balance")
        account["unlocked"] -= amount
        account["locked"] += amount

    def transfer_locked(self, token, owner, amount, provider_id):
        account = self._account(token, owner)
        if account["locked"] < amount:
            raise LedgerRejected("insufficient locked balance")
        account["locked"] -= amount
        self._earnings(provider_id, token)["earned"] += amount

    def withdraw(self, provider_address, token):
        provider_id = next(
            pid for pid, p in self.providers.items() if p["address"] == provider_address
        )
        earnings = self._earnings(provider_id, token)
        available = earnings["earned"] - earnings["withdrawn"]
        earnings["withdrawn"] += available
        return available

    def get_tenant_balance(self, token, owner):
        account = self._account(token, owner)
        return {"locked_balance": account["locked"], "unlocked_balance": account["unlocked"]}

    def get_provider_earnings(self, provider_id, token):
        earnings = self._earnings(provider_id, token)
        return {
            "earned": earnings["earned"],
            "withdrawn": earnings["withdrawn"],
            "balance": earnings["earned"] - earnings["withdrawn"],
        }

    # Order book
    def create_order(self, max_price, number_of_blocks, quantity, spec, trust_levels):
        order_id = len(self.orders) + 1
        self.orders[order_id] = {
            "max_price": max_price,
            "number_of_blocks": number_of_blocks,
            "state": ["Active"],
            "spec": {
                "spec": spec,
                "trust_levels": [[level] for level in trust_levels],
                "quantity": quantity,
                "max_price": max_price,
            },
        }
        return order_id

    def close_order(self, order_id):
        self.orders[order_id]["state"] = ["Closed"]

    def get_order(self, order_id):
        if order_id not in self.orders:
            raise LedgerRejected(f"order {order_id} not found")
        return self.orders[order_id]

    def place_bid(self, order_id, provider_id, price):
        bid_id = len(self.bids) + 1
        self.bids[bid_id] = {"order_id": order_id, "provider_id": provider_id, "price": price}
        return bid_id

    def accept_bid(self, bid_id):
        if bid_id not in self.bids:
            raise LedgerRejected(f"bid {bid_id} not found")
        self.bids[bid_id]["accepted"] = True

    # Provider registry
    def add_provider(self, address):
        provider_id = len(self.providers) + 1
        self.providers[provider_id] = {
            "address": address,
            "trust_level": ["Five"],
            "status": ["Registered"],
        }
        return provider_id

    def get_provider(self, provider_id):
        if provider_id not in self.providers:
            raise LedgerRejected(f"provider {provider_id} not found")
        return self.providers[provider_id]

    def get_provider_by_address(self, address):
        for provider_id, provider in self.providers.items():
            if provider["address"] == address:
                return [provider_id, provider]
        raise LedgerRejected("provider with address not found")

    def set_trust_level(self, caller, provider_id, trust_level):
        self.registry_callers.append(caller)
        self.get_provider(provider_id)["trust_level"] = [trust_level]

    def set_provider_status(self, caller, provider_id, status):
        self.registry_callers.append(caller)
        self.get_provider(provider_id)["status"] = [status]


# ============================================================================
# Runtime fake
# ============================================================================


@dataclass
class FakeContainer:
    launch: ContainerLaunch
    running: bool = True
    exit_code: Optional[int] = None
    logs: list[str] = field(default_factory=list)


class FakeRuntime(ContainerRuntime):
    """In-memory container runtime with failure injection."""

    def __init__(self) -> None:
        self.containers: dict[str, FakeContainer] = {}
        self.launches: list[ContainerLaunch] = []
        self.create_failures = 0
        self.stop_error: Optional[Exception] = None
        self.inspect_error: Optional[Exception] = None
        self.inspect_calls: list[str] = []
        # One-shot gates: the next create / stop call parks on the event
        # and sets `parked` so a test can interleave other operations.
        self.create_gate: Optional[asyncio.Event] = None
        self.stop_gate: Optional[asyncio.Event] = None
        self.parked = asyncio.Event()
        self._ids = itertools.count(1)

    async def _park(self, gate: Optional[asyncio.Event]) -> None:
        if gate is None:
            return
        self.parked.set()
        await gate.wait()

    async def create_and_start(self, launch: ContainerLaunch) -> str:
        self.launches.append(launch)
        gate, self.create_gate = self.create_gate, None
        await self._park(gate)
        if self.create_failures > 0:
            self.create_failures -= 1
            raise ContainerRuntimeError("create", f"cannot pull image {launch.spec.image}")
        container_id = f"container-{next(self._ids)}"
        self.containers[container_id] = FakeContainer(
            launch, logs=[f"2026-01-01T00:00:00Z started {launch.name}"]
        )
        return container_id

    async def stop(self, container_id: str) -> None:
        gate, self.stop_gate = self.stop_gate, None
        await self._park(gate)
        if self.stop_error is not None:
            raise self.stop_error
        self._get(container_id, "stop").running = False

    async def remove(self, container_id: str) -> None:
        self._get(container_id, "remove")
        del self.containers[container_id]

    async def inspect(self, container_id: str) -> ContainerState:
        self.inspect_calls.append(container_id)
        if self.inspect_error is not None:
            raise self.inspect_error
        container = self._get(container_id, "inspect")
        if not container.running:
            return ContainerState(running=False, exit_code=container.exit_code)
        return ContainerState(
            running=True,
            stats=ContainerStats(
                cpu_percentage=12.5, memory_usage=64 * 1024 * 1024, memory_limit=512 * 1024 * 1024
            ),
        )

    async def logs(self, container_id: str, tail: int) -> str:
        return "\n".join(self._get(container_id, "logs").logs[-tail:])

    def crash(self, container_id: str, exit_code: int = 137) -> None:
        container = self.containers[container_id]
        container.running = False
        container.exit_code = exit_code

    def vanish(self, container_id: str) -> None:
        del self.containers[container_id]

    def _get(self, container_id: str, operation: str) -> FakeContainer:
        if container_id not in self.containers:
            raise ContainerNotFound(container_id, operation)
        return self.containers[container_id]


# ============================================================================
# Market fake
# ============================================================================


class FakeMarket(MarketDirectory):
    """Static order and provider directory."""

    def __init__(self) -> None:
        self.orders: dict[int, Order] = {}
        self.providers: dict[int, Provider] = {}

    def add_order(self, order_id: int, image: str = "nginx:latest", max_price: str = "500") -> Order:
        order = Order(
            order_id=order_id,
            tenant_address=TENANT,
            max_price=max_price,
            spec=ContainerSpec(
                image=image, cpu=0.5, memory=256, ports=[PortMapping(container_port=80, host_port=8080)]
            ),
            duration_blocks=720,
        )
        self.orders[order_id] = order
        return order

    def add_provider(self, provider_id: int, hostname: Optional[str] = "node.example.com") -> Provider:
        provider = Provider(provider_id=provider_id, address=PROVIDER_ADDRESS, hostname=hostname)
        self.providers[provider_id] = provider
        return provider

    async def get_order(self, order_id: int) -> Order:
        if order_id not in self.orders:
            raise OrderNotFound(order_id)
        return self.orders[order_id]

    async def get_provider(self, provider_id: int) -> Provider:
        if provider_id not in self.providers:
            raise ProviderNotFound(provider_id)
        return self.providers[provider_id]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def ledger() -> FakeMarketplaceLedger:
    return FakeMarketplaceLedger()


@pytest.fixture
def adapter(ledger) -> ChainTransactionAdapter:
    return ChainTransactionAdapter(
        ledger, signer=ORCHESTRATOR_SIGNER, poll_interval_seconds=0, poll_max_attempts=3
    )


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def market() -> FakeMarket:
    market = FakeMarket()
    market.add_order(1)
    market.add_provider(1)
    return market


@pytest.fixture
def escrow(adapter) -> EscrowCoordinator:
    return EscrowCoordinator(EscrowContract(adapter, ESCROW), InMemoryStore("payments"))


@pytest.fixture
def controller(runtime, market, escrow) -> DeploymentController:
    return DeploymentController(
        runtime,
        market,
        escrow,
        InMemoryStore("deployments"),
        failure_threshold=3,
        log_retention=100,
        log_tail_lines=100,
        runtime_call_timeout_seconds=1.0,
        penalty_token=TOKEN,
    )


@pytest.fixture
def lease_machine(controller, escrow, market) -> LeaseStateMachine:
    machine = LeaseStateMachine(
        InMemoryStore("leases"), controller, escrow, market, block_time_seconds=5
    )
    controller.on_container_changed = machine.sync_container
    return machine


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        escrow_contract_id=ESCROW,
        order_book_contract_id=ORDER_BOOK,
        provider_registry_contract_id=REGISTRY,
        penalty_token=TOKEN,
        health_check_interval_seconds=3600,
        runtime_call_timeout_seconds=1.0,
    )


@pytest.fixture
def orchestrator(adapter, runtime, test_settings) -> Orchestrator:
    return Orchestrator(adapter, runtime, config=test_settings)


@pytest_asyncio.fixture
async def client(orchestrator):
    """Async test client bound to an orchestrator running on fakes."""
    from leasegate.main import app

    app.state.orchestrator = orchestrator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.state.orchestrator = None
