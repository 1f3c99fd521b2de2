"""
Chain transaction adapter tests: simulation, broadcast, bounded polling.
"""

import pytest

from leasegate.chain import args as a
from leasegate.chain.adapter import ChainTransactionAdapter
from leasegate.chain.backend import SendStatus, TransactionStatus
from leasegate.chain.results import (
    Failed,
    FailureStage,
    Indeterminate,
    ReadResult,
    WriteAccepted,
    WriteFinal,
)
from leasegate.engine.errors import (
    ChainBroadcastFailed,
    ChainExecutionFailed,
    ChainIndeterminate,
    ChainSigningFailed,
    ChainSimulationFailed,
)
from leasegate.observability.metrics import metrics

from conftest import ESCROW, TENANT, TOKEN


def deposit_args(amount: int = 100) -> list:
    return [a.address(TOKEN), a.address(TENANT), a.i128(amount)]


@pytest.mark.asyncio
async def test_read_only_call_is_answered_without_broadcast(adapter, ledger):
    """A query that writes nothing is answered by simulation alone."""
    ledger.deposit(TOKEN, TENANT, 40)

    outcome = await adapter.submit(
        ESCROW, "get_tenant_balance", [a.address(TOKEN), a.address(TENANT)]
    )

    assert isinstance(outcome, ReadResult)
    assert outcome.value == {"locked_balance": 0, "unlocked_balance": 40}
    assert ledger.broadcasts == []
    assert ledger.polls == 0


@pytest.mark.asyncio
async def test_write_is_broadcast_and_polled_to_finality(adapter, ledger):
    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, WriteFinal)
    assert outcome.tx_hash
    assert ledger.broadcast_methods() == ["deposit"]
    assert ledger.broadcasts[0].signed_by == "SORCHESTRATOR"
    assert ledger.balances[(TOKEN, TENANT)]["unlocked"] == 100
    assert metrics.counter_value("ledger.outcome.WriteFinal") == 1


@pytest.mark.asyncio
async def test_mutating_flag_forces_broadcast_of_read_only_simulation(adapter, ledger):
    """Callers can insist on a transaction even when simulation needs no auth."""
    ledger.on(ESCROW, "touch", lambda: 7)

    outcome = await adapter.submit(ESCROW, "touch", [], mutating=True)

    assert isinstance(outcome, WriteFinal)
    assert outcome.value == 7
    assert ledger.broadcast_methods() == ["touch"]


@pytest.mark.asyncio
async def test_simulation_error_fails_before_broadcast(adapter, ledger):
    ledger.simulation_errors["deposit"] = "HostError: contract trapped"

    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, Failed)
    assert outcome.stage == FailureStage.SIMULATION
    assert ledger.broadcasts == []

    with pytest.raises(ChainSimulationFailed) as exc_info:
        adapter.unwrap(outcome, ESCROW, "deposit")
    assert not exc_info.value.indeterminate


@pytest.mark.asyncio
async def test_missing_signer_fails_at_signing(ledger):
    adapter = ChainTransactionAdapter(ledger, signer=None, poll_interval_seconds=0)

    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, Failed)
    assert outcome.stage == FailureStage.SIGNING

    with pytest.raises(ChainSigningFailed):
        await adapter.execute(ESCROW, "deposit", deposit_args(), mutating=True)


@pytest.mark.asyncio
async def test_invalid_signer_fails_at_signing(adapter, ledger):
    outcome = await adapter.submit(
        ESCROW, "deposit", deposit_args(), signer="invalid", mutating=True
    )

    assert isinstance(outcome, Failed)
    assert outcome.stage == FailureStage.SIGNING
    assert ledger.broadcasts == []


@pytest.mark.asyncio
async def test_transport_error_on_send_is_indeterminate(adapter, ledger):
    """The broadcast may have reached the ledger, so the outcome is unknown."""
    ledger.send_exceptions["deposit"] = ConnectionError("connection reset")

    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, Indeterminate)
    assert outcome.tx_hash == ledger.broadcasts[0].tx_hash

    with pytest.raises(ChainIndeterminate) as exc_info:
        adapter.unwrap(outcome, ESCROW, "deposit")
    assert exc_info.value.indeterminate
    assert exc_info.value.tx_hash == outcome.tx_hash


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [SendStatus.ERROR, SendStatus.TRY_AGAIN_LATER])
async def test_rejected_broadcast_fails(adapter, ledger, status):
    ledger.send_statuses["deposit"] = status

    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, Failed)
    assert outcome.stage == FailureStage.BROADCAST
    assert ledger.polls == 0

    with pytest.raises(ChainBroadcastFailed):
        adapter.unwrap(outcome, ESCROW, "deposit")


@pytest.mark.asyncio
async def test_polling_stops_at_attempt_ceiling(adapter, ledger):
    """A transaction that never finalizes is indeterminate after the poll budget."""
    ledger.never_final.add("deposit")

    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, Indeterminate)
    assert ledger.polls == adapter.poll_max_attempts == 3
    assert (TOKEN, TENANT) not in ledger.balances
    assert metrics.counter_value("ledger.outcome.Indeterminate") == 1


@pytest.mark.asyncio
async def test_not_found_then_success_within_budget(adapter, ledger):
    ledger.poll_scripts["deposit"] = [TransactionStatus.NOT_FOUND, TransactionStatus.NOT_FOUND]

    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True)

    assert isinstance(outcome, WriteFinal)
    assert ledger.polls == 3


@pytest.mark.asyncio
async def test_failed_execution_is_definite(adapter, ledger):
    outcome = await adapter.submit(
        ESCROW, "lock", [a.address(TOKEN), a.address(TENANT), a.i128(10)], mutating=True
    )

    assert isinstance(outcome, Failed)
    assert outcome.stage == FailureStage.EXECUTION
    assert "insufficient unlocked balance" in outcome.reason

    with pytest.raises(ChainExecutionFailed) as exc_info:
        adapter.unwrap(outcome, ESCROW, "lock")
    assert exc_info.value.tx_hash == outcome.tx_hash


@pytest.mark.asyncio
async def test_accepted_write_can_be_reconciled(adapter, ledger):
    outcome = await adapter.submit(ESCROW, "deposit", deposit_args(), mutating=True, wait=False)

    assert isinstance(outcome, WriteAccepted)
    assert ledger.polls == 0

    final = await adapter.reconcile(outcome.tx_hash)
    assert isinstance(final, WriteFinal)
    assert final.tx_hash == outcome.tx_hash
    assert ledger.balances[(TOKEN, TENANT)]["unlocked"] == 100


def test_poll_budget_must_be_positive(ledger):
    with pytest.raises(ValueError):
        ChainTransactionAdapter(ledger, signer="x", poll_max_attempts=0)

    print("OK. Chain adapter validates its polling budget")
