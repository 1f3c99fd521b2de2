"""Chain transaction adapter - simulate / sign / submit / poll."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from leasegate.chain.args import ContractArg
from leasegate.chain.backend import LedgerBackend, SendStatus, TransactionStatus
from leasegate.chain.results import (
    Failed,
    FailureStage,
    Indeterminate,
    LedgerOutcome,
    ReadResult,
    WriteAccepted,
    WriteFinal,
)
from leasegate.config import settings
from leasegate.engine.errors import (
    ChainBroadcastFailed,
    ChainError,
    ChainExecutionFailed,
    ChainPreparationFailed,
    ChainSigningFailed,
    ChainSimulationFailed,
    ChainTransactionTimeout,
)
from leasegate.observability.metrics import metrics

logger = logging.getLogger(__name__)

_FAILURE_ERRORS = {
    FailureStage.SIMULATION: ChainSimulationFailed,
    FailureStage.PREPARATION: ChainPreparationFailed,
    FailureStage.SIGNING: ChainSigningFailed,
}


@dataclass(frozen=True)
class ChainCall:
    """Confirmed result of a ledger call."""

    value: Any
    tx_hash: Optional[str] = None


class ChainTransactionAdapter:
    """
    Turns "call contract method M with args A" into a ledger operation.

    Every call is simulated first. A simulation that yields a value without
    writing state or needing authorization is a query and is answered without
    broadcasting. Anything else is prepared, signed, broadcast and polled
    until the ledger reports a terminal status or the attempt ceiling is hit.

    The adapter keeps no state between calls besides the default signer.
    """

    def __init__(
        self,
        backend: LedgerBackend,
        signer: Any = None,
        poll_interval_seconds: float | None = None,
        poll_max_attempts: int | None = None,
    ):
        self.backend = backend
        self.signer = signer
        self.poll_interval_seconds = (
            settings.tx_poll_interval_seconds
            if poll_interval_seconds is None
            else poll_interval_seconds
        )
        self.poll_max_attempts = (
            settings.tx_poll_max_attempts if poll_max_attempts is None else poll_max_attempts
        )
        if self.poll_max_attempts < 1:
            raise ValueError("poll_max_attempts must be at least 1")

    async def execute(
        self,
        contract_id: str,
        method: str,
        args: list[ContractArg],
        *,
        signer: Any = None,
        mutating: bool = False,
    ) -> Any:
        """Run a contract call and return its decoded value, or raise a ChainError."""
        return (await self.call(contract_id, method, args, signer=signer, mutating=mutating)).value

    async def call(
        self,
        contract_id: str,
        method: str,
        args: list[ContractArg],
        *,
        signer: Any = None,
        mutating: bool = False,
    ) -> ChainCall:
        """Run a contract call and return value plus transaction hash."""
        outcome = await self.submit(contract_id, method, args, signer=signer, mutating=mutating)
        return self.unwrap(outcome, contract_id, method)

    async def submit(
        self,
        contract_id: str,
        method: str,
        args: list[ContractArg],
        *,
        signer: Any = None,
        mutating: bool = False,
        wait: bool = True,
    ) -> LedgerOutcome:
        """
        Run a contract call and return the tagged outcome without raising.

        With ``wait=False`` a broadcast write returns ``WriteAccepted`` as
        soon as the ledger acknowledges it; finality can then be checked
        with ``reconcile``.
        """
        metrics.inc_counter("ledger.calls")
        outcome = await self._submit(contract_id, method, args, signer, mutating, wait)
        return self._observe(outcome, contract_id, method)

    async def reconcile(self, tx_hash: str) -> LedgerOutcome:
        """Poll a previously broadcast transaction until final or out of budget."""
        outcome = await self._await_finality(tx_hash)
        return self._observe(outcome, "", f"reconcile {tx_hash}")

    def _observe(self, outcome: LedgerOutcome, contract_id: str, method: str) -> LedgerOutcome:
        metrics.inc_counter(f"ledger.outcome.{type(outcome).__name__}")

        if isinstance(outcome, Failed):
            logger.warning(
                f"Ledger call {method} on {contract_id} failed at "
                f"{outcome.stage.value}: {outcome.reason}"
            )
        elif isinstance(outcome, Indeterminate):
            logger.error(
                f"Ledger call {method} on {contract_id} is indeterminate "
                f"(tx {outcome.tx_hash}): {outcome.reason}"
            )
        return outcome

    async def latest_block(self) -> int:
        """Return the latest ledger sequence."""
        return await self.backend.latest_block()

    def source_address(self, signer: Any = None) -> str:
        """Ledger address that signs calls made with ``signer`` (or the default signer)."""
        signer = signer if signer is not None else self.signer
        if signer is None:
            raise ChainSigningFailed("No signer configured", "", "source_address")
        try:
            return self.backend.signer_address(signer)
        except Exception as e:
            raise ChainSigningFailed(f"Signer unavailable: {e}", "", "source_address") from e

    async def _submit(
        self,
        contract_id: str,
        method: str,
        args: list[ContractArg],
        signer: Any,
        mutating: bool,
        wait: bool,
    ) -> LedgerOutcome:
        signer = signer if signer is not None else self.signer
        if signer is None:
            return Failed(FailureStage.SIGNING, "No signer configured")

        try:
            source = self.backend.signer_address(signer)
        except Exception as e:
            return Failed(FailureStage.SIGNING, f"Signer unavailable: {e}")

        # 1. Simulate (cheap path for queries)
        try:
            tx = await self.backend.build_invocation(contract_id, method, args, source)
            simulation = await self.backend.simulate(tx)
        except Exception as e:
            return Failed(FailureStage.SIMULATION, str(e))

        if simulation.error:
            return Failed(FailureStage.SIMULATION, simulation.error)

        if simulation.is_read_only and not mutating:
            logger.debug(f"Ledger query {method} on {contract_id} answered by simulation")
            return ReadResult(simulation.result)

        # 2. Prepare fees / footprint
        try:
            prepared = await self.backend.prepare(tx, simulation)
        except Exception as e:
            return Failed(FailureStage.PREPARATION, str(e))

        # 3. Sign
        try:
            signed = self.backend.sign(prepared, signer)
            tx_hash = self.backend.transaction_hash(signed)
        except Exception as e:
            return Failed(FailureStage.SIGNING, str(e))

        # 4. Broadcast
        try:
            receipt = await self.backend.send(signed)
        except Exception as e:
            # The request may have reached the ledger before the transport failed.
            return Indeterminate(f"Broadcast outcome unknown: {e}", tx_hash)

        if receipt.status in (SendStatus.ERROR, SendStatus.TRY_AGAIN_LATER):
            reason = f"Transaction rejected with status {receipt.status.value}"
            if receipt.error:
                reason = f"{reason}: {receipt.error}"
            return Failed(FailureStage.BROADCAST, reason, receipt.tx_hash or tx_hash)

        tx_hash = receipt.tx_hash or tx_hash
        if not wait:
            return WriteAccepted(tx_hash)

        # 5. Poll for finality
        return await self._await_finality(tx_hash)

    async def _await_finality(self, tx_hash: str) -> LedgerOutcome:
        last_error: Optional[str] = None

        for attempt in range(1, self.poll_max_attempts + 1):
            try:
                report = await self.backend.get_transaction(tx_hash)
            except Exception as e:
                last_error = str(e)
                logger.warning(f"Polling transaction {tx_hash} failed (attempt {attempt}): {e}")
            else:
                if report.status == TransactionStatus.SUCCESS:
                    return WriteFinal(report.return_value, tx_hash)
                if report.status != TransactionStatus.NOT_FOUND:
                    reason = f"Transaction failed: {report.status.value}"
                    if report.detail:
                        reason = f"{reason} ({report.detail})"
                    return Failed(FailureStage.EXECUTION, reason, tx_hash)

            if attempt < self.poll_max_attempts:
                await asyncio.sleep(self.poll_interval_seconds)

        reason = f"Transaction not final after {self.poll_max_attempts} status checks"
        if last_error:
            reason = f"{reason}; last poll error: {last_error}"
        return Indeterminate(reason, tx_hash)

    @staticmethod
    def unwrap(outcome: LedgerOutcome, contract_id: str, method: str) -> ChainCall:
        """Convert a tagged outcome into a value or a typed ChainError."""
        if isinstance(outcome, ReadResult):
            return ChainCall(outcome.value)
        if isinstance(outcome, WriteFinal):
            return ChainCall(outcome.value, outcome.tx_hash)
        if isinstance(outcome, WriteAccepted):
            # Not final yet; callers that asked not to wait get the hash only.
            return ChainCall(None, outcome.tx_hash)
        if isinstance(outcome, Indeterminate):
            raise ChainTransactionTimeout(outcome.reason, contract_id, method, outcome.tx_hash)
        if isinstance(outcome, Failed):
            if outcome.stage == FailureStage.BROADCAST:
                raise ChainBroadcastFailed(outcome.reason, contract_id, method, outcome.tx_hash)
            if outcome.stage == FailureStage.EXECUTION:
                raise ChainExecutionFailed(outcome.reason, contract_id, method, outcome.tx_hash)
            raise _FAILURE_ERRORS[outcome.stage](outcome.reason, contract_id, method)
        raise ChainError(
            f"Unexpected ledger outcome {outcome!r}", "CHAIN_ERROR", contract_id, method, "unknown"
        )
