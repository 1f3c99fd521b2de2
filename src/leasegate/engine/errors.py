"""LeaseGate engine errors."""

from typing import Optional


class LeaseGateError(Exception):
    """Base error for LeaseGate operations."""

    def __init__(self, message: str, code: str = "LEASEGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# ============================================================================
# Not found
# ============================================================================


class NotFoundError(LeaseGateError):
    """Entity is absent from its store."""

    def __init__(self, entity: str, entity_id: object, code: str):
        super().__init__(f"{entity} not found: {entity_id}", code)
        self.entity = entity
        self.entity_id = entity_id


class LeaseNotFound(NotFoundError):
    def __init__(self, lease_id: int):
        super().__init__("Lease", lease_id, "LEASE_NOT_FOUND")
        self.lease_id = lease_id


class DeploymentNotFound(NotFoundError):
    def __init__(self, lease_id: int):
        super().__init__("Deployment for lease", lease_id, "DEPLOYMENT_NOT_FOUND")
        self.lease_id = lease_id


class PaymentNotFound(NotFoundError):
    def __init__(self, payment_id: int):
        super().__init__("Payment", payment_id, "PAYMENT_NOT_FOUND")
        self.payment_id = payment_id


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: int):
        super().__init__("Order", order_id, "ORDER_NOT_FOUND")
        self.order_id = order_id


class ProviderNotFound(NotFoundError):
    def __init__(self, provider_id: int | str):
        super().__init__("Provider", provider_id, "PROVIDER_NOT_FOUND")
        self.provider_id = provider_id


class BidNotFound(NotFoundError):
    def __init__(self, bid_id: int):
        super().__init__("Bid", bid_id, "BID_NOT_FOUND")
        self.bid_id = bid_id


# ============================================================================
# State machine / validation
# ============================================================================


class InvalidStateTransition(LeaseGateError):
    """State machine rule violation."""

    def __init__(self, entity: str, entity_id: object, current_state: str, requested_state: str):
        super().__init__(
            f"Invalid transition for {entity} {entity_id} from {current_state} to {requested_state}",
            "INVALID_STATE_TRANSITION",
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current_state = current_state
        self.requested_state = requested_state


class ValidationError(LeaseGateError):
    """Malformed input rejected before any state mutation."""

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


# ============================================================================
# Ledger
# ============================================================================


class ChainError(LeaseGateError):
    """Ledger call did not produce a confirmed result."""

    indeterminate = False

    def __init__(
        self,
        message: str,
        code: str,
        contract_id: str,
        method: str,
        stage: str,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(f"{method} on {contract_id or '<unset>'}: {message}", code)
        self.reason = message
        self.contract_id = contract_id
        self.method = method
        self.stage = stage
        self.tx_hash = tx_hash


class ChainCallFailed(ChainError):
    """Ledger call definitely did not take effect."""


class ChainSimulationFailed(ChainCallFailed):
    def __init__(self, message: str, contract_id: str, method: str):
        super().__init__(message, "CHAIN_SIMULATION_FAILED", contract_id, method, "simulation")


class ChainPreparationFailed(ChainCallFailed):
    def __init__(self, message: str, contract_id: str, method: str):
        super().__init__(message, "CHAIN_PREPARATION_FAILED", contract_id, method, "preparation")


class ChainSigningFailed(ChainCallFailed):
    def __init__(self, message: str, contract_id: str, method: str):
        super().__init__(message, "CHAIN_SIGNING_FAILED", contract_id, method, "signing")


class ChainBroadcastFailed(ChainCallFailed):
    def __init__(self, message: str, contract_id: str, method: str, tx_hash: Optional[str] = None):
        super().__init__(
            message, "CHAIN_BROADCAST_FAILED", contract_id, method, "broadcast", tx_hash
        )


class ChainExecutionFailed(ChainCallFailed):
    """Ledger finalized the transaction but the contract failed."""

    def __init__(self, message: str, contract_id: str, method: str, tx_hash: Optional[str] = None):
        super().__init__(
            message, "CHAIN_EXECUTION_FAILED", contract_id, method, "execution", tx_hash
        )


class ChainIndeterminate(ChainError):
    """Outcome unknown: the transaction may or may not have landed."""

    indeterminate = True


class ChainTransactionTimeout(ChainIndeterminate):
    """Transaction did not finalize within the polling budget."""

    def __init__(self, message: str, contract_id: str, method: str, tx_hash: Optional[str] = None):
        super().__init__(message, "CHAIN_TRANSACTION_TIMEOUT", contract_id, method, "polling", tx_hash)


# ============================================================================
# Container runtime / deployment
# ============================================================================


class ContainerRuntimeError(LeaseGateError):
    """Container runtime call failed."""

    def __init__(self, operation: str, message: str, container_id: Optional[str] = None):
        target = f" for container {container_id}" if container_id else ""
        super().__init__(f"Runtime {operation} failed{target}: {message}", "CONTAINER_RUNTIME_ERROR")
        self.operation = operation
        self.container_id = container_id


class ContainerNotFound(ContainerRuntimeError):
    """Container does not exist in the runtime."""

    def __init__(self, container_id: str, operation: str = "lookup"):
        super().__init__(operation, "no such container", container_id)
        self.code = "CONTAINER_NOT_FOUND"


class DeploymentFailed(LeaseGateError):
    """Container could not be materialized for a lease."""

    def __init__(self, lease_id: int, cause: str):
        super().__init__(f"Deployment failed for lease {lease_id}: {cause}", "DEPLOYMENT_FAILED")
        self.lease_id = lease_id


# ============================================================================
# Escrow
# ============================================================================


class EscrowError(LeaseGateError):
    """Escrow operation was not confirmed by the ledger."""

    operation = "escrow"
    error_code = "ESCROW_FAILED"

    def __init__(self, subject: str, cause: Exception):
        super().__init__(
            f"{self.operation.capitalize()} failed for {subject}: {cause}", self.error_code
        )
        self.subject = subject
        self.cause = cause

    @property
    def indeterminate(self) -> bool:
        """True when the ledger outcome is unknown rather than failed."""
        return bool(getattr(self.cause, "indeterminate", False))


class DepositFailed(EscrowError):
    operation = "deposit"
    error_code = "DEPOSIT_FAILED"


class LockFailed(EscrowError):
    operation = "lock"
    error_code = "LOCK_FAILED"


class TransferFailed(EscrowError):
    operation = "transfer"
    error_code = "TRANSFER_FAILED"


class WithdrawFailed(EscrowError):
    operation = "withdraw"
    error_code = "WITHDRAW_FAILED"


class PenaltyFailed(EscrowError):
    operation = "penalty"
    error_code = "PENALTY_FAILED"


class BalanceQueryFailed(EscrowError):
    operation = "balance query"
    error_code = "BALANCE_QUERY_FAILED"
