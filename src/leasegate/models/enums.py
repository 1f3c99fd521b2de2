"""LeaseGate enumerations."""

from enum import Enum


class LeaseState(str, Enum):
    """Lease lifecycle state."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELED = "Canceled"

    @classmethod
    def terminal_states(cls) -> set["LeaseState"]:
        """Return terminal states."""
        return {cls.COMPLETED, cls.CANCELED}

    def is_terminal(self) -> bool:
        """Check if state is terminal."""
        return self in self.terminal_states()


class DeploymentStatus(str, Enum):
    """Deployment runtime status."""

    PENDING = "pending"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


class HealthStatus(str, Enum):
    """Last observed container health."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class HealthEventStatus(str, Enum):
    """Outcome recorded in a deployment health log entry."""

    SUCCESS = "success"
    FAILURE = "failure"


class PaymentStatus(str, Enum):
    """Payment settlement status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentKind(str, Enum):
    """Ledger operation a payment record logs."""

    DEPOSIT = "deposit"
    LOCK = "lock"
    TRANSFER = "transfer"
    WITHDRAWAL = "withdrawal"
    PENALTY = "penalty"


class TrustLevel(str, Enum):
    """Provider trust level as held by the registry contract."""

    ONE = "One"
    TWO = "Two"
    THREE = "Three"
    FOUR = "Four"
    FIVE = "Five"


class ProviderStatus(str, Enum):
    """Provider status as held by the registry contract."""

    REGISTERED = "Registered"
    ACTIVE = "Active"
    MAINTANANCE = "Maintanance"  # contract spelling
    SUSPENDED = "Suspended"
    DEACTIVATED = "Deactivated"


class OrderState(str, Enum):
    """Order book order state."""

    ACTIVE = "Active"
    CLOSED = "Closed"
    COMPLETE = "Complete"


class BidState(str, Enum):
    """Order book bid state."""

    ACTIVE = "Active"
    CANCELED = "Canceled"
    MATCHED = "Matched"
