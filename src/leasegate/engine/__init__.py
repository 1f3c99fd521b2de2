"""LeaseGate engine - leases, deployments, escrow and market access.

Only the error types are exported here; the ledger adapter depends on them
and must be importable before the components that depend on the ledger.
"""

from leasegate.engine.errors import (
    ChainError,
    ChainIndeterminate,
    ContainerNotFound,
    ContainerRuntimeError,
    DeploymentFailed,
    EscrowError,
    InvalidStateTransition,
    LeaseGateError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "ChainError",
    "ChainIndeterminate",
    "ContainerNotFound",
    "ContainerRuntimeError",
    "DeploymentFailed",
    "EscrowError",
    "InvalidStateTransition",
    "LeaseGateError",
    "NotFoundError",
    "ValidationError",
]
