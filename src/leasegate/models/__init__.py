"""LeaseGate data models."""

from leasegate.models.enums import (
    BidState,
    DeploymentStatus,
    HealthEventStatus,
    HealthStatus,
    LeaseState,
    OrderState,
    PaymentKind,
    PaymentStatus,
    ProviderStatus,
    TrustLevel,
)
from leasegate.models.lease import Lease
from leasegate.models.deployment import Deployment, HealthChecks, HealthEvent, ResourceUsage
from leasegate.models.payment import Payment, ProviderEarnings, TenantBalance
from leasegate.models.market import (
    Bid,
    ContainerSpec,
    Order,
    PortMapping,
    Provider,
    ResourceSpec,
    VolumeMount,
)

__all__ = [
    "Bid",
    "BidState",
    "ContainerSpec",
    "Deployment",
    "DeploymentStatus",
    "HealthChecks",
    "HealthEvent",
    "HealthEventStatus",
    "HealthStatus",
    "Lease",
    "LeaseState",
    "Order",
    "OrderState",
    "Payment",
    "PaymentKind",
    "PaymentStatus",
    "PortMapping",
    "Provider",
    "ProviderEarnings",
    "ProviderStatus",
    "ResourceSpec",
    "ResourceUsage",
    "TenantBalance",
    "TrustLevel",
    "VolumeMount",
]
