"""Order book and provider registry records read by the orchestrator."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from leasegate.models.enums import BidState, OrderState, ProviderStatus, TrustLevel
from leasegate.utils.time import utc_now


class PortMapping(BaseModel):
    container_port: int
    host_port: Optional[int] = None
    protocol: Literal["tcp", "udp"] = "tcp"


class VolumeMount(BaseModel):
    host_path: Optional[str] = None
    container_path: str
    size: Optional[int] = None


class ContainerSpec(BaseModel):
    """Workload container requested by an order."""

    image: str
    cpu: float = 0  # cores
    memory: int = 0  # MB
    storage: int = 0  # GB
    env: dict[str, str] = Field(default_factory=dict)
    ports: list[PortMapping] = Field(default_factory=list)
    volumes: list[VolumeMount] = Field(default_factory=list)
    command: Optional[list[str]] = None
    args: Optional[list[str]] = None


class ResourceSpec(BaseModel):
    """Capacity a provider advertises."""

    cpu: float
    memory: int  # MB
    storage: int  # GB
    bandwidth: Optional[int] = None  # Mbps


class Order(BaseModel):
    """Tenant resource order."""

    order_id: int
    tenant_address: str = ""
    max_price: str
    spec: ContainerSpec
    required_trust_levels: list[TrustLevel] = Field(default_factory=list)
    quantity: int = 1
    duration_blocks: int
    estimated_duration_hours: float = 0.0
    state: OrderState = OrderState.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Provider(BaseModel):
    """Registered compute provider."""

    provider_id: int
    address: str
    trust_level: TrustLevel = TrustLevel.FIVE
    status: ProviderStatus = ProviderStatus.REGISTERED
    hostname: Optional[str] = None
    port: Optional[int] = None
    available_resources: Optional[ResourceSpec] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Bid(BaseModel):
    """Provider bid on an order."""

    bid_id: int
    order_id: int
    provider_id: int
    price: str
    state: BidState = BidState.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
