"""API request/response schemas."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from leasegate.models import ContainerSpec, ProviderStatus, ResourceSpec, TrustLevel


# ============================================================================
# Shared schemas
# ============================================================================


class HealthResponse(BaseModel):
    """Service health response."""

    status: str
    version: str
    monitor_running: bool


class SignedRequest(BaseModel):
    """Base for requests that submit a ledger transaction."""

    signer_secret: Optional[str] = Field(
        None,
        description="Secret seed signing the transaction; defaults to the orchestrator account",
    )


# ============================================================================
# Leases
# ============================================================================


class CreateLeaseRequest(BaseModel):
    """Create lease request."""

    order_id: int = Field(..., ge=1)
    provider_id: int = Field(..., ge=1)
    start_block: int = Field(..., ge=0)
    end_block: int = Field(..., ge=0)
    tenant_address: str = Field(..., min_length=1)


class SettlementRequest(SignedRequest):
    """Provider payment made when a lease completes."""

    token: str
    tenant_address: str
    amount: str = Field(..., description="Integral token amount")


class CompleteLeaseRequest(BaseModel):
    """Complete lease request."""

    settlement: Optional[SettlementRequest] = None


class LeasePaymentRequest(SignedRequest):
    """Transfer locked funds to the lease's provider."""

    token: str
    amount: str
    tenant_address: Optional[str] = Field(
        None, description="Paying tenant; defaults to the lease's tenant"
    )


class LogsResponse(BaseModel):
    """Container log tail."""

    lease_id: int
    logs: str


# ============================================================================
# Escrow
# ============================================================================


class EscrowTransferRequest(SignedRequest):
    """Deposit or lock request."""

    token: str
    tenant_address: str
    amount: str


class WithdrawRequest(SignedRequest):
    """Provider earnings withdrawal request."""

    token: str
    provider_address: str


# ============================================================================
# Market
# ============================================================================


class RegisterProviderRequest(BaseModel):
    """Register provider request."""

    address: str = Field(..., min_length=1)
    resources: Optional[ResourceSpec] = None
    hostname: Optional[str] = None
    port: Optional[int] = Field(None, ge=1, le=65535)


class ProviderStatusRequest(BaseModel):
    status: ProviderStatus


class TrustLevelRequest(BaseModel):
    trust_level: TrustLevel


class ProviderResourcesRequest(BaseModel):
    resources: ResourceSpec


class CreateOrderRequest(BaseModel):
    """Create order request."""

    tenant_address: str = Field(..., min_length=1)
    max_price: str = Field(..., description="Integral token amount")
    spec: ContainerSpec
    trust_levels: list[TrustLevel] = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    duration_blocks: int = Field(..., ge=1)


class PlaceBidRequest(BaseModel):
    """Place bid request."""

    provider_id: int = Field(..., ge=1)
    price: str = Field(..., description="Integral token amount")


# ============================================================================
# Metrics
# ============================================================================


class MetricsResponse(BaseModel):
    """In-process metrics snapshot."""

    counters: dict[str, float]
    gauges: dict[str, float]
    histograms: dict[str, dict[str, Any]]
