"""REST API router."""

from fastapi import APIRouter, Depends, HTTPException, Query

from leasegate.api.deps import get_market, get_orchestrator, http_error
from leasegate.api.schemas import (
    CompleteLeaseRequest,
    CreateLeaseRequest,
    CreateOrderRequest,
    EscrowTransferRequest,
    HealthResponse,
    LeasePaymentRequest,
    LogsResponse,
    PlaceBidRequest,
    ProviderResourcesRequest,
    ProviderStatusRequest,
    RegisterProviderRequest,
    TrustLevelRequest,
    WithdrawRequest,
)
from leasegate.engine.errors import LeaseGateError
from leasegate.engine.leases import LeaseHealth, Settlement
from leasegate.engine.market import MarketGateway
from leasegate.engine.orchestrator import Orchestrator
from leasegate.models import (
    Bid,
    Deployment,
    Lease,
    Order,
    Payment,
    Provider,
    ProviderEarnings,
    TenantBalance,
)

VERSION = "0.1.0"

router = APIRouter(prefix="/v1")


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy", version=VERSION, monitor_running=orchestrator.monitor.running
    )


# ============================================================================
# Leases
# ============================================================================


@router.post("/leases", response_model=Lease, status_code=201)
async def create_lease(
    request: CreateLeaseRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Create a lease and deploy its container."""
    try:
        return await orchestrator.leases.create_lease(
            order_id=request.order_id,
            provider_id=request.provider_id,
            start_block=request.start_block,
            end_block=request.end_block,
            tenant_address=request.tenant_address,
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/leases", response_model=list[Lease])
async def list_leases(orchestrator: Orchestrator = Depends(get_orchestrator)):
    return await orchestrator.leases.list_leases()


@router.get("/leases/{lease_id}", response_model=Lease)
async def get_lease(lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.leases.get_lease(lease_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/providers/{provider_id}/leases", response_model=list[Lease])
async def list_provider_leases(
    provider_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)
):
    return await orchestrator.leases.list_leases_for_provider(provider_id)


@router.get("/orders/{order_id}/leases", response_model=list[Lease])
async def list_order_leases(order_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    return await orchestrator.leases.list_leases_for_order(order_id)


@router.post("/leases/{lease_id}/complete", response_model=Lease)
async def complete_lease(
    lease_id: int,
    request: CompleteLeaseRequest | None = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Complete a lease, optionally settling with the provider first."""
    settlement = None
    if request is not None and request.settlement is not None:
        s = request.settlement
        settlement = Settlement(
            token=s.token, tenant_address=s.tenant_address, amount=s.amount, signer=s.signer_secret
        )
    try:
        return await orchestrator.leases.complete_lease(lease_id, settlement)
    except LeaseGateError as e:
        raise http_error(e)


@router.post("/leases/{lease_id}/cancel", response_model=Lease)
async def cancel_lease(lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.leases.cancel_lease(lease_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.post("/leases/{lease_id}/payments", response_model=Payment, status_code=201)
async def pay_lease(
    lease_id: int,
    request: LeasePaymentRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Pay the lease's provider from locked tenant funds."""
    try:
        return await orchestrator.leases.process_payment(
            lease_id,
            token=request.token,
            tenant_address=request.tenant_address,
            amount=request.amount,
            signer=request.signer_secret,
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/leases/{lease_id}/payments", response_model=list[Payment])
async def list_lease_payments(
    lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)
):
    return await orchestrator.escrow.list_payments_for_lease(lease_id)


@router.get("/leases/{lease_id}/health", response_model=LeaseHealth)
async def check_lease_health(
    lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)
):
    """Run a health check on the lease's container now."""
    try:
        return await orchestrator.leases.check_lease_health(lease_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/leases/{lease_id}/logs", response_model=LogsResponse)
async def get_lease_logs(lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    try:
        logs = await orchestrator.leases.get_lease_logs(lease_id)
    except LeaseGateError as e:
        raise http_error(e)
    return LogsResponse(lease_id=lease_id, logs=logs)


# ============================================================================
# Deployments
# ============================================================================


@router.get("/deployments", response_model=list[Deployment])
async def list_deployments(orchestrator: Orchestrator = Depends(get_orchestrator)):
    return await orchestrator.deployments.list_deployments()


@router.get("/deployments/{lease_id}", response_model=Deployment)
async def get_deployment(lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.deployments.get_deployment(lease_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.post("/deployments/{lease_id}/stop", response_model=Deployment)
async def stop_deployment(lease_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Stop a deployment without changing its lease."""
    try:
        deployment = await orchestrator.deployments.stop(lease_id)
    except LeaseGateError as e:
        raise http_error(e)
    if deployment is None:
        raise HTTPException(status_code=404, detail=f"No deployment for lease {lease_id}")
    return deployment


# ============================================================================
# Escrow
# ============================================================================


@router.post("/escrow/deposits", response_model=Payment, status_code=201)
async def deposit(
    request: EscrowTransferRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.escrow.deposit(
            request.token, request.tenant_address, request.amount, request.signer_secret
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.post("/escrow/locks", response_model=Payment, status_code=201)
async def lock(
    request: EscrowTransferRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.escrow.lock(
            request.token, request.tenant_address, request.amount, request.signer_secret
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.post("/escrow/withdrawals", response_model=Payment, status_code=201)
async def withdraw(
    request: WithdrawRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.escrow.withdraw_provider_earnings(
            request.token, request.provider_address, request.signer_secret
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/escrow/tenants/{tenant_address}/balance", response_model=TenantBalance)
async def tenant_balance(
    tenant_address: str,
    token: str = Query(...),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.escrow.get_tenant_balance(token, tenant_address)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/escrow/providers/{provider_id}/earnings", response_model=ProviderEarnings)
async def provider_earnings(
    provider_id: int,
    token: str = Query(...),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.escrow.get_provider_earnings(provider_id, token)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/payments", response_model=list[Payment])
async def list_payments(orchestrator: Orchestrator = Depends(get_orchestrator)):
    return await orchestrator.escrow.list_payments()


@router.get("/payments/{payment_id}", response_model=Payment)
async def get_payment(payment_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.escrow.get_payment(payment_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/tenants/{tenant_address}/payments", response_model=list[Payment])
async def list_tenant_payments(
    tenant_address: str, orchestrator: Orchestrator = Depends(get_orchestrator)
):
    return await orchestrator.escrow.list_payments_for_tenant(tenant_address)


@router.get("/provider-accounts/{provider_address}/payments", response_model=list[Payment])
async def list_provider_payments(
    provider_address: str, orchestrator: Orchestrator = Depends(get_orchestrator)
):
    return await orchestrator.escrow.list_payments_for_provider(provider_address)


# ============================================================================
# Providers
# ============================================================================


@router.post("/providers", response_model=Provider, status_code=201)
async def register_provider(
    request: RegisterProviderRequest, market: MarketGateway = Depends(get_market)
):
    """Register a provider on the registry contract."""
    try:
        return await market.register_provider(
            request.address, request.resources, request.hostname, request.port
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/providers", response_model=list[Provider])
async def list_providers(market: MarketGateway = Depends(get_market)):
    return await market.list_providers()


@router.get("/providers/by-address/{address}", response_model=Provider)
async def get_provider_by_address(address: str, market: MarketGateway = Depends(get_market)):
    try:
        return await market.get_provider_by_address(address)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/providers/{provider_id}", response_model=Provider)
async def get_provider(provider_id: int, market: MarketGateway = Depends(get_market)):
    try:
        return await market.get_provider(provider_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.put("/providers/{provider_id}/status", response_model=Provider)
async def update_provider_status(
    provider_id: int,
    request: ProviderStatusRequest,
    market: MarketGateway = Depends(get_market),
):
    try:
        return await market.update_provider_status(provider_id, request.status)
    except LeaseGateError as e:
        raise http_error(e)


@router.put("/providers/{provider_id}/trust-level", response_model=Provider)
async def update_provider_trust_level(
    provider_id: int,
    request: TrustLevelRequest,
    market: MarketGateway = Depends(get_market),
):
    try:
        return await market.update_provider_trust_level(provider_id, request.trust_level)
    except LeaseGateError as e:
        raise http_error(e)


@router.put("/providers/{provider_id}/resources", response_model=Provider)
async def update_provider_resources(
    provider_id: int,
    request: ProviderResourcesRequest,
    market: MarketGateway = Depends(get_market),
):
    try:
        return await market.update_provider_resources(provider_id, request.resources)
    except LeaseGateError as e:
        raise http_error(e)


# ============================================================================
# Orders and bids
# ============================================================================


@router.post("/orders", response_model=Order, status_code=201)
async def create_order(request: CreateOrderRequest, market: MarketGateway = Depends(get_market)):
    """Publish an order on the order book."""
    try:
        return await market.create_order(
            tenant_address=request.tenant_address,
            max_price=request.max_price,
            spec=request.spec,
            trust_levels=request.trust_levels,
            quantity=request.quantity,
            duration_blocks=request.duration_blocks,
        )
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/orders", response_model=list[Order])
async def list_orders(market: MarketGateway = Depends(get_market)):
    return await market.list_orders()


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(order_id: int, market: MarketGateway = Depends(get_market)):
    try:
        return await market.get_order(order_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.put("/orders/{order_id}/close", response_model=Order)
async def close_order(order_id: int, market: MarketGateway = Depends(get_market)):
    try:
        return await market.close_order(order_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/orders/{order_id}/bids", response_model=list[Bid])
async def list_order_bids(order_id: int, market: MarketGateway = Depends(get_market)):
    return await market.get_bids_for_order(order_id)


@router.post("/orders/{order_id}/bids", response_model=Bid, status_code=201)
async def place_bid(
    order_id: int,
    request: PlaceBidRequest,
    market: MarketGateway = Depends(get_market),
):
    """Place a provider bid on an order."""
    try:
        return await market.place_bid(order_id, request.provider_id, request.price)
    except LeaseGateError as e:
        raise http_error(e)


@router.get("/bids/{bid_id}", response_model=Bid)
async def get_bid(bid_id: int, market: MarketGateway = Depends(get_market)):
    try:
        return await market.get_bid(bid_id)
    except LeaseGateError as e:
        raise http_error(e)


@router.post("/bids/{bid_id}/accept", response_model=Lease, status_code=201)
async def accept_bid(bid_id: int, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Accept a bid and open the lease for it."""
    try:
        return await orchestrator.accept_bid(bid_id)
    except LeaseGateError as e:
        raise http_error(e)
