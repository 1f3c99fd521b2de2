"""Market gateway - orders, bids and providers from the ledger plus local metadata."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from leasegate.chain.contracts import OrderBookContract, ProviderRegistryContract
from leasegate.config import settings
from leasegate.engine.errors import (
    BidNotFound,
    ChainError,
    OrderNotFound,
    ProviderNotFound,
    ValidationError,
)
from leasegate.engine.escrow import parse_amount
from leasegate.models import (
    Bid,
    BidState,
    ContainerSpec,
    Order,
    OrderState,
    Provider,
    ProviderStatus,
    ResourceSpec,
    TrustLevel,
)
from leasegate.store import Store
from leasegate.utils.time import utc_now

logger = logging.getLogger(__name__)

UNKNOWN_IMAGE = "unknown"


def _enum_value(raw: Any) -> Any:
    """Unwrap a contract enum, which decodes as ``[variant]`` or ``variant``."""
    if isinstance(raw, (list, tuple)) and raw:
        return raw[0]
    return raw


class MarketDirectory(ABC):
    """Order and provider lookup used by deployments."""

    @abstractmethod
    async def get_order(self, order_id: int) -> Order:
        """Return the order or raise OrderNotFound."""

    @abstractmethod
    async def get_provider(self, provider_id: int) -> Provider:
        """Return the provider or raise ProviderNotFound."""


class MarketGateway(MarketDirectory):
    """
    Order book and provider registry access.

    The contracts hold the authoritative order, bid and provider state.
    Off-chain metadata the contracts do not carry (tenant, hostname,
    advertised resources) lives in local stores keyed by the real ledger ids.
    """

    def __init__(
        self,
        order_book: OrderBookContract,
        registry: ProviderRegistryContract,
        orders: Store[int, Order],
        providers: Store[int, Provider],
        bids: Store[int, Bid],
        block_time_seconds: int | None = None,
    ):
        self.order_book = order_book
        self.registry = registry
        self.orders = orders
        self.providers = providers
        self.bids = bids
        self.block_time_seconds = (
            settings.block_time_seconds if block_time_seconds is None else block_time_seconds
        )

    # =========================================================================
    # Providers
    # =========================================================================

    async def register_provider(
        self,
        address: str,
        resources: Optional[ResourceSpec] = None,
        hostname: Optional[str] = None,
        port: Optional[int] = None,
    ) -> Provider:
        """Register a provider on the registry contract and keep its metadata."""
        if not address:
            raise ValidationError("Provider address must not be empty")

        provider_id = await self.registry.add_provider(address)
        provider = Provider(
            provider_id=provider_id,
            address=address,
            hostname=hostname,
            port=port,
            available_resources=resources,
        )
        await self.providers.put(provider_id, provider)
        logger.info(f"Registered provider {provider_id} ({address})")
        return provider

    async def get_provider(self, provider_id: int) -> Provider:
        stored = await self.providers.get(provider_id)
        try:
            raw = await self.registry.get_provider(provider_id)
        except ChainError as e:
            if stored is None:
                raise ProviderNotFound(provider_id) from e
            logger.warning(f"Provider {provider_id} lookup failed, using stored record: {e}")
            return stored

        return self._merge_provider(provider_id, raw, stored)

    async def get_provider_by_address(self, address: str) -> Provider:
        """Resolve a provider account address to its registry record."""
        if not address:
            raise ValidationError("Provider address must not be empty")
        try:
            provider_id, raw = await self.registry.get_provider_by_address(address)
        except ChainError as e:
            known = await self.providers.values(lambda p: p.address == address)
            if not known:
                raise ProviderNotFound(address) from e
            logger.warning(f"Provider {address} lookup failed, using stored record: {e}")
            return known[-1]

        return self._merge_provider(provider_id, raw, await self.providers.get(provider_id))

    async def list_providers(self) -> list[Provider]:
        try:
            raw_providers = await self.registry.list_providers()
        except ChainError as e:
            logger.warning(f"Provider listing failed, using stored records: {e}")
            return await self.providers.values()

        # The registry lists providers in id order starting at 1.
        return [
            self._merge_provider(provider_id, raw, await self.providers.get(provider_id))
            for provider_id, raw in enumerate(raw_providers or [], start=1)
        ]

    async def update_provider_status(self, provider_id: int, status: ProviderStatus) -> Provider:
        await self.get_provider(provider_id)
        await self.registry.set_provider_status(provider_id, status.value)
        await self._touch_provider(provider_id, status=status)
        logger.info(f"Provider {provider_id} status set to {status.value}")
        return await self.get_provider(provider_id)

    async def update_provider_trust_level(
        self, provider_id: int, trust_level: TrustLevel
    ) -> Provider:
        await self.get_provider(provider_id)
        await self.registry.set_trust_level(provider_id, trust_level.value)
        await self._touch_provider(provider_id, trust_level=trust_level)
        logger.info(f"Provider {provider_id} trust level set to {trust_level.value}")
        return await self.get_provider(provider_id)

    async def update_provider_resources(
        self, provider_id: int, resources: ResourceSpec
    ) -> Provider:
        """Replace the advertised resources; these live off-chain only."""
        provider = await self.get_provider(provider_id)
        provider.available_resources = resources
        provider.updated_at = utc_now()
        await self.providers.put(provider_id, provider)
        logger.info(f"Resources updated for provider {provider_id}")
        return provider

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(
        self,
        tenant_address: str,
        max_price: str,
        spec: ContainerSpec,
        trust_levels: list[TrustLevel],
        quantity: int,
        duration_blocks: int,
    ) -> Order:
        """Publish an order on the order book."""
        if not tenant_address:
            raise ValidationError("Tenant address must not be empty")
        if quantity < 1 or duration_blocks < 1:
            raise ValidationError("Quantity and duration must be positive")
        price = parse_amount(max_price)

        order_id = await self.order_book.create_order(
            price,
            duration_blocks,
            quantity,
            spec.model_dump_json(),
            [level.value for level in trust_levels],
        )
        order = Order(
            order_id=order_id,
            tenant_address=tenant_address,
            max_price=str(price),
            spec=spec,
            required_trust_levels=trust_levels,
            quantity=quantity,
            duration_blocks=duration_blocks,
            estimated_duration_hours=duration_blocks * self.block_time_seconds / 3600,
        )
        await self.orders.put(order_id, order)
        logger.info(f"Created order {order_id} for tenant {tenant_address}")
        return order

    async def get_order(self, order_id: int) -> Order:
        stored = await self.orders.get(order_id)
        try:
            raw = await self.order_book.get_order(order_id)
        except ChainError as e:
            if stored is None:
                raise OrderNotFound(order_id) from e
            logger.warning(f"Order {order_id} lookup failed, using stored record: {e}")
            return stored

        return self._merge_order(order_id, raw, stored)

    async def list_orders(self) -> list[Order]:
        return await self.orders.values()

    async def close_order(self, order_id: int) -> Order:
        await self.get_order(order_id)
        await self.order_book.close_order(order_id)

        def mark_closed(order: Order) -> None:
            order.state = OrderState.CLOSED
            order.updated_at = utc_now()

        closed = await self.orders.update(order_id, mark_closed)
        logger.info(f"Closed order {order_id}")
        return closed if closed is not None else await self.get_order(order_id)

    # =========================================================================
    # Bids
    # =========================================================================

    async def place_bid(self, order_id: int, provider_id: int, price: str) -> Bid:
        await self.get_order(order_id)
        await self.get_provider(provider_id)
        units = parse_amount(price)

        bid_id = await self.order_book.place_bid(order_id, provider_id, units)
        bid = Bid(bid_id=bid_id, order_id=order_id, provider_id=provider_id, price=str(units))
        await self.bids.put(bid_id, bid)
        logger.info(f"Provider {provider_id} placed bid {bid_id} on order {order_id}")
        return bid

    async def accept_bid(self, bid_id: int) -> Bid:
        """Accept a bid on the order book and mark it matched."""
        await self.get_bid(bid_id)
        await self.order_book.accept_bid(bid_id)

        def mark_matched(bid: Bid) -> None:
            bid.state = BidState.MATCHED
            bid.updated_at = utc_now()

        matched = await self.bids.update(bid_id, mark_matched)
        if matched is None:
            raise BidNotFound(bid_id)
        logger.info(f"Accepted bid {bid_id} on order {matched.order_id}")
        return matched

    async def get_bid(self, bid_id: int) -> Bid:
        bid = await self.bids.get(bid_id)
        if bid is None:
            raise BidNotFound(bid_id)
        return bid

    async def get_bids_for_order(self, order_id: int) -> list[Bid]:
        return await self.bids.values(lambda b: b.order_id == order_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _touch_provider(self, provider_id: int, **changes: Any) -> None:
        def apply(provider: Provider) -> None:
            for name, value in changes.items():
                setattr(provider, name, value)
            provider.updated_at = utc_now()

        await self.providers.update(provider_id, apply)

    @staticmethod
    def _merge_provider(provider_id: int, raw: Any, stored: Optional[Provider]) -> Provider:
        try:
            if stored is None:
                stored = Provider(provider_id=provider_id, address=raw.get("address") or "")
            return stored.model_copy(
                update={
                    "provider_id": provider_id,
                    "address": raw.get("address") or stored.address,
                    "trust_level": TrustLevel(
                        _enum_value(raw.get("trust_level", stored.trust_level))
                    ),
                    "status": ProviderStatus(_enum_value(raw.get("status", stored.status))),
                }
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ValidationError(f"Provider {provider_id} has malformed ledger data: {e}") from e

    def _merge_order(self, order_id: int, raw: Any, stored: Optional[Order]) -> Order:
        try:
            details = raw.get("spec") or {}
            spec = self._parse_spec(order_id, details.get("spec"), stored)
            duration_blocks = int(
                raw.get("number_of_blocks") or (stored.duration_blocks if stored else 0)
            )
            trust_levels = [
                TrustLevel(_enum_value(level)) for level in details.get("trust_levels") or []
            ] or (stored.required_trust_levels if stored else [])

            return Order(
                order_id=order_id,
                tenant_address=stored.tenant_address if stored else "",
                max_price=str(raw.get("max_price", details.get("max_price", 0))),
                spec=spec,
                required_trust_levels=trust_levels,
                quantity=int(details.get("quantity") or (stored.quantity if stored else 1)),
                duration_blocks=duration_blocks,
                estimated_duration_hours=duration_blocks * self.block_time_seconds / 3600,
                state=OrderState(_enum_value(raw.get("state", OrderState.ACTIVE))),
                created_at=stored.created_at if stored else utc_now(),
                updated_at=stored.updated_at if stored else utc_now(),
            )
        # pydantic's ValidationError is a ValueError
        except (AttributeError, TypeError, ValueError) as e:
            raise ValidationError(f"Order {order_id} has malformed ledger data: {e}") from e

    @staticmethod
    def _parse_spec(order_id: int, encoded: Any, stored: Optional[Order]) -> ContainerSpec:
        if isinstance(encoded, str) and encoded:
            try:
                return ContainerSpec.model_validate(json.loads(encoded))
            except (json.JSONDecodeError, PydanticValidationError) as e:
                logger.warning(f"Order {order_id} has an unreadable container spec: {e}")
        if stored is not None:
            return stored.spec
        return ContainerSpec(image=UNKNOWN_IMAGE)
