"""Typed clients for the escrow, order book and provider registry contracts."""

from typing import Any

from leasegate.chain import args as a
from leasegate.chain.adapter import ChainCall, ChainTransactionAdapter


class ContractClient:
    """Binds a contract id to the shared transaction adapter."""

    def __init__(self, adapter: ChainTransactionAdapter, contract_id: str):
        self.adapter = adapter
        self.contract_id = contract_id

    async def _query(self, method: str, *call_args: a.ContractArg) -> Any:
        return await self.adapter.execute(self.contract_id, method, list(call_args))

    async def _invoke(self, method: str, *call_args: a.ContractArg, signer: Any = None) -> ChainCall:
        return await self.adapter.call(
            self.contract_id, method, list(call_args), signer=signer, mutating=True
        )


class EscrowContract(ContractClient):
    """Tenant and provider token balances held in escrow."""

    async def deposit(self, token: str, tenant: str, amount: int, signer: Any) -> ChainCall:
        return await self._invoke(
            "deposit", a.address(token), a.address(tenant), a.i128(amount), signer=signer
        )

    async def lock(self, token: str, owner: str, amount: int, signer: Any = None) -> ChainCall:
        return await self._invoke(
            "lock", a.address(token), a.address(owner), a.i128(amount), signer=signer
        )

    async def transfer_locked(
        self, token: str, tenant: str, amount: int, provider_id: int, signer: Any
    ) -> ChainCall:
        return await self._invoke(
            "transfer_locked",
            a.address(token),
            a.address(tenant),
            a.i128(amount),
            a.u64(provider_id),
            signer=signer,
        )

    async def withdraw_provider_earnings(
        self, provider_address: str, token: str, signer: Any
    ) -> ChainCall:
        return await self._invoke(
            "withdraw_provider_earnings",
            a.address(provider_address),
            a.address(token),
            signer=signer,
        )

    async def get_tenant_balance(self, token: str, tenant: str) -> dict[str, Any]:
        return await self._query("get_tenant_balance", a.address(token), a.address(tenant))

    async def get_provider_earnings(self, provider_id: int, token: str) -> dict[str, Any]:
        return await self._query("get_provider_earnings", a.u64(provider_id), a.address(token))


class OrderBookContract(ContractClient):
    """Orders and bids."""

    async def create_order(
        self,
        max_price: int,
        number_of_blocks: int,
        quantity: int,
        spec: str,
        trust_levels: list[str],
    ) -> int:
        call = await self._invoke(
            "create_order",
            a.u128(max_price),
            a.u32(number_of_blocks),
            a.u64(quantity),
            a.string(spec),
            a.vec([a.enum(level) for level in trust_levels]),
        )
        return int(call.value)

    async def close_order(self, order_id: int) -> None:
        await self._invoke("update_order_to_closed", a.u64(order_id))

    async def get_order(self, order_id: int) -> dict[str, Any]:
        return await self._query("get_order", a.u64(order_id))

    async def list_orders(self) -> list[dict[str, Any]]:
        return await self._query("list_orders")

    async def place_bid(self, order_id: int, provider_id: int, bid_price: int) -> int:
        call = await self._invoke(
            "place_bid", a.u64(order_id), a.u64(provider_id), a.u128(bid_price)
        )
        return int(call.value)

    async def accept_bid(self, bid_id: int) -> None:
        await self._invoke("accept_bid", a.u64(bid_id))


class ProviderRegistryContract(ContractClient):
    """Provider identities, trust levels and status."""

    async def add_provider(self, address: str) -> int:
        call = await self._invoke("add_provider", a.address(address))
        return int(call.value)

    async def get_provider(self, provider_id: int) -> dict[str, Any]:
        return await self._query("get_provider", a.u64(provider_id))

    async def get_provider_by_address(self, address: str) -> tuple[int, dict[str, Any]]:
        provider_id, provider = await self._query("get_provider_by_address", a.address(address))
        return int(provider_id), provider

    async def list_providers(self) -> list[dict[str, Any]]:
        return await self._query("list_provider")

    async def set_trust_level(self, provider_id: int, trust_level: str) -> None:
        await self._invoke(
            "set_trust_level",
            a.address(self.adapter.source_address()),
            a.u64(provider_id),
            a.enum(trust_level),
        )

    async def set_provider_status(self, provider_id: int, status: str) -> None:
        await self._invoke(
            "set_provider_status",
            a.address(self.adapter.source_address()),
            a.u64(provider_id),
            a.enum(status),
        )
