"""Escrow coordinator - ledger-backed deposits, locks, transfers and withdrawals."""

import logging
from typing import Any, Optional

from leasegate.chain.contracts import EscrowContract
from leasegate.engine.errors import (
    BalanceQueryFailed,
    ChainError,
    DepositFailed,
    LockFailed,
    PaymentNotFound,
    PenaltyFailed,
    TransferFailed,
    ValidationError,
    WithdrawFailed,
)
from leasegate.models import (
    Payment,
    PaymentKind,
    PaymentStatus,
    ProviderEarnings,
    TenantBalance,
)
from leasegate.observability.metrics import metrics
from leasegate.store import Store

logger = logging.getLogger(__name__)


def parse_amount(amount: str) -> int:
    """Parse a non-negative integral decimal string into ledger units."""
    if not isinstance(amount, str) or not amount.strip().isdigit():
        raise ValidationError(f"Amount must be a non-negative integer string, got {amount!r}")
    return int(amount.strip())


def _require(value: str, field: str) -> None:
    if not value:
        raise ValidationError(f"{field} must not be empty")


class EscrowCoordinator:
    """
    Moves tokens through the escrow contract and logs confirmed operations.

    Payment records are a log of what the ledger confirmed. Balances are
    always read from the ledger, never derived from the log. A payment is
    recorded only after the adapter returns a confirmed result; every
    ledger failure surfaces as a typed error and leaves the log untouched.
    """

    def __init__(self, contract: EscrowContract, payments: Store[int, Payment]):
        self.contract = contract
        self.payments = payments

    # =========================================================================
    # Ledger operations
    # =========================================================================

    async def deposit(
        self, token: str, tenant_address: str, amount: str, signer: Any = None
    ) -> Payment:
        """Move tenant tokens into escrow."""
        units = self._validate(token, tenant_address, amount)
        try:
            call = await self.contract.deposit(token, tenant_address, units, signer)
        except ChainError as e:
            raise self._failed(DepositFailed, tenant_address, e) from e

        return await self._record(
            kind=PaymentKind.DEPOSIT,
            status=PaymentStatus.COMPLETED,
            token=token,
            tenant_address=tenant_address,
            amount=str(units),
            tx_hash=call.tx_hash,
        )

    async def lock(
        self, token: str, tenant_address: str, amount: str, signer: Any = None
    ) -> Payment:
        """Reserve deposited funds for future transfer."""
        units = self._validate(token, tenant_address, amount)
        try:
            call = await self.contract.lock(token, tenant_address, units, signer)
        except ChainError as e:
            raise self._failed(LockFailed, tenant_address, e) from e

        return await self._record(
            kind=PaymentKind.LOCK,
            status=PaymentStatus.PENDING,
            token=token,
            tenant_address=tenant_address,
            amount=str(units),
            tx_hash=call.tx_hash,
        )

    async def transfer_locked(
        self,
        token: str,
        tenant_address: str,
        amount: str,
        provider_id: int,
        lease_id: Optional[int],
        signer: Any = None,
        provider_address: str = "",
    ) -> Payment:
        """Move locked tenant funds to a provider's earnings."""
        units = self._validate(token, tenant_address, amount)
        if provider_id < 1:
            raise ValidationError(f"provider_id must be positive, got {provider_id}")

        try:
            call = await self.contract.transfer_locked(
                token, tenant_address, units, provider_id, signer
            )
        except ChainError as e:
            raise self._failed(TransferFailed, f"lease {lease_id}", e) from e

        return await self._record(
            kind=PaymentKind.TRANSFER,
            status=PaymentStatus.COMPLETED,
            lease_id=lease_id,
            token=token,
            tenant_address=tenant_address,
            provider_address=provider_address,
            amount=str(units),
            tx_hash=call.tx_hash,
        )

    async def withdraw_provider_earnings(
        self, token: str, provider_address: str, signer: Any = None
    ) -> Payment:
        """Withdraw a provider's earned balance."""
        _require(token, "token")
        _require(provider_address, "provider_address")
        try:
            call = await self.contract.withdraw_provider_earnings(provider_address, token, signer)
        except ChainError as e:
            raise self._failed(WithdrawFailed, provider_address, e) from e

        # The contract may or may not echo the withdrawn amount.
        amount = str(call.value) if isinstance(call.value, int) and call.value >= 0 else None
        return await self._record(
            kind=PaymentKind.WITHDRAWAL,
            status=PaymentStatus.COMPLETED,
            token=token,
            provider_address=provider_address,
            amount=amount,
            tx_hash=call.tx_hash,
        )

    async def penalize_provider(
        self,
        token: str,
        provider_address: str,
        amount: str,
        lease_id: Optional[int] = None,
    ) -> Payment:
        """Lock provider funds as a penalty, signed by the orchestrator account."""
        units = self._validate(token, provider_address, amount)
        try:
            call = await self.contract.lock(token, provider_address, units)
        except ChainError as e:
            raise self._failed(PenaltyFailed, provider_address, e) from e

        metrics.inc_counter("escrow.penalties")
        return await self._record(
            kind=PaymentKind.PENALTY,
            status=PaymentStatus.PENDING,
            lease_id=lease_id,
            token=token,
            provider_address=provider_address,
            amount=str(units),
            tx_hash=call.tx_hash,
        )

    # =========================================================================
    # Ledger queries
    # =========================================================================

    async def get_tenant_balance(self, token: str, tenant_address: str) -> TenantBalance:
        _require(token, "token")
        _require(tenant_address, "tenant_address")
        try:
            raw = await self.contract.get_tenant_balance(token, tenant_address)
        except ChainError as e:
            raise BalanceQueryFailed(tenant_address, e) from e
        return TenantBalance(
            locked=str(raw.get("locked_balance", 0)),
            unlocked=str(raw.get("unlocked_balance", 0)),
        )

    async def get_provider_earnings(self, provider_id: int, token: str) -> ProviderEarnings:
        _require(token, "token")
        try:
            raw = await self.contract.get_provider_earnings(provider_id, token)
        except ChainError as e:
            raise BalanceQueryFailed(f"provider {provider_id}", e) from e
        return ProviderEarnings(
            earned=str(raw.get("earned", 0)),
            withdrawn=str(raw.get("withdrawn", 0)),
            available=str(raw.get("balance", 0)),
        )

    # =========================================================================
    # Payment log
    # =========================================================================

    async def get_payment(self, payment_id: int) -> Payment:
        payment = await self.payments.get(payment_id)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return payment

    async def list_payments(self) -> list[Payment]:
        return await self.payments.values()

    async def list_payments_for_lease(self, lease_id: int) -> list[Payment]:
        return await self.payments.values(lambda p: p.lease_id == lease_id)

    async def list_payments_for_tenant(self, tenant_address: str) -> list[Payment]:
        return await self.payments.values(lambda p: p.tenant_address == tenant_address)

    async def list_payments_for_provider(self, provider_address: str) -> list[Payment]:
        return await self.payments.values(lambda p: p.provider_address == provider_address)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _validate(token: str, address: str, amount: str) -> int:
        _require(token, "token")
        _require(address, "address")
        return parse_amount(amount)

    @staticmethod
    def _failed(error_cls: type, subject: str, cause: ChainError) -> Exception:
        metrics.inc_counter(f"escrow.failures.{error_cls.operation.replace(' ', '_')}")
        error = error_cls(subject, cause)
        if error.indeterminate:
            logger.error(f"{error.message} (ledger outcome unknown, tx {cause.tx_hash})")
        else:
            logger.warning(error.message)
        return error

    async def _record(self, **fields: Any) -> Payment:
        payment = await self.payments.create(
            lambda payment_id: Payment(payment_id=payment_id, **fields),
            lambda p: p.payment_id,
        )
        metrics.inc_counter(f"escrow.payments.{payment.kind.value}")
        logger.info(
            f"Recorded {payment.kind.value} payment {payment.payment_id} "
            f"({payment.amount} of {payment.token}, tx {payment.tx_hash})"
        )
        return payment
