"""Payment model - log entry for a confirmed ledger settlement."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leasegate.models.enums import PaymentKind, PaymentStatus
from leasegate.utils.time import utc_now


class Payment(BaseModel):
    """Immutable record of one escrow operation the ledger confirmed."""

    model_config = ConfigDict(frozen=True)

    payment_id: int
    lease_id: Optional[int] = None
    kind: PaymentKind
    tenant_address: str = ""
    provider_address: str = ""
    token: str
    amount: Optional[str] = None  # None when the ledger did not report it
    status: PaymentStatus
    tx_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Optional[str]) -> Optional[str]:
        """Amounts are non-negative decimal strings."""
        if v is None:
            return v
        try:
            value = Decimal(v)
        except InvalidOperation:
            raise ValueError(f"Amount is not a decimal number: {v!r}")
        if not value.is_finite() or value < 0:
            raise ValueError(f"Amount must be non-negative, got {v}")
        return v


class TenantBalance(BaseModel):
    """Tenant escrow balance as reported by the ledger."""

    locked: str
    unlocked: str


class ProviderEarnings(BaseModel):
    """Provider escrow earnings as reported by the ledger."""

    earned: str
    withdrawn: str
    available: str
