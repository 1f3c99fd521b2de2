"""Lease model - tenant/provider compute agreement."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from leasegate.models.enums import LeaseState
from leasegate.utils.time import utc_now


class Lease(BaseModel):
    """Binds an order to the provider whose bid was accepted."""

    # Identity
    lease_id: int
    order_id: int
    provider_id: int
    tenant_address: str

    # Validity window (ledger block heights)
    start_block: int
    end_block: int
    estimated_end_time: datetime

    state: LeaseState = LeaseState.ACTIVE

    # Deployment linkage
    container_id: Optional[str] = None
    access_url: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    def is_terminal(self) -> bool:
        """Check if lease is in a terminal state."""
        return self.state.is_terminal()


def estimate_end_time(
    start_block: int,
    end_block: int,
    block_time_seconds: int,
    now: datetime | None = None,
) -> datetime:
    """Project the wall-clock end of a block range from now."""
    if now is None:
        now = utc_now()
    return now + timedelta(seconds=(end_block - start_block) * block_time_seconds)
