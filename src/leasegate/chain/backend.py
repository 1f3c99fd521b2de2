"""Ledger backend contract used by the chain transaction adapter."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from leasegate.chain.args import ContractArg


class SendStatus(str, Enum):
    """Broadcast acknowledgement status."""

    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


class TransactionStatus(str, Enum):
    """Transaction finality status."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class Simulation:
    """Outcome of simulating an invocation."""

    result: Any = None
    has_result: bool = False
    error: Optional[str] = None
    writes_state: bool = False
    requires_auth: bool = False
    raw: Any = None

    @property
    def is_read_only(self) -> bool:
        """A pure query: produced a value without touching ledger state."""
        return self.has_result and not self.writes_state and not self.requires_auth


@dataclass(frozen=True)
class SendReceipt:
    status: SendStatus
    tx_hash: str
    error: Optional[str] = None


@dataclass(frozen=True)
class TransactionReport:
    status: TransactionStatus
    return_value: Any = None
    detail: Optional[str] = None


class LedgerBackend(ABC):
    """Ledger SDK operations the adapter sequences.

    Any method may raise; the adapter classifies exceptions by the step in
    which they occurred.
    """

    @abstractmethod
    def signer_address(self, signer: Any) -> str:
        """Return the account address of a signer."""

    @abstractmethod
    async def build_invocation(
        self,
        contract_id: str,
        method: str,
        args: list[ContractArg],
        source: str,
    ) -> Any:
        """Build an unsigned contract invocation transaction."""

    @abstractmethod
    async def simulate(self, tx: Any) -> Simulation:
        """Simulate a transaction against current ledger state."""

    @abstractmethod
    async def prepare(self, tx: Any, simulation: Simulation) -> Any:
        """Attach fees and resource footprint from a simulation."""

    @abstractmethod
    def sign(self, tx: Any, signer: Any) -> Any:
        """Sign a prepared transaction."""

    @abstractmethod
    def transaction_hash(self, tx: Any) -> str:
        """Hash of a signed transaction, known before broadcast."""

    @abstractmethod
    async def send(self, tx: Any) -> SendReceipt:
        """Broadcast a signed transaction."""

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> TransactionReport:
        """Look up a transaction's finality status."""

    @abstractmethod
    async def latest_block(self) -> int:
        """Return the latest closed ledger sequence."""

    async def close(self) -> None:
        """Release network resources."""
