"""Ledger access: transaction adapter, backends and contract clients."""

from leasegate.chain.adapter import ChainCall, ChainTransactionAdapter
from leasegate.chain.backend import (
    LedgerBackend,
    SendReceipt,
    SendStatus,
    Simulation,
    TransactionReport,
    TransactionStatus,
)
from leasegate.chain.results import (
    Failed,
    FailureStage,
    Indeterminate,
    LedgerOutcome,
    ReadResult,
    WriteAccepted,
    WriteFinal,
)

__all__ = [
    "ChainCall",
    "ChainTransactionAdapter",
    "Failed",
    "FailureStage",
    "Indeterminate",
    "LedgerBackend",
    "LedgerOutcome",
    "ReadResult",
    "SendReceipt",
    "SendStatus",
    "Simulation",
    "TransactionReport",
    "TransactionStatus",
    "WriteAccepted",
    "WriteFinal",
]
