"""Tagged outcomes of a ledger submission."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class FailureStage(str, Enum):
    """Protocol step at which a ledger call definitely failed."""

    SIMULATION = "simulation"
    PREPARATION = "preparation"
    SIGNING = "signing"
    BROADCAST = "broadcast"
    EXECUTION = "execution"


@dataclass(frozen=True)
class ReadResult:
    """Value produced by simulation alone; nothing was broadcast."""

    value: Any


@dataclass(frozen=True)
class WriteAccepted:
    """Transaction broadcast and awaiting finality."""

    tx_hash: str


@dataclass(frozen=True)
class WriteFinal:
    """Transaction finalized successfully."""

    value: Any
    tx_hash: str


@dataclass(frozen=True)
class Failed:
    """Call definitely did not take effect."""

    stage: FailureStage
    reason: str
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class Indeterminate:
    """Transaction may have landed; reconcile before retrying."""

    reason: str
    tx_hash: Optional[str] = None


LedgerOutcome = Union[ReadResult, WriteAccepted, WriteFinal, Failed, Indeterminate]
