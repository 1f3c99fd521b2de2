"""Typed contract call arguments.

Contract methods take strongly typed ledger values. Callers describe each
argument with a kind tag and the backend converts it to the ledger's native
encoding, so nothing above the backend depends on the ledger SDK.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ContractArg:
    """A contract argument tagged with its ledger type."""

    kind: str
    value: Any


def address(value: str) -> ContractArg:
    return ContractArg("address", value)


def i128(value: int) -> ContractArg:
    return ContractArg("i128", int(value))


def u128(value: int) -> ContractArg:
    return ContractArg("u128", int(value))


def u64(value: int) -> ContractArg:
    return ContractArg("u64", int(value))


def u32(value: int) -> ContractArg:
    return ContractArg("u32", int(value))


def symbol(value: str) -> ContractArg:
    return ContractArg("symbol", value)


def string(value: str) -> ContractArg:
    return ContractArg("string", value)


def enum(variant: str) -> ContractArg:
    """Unit enum variant (encoded by the ledger as a one-element vector)."""
    return ContractArg("enum", variant)


def vec(items: list[ContractArg]) -> ContractArg:
    return ContractArg("vec", list(items))
