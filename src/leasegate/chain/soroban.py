"""Soroban ledger backend built on stellar-sdk."""

import logging
from typing import Any, Optional

from stellar_sdk import Address, Keypair, TransactionBuilder, scval
from stellar_sdk import xdr as stellar_xdr
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus
from stellar_sdk.soroban_server_async import SorobanServerAsync

from leasegate.chain.args import ContractArg
from leasegate.chain.backend import (
    LedgerBackend,
    SendReceipt,
    SendStatus,
    Simulation,
    TransactionReport,
    TransactionStatus,
)
from leasegate.config import settings

logger = logging.getLogger(__name__)

_SEND_STATUS = {
    SendTransactionStatus.PENDING: SendStatus.PENDING,
    SendTransactionStatus.DUPLICATE: SendStatus.DUPLICATE,
    SendTransactionStatus.TRY_AGAIN_LATER: SendStatus.TRY_AGAIN_LATER,
    SendTransactionStatus.ERROR: SendStatus.ERROR,
}

_TX_STATUS = {
    GetTransactionStatus.SUCCESS: TransactionStatus.SUCCESS,
    GetTransactionStatus.FAILED: TransactionStatus.FAILED,
    GetTransactionStatus.NOT_FOUND: TransactionStatus.NOT_FOUND,
}


def load_signer(secret: Optional[str]) -> Optional[Keypair]:
    """Build a keypair from a secret seed, or None when no seed is given."""
    if not secret:
        return None
    return Keypair.from_secret(secret)


def encode_arg(arg: ContractArg) -> stellar_xdr.SCVal:
    """Convert a tagged argument to a Soroban SCVal."""
    if arg.kind == "address":
        return scval.to_address(arg.value)
    if arg.kind == "i128":
        return scval.to_int128(arg.value)
    if arg.kind == "u128":
        return scval.to_uint128(arg.value)
    if arg.kind == "u64":
        return scval.to_uint64(arg.value)
    if arg.kind == "u32":
        return scval.to_uint32(arg.value)
    if arg.kind == "symbol":
        return scval.to_symbol(arg.value)
    if arg.kind == "string":
        return scval.to_string(arg.value)
    if arg.kind == "enum":
        return scval.to_enum(arg.value, None)
    if arg.kind == "vec":
        return scval.to_vec([encode_arg(item) for item in arg.value])
    raise ValueError(f"Unsupported contract argument kind: {arg.kind}")


def decode_value(value: Any) -> Any:
    """Normalize a natively decoded SCVal into plain Python values."""
    if isinstance(value, Address):
        return value.address
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {decode_value(k): decode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [decode_value(item) for item in value]
    return value


def decode_scval(encoded: Optional[str]) -> Any:
    """Decode a base64 SCVal."""
    if not encoded:
        return None
    return decode_value(scval.to_native(stellar_xdr.SCVal.from_xdr(encoded)))


class SorobanBackend(LedgerBackend):
    """LedgerBackend over a Soroban RPC endpoint."""

    def __init__(
        self,
        rpc_url: str | None = None,
        network_passphrase: str | None = None,
        base_fee: int | None = None,
        tx_timeout_seconds: int | None = None,
    ):
        self.server = SorobanServerAsync(rpc_url or settings.rpc_url)
        self.network_passphrase = network_passphrase or settings.network_passphrase
        self.base_fee = base_fee or settings.base_fee
        self.tx_timeout_seconds = tx_timeout_seconds or settings.tx_timeout_seconds
        logger.info(f"Soroban backend initialized for {rpc_url or settings.rpc_url}")

    def signer_address(self, signer: Any) -> str:
        return self._keypair(signer).public_key

    async def build_invocation(
        self,
        contract_id: str,
        method: str,
        args: list[ContractArg],
        source: str,
    ) -> Any:
        account = await self.server.load_account(source)
        return (
            TransactionBuilder(account, self.network_passphrase, base_fee=self.base_fee)
            .append_invoke_contract_function_op(
                contract_id=contract_id,
                function_name=method,
                parameters=[encode_arg(arg) for arg in args],
            )
            .set_timeout(self.tx_timeout_seconds)
            .build()
        )

    async def simulate(self, tx: Any) -> Simulation:
        response = await self.server.simulate_transaction(tx)
        if response.error:
            return Simulation(error=response.error, raw=response)

        result = None
        has_result = False
        requires_auth = False
        if response.results:
            first = response.results[0]
            result = decode_scval(first.xdr)
            has_result = True
            requires_auth = bool(first.auth)

        writes_state = False
        if response.transaction_data:
            data = stellar_xdr.SorobanTransactionData.from_xdr(response.transaction_data)
            writes_state = bool(data.resources.footprint.read_write)

        return Simulation(
            result=result,
            has_result=has_result,
            writes_state=writes_state,
            requires_auth=requires_auth,
            raw=response,
        )

    async def prepare(self, tx: Any, simulation: Simulation) -> Any:
        return await self.server.prepare_transaction(tx, simulation.raw)

    def sign(self, tx: Any, signer: Any) -> Any:
        tx.sign(self._keypair(signer))
        return tx

    def transaction_hash(self, tx: Any) -> str:
        return tx.hash_hex()

    async def send(self, tx: Any) -> SendReceipt:
        response = await self.server.send_transaction(tx)
        return SendReceipt(
            status=_SEND_STATUS.get(response.status, SendStatus.ERROR),
            tx_hash=response.hash,
            error=response.error_result_xdr,
        )

    async def get_transaction(self, tx_hash: str) -> TransactionReport:
        response = await self.server.get_transaction(tx_hash)
        status = _TX_STATUS.get(response.status, TransactionStatus.FAILED)
        if status != TransactionStatus.SUCCESS:
            return TransactionReport(status=status, detail=response.result_xdr)
        return TransactionReport(
            status=status, return_value=self._return_value(response.result_meta_xdr)
        )

    async def latest_block(self) -> int:
        response = await self.server.get_latest_ledger()
        return response.sequence

    async def close(self) -> None:
        await self.server.close()

    @staticmethod
    def _keypair(signer: Any) -> Keypair:
        if isinstance(signer, Keypair):
            return signer
        if isinstance(signer, str):
            return Keypair.from_secret(signer)
        raise TypeError(f"Unsupported signer type: {type(signer).__name__}")

    @staticmethod
    def _return_value(result_meta_xdr: Optional[str]) -> Any:
        if not result_meta_xdr:
            return None
        meta = stellar_xdr.TransactionMeta.from_xdr(result_meta_xdr)
        # v4 meta replaced v3 in protocol 23; accept either.
        for version in (getattr(meta, "v4", None), getattr(meta, "v3", None)):
            soroban_meta = getattr(version, "soroban_meta", None) if version else None
            if soroban_meta is not None and soroban_meta.return_value is not None:
                return decode_value(scval.to_native(soroban_meta.return_value))
        return None
