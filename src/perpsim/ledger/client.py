"""Ledger client interface and web3.py implementation.

The LedgerClient protocol is the only way simulators talk to a ledger
endpoint (live or forked). Simulators receive a ``client_factory`` that
maps an endpoint URL to a client, so tests inject in-memory fakes and
production uses Web3LedgerClient.

Error contract (all implementations):
- A call/estimate/send that reverts raises CallReverted(reason, data).
- Transport failures (connection refused, timeout, malformed response)
  raise LedgerTransportError(op).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from perpsim.abi import decode_revert_data
from perpsim.errors import CallReverted, LedgerTransportError

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_TIMEOUT_S = 30

_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    requests.RequestException,
    TimeExhausted,
    Web3Exception,
    ValueError,
    OSError,
)


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


# --- Ledger data ---


@dataclass(frozen=True)
class TxRequest:
    """Transaction or call request.

    Attributes:
        sender: ``from`` address (impersonated on forks)
        to: Target contract
        data: Calldata
        value: Native value in wei
        gas: Gas limit; None lets the node estimate
    """

    sender: str
    to: str
    data: bytes
    value: int = 0
    gas: int | None = None


@dataclass(frozen=True)
class RawLog:
    """Undecoded log entry."""

    address: str
    topics: tuple[bytes, ...]
    data: bytes


@dataclass(frozen=True)
class Receipt:
    """Mined transaction receipt (status 1 = success)."""

    tx_hash: str
    status: int
    block_number: int
    gas_used: int
    effective_gas_price: int
    logs: tuple[RawLog, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class TransactionInfo:
    """Historical transaction as returned by the ledger."""

    tx_hash: str
    block_number: int
    sender: str
    to: str | None
    input: bytes
    value: int
    gas: int


# --- Protocol ---


class LedgerClient(Protocol):
    """Protocol for ledger JSON-RPC operations.

    Injectable for testing; see Web3LedgerClient for the real transport.
    """

    def call(self, tx: TxRequest, block: int | None = None) -> bytes:
        """Execute a read-only call and return raw return data.

        Raises:
            CallReverted: The call reverted
            LedgerTransportError: Transport failure
        """
        ...

    def estimate_gas(self, tx: TxRequest) -> int: ...

    def send_transaction(self, tx: TxRequest) -> str:
        """Submit an unsigned transaction (fork impersonation). Returns tx hash."""
        ...

    def mine(self) -> None:
        """Mine one block (forks run with auto-mining disabled)."""
        ...

    def wait_for_receipt(
        self, tx_hash: str, timeout_s: float = DEFAULT_RECEIPT_TIMEOUT_S
    ) -> Receipt: ...

    def get_transaction(self, tx_hash: str) -> TransactionInfo: ...

    def get_receipt(self, tx_hash: str) -> Receipt: ...

    def get_block_number(self) -> int: ...

    def get_balance(self, address: str) -> int: ...

    def get_code(self, address: str) -> bytes: ...

    def set_balance(self, address: str, wei: int) -> None:
        """Overwrite native balance (fork only)."""
        ...


# --- web3.py implementation ---


def _revert_from(exc: ContractLogicError) -> CallReverted:
    data = getattr(exc, "data", None)
    raw = data if isinstance(data, str) else None
    reason = decode_revert_data(raw) or _strip_prefix(str(getattr(exc, "message", None) or exc))
    return CallReverted(reason, data=raw)


def _strip_prefix(message: str) -> str:
    for prefix in ("execution reverted: ", "execution reverted"):
        if message.startswith(prefix):
            rest = message[len(prefix) :].strip()
            return rest or "execution reverted"
    return message


class Web3LedgerClient:
    """LedgerClient over web3.py HTTPProvider."""

    def __init__(self, endpoint_url: str, timeout_s: int = 30, w3: Web3 | None = None) -> None:
        self.endpoint_url = endpoint_url
        self._w3 = w3 or Web3(
            Web3.HTTPProvider(endpoint_url, request_kwargs={"timeout": timeout_s})
        )

    @staticmethod
    def _tx_params(tx: TxRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "from": Web3.to_checksum_address(tx.sender),
            "to": Web3.to_checksum_address(tx.to),
            "data": to_hex(tx.data),
            "value": tx.value,
        }
        if tx.gas is not None:
            params["gas"] = tx.gas
        return params

    def _rpc(self, method: str, params: list[Any]) -> Any:
        try:
            response = self._w3.provider.make_request(method, params)  # type: ignore[arg-type]
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError(method, f"{method} failed: {e}") from e
        if "error" in response:
            raise LedgerTransportError(method, f"{method} failed: {response['error']}")
        return response.get("result")

    def call(self, tx: TxRequest, block: int | None = None) -> bytes:
        block_id: Any = "latest" if block is None else block
        try:
            result = self._w3.eth.call(self._tx_params(tx), block_identifier=block_id)  # type: ignore[arg-type]
        except ContractLogicError as e:
            raise _revert_from(e) from e
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("call", f"eth_call failed: {e}") from e
        return bytes(result)

    def estimate_gas(self, tx: TxRequest) -> int:
        try:
            return int(self._w3.eth.estimate_gas(self._tx_params(tx)))  # type: ignore[arg-type]
        except ContractLogicError as e:
            raise _revert_from(e) from e
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("estimate_gas", f"eth_estimateGas failed: {e}") from e

    def send_transaction(self, tx: TxRequest) -> str:
        try:
            tx_hash = self._w3.eth.send_transaction(self._tx_params(tx))  # type: ignore[arg-type]
        except ContractLogicError as e:
            raise _revert_from(e) from e
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("send_transaction", f"eth_sendTransaction failed: {e}") from e
        return to_hex(tx_hash)

    def mine(self) -> None:
        self._rpc("evm_mine", [])

    def wait_for_receipt(
        self, tx_hash: str, timeout_s: float = DEFAULT_RECEIPT_TIMEOUT_S
    ) -> Receipt:
        try:
            raw = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout_s)  # type: ignore[arg-type]
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("wait_for_receipt", f"receipt for {tx_hash}: {e}") from e
        return self._receipt(raw)

    def get_transaction(self, tx_hash: str) -> TransactionInfo:
        try:
            raw = self._w3.eth.get_transaction(tx_hash)  # type: ignore[arg-type]
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("get_transaction", f"transaction {tx_hash}: {e}") from e
        to = raw.get("to")
        return TransactionInfo(
            tx_hash=to_hex(raw["hash"]),
            block_number=int(raw["blockNumber"]),
            sender=str(raw["from"]),
            to=str(to) if to else None,
            input=bytes(raw["input"]),
            value=int(raw.get("value", 0)),
            gas=int(raw["gas"]),
        )

    def get_receipt(self, tx_hash: str) -> Receipt:
        try:
            raw = self._w3.eth.get_transaction_receipt(tx_hash)  # type: ignore[arg-type]
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("get_receipt", f"receipt for {tx_hash}: {e}") from e
        return self._receipt(raw)

    def get_block_number(self) -> int:
        try:
            return int(self._w3.eth.block_number)
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("get_block_number") from e

    def get_balance(self, address: str) -> int:
        try:
            return int(self._w3.eth.get_balance(Web3.to_checksum_address(address)))
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("get_balance") from e

    def get_code(self, address: str) -> bytes:
        try:
            return bytes(self._w3.eth.get_code(Web3.to_checksum_address(address)))
        except _TRANSPORT_ERRORS as e:
            raise LedgerTransportError("get_code") from e

    def set_balance(self, address: str, wei: int) -> None:
        self._rpc("anvil_setBalance", [Web3.to_checksum_address(address), hex(wei)])

    @staticmethod
    def _receipt(raw: Any) -> Receipt:
        logs = tuple(
            RawLog(
                address=str(log["address"]),
                topics=tuple(bytes(t) for t in log["topics"]),
                data=bytes(log["data"]),
            )
            for log in raw.get("logs", [])
        )
        return Receipt(
            tx_hash=to_hex(raw["transactionHash"]),
            status=int(raw["status"]),
            block_number=int(raw["blockNumber"]),
            gas_used=int(raw["gasUsed"]),
            effective_gas_price=int(raw.get("effectiveGasPrice", 0) or 0),
            logs=logs,
        )
