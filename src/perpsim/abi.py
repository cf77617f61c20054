"""Minimal ABI codec for the exchange and account-proxy contracts.

Covers only what the simulators touch: order submission, account and
market reads, the four order-lifecycle events, and known custom errors.
Encoding/decoding uses eth-abi; selectors and topics are keccak hashes of
canonical signatures.

Struct-typed values are decoded into name-keyed dicts so that callers
never depend on tuple positions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

# --- Structs ---------------------------------------------------------------


@dataclass(frozen=True)
class Struct:
    """Named tuple type."""

    fields: tuple[tuple[str, str | Struct], ...]

    @property
    def abi_type(self) -> str:
        parts = [t.abi_type if isinstance(t, Struct) else t for _, t in self.fields]
        return "(" + ",".join(parts) + ")"

    def to_dict(self, values: tuple[Any, ...]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for (name, typ), value in zip(self.fields, values, strict=True):
            out[name] = typ.to_dict(value) if isinstance(typ, Struct) else _normalize(value)
        return out


def _normalize(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    return value


ORDER_DESC = Struct(
    (
        ("orderDescId", "uint256"),
        ("perpId", "uint256"),
        ("orderType", "uint8"),
        ("orderId", "uint256"),
        ("pricePNS", "uint256"),
        ("lotLNS", "uint256"),
        ("expiryBlock", "uint256"),
        ("postOnly", "bool"),
        ("fillOrKill", "bool"),
        ("immediateOrCancel", "bool"),
        ("maxMatches", "uint256"),
        ("leverageHdths", "uint256"),
        ("lastExecutionBlock", "uint256"),
        ("amountCNS", "uint256"),
    )
)

ORDER_SIGNATURE = Struct((("perpId", "uint256"), ("orderId", "uint256")))

LIQUIDATION_DESC = Struct(
    (
        ("perpId", "uint256"),
        ("posAccountId", "uint256"),
        ("lotLNS", "uint256"),
        ("leverageHdths", "uint256"),
        ("limitPricePNS", "uint256"),
    )
)

ACCOUNT_INFO = Struct(
    (
        ("accountId", "uint256"),
        ("balanceCNS", "uint256"),
        ("lockedBalanceCNS", "uint256"),
        ("frozen", "uint8"),
        ("accountAddr", "address"),
        (
            "positions",
            Struct(
                (
                    ("bank1", "uint256"),
                    ("bank2", "uint256"),
                    ("bank3", "uint256"),
                    ("bank4", "uint256"),
                )
            ),
        ),
    )
)

POSITION_INFO = Struct(
    (
        ("accountId", "uint256"),
        ("nextNodeId", "uint256"),
        ("prevNodeId", "uint256"),
        ("positionType", "uint8"),
        ("depositCNS", "uint256"),
        ("pricePNS", "uint256"),
        ("lotLNS", "uint256"),
        ("entryBlock", "uint256"),
        ("pnlCNS", "int256"),
        ("deltaPnlCNS", "int256"),
        ("premiumPnlCNS", "int256"),
    )
)

PERPETUAL_INFO = Struct(
    (
        ("name", "string"),
        ("symbol", "string"),
        ("priceDecimals", "uint256"),
        ("lotDecimals", "uint256"),
        ("linkFeedId", "bytes32"),
        ("priceTolPer100K", "uint256"),
        ("refPriceMaxAgeSec", "uint256"),
        ("positionBalanceCNS", "uint256"),
        ("insuranceBalanceCNS", "uint256"),
        ("markPNS", "uint256"),
        ("markTimestamp", "uint256"),
        ("lastPNS", "uint256"),
        ("lastTimestamp", "uint256"),
        ("oraclePNS", "uint256"),
        ("oracleTimestampSec", "uint256"),
        ("longOpenInterestLNS", "uint256"),
        ("shortOpenInterestLNS", "uint256"),
        ("fundingStartBlock", "uint256"),
        ("fundingRatePct100k", "int16"),
        ("absFundingClampPctPer100K", "uint256"),
        ("paused", "bool"),
        ("basePricePNS", "uint256"),
        ("maxBidPriceONS", "uint256"),
        ("minBidPriceONS", "uint256"),
        ("maxAskPriceONS", "uint256"),
        ("minAskPriceONS", "uint256"),
        ("numOrders", "uint256"),
        ("ignOracle", "bool"),
    )
)


# --- Functions -------------------------------------------------------------


@dataclass(frozen=True)
class Param:
    name: str
    type: str | Struct
    is_array: bool = False

    @property
    def abi_type(self) -> str:
        base = self.type.abi_type if isinstance(self.type, Struct) else self.type
        return f"{base}[]" if self.is_array else base

    def to_python(self, value: Any) -> Any:
        if isinstance(self.type, Struct):
            if self.is_array:
                return [self.type.to_dict(v) for v in value]
            return self.type.to_dict(value)
        if self.is_array:
            return [_normalize(v) for v in value]
        return _normalize(value)


@dataclass(frozen=True)
class FunctionSpec:
    """One contract function."""

    name: str
    inputs: tuple[Param, ...] = ()
    outputs: tuple[Param, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.abi_type for p in self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    def encode_call(self, *args: Any) -> bytes:
        types = [p.abi_type for p in self.inputs]
        return self.selector + abi_encode(types, list(args))

    def decode_input(self, data: bytes) -> dict[str, Any]:
        """Decode calldata (selector included) into name-keyed args."""
        values = abi_decode([p.abi_type for p in self.inputs], data[4:])
        return {p.name: p.to_python(v) for p, v in zip(self.inputs, values, strict=True)}

    def decode_output(self, data: bytes) -> dict[str, Any]:
        values = abi_decode([p.abi_type for p in self.outputs], data)
        return {p.name: p.to_python(v) for p, v in zip(self.outputs, values, strict=True)}


EXEC_ORDER = FunctionSpec(
    "execOrder",
    inputs=(Param("orderDesc", ORDER_DESC),),
    outputs=(Param("signature", ORDER_SIGNATURE),),
)
EXEC_ORDERS = FunctionSpec(
    "execOrders",
    inputs=(Param("orderDescs", ORDER_DESC, is_array=True), Param("revertOnFail", "bool")),
    outputs=(Param("signatures", ORDER_SIGNATURE, is_array=True),),
)
GET_ACCOUNT_BY_ADDR = FunctionSpec(
    "getAccountByAddr",
    inputs=(Param("accountAddress", "address"),),
    outputs=(Param("accountInfo", ACCOUNT_INFO),),
)
GET_POSITION = FunctionSpec(
    "getPosition",
    inputs=(Param("perpId", "uint256"), Param("accountId", "uint256")),
    outputs=(
        Param("positionInfo", POSITION_INFO),
        Param("markPricePNS", "uint256"),
        Param("markPriceValid", "bool"),
    ),
)
GET_PERPETUAL_INFO = FunctionSpec(
    "getPerpetualInfo",
    inputs=(Param("perpId", "uint256"),),
    outputs=(Param("perpetualInfo", PERPETUAL_INFO),),
)
GET_TAKER_FEE = FunctionSpec(
    "getTakerFee", inputs=(Param("perpId", "uint256"),), outputs=(Param("fee", "uint256"),)
)
GET_MAKER_FEE = FunctionSpec(
    "getMakerFee", inputs=(Param("perpId", "uint256"),), outputs=(Param("fee", "uint256"),)
)

# Account-proxy probe: only proxies answer exchange()
PROXY_EXCHANGE = FunctionSpec("exchange", outputs=(Param("exchange", "address"),))

# Every exchange entry point a user transaction may call
EXCHANGE_FUNCTIONS: tuple[FunctionSpec, ...] = (
    FunctionSpec("createAccount", inputs=(Param("amountCNS", "uint256"),)),
    FunctionSpec("depositCollateral", inputs=(Param("amountCNS", "uint256"),)),
    FunctionSpec("withdrawCollateral", inputs=(Param("amountCNS", "uint256"),)),
    EXEC_ORDER,
    EXEC_ORDERS,
    FunctionSpec(
        "increasePositionCollateral",
        inputs=(Param("perpId", "uint256"), Param("amountCNS", "uint256")),
    ),
    FunctionSpec("requestDecreasePositionCollateral", inputs=(Param("perpId", "uint256"),)),
    FunctionSpec(
        "decreasePositionCollateral",
        inputs=(
            Param("perpId", "uint256"),
            Param("amountCNS", "uint256"),
            Param("clampToMaximum", "bool"),
        ),
    ),
    FunctionSpec("allowOrderForwarding", inputs=(Param("allow", "bool"),)),
    FunctionSpec(
        "buyLiquidations",
        inputs=(
            Param("liquidationDescs", LIQUIDATION_DESC, is_array=True),
            Param("revertOnFail", "bool"),
        ),
    ),
)

FUNCTIONS_BY_SELECTOR: dict[bytes, FunctionSpec] = {f.selector: f for f in EXCHANGE_FUNCTIONS}


# --- Events ----------------------------------------------------------------


@dataclass(frozen=True)
class EventSpec:
    """One contract event. Inputs are (name, type, indexed)."""

    name: str
    inputs: tuple[tuple[str, str, bool], ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(t for _, t, _ in self.inputs)})"

    @property
    def topic0(self) -> bytes:
        return keccak(text=self.signature)

    def decode(self, topics: list[bytes], data: bytes) -> dict[str, Any]:
        """Decode one log. Raises on malformed topics/data."""
        indexed = [(n, t) for n, t, ix in self.inputs if ix]
        plain = [(n, t) for n, t, ix in self.inputs if not ix]
        if len(topics) != len(indexed) + 1:
            raise ValueError(f"{self.name}: expected {len(indexed) + 1} topics, got {len(topics)}")
        args: dict[str, Any] = {}
        for (n, t), topic in zip(indexed, topics[1:], strict=True):
            (args[n],) = abi_decode([t], topic)
        values = abi_decode([t for _, t in plain], data)
        for (n, _), v in zip(plain, values, strict=True):
            args[n] = _normalize(v)
        # Restore declaration order
        return {n: args[n] for n, _, _ in self.inputs}

    def encode(self, args: dict[str, Any]) -> tuple[list[bytes], bytes]:
        """Encode args into (topics, data); inverse of decode()."""
        topics = [self.topic0]
        for n, t, ix in self.inputs:
            if ix:
                topics.append(abi_encode([t], [args[n]]))
        plain = [(n, t) for n, t, ix in self.inputs if not ix]
        data = abi_encode([t for _, t in plain], [args[n] for n, _ in plain])
        return topics, data


ORDER_REQUEST = EventSpec(
    "OrderRequest",
    (
        ("perpId", "uint256", False),
        ("accountId", "uint256", False),
        ("orderDescId", "uint256", False),
        ("orderId", "uint256", False),
        ("orderType", "uint8", False),
        ("pricePNS", "uint256", False),
        ("lotLNS", "uint256", False),
        ("expiryBlock", "uint256", False),
        ("postOnly", "bool", False),
        ("fillOrKill", "bool", False),
        ("immediateOrCancel", "bool", False),
        ("maxMatches", "uint256", False),
        ("leverageHdths", "uint256", False),
        ("gasLeft", "uint256", False),
    ),
)
ORDER_PLACED = EventSpec(
    "OrderPlaced",
    (
        ("orderId", "uint256", False),
        ("lotLNS", "uint256", False),
        ("lockedBalanceCNS", "uint256", False),
        ("amountCNS", "int256", False),
        ("balanceCNS", "uint256", False),
    ),
)
ORDER_CANCELLED = EventSpec(
    "OrderCancelled",
    (
        ("lockedBalanceCNS", "uint256", False),
        ("amountCNS", "int256", False),
        ("balanceCNS", "uint256", False),
    ),
)
MAKER_ORDER_FILLED = EventSpec(
    "MakerOrderFilled",
    (
        ("perpId", "uint256", False),
        ("accountId", "uint256", False),
        ("orderId", "uint256", False),
        ("pricePNS", "uint256", False),
        ("lotLNS", "uint256", False),
        ("feeCNS", "uint256", False),
        ("lockedBalanceCNS", "uint256", False),
        ("amountCNS", "int256", False),
        ("balanceCNS", "uint256", False),
    ),
)

EXCHANGE_EVENTS: tuple[EventSpec, ...] = (
    ORDER_REQUEST,
    ORDER_PLACED,
    ORDER_CANCELLED,
    MAKER_ORDER_FILLED,
)


# --- Revert data -----------------------------------------------------------

ERROR_STRING_SELECTOR = keccak(text="Error(string)")[:4]
PANIC_SELECTOR = keccak(text="Panic(uint256)")[:4]

# Custom errors raised by the exchange and the account proxy
KNOWN_ERRORS: tuple[str, ...] = (
    "InsufficientBalance()",
    "PostOnlyFailed()",
    "FillOrKillFailed()",
    "OrderExpired()",
    "InvalidOrder()",
    "Paused()",
    "OnlyOwnerOrOperator()",
    "SelectorNotAllowed(bytes4)",
    "ZeroAddress()",
    "ZeroAmount()",
    "InvalidReturnData()",
    "AccountAlreadyCreated()",
    "AccountNotCreated()",
)
ERRORS_BY_SELECTOR: dict[bytes, str] = {
    keccak(text=sig)[:4]: sig.split("(", 1)[0] for sig in KNOWN_ERRORS
}


def _as_bytes(data: bytes | str | None) -> bytes:
    if data is None:
        return b""
    if isinstance(data, bytes):
        return data
    s = data[2:] if data.startswith("0x") else data
    try:
        return bytes.fromhex(s)
    except ValueError:
        return b""


def decode_revert_data(data: bytes | str | None) -> str | None:
    """Best-effort human name for raw revert data.

    Returns:
        Error(string) message, Panic code, known custom-error name, or
        ``custom error 0x<selector>``; None when there is no data.
    """
    raw = _as_bytes(data)
    if len(raw) < 4:
        return None
    selector, payload = raw[:4], raw[4:]
    if selector == ERROR_STRING_SELECTOR:
        try:
            (message,) = abi_decode(["string"], payload)
        except (DecodingError, ValueError):
            return f"custom error 0x{selector.hex()}"
        return str(message)
    if selector == PANIC_SELECTOR:
        try:
            (code,) = abi_decode(["uint256"], payload)
        except (DecodingError, ValueError):
            return "Panic"
        return f"Panic(0x{code:x})"
    name = ERRORS_BY_SELECTOR.get(selector)
    if name is not None:
        return name
    return f"custom error 0x{selector.hex()}"
