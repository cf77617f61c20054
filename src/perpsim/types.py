"""Shared data model for simulations.

Raw protocol integers (PNS/LNS/CNS) stay ``int``; derived human values
are ``Decimal``. Every entity is created fresh per call and never mutated
after capture.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from perpsim.core import OrderStatus, OrderType, PositionSide
from perpsim.fixed_point import pns_to_price


def _dec(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class OrderDescriptor:
    """One exchange order request.

    Attributes:
        perp_id: Perpetual market id
        order_type: Open/close/cancel/change
        price: Limit price (PNS)
        lot: Lot size (LNS)
        leverage: Leverage in hundredths (1000 = 10x)
        order_id: Target order for cancel/change, else 0
        amount: Collateral amount (CNS) for order types that use it
    """

    perp_id: int
    order_type: OrderType
    price: int
    lot: int
    leverage: int = 100
    order_id: int = 0
    expiry_block: int = 0
    post_only: bool = False
    fill_or_kill: bool = False
    immediate_or_cancel: bool = False
    max_matches: int = 0
    last_execution_block: int = 0
    amount: int = 0
    order_desc_id: int = 0

    def as_abi_tuple(self) -> tuple[Any, ...]:
        """Field order of the on-chain OrderDesc struct."""
        return (
            self.order_desc_id,
            self.perp_id,
            int(self.order_type),
            self.order_id,
            self.price,
            self.lot,
            self.expiry_block,
            self.post_only,
            self.fill_or_kill,
            self.immediate_or_cancel,
            self.max_matches,
            self.leverage,
            self.last_execution_block,
            self.amount,
        )

    @classmethod
    def from_abi_tuple(cls, t: tuple[Any, ...] | list[Any]) -> OrderDescriptor:
        return cls(
            order_desc_id=int(t[0]),
            perp_id=int(t[1]),
            order_type=OrderType(int(t[2])),
            order_id=int(t[3]),
            price=int(t[4]),
            lot=int(t[5]),
            expiry_block=int(t[6]),
            post_only=bool(t[7]),
            fill_or_kill=bool(t[8]),
            immediate_or_cancel=bool(t[9]),
            max_matches=int(t[10]),
            leverage=int(t[11]),
            last_execution_block=int(t[12]),
            amount=int(t[13]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "perp_id": self.perp_id,
            "order_type": self.order_type.name,
            "order_id": self.order_id,
            "price": self.price,
            "lot": self.lot,
            "expiry_block": self.expiry_block,
            "post_only": self.post_only,
            "fill_or_kill": self.fill_or_kill,
            "immediate_or_cancel": self.immediate_or_cancel,
            "max_matches": self.max_matches,
            "leverage": self.leverage,
            "last_execution_block": self.last_execution_block,
            "amount": self.amount,
            "order_desc_id": self.order_desc_id,
        }


@dataclass(frozen=True)
class DomainEvent:
    """Decoded protocol event.

    Tagged union: ``name`` selects the shape of ``args``.
    """

    name: str
    args: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "args": dict(self.args)}


@dataclass(frozen=True)
class MatchRecord:
    """One maker fill against an incoming order."""

    maker_account_id: int
    maker_order_id: int
    price: int
    lot: int
    fee: int

    @classmethod
    def from_event(cls, event: DomainEvent) -> MatchRecord:
        a = event.args
        return cls(
            maker_account_id=int(a["accountId"]),
            maker_order_id=int(a["orderId"]),
            price=int(a["pricePNS"]),
            lot=int(a["lotLNS"]),
            fee=int(a["feeCNS"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "maker_account_id": self.maker_account_id,
            "maker_order_id": self.maker_order_id,
            "price": self.price,
            "lot": self.lot,
            "fee": self.fee,
        }


@dataclass(frozen=True)
class PositionSnapshot:
    """Open position at snapshot time (lot is never 0)."""

    side: PositionSide
    lot: int
    entry_price: int
    margin: int
    unrealized_pnl: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side.label,
            "lot": self.lot,
            "entry_price": self.entry_price,
            "margin": self.margin,
            "unrealized_pnl": self.unrealized_pnl,
        }


@dataclass(frozen=True)
class AccountSnapshot:
    """Account state for one perpetual at a point in time.

    Attributes:
        account_id: Exchange account id (0 = not registered)
        balance: Free collateral (CNS)
        locked_balance: Collateral locked by resting orders (CNS)
        position: Open position, None when flat
        native_balance: Native gas-token balance (wei)
        mark_price: Mark price reported with the position read (PNS)
    """

    account_id: int
    balance: int
    locked_balance: int
    position: PositionSnapshot | None
    native_balance: int
    mark_price: int | None = None

    @classmethod
    def empty(cls, native_balance: int = 0) -> AccountSnapshot:
        """Snapshot of an address with no exchange registration."""
        return cls(
            account_id=0,
            balance=0,
            locked_balance=0,
            position=None,
            native_balance=native_balance,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "balance": self.balance,
            "locked_balance": self.locked_balance,
            "position": None if self.position is None else self.position.to_dict(),
            "native_balance": self.native_balance,
            "mark_price": self.mark_price,
        }


@dataclass(frozen=True)
class MarketState:
    """Perpetual market state read from the exchange.

    Book extremes (max_bid .. min_ask) are offsets from base_price
    (ONS); 0 means the side is empty.
    """

    perp_id: int
    name: str
    symbol: str
    price_decimals: int
    lot_decimals: int
    mark_price: int
    oracle_price: int
    long_open_interest: int
    short_open_interest: int
    funding_rate_raw: int  # Per-8h rate in pct * 100_000, signed
    paused: bool
    base_price: int = 0
    max_bid: int = 0
    min_bid: int = 0
    max_ask: int = 0
    min_ask: int = 0
    resting_order_count: int = 0

    def mid_price(self) -> Decimal:
        return pns_to_price(self.mark_price, self.price_decimals)

    def best_bid(self) -> Decimal | None:
        if self.max_bid <= 0:
            return None
        return pns_to_price(self.max_bid + self.base_price, self.price_decimals)

    def best_ask(self) -> Decimal | None:
        if self.min_ask <= 0:
            return None
        return pns_to_price(self.min_ask + self.base_price, self.price_decimals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "perp_id": self.perp_id,
            "name": self.name,
            "symbol": self.symbol,
            "price_decimals": self.price_decimals,
            "lot_decimals": self.lot_decimals,
            "mark_price": self.mark_price,
            "oracle_price": self.oracle_price,
            "long_open_interest": self.long_open_interest,
            "short_open_interest": self.short_open_interest,
            "funding_rate_raw": self.funding_rate_raw,
            "paused": self.paused,
            "base_price": self.base_price,
            "max_bid": self.max_bid,
            "min_bid": self.min_bid,
            "max_ask": self.max_ask,
            "min_ask": self.min_ask,
            "resting_order_count": self.resting_order_count,
        }


@dataclass(frozen=True)
class FeeSchedule:
    """Per-market fees in parts per 100 000 of notional."""

    taker_fee_per_100k: int
    maker_fee_per_100k: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "taker_fee_per_100k": self.taker_fee_per_100k,
            "maker_fee_per_100k": self.maker_fee_per_100k,
        }


@dataclass
class OrderOutcome:
    """Fate of one order in a batch."""

    index: int
    order_type: OrderType
    price: int
    lot: int
    status: OrderStatus
    matches: list[MatchRecord] = field(default_factory=list)
    fill_price: Decimal | None = None
    total_fees: int = 0
    resting_order_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "order_type": self.order_type.name,
            "price": self.price,
            "lot": self.lot,
            "status": self.status.value,
            "matches": [m.to_dict() for m in self.matches],
            "fill_price": _dec(self.fill_price),
            "total_fees": self.total_fees,
            "resting_order_id": self.resting_order_id,
        }
