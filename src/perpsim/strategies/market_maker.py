"""Two-sided market-maker quote generator.

Quotes one bid and one ask around the mid price at ``spread_percent``
(a fraction, 0.001 = 0.1%). Quotes skew with the current position: a long
inventory shifts both quotes down, a short one shifts them up, by up to
half the half-spread. Sides stop quoting once the position reaches
``max_position``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from perpsim.core import OrderType
from perpsim.fixed_point import leverage_to_hdths, lot_to_lns, price_to_pns
from perpsim.strategies.base import GeneratedStrategy, StrategyGenerator
from perpsim.types import OrderDescriptor

if TYPE_CHECKING:
    from perpsim.strategies.config import MarketMakerSimConfig
    from perpsim.types import FeeSchedule, MarketState

MAX_SKEW = Decimal("0.5")


@dataclass(frozen=True)
class BookTop:
    """Best bid/ask and mid used for quoting."""

    best_bid: Decimal
    best_ask: Decimal
    mid_price: Decimal


@dataclass(frozen=True)
class Quotes:
    bid_price: Decimal
    bid_size: Decimal
    ask_price: Decimal
    ask_size: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "bid_price": str(self.bid_price),
            "bid_size": str(self.bid_size),
            "ask_price": str(self.ask_price),
            "ask_size": str(self.ask_size),
        }


def book_top(market: MarketState, spread_percent: Decimal) -> BookTop:
    """Book extremes from the market; empty sides fall back to mid -/+ spread."""
    mid = market.mid_price()
    bid = market.best_bid()
    ask = market.best_ask()
    return BookTop(
        best_bid=bid if bid is not None else mid * (1 - spread_percent),
        best_ask=ask if ask is not None else mid * (1 + spread_percent),
        mid_price=mid,
    )


class MarketMakerGenerator(StrategyGenerator):
    """Market-maker quote generator for one perpetual."""

    name = "MARKET_MAKER"

    def __init__(
        self,
        perp_id: int,
        config: MarketMakerSimConfig,
        position_size: Decimal = Decimal(0),
    ) -> None:
        """Initialize generator.

        Args:
            perp_id: Perpetual to quote
            config: Quote parameters
            position_size: Current signed position (positive = long)
        """
        self.perp_id = perp_id
        self.config = config
        self.position_size = position_size

    def quotes(self, top: BookTop) -> Quotes:
        cfg = self.config
        half_spread = top.mid_price * cfg.spread_percent
        pos = self.position_size

        ratio = abs(pos) / cfg.max_position if cfg.max_position > 0 else Decimal(0)
        skew_factor = min(ratio * MAX_SKEW, MAX_SKEW)

        skew = Decimal(0)
        if pos > 0:
            skew = -half_spread * skew_factor
        elif pos < 0:
            skew = half_spread * skew_factor

        bid_size = cfg.order_size
        ask_size = cfg.order_size
        if pos >= cfg.max_position:
            bid_size = Decimal(0)
        elif pos <= -cfg.max_position:
            ask_size = Decimal(0)

        return Quotes(
            bid_price=top.mid_price - half_spread + skew,
            bid_size=bid_size,
            ask_price=top.mid_price + half_spread + skew,
            ask_size=ask_size,
        )

    def build_orders(self, quotes: Quotes, market: MarketState) -> list[OrderDescriptor]:
        leverage = leverage_to_hdths(self.config.leverage)
        orders: list[OrderDescriptor] = []
        if quotes.bid_size > 0:
            orders.append(
                OrderDescriptor(
                    perp_id=self.perp_id,
                    order_type=OrderType.OPEN_LONG,
                    price=price_to_pns(quotes.bid_price, market.price_decimals),
                    lot=lot_to_lns(quotes.bid_size, market.lot_decimals),
                    leverage=leverage,
                    post_only=self.config.post_only,
                )
            )
        if quotes.ask_size > 0:
            orders.append(
                OrderDescriptor(
                    perp_id=self.perp_id,
                    order_type=OrderType.OPEN_SHORT,
                    price=price_to_pns(quotes.ask_price, market.price_decimals),
                    lot=lot_to_lns(quotes.ask_size, market.lot_decimals),
                    leverage=leverage,
                    post_only=self.config.post_only,
                )
            )
        return orders

    def generate(self, market: MarketState, fees: FeeSchedule) -> GeneratedStrategy:  # noqa: ARG002
        top = book_top(market, self.config.spread_percent)
        quotes = self.quotes(top)
        metrics: dict[str, Any] = quotes.to_dict()
        metrics.update(
            best_bid=str(top.best_bid),
            best_ask=str(top.best_ask),
            mid_price=str(top.mid_price),
        )
        return GeneratedStrategy(orders=self.build_orders(quotes, market), metrics=metrics)
