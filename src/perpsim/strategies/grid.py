"""Static symmetric grid generator.

Places ``levels`` buy orders below the center price and ``levels`` sell
orders above it, ``spacing`` apart. Buys open longs, sells open shorts.
Center defaults to the market mark price.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from perpsim.core import OrderType
from perpsim.fixed_point import leverage_to_hdths, lot_to_lns, price_to_pns
from perpsim.strategies.base import GeneratedStrategy, StrategyGenerator
from perpsim.types import OrderDescriptor

if TYPE_CHECKING:
    from perpsim.strategies.config import GridSimConfig
    from perpsim.types import FeeSchedule, MarketState

FEE_SCALE = Decimal(100_000)


@dataclass(frozen=True)
class GridLevel:
    price: Decimal
    side: str  # "buy" | "sell"


@dataclass(frozen=True)
class GridMetrics:
    """Grid economics.

    Attributes:
        margin_per_order: center * size / leverage
        total_capital: Margin for every level on both sides
        fees_per_round_trip: Maker entry plus taker exit at center notional
        profit_per_round_trip: spacing * size minus round-trip fees
        breakeven_round_trips: Round trips to earn back total capital;
            None when a round trip is not profitable
        max_position_size: Position if one whole side fills
    """

    margin_per_order: Decimal
    total_capital: Decimal
    fees_per_round_trip: Decimal
    profit_per_round_trip: Decimal
    breakeven_round_trips: int | None
    max_position_size: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "margin_per_order": str(self.margin_per_order),
            "total_capital": str(self.total_capital),
            "fees_per_round_trip": str(self.fees_per_round_trip),
            "profit_per_round_trip": str(self.profit_per_round_trip),
            "breakeven_round_trips": self.breakeven_round_trips,
            "max_position_size": str(self.max_position_size),
        }


def generate_grid_levels(center: Decimal, levels: int, spacing: Decimal) -> list[GridLevel]:
    """Levels around ``center``, sorted by ascending price."""
    out = [GridLevel(price=center - spacing * i, side="buy") for i in range(1, levels + 1)]
    out += [GridLevel(price=center + spacing * i, side="sell") for i in range(1, levels + 1)]
    return sorted(out, key=lambda lv: lv.price)


def grid_metrics(center: Decimal, config: GridSimConfig, fees: FeeSchedule) -> GridMetrics:
    margin_per_order = center * config.order_size / config.leverage
    total_capital = margin_per_order * config.levels * 2

    notional = center * config.order_size
    maker_fee = notional * fees.maker_fee_per_100k / FEE_SCALE
    taker_fee = notional * fees.taker_fee_per_100k / FEE_SCALE
    fees_per_round_trip = maker_fee + taker_fee
    profit = config.spacing * config.order_size - fees_per_round_trip

    breakeven = math.ceil(total_capital / profit) if profit > 0 else None

    return GridMetrics(
        margin_per_order=margin_per_order,
        total_capital=total_capital,
        fees_per_round_trip=fees_per_round_trip,
        profit_per_round_trip=profit,
        breakeven_round_trips=breakeven,
        max_position_size=config.order_size * config.levels,
    )


class GridGenerator(StrategyGenerator):
    """Grid order generator for one perpetual."""

    name = "GRID"

    def __init__(self, perp_id: int, config: GridSimConfig) -> None:
        self.perp_id = perp_id
        self.config = config

    def center(self, market: MarketState) -> Decimal:
        if self.config.center_price is not None:
            return self.config.center_price
        return market.mid_price()

    def build_orders(self, levels: list[GridLevel], market: MarketState) -> list[OrderDescriptor]:
        lot = lot_to_lns(self.config.order_size, market.lot_decimals)
        leverage = leverage_to_hdths(self.config.leverage)
        return [
            OrderDescriptor(
                perp_id=self.perp_id,
                order_type=OrderType.OPEN_LONG if lv.side == "buy" else OrderType.OPEN_SHORT,
                price=price_to_pns(lv.price, market.price_decimals),
                lot=lot,
                leverage=leverage,
                post_only=self.config.post_only,
            )
            for lv in levels
        ]

    def generate(self, market: MarketState, fees: FeeSchedule) -> GeneratedStrategy:
        center = self.center(market)
        levels = generate_grid_levels(center, self.config.levels, self.config.spacing)
        metrics = grid_metrics(center, self.config, fees).to_dict()
        metrics["center_price"] = str(center)
        return GeneratedStrategy(orders=self.build_orders(levels, market), metrics=metrics)
