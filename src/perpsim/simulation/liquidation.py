"""Liquidation and funding projection.

Pure Decimal math, no ledger access. Market-dependent inputs (mark price,
funding rate, decimals) always come in as explicit parameters so the same
functions serve what-if projections and replay-derived figures.

At liquidation, equity equals the maintenance margin on the notional:

    collateral + pnl(liq) = mmr * liq * size

which solves to

    long:  liq = (entry * size - collateral) / (size * (1 - mmr))
    short: liq = (entry * size + collateral) / (size * (1 + mmr))

clamped at zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from perpsim.core import perp_name
from perpsim.fixed_point import COLLATERAL_DECIMALS, cns_to_amount, lns_to_lot, pns_to_price

if TYPE_CHECKING:
    from perpsim.types import MarketState, PositionSnapshot

ZERO = Decimal(0)
ONE = Decimal(1)

# Funding rate is quoted per 8 hours, in pct * 100_000
FUNDING_RATE_SCALE = Decimal(100_000)
FUNDING_PERIOD_HOURS = Decimal(8)


def _dec(value: Decimal | float | int | str) -> Decimal:
    """Exact Decimal; floats go through str to avoid binary artifacts."""
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class LiquidationOptions:
    """Projection parameters.

    Attributes:
        price_range_pct: Sweep half-width around mark, in percent
        price_steps: Sweep intervals (points = steps + 1)
        funding_hours: Funding horizon
        funding_steps: Funding checkpoints
        maintenance_margin: Maintenance margin ratio (0.05 = 5%)
        collateral_decimals: Collateral fixed-point decimals
    """

    price_range_pct: Decimal = Decimal(30)
    price_steps: int = 60
    funding_hours: Decimal = Decimal(24)
    funding_steps: int = 6
    maintenance_margin: Decimal = Decimal("0.05")
    collateral_decimals: int = COLLATERAL_DECIMALS


@dataclass(frozen=True)
class PricePoint:
    price: Decimal
    pnl: Decimal
    equity: Decimal
    margin_ratio: Decimal
    liquidatable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": str(self.price),
            "pnl": str(self.pnl),
            "equity": str(self.equity),
            "margin_ratio": str(self.margin_ratio),
            "liquidatable": self.liquidatable,
        }


@dataclass(frozen=True)
class FundingPoint:
    hours: Decimal
    funding_accrued: Decimal
    adjusted_equity: Decimal
    adjusted_liquidation_price: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "hours": str(self.hours),
            "funding_accrued": str(self.funding_accrued),
            "adjusted_equity": str(self.adjusted_equity),
            "adjusted_liquidation_price": str(self.adjusted_liquidation_price),
        }


@dataclass(frozen=True)
class LiquidationProjection:
    """Liquidation and funding outlook for one position."""

    perp_id: int
    perp_name: str | None
    side: str
    entry_price: Decimal
    size: Decimal
    collateral: Decimal
    mark_price: Decimal
    oracle_price: Decimal
    current_pnl: Decimal
    current_equity: Decimal
    current_leverage: Decimal | None  # None when equity <= 0
    current_margin_ratio: Decimal
    liquidation_price: Decimal
    distance: Decimal
    distance_pct: Decimal
    price_points: list[PricePoint]
    funding_rate_pct: Decimal
    funding_per_hour: Decimal
    funding_projections: list[FundingPoint]
    long_open_interest: Decimal
    short_open_interest: Decimal
    maintenance_margin: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "perp_id": self.perp_id,
            "perp_name": self.perp_name,
            "side": self.side,
            "entry_price": str(self.entry_price),
            "size": str(self.size),
            "collateral": str(self.collateral),
            "mark_price": str(self.mark_price),
            "oracle_price": str(self.oracle_price),
            "current_pnl": str(self.current_pnl),
            "current_equity": str(self.current_equity),
            "current_leverage": (
                None if self.current_leverage is None else str(self.current_leverage)
            ),
            "current_margin_ratio": str(self.current_margin_ratio),
            "liquidation_price": str(self.liquidation_price),
            "distance": str(self.distance),
            "distance_pct": str(self.distance_pct),
            "price_points": [p.to_dict() for p in self.price_points],
            "funding_rate_pct": str(self.funding_rate_pct),
            "funding_per_hour": str(self.funding_per_hour),
            "funding_projections": [f.to_dict() for f in self.funding_projections],
            "long_open_interest": str(self.long_open_interest),
            "short_open_interest": str(self.short_open_interest),
            "maintenance_margin": str(self.maintenance_margin),
        }


# --- Core math ---


def pnl_at(entry: Decimal, price: Decimal, size: Decimal, is_long: bool) -> Decimal:
    return (price - entry) * size if is_long else (entry - price) * size


def liquidation_price(
    entry: Decimal,
    size: Decimal,
    collateral: Decimal,
    is_long: bool,
    maintenance_margin: Decimal,
) -> Decimal:
    """Price where equity equals maintenance margin; 0 if none is positive."""
    if size <= 0:
        return ZERO
    if is_long:
        liq = (entry * size - collateral) / (size * (ONE - maintenance_margin))
    else:
        liq = (entry * size + collateral) / (size * (ONE + maintenance_margin))
    return max(ZERO, liq)


def _margin_ratio(equity: Decimal, price: Decimal, size: Decimal) -> Decimal:
    notional = price * size
    return equity / notional if notional > 0 else ZERO


def sweep(
    entry: Decimal,
    size: Decimal,
    collateral: Decimal,
    is_long: bool,
    mark: Decimal,
    *,
    range_pct: Decimal = Decimal(30),
    steps: int = 60,
    maintenance_margin: Decimal = Decimal("0.05"),
) -> list[PricePoint]:
    """``steps + 1`` evenly spaced points over mark * (1 -/+ range_pct/100).

    A point is liquidatable when strictly past the liquidation price on the
    losing side (below for a long, above for a short).
    """
    r = _dec(range_pct) / 100
    low = mark * (ONE - r)
    high = mark * (ONE + r)
    step = (high - low) / steps if steps > 0 else ZERO
    liq = liquidation_price(entry, size, collateral, is_long, maintenance_margin)

    points: list[PricePoint] = []
    for i in range(steps + 1):
        price = low + step * i
        pnl = pnl_at(entry, price, size, is_long)
        equity = collateral + pnl
        liquidatable = price < liq if is_long else price > liq
        points.append(
            PricePoint(
                price=price,
                pnl=pnl,
                equity=equity,
                margin_ratio=_margin_ratio(equity, price, size),
                liquidatable=liquidatable,
            )
        )
    return points


def funding_rate_pct(funding_rate_raw: int) -> Decimal:
    """Raw per-8h rate (pct * 100_000) to percent per 8h."""
    return Decimal(funding_rate_raw) / FUNDING_RATE_SCALE


def funding_per_hour(funding_rate_raw: int, notional: Decimal, is_long: bool) -> Decimal:
    """Hourly funding cost; positive when the position pays.

    Longs pay at a positive rate, shorts at a negative one.
    """
    rate = funding_rate_pct(funding_rate_raw)
    if rate == 0:
        return ZERO
    hourly = abs(rate / 100) * notional / FUNDING_PERIOD_HOURS
    pays = rate > 0 if is_long else rate < 0
    return hourly if pays else -hourly


def project_funding(
    entry: Decimal,
    size: Decimal,
    collateral: Decimal,
    is_long: bool,
    mark: Decimal,
    funding_rate_raw: int,
    *,
    hours: Decimal = Decimal(24),
    steps: int = 6,
    maintenance_margin: Decimal = Decimal("0.05"),
) -> list[FundingPoint]:
    """Accrue funding against collateral at ``steps`` checkpoints.

    Empty when the rate is zero or steps is zero.
    """
    cost = funding_per_hour(funding_rate_raw, mark * size, is_long)
    if steps <= 0 or cost == 0:
        return []

    equity = collateral + pnl_at(entry, mark, size, is_long)
    time_step = _dec(hours) / steps
    points: list[FundingPoint] = []
    for i in range(1, steps + 1):
        h = time_step * i
        accrued = cost * h
        points.append(
            FundingPoint(
                hours=h,
                funding_accrued=accrued,
                adjusted_equity=equity - accrued,
                adjusted_liquidation_price=liquidation_price(
                    entry, size, collateral - accrued, is_long, maintenance_margin
                ),
            )
        )
    return points


def project_liquidation(
    perp_id: int,
    position: PositionSnapshot,
    market: MarketState,
    options: LiquidationOptions | None = None,
) -> LiquidationProjection:
    """Full liquidation outlook for ``position`` in ``market``."""
    opts = options or LiquidationOptions()
    mmr = _dec(opts.maintenance_margin)
    is_long = position.side.is_long

    entry = pns_to_price(position.entry_price, market.price_decimals)
    size = lns_to_lot(position.lot, market.lot_decimals)
    collateral = cns_to_amount(position.margin, opts.collateral_decimals)
    mark = pns_to_price(market.mark_price, market.price_decimals)
    oracle = pns_to_price(market.oracle_price, market.price_decimals)

    pnl = pnl_at(entry, mark, size, is_long)
    equity = collateral + pnl
    notional = mark * size
    leverage = notional / equity if equity > 0 else None

    liq = liquidation_price(entry, size, collateral, is_long, mmr)
    distance = mark - liq if is_long else liq - mark
    distance_pct = distance / mark * 100 if mark > 0 else ZERO

    return LiquidationProjection(
        perp_id=perp_id,
        perp_name=perp_name(perp_id, market.symbol or None),
        side=position.side.label,
        entry_price=entry,
        size=size,
        collateral=collateral,
        mark_price=mark,
        oracle_price=oracle,
        current_pnl=pnl,
        current_equity=equity,
        current_leverage=leverage,
        current_margin_ratio=_margin_ratio(equity, mark, size),
        liquidation_price=liq,
        distance=distance,
        distance_pct=distance_pct,
        price_points=sweep(
            entry,
            size,
            collateral,
            is_long,
            mark,
            range_pct=_dec(opts.price_range_pct),
            steps=opts.price_steps,
            maintenance_margin=mmr,
        ),
        funding_rate_pct=funding_rate_pct(market.funding_rate_raw),
        funding_per_hour=funding_per_hour(market.funding_rate_raw, notional, is_long),
        funding_projections=project_funding(
            entry,
            size,
            collateral,
            is_long,
            mark,
            market.funding_rate_raw,
            hours=_dec(opts.funding_hours),
            steps=opts.funding_steps,
            maintenance_margin=mmr,
        ),
        long_open_interest=lns_to_lot(market.long_open_interest, market.lot_decimals),
        short_open_interest=lns_to_lot(market.short_open_interest, market.lot_decimals),
        maintenance_margin=mmr,
    )
