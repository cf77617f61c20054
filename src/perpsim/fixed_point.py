"""Fixed-point conversions between human values and protocol integers.

The exchange stores prices (PNS), lot sizes (LNS), collateral (CNS) and
leverage (hundredths) as integers scaled by 10**decimals. Price and lot
decimals are per market; collateral and leverage decimals are global.

Rounding rule (the only one): encoding multiplies the exact decimal value
by 10**decimals and rounds to the nearest integer, halves away from zero
(ROUND_HALF_UP). Decoding is exact. Hence decode(encode(v, d), d) equals
v to within 0.5 * 10**-d.

Inputs are not validated; callers pass sane values.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

COLLATERAL_DECIMALS = 6
LEVERAGE_DECIMALS = 2

Number = Decimal | int | float | str


def _to_decimal(value: Number) -> Decimal:
    # str() avoids binary float artefacts (0.1 -> 0.1000000000000000055...)
    return value if isinstance(value, Decimal) else Decimal(str(value))


def encode(value: Number, decimals: int) -> int:
    """Scale a human value to a protocol integer."""
    scaled = _to_decimal(value).scaleb(decimals)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def decode(raw: int, decimals: int) -> Decimal:
    """Scale a protocol integer back to a human value."""
    return Decimal(int(raw)).scaleb(-decimals)


def price_to_pns(price: Number, price_decimals: int) -> int:
    return encode(price, price_decimals)


def pns_to_price(pns: int, price_decimals: int) -> Decimal:
    return decode(pns, price_decimals)


def lot_to_lns(lot: Number, lot_decimals: int) -> int:
    return encode(lot, lot_decimals)


def lns_to_lot(lns: int, lot_decimals: int) -> Decimal:
    return decode(lns, lot_decimals)


def leverage_to_hdths(leverage: Number, leverage_decimals: int = LEVERAGE_DECIMALS) -> int:
    """10x -> 1000 with the default two decimals."""
    return encode(leverage, leverage_decimals)


def hdths_to_leverage(hdths: int, leverage_decimals: int = LEVERAGE_DECIMALS) -> Decimal:
    return decode(hdths, leverage_decimals)


def amount_to_cns(amount: Number, collateral_decimals: int = COLLATERAL_DECIMALS) -> int:
    return encode(amount, collateral_decimals)


def cns_to_amount(cns: int, collateral_decimals: int = COLLATERAL_DECIMALS) -> Decimal:
    return decode(cns, collateral_decimals)
