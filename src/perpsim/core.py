"""Core types and enums for perpsim."""

from __future__ import annotations

from enum import Enum, IntEnum


class OrderType(IntEnum):
    """Order descriptor type (exchange OrderDescEnum, encoded as uint8)."""

    OPEN_LONG = 0
    OPEN_SHORT = 1
    CLOSE_LONG = 2
    CLOSE_SHORT = 3
    CANCEL = 4
    CHANGE = 5  # Modify a resting order


class PositionSide(IntEnum):
    """Position side (exchange PositionEnum, encoded as uint8).

    0=LONG, 1=SHORT as observed on the deployed exchange. All decoding of
    the raw field goes through from_raw() so the mapping lives here only.
    """

    LONG = 0
    SHORT = 1

    @classmethod
    def from_raw(cls, raw: int) -> PositionSide:
        """Decode the raw positionType field."""
        return cls(int(raw))

    @property
    def is_long(self) -> bool:
        return self is PositionSide.LONG

    @property
    def label(self) -> str:
        return "long" if self.is_long else "short"


class OrderStatus(Enum):
    """Fate of one submitted order after batch execution."""

    FILLED = "filled"  # Matched, nothing left resting
    RESTING = "resting"  # Placed on the book (possibly after partial fill)
    FAILED = "failed"  # No match and not placed


class StrategyType(Enum):
    """Order-generating strategy families."""

    GRID = "grid"
    MARKET_MAKER = "mm"


# Known perpetual ids on the deployed exchange
PERP_IDS_TO_NAMES: dict[int, str] = {
    16: "BTC",
    32: "ETH",
    48: "SOL",
    64: "MON",
    256: "ZEC",
}


def perp_name(perp_id: int, fallback: str | None = None) -> str | None:
    """Display name for a perpetual id; ``fallback`` (usually the market symbol) otherwise."""
    return PERP_IDS_TO_NAMES.get(perp_id, fallback)
