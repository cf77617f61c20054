"""Base strategy generator interface.

A generator turns market state and fees into a batch of orders plus
strategy-specific metrics (capital required, break-even, quotes). It
never touches the ledger.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from perpsim.types import FeeSchedule, MarketState, OrderDescriptor


@dataclass(frozen=True)
class GeneratedStrategy:
    """Generator output: orders in submission order and derived metrics."""

    orders: list[OrderDescriptor]
    metrics: dict[str, Any] = field(default_factory=dict)


class StrategyGenerator(ABC):
    """Abstract base class for order generators."""

    name: str = "BASE"

    @abstractmethod
    def generate(self, market: MarketState, fees: FeeSchedule) -> GeneratedStrategy:
        """
        Produce orders for the current market.

        Args:
            market: Market state read from the exchange
            fees: Taker/maker fee schedule for the market

        Returns:
            GeneratedStrategy with orders and metrics
        """
        ...
