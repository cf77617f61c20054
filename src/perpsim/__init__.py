"""perpsim - Fork-and-replay simulation for an on-ledger perpetuals exchange.

Rehearses orders before they are sent, explains transactions after they
happened, and projects liquidation risk.

Note: version is sourced from package metadata (pyproject.toml).
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from perpsim.core import OrderStatus, OrderType, PositionSide, StrategyType
from perpsim.simulation import (
    analyze_transaction,
    dry_run,
    project_liquidation,
    run_strategy_batch,
)


def _pkg_version() -> str:
    try:
        return version("perpsim")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _pkg_version()

__all__ = [
    "OrderStatus",
    "OrderType",
    "PositionSide",
    "StrategyType",
    "__version__",
    "analyze_transaction",
    "dry_run",
    "project_liquidation",
    "run_strategy_batch",
]
