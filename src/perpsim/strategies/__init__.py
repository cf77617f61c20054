"""Order-generating strategies for batch simulation."""

from perpsim.strategies.base import GeneratedStrategy, StrategyGenerator
from perpsim.strategies.config import (
    GridSimConfig,
    MarketMakerSimConfig,
    StrategyBatchConfig,
    load_strategy_config,
)
from perpsim.strategies.grid import GridGenerator, GridMetrics, generate_grid_levels, grid_metrics
from perpsim.strategies.market_maker import MarketMakerGenerator, Quotes, book_top

__all__ = [
    "GeneratedStrategy",
    "GridGenerator",
    "GridMetrics",
    "GridSimConfig",
    "MarketMakerGenerator",
    "MarketMakerSimConfig",
    "Quotes",
    "StrategyBatchConfig",
    "StrategyGenerator",
    "book_top",
    "generate_grid_levels",
    "grid_metrics",
    "load_strategy_config",
]
