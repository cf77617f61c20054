"""Simulation workflows: dry run, forensics, strategy batch, liquidation."""

from perpsim.simulation.dry_run import (
    DryRunResult,
    DryRunSimulator,
    ForkExecution,
    SimulateResult,
    dry_run,
)
from perpsim.simulation.forensics import (
    DecodedCall,
    FailureAnalysis,
    ForensicsAnalyzer,
    ForensicsResult,
    analyze_transaction,
    decode_exchange_calldata,
    extract_matches,
    map_revert_reason,
    volume_weighted_fill_price,
)
from perpsim.simulation.liquidation import (
    FundingPoint,
    LiquidationOptions,
    LiquidationProjection,
    PricePoint,
    liquidation_price,
    project_funding,
    project_liquidation,
    sweep,
)
from perpsim.simulation.strategy_batch import (
    StrategyBatchResult,
    StrategyBatchSimulator,
    map_events_to_outcomes,
    run_strategy_batch,
)

__all__ = [
    "DecodedCall",
    "DryRunResult",
    "DryRunSimulator",
    "FailureAnalysis",
    "ForensicsAnalyzer",
    "ForensicsResult",
    "ForkExecution",
    "FundingPoint",
    "LiquidationOptions",
    "LiquidationProjection",
    "PricePoint",
    "SimulateResult",
    "StrategyBatchResult",
    "StrategyBatchSimulator",
    "analyze_transaction",
    "decode_exchange_calldata",
    "dry_run",
    "extract_matches",
    "liquidation_price",
    "map_events_to_outcomes",
    "map_revert_reason",
    "project_funding",
    "project_liquidation",
    "run_strategy_batch",
    "sweep",
    "volume_weighted_fill_price",
]
