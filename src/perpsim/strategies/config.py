"""Strategy batch configuration.

Configs are plain frozen dataclasses, buildable from dicts or YAML files:

    strategy: grid            # grid | mm
    perp_id: 16
    grid:
      levels: 3
      spacing: 100
      order_size: 0.001
      leverage: 10
      center_price: null      # default: market mark price
      post_only: false
    mm:
      order_size: 0.001
      spread_percent: 0.001
      leverage: 5
      max_position: 0.01
      post_only: true
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from perpsim.core import StrategyType
from perpsim.env_parse import ConfigError, to_bool
from perpsim.strategies.base import StrategyGenerator
from perpsim.strategies.grid import GridGenerator
from perpsim.strategies.market_maker import MarketMakerGenerator


def _dec(data: dict[str, Any], key: str, default: Any = None) -> Decimal:
    raw = data.get(key, default)
    if raw is None:
        raise ConfigError(f"missing required field '{key}'")
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        raise ConfigError(f"invalid decimal for '{key}': {raw!r}") from None


@dataclass(frozen=True)
class GridSimConfig:
    """Grid parameters (human units)."""

    levels: int
    spacing: Decimal
    order_size: Decimal
    leverage: Decimal
    center_price: Decimal | None = None
    post_only: bool = False

    def __post_init__(self) -> None:
        if self.levels < 0:
            raise ValueError("levels must be non-negative")
        if self.spacing <= 0:
            raise ValueError("spacing must be positive")
        if self.order_size <= 0:
            raise ValueError("order_size must be positive")
        if self.leverage <= 0:
            raise ValueError("leverage must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GridSimConfig:
        center = data.get("center_price")
        return cls(
            levels=int(data.get("levels", 0)),
            spacing=_dec(data, "spacing"),
            order_size=_dec(data, "order_size"),
            leverage=_dec(data, "leverage", 1),
            center_price=None if center is None else _dec(data, "center_price"),
            post_only=to_bool(data.get("post_only", False), "post_only"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "levels": self.levels,
            "spacing": str(self.spacing),
            "order_size": str(self.order_size),
            "leverage": str(self.leverage),
            "center_price": None if self.center_price is None else str(self.center_price),
            "post_only": self.post_only,
        }


@dataclass(frozen=True)
class MarketMakerSimConfig:
    """Market-maker parameters. spread_percent is a fraction (0.001 = 0.1%)."""

    order_size: Decimal
    spread_percent: Decimal
    leverage: Decimal
    max_position: Decimal
    post_only: bool = False

    def __post_init__(self) -> None:
        if self.order_size <= 0:
            raise ValueError("order_size must be positive")
        if self.spread_percent < 0:
            raise ValueError("spread_percent must be non-negative")
        if self.leverage <= 0:
            raise ValueError("leverage must be positive")
        if self.max_position < 0:
            raise ValueError("max_position must be non-negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketMakerSimConfig:
        return cls(
            order_size=_dec(data, "order_size"),
            spread_percent=_dec(data, "spread_percent"),
            leverage=_dec(data, "leverage", 1),
            max_position=_dec(data, "max_position"),
            post_only=to_bool(data.get("post_only", False), "post_only"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_size": str(self.order_size),
            "spread_percent": str(self.spread_percent),
            "leverage": str(self.leverage),
            "max_position": str(self.max_position),
            "post_only": self.post_only,
        }


@dataclass(frozen=True)
class StrategyBatchConfig:
    """Which strategy to run on which perpetual."""

    strategy_type: StrategyType
    perp_id: int
    grid: GridSimConfig | None = None
    mm: MarketMakerSimConfig | None = None

    def __post_init__(self) -> None:
        if self.strategy_type is StrategyType.GRID and self.grid is None:
            raise ValueError("grid config is required for grid strategy")
        if self.strategy_type is StrategyType.MARKET_MAKER and self.mm is None:
            raise ValueError("mm config is required for market maker strategy")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StrategyBatchConfig:
        raw_type = data.get("strategy", data.get("strategy_type"))
        try:
            strategy_type = StrategyType(str(raw_type).lower())
        except ValueError:
            raise ConfigError(f"unknown strategy type: {raw_type!r}") from None
        if "perp_id" not in data:
            raise ConfigError("missing required field 'perp_id'")
        grid = data.get("grid")
        mm = data.get("mm")
        try:
            return cls(
                strategy_type=strategy_type,
                perp_id=int(data["perp_id"]),
                grid=GridSimConfig.from_dict(grid) if grid else None,
                mm=MarketMakerSimConfig.from_dict(mm) if mm else None,
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e

    def build_generator(self) -> StrategyGenerator:
        if self.strategy_type is StrategyType.GRID:
            assert self.grid is not None
            return GridGenerator(self.perp_id, self.grid)
        assert self.mm is not None
        return MarketMakerGenerator(self.perp_id, self.mm)

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy_type.value,
            "perp_id": self.perp_id,
            "grid": None if self.grid is None else self.grid.to_dict(),
            "mm": None if self.mm is None else self.mm.to_dict(),
        }


def load_strategy_config(path: Path | str) -> StrategyBatchConfig:
    """Load a StrategyBatchConfig from a YAML file.

    Raises:
        ConfigError: File unreadable, invalid YAML, or invalid fields
    """
    try:
        with Path(path).open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot load strategy config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"strategy config {path} must be a mapping")
    return StrategyBatchConfig.from_dict(data)
