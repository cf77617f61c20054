"""Tests for perpsim.strategies: grid and market-maker generators, configs."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from perpsim.core import OrderType, StrategyType
from perpsim.env_parse import ConfigError
from perpsim.strategies import (
    GridGenerator,
    GridSimConfig,
    MarketMakerGenerator,
    MarketMakerSimConfig,
    StrategyBatchConfig,
    book_top,
    generate_grid_levels,
    grid_metrics,
    load_strategy_config,
)
from perpsim.types import FeeSchedule, MarketState

D = Decimal


def _grid_config(**overrides: object) -> GridSimConfig:
    params: dict[str, object] = {
        "levels": 3,
        "spacing": D(100),
        "order_size": D("0.001"),
        "leverage": D(10),
    }
    params.update(overrides)
    return GridSimConfig(**params)  # type: ignore[arg-type]


def _mm_config(**overrides: object) -> MarketMakerSimConfig:
    params: dict[str, object] = {
        "order_size": D("0.001"),
        "spread_percent": D("0.001"),
        "leverage": D(5),
        "max_position": D("0.01"),
    }
    params.update(overrides)
    return MarketMakerSimConfig(**params)  # type: ignore[arg-type]


class TestGridLevels:
    def test_symmetric_and_sorted(self) -> None:
        levels = generate_grid_levels(D(100_000), 3, D(100))

        assert [lv.price for lv in levels] == [
            D(99_700),
            D(99_800),
            D(99_900),
            D(100_100),
            D(100_200),
            D(100_300),
        ]
        assert [lv.side for lv in levels] == ["buy"] * 3 + ["sell"] * 3

    def test_zero_levels(self) -> None:
        assert generate_grid_levels(D(100_000), 0, D(100)) == []


class TestGridMetrics:
    def test_profitable_grid(self, fees: FeeSchedule) -> None:
        m = grid_metrics(D(100_000), _grid_config(), fees)

        assert m.margin_per_order == D(10)
        assert m.total_capital == D(60)
        assert m.fees_per_round_trip == D("0.045")
        assert m.profit_per_round_trip == D("0.055")
        assert m.breakeven_round_trips == 1091
        assert m.max_position_size == D("0.003")

    def test_unprofitable_grid_has_no_breakeven(self, fees: FeeSchedule) -> None:
        m = grid_metrics(D(100_000), _grid_config(spacing=D("0.01")), fees)

        assert m.profit_per_round_trip < 0
        assert m.breakeven_round_trips is None


class TestGridGenerator:
    def test_orders_around_mark(self, btc_market: MarketState, fees: FeeSchedule) -> None:
        generated = GridGenerator(16, _grid_config(post_only=True)).generate(btc_market, fees)

        assert [o.price for o in generated.orders] == [
            997_000,
            998_000,
            999_000,
            1_001_000,
            1_002_000,
            1_003_000,
        ]
        assert [o.order_type for o in generated.orders[:3]] == [OrderType.OPEN_LONG] * 3
        assert [o.order_type for o in generated.orders[3:]] == [OrderType.OPEN_SHORT] * 3
        assert all(o.lot == 100 for o in generated.orders)
        assert all(o.leverage == 1000 for o in generated.orders)
        assert all(o.post_only for o in generated.orders)
        assert all(o.perp_id == 16 for o in generated.orders)
        assert D(generated.metrics["center_price"]) == D(100_000)
        assert generated.metrics["breakeven_round_trips"] == 1091

    def test_explicit_center(self, btc_market: MarketState, fees: FeeSchedule) -> None:
        config = _grid_config(levels=1, center_price=D(50_000))
        generated = GridGenerator(16, config).generate(btc_market, fees)
        assert [o.price for o in generated.orders] == [499_000, 501_000]


class TestMarketMaker:
    def test_book_top_falls_back_to_spread(self, btc_market: MarketState) -> None:
        top = book_top(btc_market, D("0.001"))
        assert top.best_bid == D(99_900)
        assert top.best_ask == D(100_100)
        assert top.mid_price == D(100_000)

    def test_flat_position_quotes_both_sides(
        self, btc_market: MarketState, fees: FeeSchedule
    ) -> None:
        generated = MarketMakerGenerator(16, _mm_config(post_only=True)).generate(btc_market, fees)

        bid, ask = generated.orders
        assert bid.order_type is OrderType.OPEN_LONG
        assert bid.price == 999_000
        assert ask.order_type is OrderType.OPEN_SHORT
        assert ask.price == 1_001_000
        assert bid.lot == ask.lot == 100
        assert bid.leverage == 500
        assert bid.post_only and ask.post_only
        assert D(generated.metrics["bid_price"]) == D(99_900)

    def test_max_long_stops_bidding_and_skews_down(
        self, btc_market: MarketState, fees: FeeSchedule
    ) -> None:
        gen = MarketMakerGenerator(16, _mm_config(), position_size=D("0.01"))

        (ask,) = gen.generate(btc_market, fees).orders

        assert ask.order_type is OrderType.OPEN_SHORT
        assert ask.price == 1_000_500

    def test_max_short_stops_asking_and_skews_up(
        self, btc_market: MarketState, fees: FeeSchedule
    ) -> None:
        gen = MarketMakerGenerator(16, _mm_config(), position_size=D("-0.01"))

        (bid,) = gen.generate(btc_market, fees).orders

        assert bid.order_type is OrderType.OPEN_LONG
        assert bid.price == 999_500


class TestStrategyConfig:
    def test_invalid_grid_params(self) -> None:
        with pytest.raises(ValueError, match="spacing"):
            _grid_config(spacing=D(0))
        with pytest.raises(ValueError, match="levels"):
            _grid_config(levels=-1)

    def test_from_dict_grid(self) -> None:
        config = StrategyBatchConfig.from_dict(
            {
                "strategy": "grid",
                "perp_id": 16,
                "grid": {"levels": 2, "spacing": 50, "order_size": "0.01", "leverage": 3},
            }
        )

        assert config.strategy_type is StrategyType.GRID
        assert config.grid is not None
        assert config.grid.spacing == D(50)
        assert isinstance(config.build_generator(), GridGenerator)

    def test_from_dict_mm_alias_key(self) -> None:
        config = StrategyBatchConfig.from_dict(
            {
                "strategy_type": "MM",
                "perp_id": 32,
                "mm": {"order_size": 1, "spread_percent": "0.002", "max_position": 5},
            }
        )

        assert config.strategy_type is StrategyType.MARKET_MAKER
        assert isinstance(config.build_generator(), MarketMakerGenerator)

    @pytest.mark.parametrize(
        "data",
        [
            {"strategy": "twap", "perp_id": 16},
            {"strategy": "grid"},
            {"strategy": "grid", "perp_id": 16},
            {"strategy": "grid", "perp_id": 16, "grid": {"levels": 2, "spacing": "abc"}},
            {
                "strategy": "grid",
                "perp_id": 16,
                "grid": {"spacing": 1, "order_size": 1, "post_only": "maybe"},
            },
        ],
    )
    def test_from_dict_rejects(self, data: dict[str, object]) -> None:
        with pytest.raises(ConfigError):
            StrategyBatchConfig.from_dict(data)

    def test_to_dict_round_trips(self) -> None:
        config = StrategyBatchConfig(StrategyType.GRID, 16, grid=_grid_config())
        assert StrategyBatchConfig.from_dict(config.to_dict()) == config


class TestLoadStrategyConfig:
    def test_loads_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "grid.yaml"
        path.write_text(
            "strategy: grid\n"
            "perp_id: 16\n"
            "grid:\n"
            "  levels: 3\n"
            "  spacing: 100\n"
            "  order_size: 0.001\n"
            "  leverage: 10\n"
            "  post_only: true\n"
        )

        config = load_strategy_config(path)

        assert config.grid is not None
        assert config.grid.order_size == D("0.001")
        assert config.grid.post_only is True

    def test_quoted_false_post_only(self, tmp_path: Path) -> None:
        path = tmp_path / "mm.yaml"
        path.write_text(
            "strategy: mm\n"
            "perp_id: 32\n"
            "mm:\n"
            "  order_size: 1\n"
            "  spread_percent: 0.002\n"
            "  max_position: 5\n"
            "  post_only: \"false\"\n"
        )

        config = load_strategy_config(path)

        assert config.mm is not None
        assert config.mm.post_only is False

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="cannot load"):
            load_strategy_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("strategy: [grid\n")
        with pytest.raises(ConfigError, match="cannot load"):
            load_strategy_config(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- grid\n- mm\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_strategy_config(path)
