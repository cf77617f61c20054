"""Tests for perpsim.core enums and perpsim.types value objects."""

from __future__ import annotations

from decimal import Decimal

import pytest

from perpsim.core import OrderType, PositionSide, perp_name
from perpsim.types import AccountSnapshot, DomainEvent, MarketState, MatchRecord, OrderDescriptor


class TestPositionSide:
    def test_raw_zero_is_long(self) -> None:
        side = PositionSide.from_raw(0)
        assert side is PositionSide.LONG
        assert side.is_long
        assert side.label == "long"

    def test_raw_one_is_short(self) -> None:
        side = PositionSide.from_raw(1)
        assert side is PositionSide.SHORT
        assert not side.is_long
        assert side.label == "short"

    def test_unknown_raw_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            PositionSide.from_raw(7)


class TestPerpName:
    def test_known_id(self) -> None:
        assert perp_name(16) == "BTC"
        assert perp_name(32) == "ETH"

    def test_unknown_id_uses_fallback(self) -> None:
        assert perp_name(999, "DOGE") == "DOGE"
        assert perp_name(999) is None


class TestOrderDescriptor:
    def test_abi_tuple_field_order(self) -> None:
        order = OrderDescriptor(
            perp_id=16,
            order_type=OrderType.OPEN_SHORT,
            price=1_000_000,
            lot=100,
            leverage=1000,
            post_only=True,
            order_desc_id=3,
        )
        t = order.as_abi_tuple()

        assert t[0] == 3  # orderDescId
        assert t[1] == 16  # perpId
        assert t[2] == 1  # orderType
        assert t[4] == 1_000_000  # pricePNS
        assert t[5] == 100  # lotLNS
        assert t[7] is True  # postOnly
        assert t[11] == 1000  # leverageHdths
        assert OrderDescriptor.from_abi_tuple(t) == order

    def test_to_dict_uses_type_name(self) -> None:
        order = OrderDescriptor(perp_id=16, order_type=OrderType.CANCEL, price=0, lot=0, order_id=9)
        d = order.to_dict()
        assert d["order_type"] == "CANCEL"
        assert d["order_id"] == 9


class TestMarketState:
    def test_mid_price_scales_mark(self, btc_market: MarketState) -> None:
        assert btc_market.mid_price() == Decimal("100000")

    def test_empty_book_sides(self, btc_market: MarketState) -> None:
        assert btc_market.best_bid() is None
        assert btc_market.best_ask() is None

    def test_book_offsets_from_base_price(self) -> None:
        market = MarketState(
            perp_id=16,
            name="Bitcoin",
            symbol="BTC",
            price_decimals=1,
            lot_decimals=5,
            mark_price=1_000_000,
            oracle_price=1_000_000,
            long_open_interest=0,
            short_open_interest=0,
            funding_rate_raw=0,
            paused=False,
            base_price=990_000,
            max_bid=9_000,
            min_ask=11_000,
        )
        assert market.best_bid() == Decimal("99900")
        assert market.best_ask() == Decimal("100100")


class TestSnapshots:
    def test_empty_account_keeps_native_balance(self) -> None:
        snap = AccountSnapshot.empty(native_balance=5)
        assert snap.account_id == 0
        assert snap.balance == 0
        assert snap.position is None
        assert snap.native_balance == 5

    def test_match_record_from_event(self) -> None:
        event = DomainEvent(
            name="MakerOrderFilled",
            args={"accountId": 4, "orderId": 8, "pricePNS": 1_000_100, "lotLNS": 50, "feeCNS": 3},
        )
        m = MatchRecord.from_event(event)
        assert (m.maker_account_id, m.maker_order_id, m.price, m.lot, m.fee) == (
            4,
            8,
            1_000_100,
            50,
            3,
        )
