"""Shared pytest fixtures for unit tests."""

from __future__ import annotations

import pytest
from fakes import EXCHANGE, FORK_URL, LIVE_URL, TRADER, FakeForkManager, FakeLedgerClient

from perpsim.config import ChainConfig, EnvConfig, ForkSettings
from perpsim.types import FeeSchedule, MarketState


@pytest.fixture
def env_config() -> EnvConfig:
    """Config for an EOA trader against the fake live endpoint."""
    return EnvConfig(
        chain=ChainConfig(rpc_url=LIVE_URL, exchange_address=EXCHANGE),
        account_address=TRADER,
        fork=ForkSettings(binary="anvil", start_timeout_ms=5_000, dry_run_fork=True),
    )


@pytest.fixture
def live_client() -> FakeLedgerClient:
    return FakeLedgerClient(endpoint_url=LIVE_URL)


@pytest.fixture
def fork_client() -> FakeLedgerClient:
    return FakeLedgerClient(endpoint_url=FORK_URL)


@pytest.fixture
def fork_manager() -> FakeForkManager:
    return FakeForkManager()


@pytest.fixture
def btc_market() -> MarketState:
    """BTC-like market: mark 100000.0 at 1 price decimal, 5 lot decimals."""
    return MarketState(
        perp_id=16,
        name="Bitcoin",
        symbol="BTC",
        price_decimals=1,
        lot_decimals=5,
        mark_price=1_000_000,
        oracle_price=1_000_000,
        long_open_interest=250_000,
        short_open_interest=150_000,
        funding_rate_raw=0,
        paused=False,
    )


@pytest.fixture
def fees() -> FeeSchedule:
    return FeeSchedule(taker_fee_per_100k=35, maker_fee_per_100k=10)
