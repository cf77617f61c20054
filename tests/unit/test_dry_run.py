"""Tests for perpsim.simulation.dry_run.

Covers:
- Estimate step: success decodes the order signature, reverts are classified.
- Fork step: pre/post snapshots and events; skipped or degraded, never fatal.
"""

from __future__ import annotations

from dataclasses import replace

import pytest
from fakes import (
    TRADER,
    FakeForkManager,
    FakeLedgerClient,
    account_info,
    client_factory,
    encode_output,
    make_log,
    order_placed_args,
    order_request_args,
    receipt,
)

from perpsim.abi import EXEC_ORDER, GET_ACCOUNT_BY_ADDR, ORDER_PLACED, ORDER_REQUEST
from perpsim.config import EnvConfig
from perpsim.core import OrderType
from perpsim.errors import CallReverted, ForkStartTimeout, LedgerTransportError
from perpsim.simulation.dry_run import DryRunSimulator, dry_run
from perpsim.types import OrderDescriptor

ORDER = OrderDescriptor(
    perp_id=16,
    order_type=OrderType.OPEN_LONG,
    price=999_000,
    lot=100,
    leverage=1000,
    post_only=True,
)


@pytest.fixture
def accepting_live(live_client: FakeLedgerClient) -> FakeLedgerClient:
    live_client.answer(EXEC_ORDER, encode_output(EXEC_ORDER, (16, 42)))
    return live_client


@pytest.fixture
def ready_fork(fork_client: FakeLedgerClient) -> FakeLedgerClient:
    fork_client.install_exchange(
        account=[account_info(7, balance=5_000_000), account_info(7, balance=4_900_000)]
    )
    fork_client.receipt = receipt(
        [
            make_log(ORDER_REQUEST, order_request_args(price=999_000)),
            make_log(ORDER_PLACED, order_placed_args(order_id=42)),
        ]
    )
    return fork_client


class TestEstimate:
    def test_accepted_order(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live),
            tooling_check=lambda: False,
        )

        assert result.simulate.success is True
        assert result.simulate.perp_id == 16
        assert result.simulate.order_id == 42
        assert result.simulate.gas_estimate == 210_000
        assert result.simulate.revert_reason is None
        (tx,) = accepting_live.ops("call")
        assert tx.sender == TRADER
        assert tx.to == env_config.chain.exchange_address
        assert EXEC_ORDER.decode_input(tx.data)["orderDesc"]["postOnly"] is True

    def test_post_only_revert_is_classified(
        self,
        env_config: EnvConfig,
        live_client: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        live_client.answer(EXEC_ORDER, CallReverted("PostOnlyFailed"))

        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(live_client),
            tooling_check=lambda: True,
        )

        assert result.simulate.success is False
        assert result.simulate.revert_reason == "PostOnlyFailed"
        assert result.simulate.failure is not None
        assert result.simulate.failure.is_matching_failure is True
        assert result.fork is None
        assert fork_manager.starts == []

    def test_gas_estimate_failure_is_zero(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        accepting_live.estimate = LedgerTransportError("estimate_gas")

        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live),
            tooling_check=lambda: False,
        )

        assert result.simulate.success is True
        assert result.simulate.gas_estimate == 0

    def test_delegated_account_is_the_sender(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        proxy = "0x" + "b2" * 20
        config = replace(env_config, delegated_account=proxy)

        DryRunSimulator(
            config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live),
            tooling_check=lambda: False,
        ).run(ORDER)

        (tx,) = accepting_live.ops("call")
        assert tx.sender == proxy


class TestForkStep:
    def test_executes_on_fork(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        ready_fork: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live, ready_fork),
            tooling_check=lambda: True,
        )

        fork = result.fork
        assert fork is not None
        assert fork.success is True
        assert fork.pre_state.balance == 5_000_000
        assert fork.post_state.balance == 4_900_000
        assert [e.name for e in fork.events] == ["OrderRequest", "OrderPlaced"]
        assert fork.gas_cost == 300_000
        assert fork.market is not None
        assert fork.market.symbol == "BTC"
        assert fork_manager.starts == [(env_config.chain.rpc_url, None)]
        assert len(fork_manager.stops) == 1
        (sent,) = ready_fork.ops("send_transaction")
        assert sent.sender == TRADER
        assert ready_fork.ops("mine") == [None]

    def test_skipped_without_tooling(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live),
            tooling_check=lambda: False,
        )

        assert result.fork is None
        assert fork_manager.starts == []

    def test_disabled_by_config(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        config = replace(env_config, fork=replace(env_config.fork, dry_run_fork=False))
        checks: list[bool] = []

        result = dry_run(
            ORDER,
            config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live),
            tooling_check=lambda: checks.append(True) or True,
        )

        assert result.fork is None
        assert checks == []
        assert fork_manager.starts == []

    def test_fork_start_failure_degrades(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        fork_manager.start_error = ForkStartTimeout(5_000, "endpoint not reachable")

        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live),
            tooling_check=lambda: True,
        )

        assert result.simulate.success is True
        assert result.fork is None

    def test_fork_snapshot_failure_degrades_and_stops_fork(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        ready_fork: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        ready_fork.answer(GET_ACCOUNT_BY_ADDR, LedgerTransportError("call"))

        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live, ready_fork),
            tooling_check=lambda: True,
        )

        assert result.simulate.success is True
        assert result.fork is None
        assert len(fork_manager.stops) == 1

    def test_undecodable_fork_read_degrades(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        ready_fork: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        ready_fork.answer(GET_ACCOUNT_BY_ADDR, b"")

        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live, ready_fork),
            tooling_check=lambda: True,
        )

        assert result.simulate.success is True
        assert result.simulate.order_id == 42
        assert result.fork is None
        assert len(fork_manager.stops) == 1

    def test_fork_send_failure_degrades(
        self,
        env_config: EnvConfig,
        accepting_live: FakeLedgerClient,
        ready_fork: FakeLedgerClient,
        fork_manager: FakeForkManager,
    ) -> None:
        ready_fork.send_error = LedgerTransportError("send_transaction")

        result = dry_run(
            ORDER,
            env_config,
            fork_manager=fork_manager,
            client_factory=client_factory(accepting_live, ready_fork),
            tooling_check=lambda: True,
        )

        assert result.simulate.success is True
        assert result.fork is None
