"""Single-order dry run.

Two steps:
1. Estimate: ``eth_call`` of execOrder from the subject account against
   the live endpoint (no side effects). Yields success, the assigned
   (perpId, orderId) and a best-effort gas estimate, or a revert reason
   with its classification.
2. Fork (best-effort): only when the estimate succeeded, fork tooling is
   installed and the fork step is enabled. Executes the order for real on
   a fork and captures pre/post snapshots, events and market state.
   Any failure here leaves ``fork`` as None; it never fails the estimate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from eth_abi.exceptions import DecodingError

from perpsim.abi import EXEC_ORDER
from perpsim.errors import CallReverted, SimulationError
from perpsim.events import EventDecoder
from perpsim.ledger.client import TxRequest, Web3LedgerClient
from perpsim.ledger.fork import AnvilForkManager, fork_session, is_fork_tooling_installed
from perpsim.simulation.forensics import FailureAnalysis, map_revert_reason
from perpsim.snapshot import Snapshotter

if TYPE_CHECKING:
    from collections.abc import Callable

    from perpsim.config import EnvConfig
    from perpsim.ledger.client import LedgerClient
    from perpsim.ledger.fork import ForkManager
    from perpsim.types import AccountSnapshot, DomainEvent, MarketState, OrderDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulateResult:
    """Outcome of the side-effect-free estimate call."""

    success: bool
    perp_id: int = 0
    order_id: int = 0
    gas_estimate: int = 0
    revert_reason: str | None = None
    failure: FailureAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "perp_id": self.perp_id,
            "order_id": self.order_id,
            "gas_estimate": self.gas_estimate,
            "revert_reason": self.revert_reason,
            "failure": None if self.failure is None else self.failure.to_dict(),
        }


@dataclass(frozen=True)
class ForkExecution:
    """Order executed on a fork."""

    tx_hash: str
    gas_used: int
    gas_price: int
    pre_state: AccountSnapshot
    post_state: AccountSnapshot
    events: list[DomainEvent]
    market: MarketState | None = None
    success: bool = True

    @property
    def gas_cost(self) -> int:
        return self.gas_used * self.gas_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "success": self.success,
            "gas_used": self.gas_used,
            "gas_price": self.gas_price,
            "gas_cost": self.gas_cost,
            "pre_state": self.pre_state.to_dict(),
            "post_state": self.post_state.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "market": None if self.market is None else self.market.to_dict(),
        }


@dataclass(frozen=True)
class DryRunResult:
    simulate: SimulateResult
    fork: ForkExecution | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "simulate": self.simulate.to_dict(),
            "fork": None if self.fork is None else self.fork.to_dict(),
        }


class DryRunSimulator:
    """Dry-runs single orders for one configured account.

    Args:
        config: Engine configuration (endpoint, exchange, account, fork settings)
        fork_manager: Fork lifecycle manager (default: local anvil)
        client_factory: Endpoint URL -> LedgerClient (default: web3.py)
        tooling_check: Fork tooling availability probe
    """

    def __init__(
        self,
        config: EnvConfig,
        *,
        fork_manager: ForkManager | None = None,
        client_factory: Callable[[str], LedgerClient] | None = None,
        tooling_check: Callable[[], bool] | None = None,
        decoder: EventDecoder | None = None,
    ) -> None:
        self._config = config
        self._fork_manager = fork_manager or AnvilForkManager(
            binary=config.fork.binary, start_timeout_ms=config.fork.start_timeout_ms
        )
        self._client_factory = client_factory or partial(
            Web3LedgerClient, timeout_s=config.chain.rpc_timeout_s
        )
        self._tooling_check = tooling_check or partial(
            is_fork_tooling_installed, config.fork.binary
        )
        self._decoder = decoder or EventDecoder()

    def run(self, order: OrderDescriptor) -> DryRunResult:
        subject = self._config.subject_account
        exchange = self._config.chain.exchange_address
        tx = TxRequest(sender=subject, to=exchange, data=EXEC_ORDER.encode_call(order.as_abi_tuple()))

        live = self._client_factory(self._config.chain.rpc_url)
        simulate = self._estimate(live, tx)

        fork: ForkExecution | None = None
        if simulate.success and self._config.fork.dry_run_fork:
            if self._tooling_check():
                try:
                    fork = self._execute_on_fork(tx, order.perp_id)
                except (SimulationError, DecodingError, ValueError, KeyError) as e:
                    logger.warning(
                        "DRY_RUN_FORK_DEGRADED",
                        extra={"perp_id": order.perp_id, "error": str(e)},
                    )
            else:
                logger.info("DRY_RUN_FORK_SKIPPED", extra={"reason": "tooling_not_installed"})

        return DryRunResult(simulate=simulate, fork=fork)

    def _estimate(self, live: LedgerClient, tx: TxRequest) -> SimulateResult:
        try:
            raw = live.call(tx)
        except CallReverted as e:
            return SimulateResult(
                success=False,
                revert_reason=e.reason,
                failure=map_revert_reason(e.reason),
            )

        signature = EXEC_ORDER.decode_output(raw)["signature"]

        gas_estimate = 0
        try:
            gas_estimate = live.estimate_gas(tx)
        except SimulationError as e:
            logger.info("DRY_RUN_GAS_ESTIMATE_FAILED", extra={"error": str(e)})

        return SimulateResult(
            success=True,
            perp_id=int(signature["perpId"]),
            order_id=int(signature["orderId"]),
            gas_estimate=gas_estimate,
        )

    def _execute_on_fork(self, tx: TxRequest, perp_id: int) -> ForkExecution:
        with fork_session(self._fork_manager, self._config.chain.rpc_url) as handle:
            fork = self._client_factory(handle.endpoint_url)
            snap = Snapshotter(fork, tx.to)

            pre_state = snap.account(tx.sender, perp_id)
            tx_hash = fork.send_transaction(tx)
            fork.mine()
            receipt = fork.wait_for_receipt(tx_hash)
            post_state = snap.account(tx.sender, perp_id)
            events = self._decoder.decode(receipt.logs)

            market: MarketState | None = None
            try:
                market = snap.market(perp_id)
            except SimulationError as e:
                logger.info("DRY_RUN_MARKET_READ_FAILED", extra={"error": str(e)})

        return ForkExecution(
            tx_hash=receipt.tx_hash,
            gas_used=receipt.gas_used,
            gas_price=receipt.effective_gas_price,
            pre_state=pre_state,
            post_state=post_state,
            events=events,
            market=market,
            success=receipt.success,
        )


def dry_run(
    order: OrderDescriptor,
    config: EnvConfig,
    *,
    fork_manager: ForkManager | None = None,
    client_factory: Callable[[str], LedgerClient] | None = None,
    tooling_check: Callable[[], bool] | None = None,
) -> DryRunResult:
    """Dry-run one order with the given configuration."""
    simulator = DryRunSimulator(
        config,
        fork_manager=fork_manager,
        client_factory=client_factory,
        tooling_check=tooling_check,
    )
    return simulator.run(order)
