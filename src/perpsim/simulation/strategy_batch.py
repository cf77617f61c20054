"""Strategy batch simulation on a fork.

Runs a generator's whole order list as one ``execOrders`` call with
revertOnFail=False on a fresh fork, then classifies each order from the
event stream.

Event-to-order mapping: orders execute sequentially inside the batch, so
their events never interleave. Each OrderRequest opens a group;
MakerOrderFilled events add matches to the open group; OrderPlaced marks
it resting with its order id. Status per group: resting if placed (even
after a partial fill), else filled if matched, else failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import TYPE_CHECKING, Any

from perpsim.abi import EXEC_ORDERS
from perpsim.core import OrderStatus, OrderType, perp_name
from perpsim.errors import CallReverted, ForkUnavailable, NoOrdersGenerated, SimulationError
from perpsim.events import EventDecoder
from perpsim.fixed_point import lns_to_lot
from perpsim.ledger.client import TxRequest, Web3LedgerClient
from perpsim.ledger.fork import AnvilForkManager, fork_session, is_fork_tooling_installed
from perpsim.simulation.forensics import volume_weighted_fill_price
from perpsim.snapshot import Snapshotter
from perpsim.types import AccountSnapshot, MatchRecord, OrderOutcome

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from perpsim.config import EnvConfig
    from perpsim.core import StrategyType
    from perpsim.ledger.client import LedgerClient
    from perpsim.ledger.fork import ForkManager
    from perpsim.strategies.base import StrategyGenerator
    from perpsim.strategies.config import StrategyBatchConfig
    from perpsim.types import DomainEvent, FeeSchedule, MarketState, OrderDescriptor

logger = logging.getLogger(__name__)

# 100 native units (1e20 wei) for gas on the fork
FORK_GAS_FUNDING_WEI = 0x56BC75E2D63100000


# --- Event-to-order mapping ---


@dataclass
class _Group:
    index: int
    request: DomainEvent
    matches: list[MatchRecord] = field(default_factory=list)
    resting_order_id: int | None = None

    @property
    def status(self) -> OrderStatus:
        if self.resting_order_id is not None:
            return OrderStatus.RESTING
        if self.matches:
            return OrderStatus.FILLED
        return OrderStatus.FAILED


def _outcome(
    group: _Group, orders: Sequence[OrderDescriptor], price_decimals: int
) -> OrderOutcome:
    if group.index < len(orders):
        od = orders[group.index]
        order_type, price, lot = od.order_type, od.price, od.lot
    else:
        a = group.request.args
        order_type = OrderType(int(a["orderType"]))
        price = int(a["pricePNS"])
        lot = int(a["lotLNS"])
    return OrderOutcome(
        index=group.index,
        order_type=order_type,
        price=price,
        lot=lot,
        status=group.status,
        matches=list(group.matches),
        fill_price=volume_weighted_fill_price(group.matches, price_decimals),
        total_fees=sum(m.fee for m in group.matches),
        resting_order_id=group.resting_order_id,
    )


def map_events_to_outcomes(
    events: Sequence[DomainEvent],
    orders: Sequence[OrderDescriptor],
    price_decimals: int,
) -> list[OrderOutcome]:
    """Classify each order of a batch from its event stream.

    Exactly one outcome per OrderRequest event. Events before the first
    OrderRequest are ignored. When a group has no matching submitted
    order, its fields come from the OrderRequest args.
    """
    outcomes: list[OrderOutcome] = []
    current: _Group | None = None
    index = -1

    for event in events:
        if event.name == "OrderRequest":
            if current is not None:
                outcomes.append(_outcome(current, orders, price_decimals))
            index += 1
            current = _Group(index=index, request=event)
        elif current is None:
            continue
        elif event.name == "MakerOrderFilled":
            current.matches.append(MatchRecord.from_event(event))
        elif event.name == "OrderPlaced":
            current.resting_order_id = int(event.args["orderId"])

    if current is not None:
        outcomes.append(_outcome(current, orders, price_decimals))
    return outcomes


def _failed_outcomes(orders: Sequence[OrderDescriptor]) -> list[OrderOutcome]:
    return [
        OrderOutcome(
            index=i,
            order_type=o.order_type,
            price=o.price,
            lot=o.lot,
            status=OrderStatus.FAILED,
        )
        for i, o in enumerate(orders)
    ]


# --- Result ---


@dataclass(frozen=True)
class StrategyBatchResult:
    """Batch execution outcome with per-order classification."""

    strategy_type: StrategyType
    perp_id: int
    perp_name: str | None
    market: MarketState
    fees: FeeSchedule
    mid_price: Decimal
    orders: list[OrderDescriptor]
    outcomes: list[OrderOutcome]
    pre_state: AccountSnapshot
    post_state: AccountSnapshot
    tx_hash: str | None
    batch_success: bool
    gas_used: int
    gas_price: int
    events: list[DomainEvent]
    metrics: dict[str, Any] = field(default_factory=dict)
    revert_reason: str | None = None
    total_filled_lots: Decimal = Decimal(0)

    @property
    def total_orders(self) -> int:
        return len(self.orders)

    def _count(self, status: OrderStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def filled_orders(self) -> int:
        return self._count(OrderStatus.FILLED)

    @property
    def resting_orders(self) -> int:
        return self._count(OrderStatus.RESTING)

    @property
    def failed_orders(self) -> int:
        return self._count(OrderStatus.FAILED)

    @property
    def total_fees(self) -> int:
        return sum(o.total_fees for o in self.outcomes)

    @property
    def gas_cost(self) -> int:
        return self.gas_used * self.gas_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_type": self.strategy_type.value,
            "perp_id": self.perp_id,
            "perp_name": self.perp_name,
            "market": self.market.to_dict(),
            "fees": self.fees.to_dict(),
            "mid_price": str(self.mid_price),
            "orders": [o.to_dict() for o in self.orders],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "total_orders": self.total_orders,
            "filled_orders": self.filled_orders,
            "resting_orders": self.resting_orders,
            "failed_orders": self.failed_orders,
            "total_filled_lots": str(self.total_filled_lots),
            "total_fees": self.total_fees,
            "pre_state": self.pre_state.to_dict(),
            "post_state": self.post_state.to_dict(),
            "tx_hash": self.tx_hash,
            "batch_success": self.batch_success,
            "revert_reason": self.revert_reason,
            "gas_used": self.gas_used,
            "gas_price": self.gas_price,
            "gas_cost": self.gas_cost,
            "events": [e.to_dict() for e in self.events],
            "metrics": dict(self.metrics),
        }


# --- Simulator ---


class StrategyBatchSimulator:
    """Runs strategy order batches on disposable forks.

    Args:
        config: Engine configuration
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

    def run(
        self,
        strategy_config: StrategyBatchConfig,
        generator: StrategyGenerator | None = None,
    ) -> StrategyBatchResult:
        subject = self._config.subject_account
        exchange = self._config.chain.exchange_address
        perp_id = strategy_config.perp_id
        generator = generator or strategy_config.build_generator()

        if not self._tooling_check():
            raise ForkUnavailable(self._config.fork.binary)

        with fork_session(self._fork_manager, self._config.chain.rpc_url) as handle:
            fork = self._client_factory(handle.endpoint_url)
            snap = Snapshotter(fork, exchange)

            market = snap.market(perp_id)
            fees = snap.fees(perp_id)

            try:
                pre_state = snap.account(subject, perp_id)
            except SimulationError as e:
                logger.warning(
                    "STRATEGY_PRE_SNAPSHOT_FAILED",
                    extra={"account": subject, "error": str(e)},
                )
                pre_state = AccountSnapshot.empty()

            generated = generator.generate(market, fees)
            orders = list(generated.orders)
            if not orders:
                raise NoOrdersGenerated(strategy_config.strategy_type.value)

            self._fund_contract_subject(fork, subject)

            tx = TxRequest(
                sender=subject,
                to=exchange,
                data=EXEC_ORDERS.encode_call([o.as_abi_tuple() for o in orders], False),
            )
            logger.info(
                "STRATEGY_BATCH_SUBMIT",
                extra={
                    "strategy": strategy_config.strategy_type.value,
                    "perp_id": perp_id,
                    "orders": len(orders),
                },
            )

            tx_hash: str | None = None
            batch_success = False
            revert_reason: str | None = None
            gas_used = 0
            gas_price = 0
            events: list[DomainEvent] = []
            try:
                tx_hash = fork.send_transaction(tx)
                fork.mine()
                receipt = fork.wait_for_receipt(tx_hash)
                batch_success = receipt.success
                gas_used = receipt.gas_used
                gas_price = receipt.effective_gas_price
                events = self._decoder.decode(receipt.logs)
            except CallReverted as e:
                revert_reason = e.reason
                logger.warning(
                    "STRATEGY_BATCH_REVERTED",
                    extra={"perp_id": perp_id, "reason": e.reason},
                )

            try:
                post_state = snap.account(subject, perp_id)
            except SimulationError as e:
                logger.warning(
                    "STRATEGY_POST_SNAPSHOT_FAILED",
                    extra={"account": subject, "error": str(e)},
                )
                post_state = pre_state

        if batch_success:
            outcomes = map_events_to_outcomes(events, orders, market.price_decimals)
        else:
            outcomes = _failed_outcomes(orders)

        filled_lns = sum(m.lot for o in outcomes for m in o.matches)

        return StrategyBatchResult(
            strategy_type=strategy_config.strategy_type,
            perp_id=perp_id,
            perp_name=perp_name(perp_id, market.symbol or None),
            market=market,
            fees=fees,
            mid_price=market.mid_price(),
            orders=orders,
            outcomes=outcomes,
            pre_state=pre_state,
            post_state=post_state,
            tx_hash=tx_hash,
            batch_success=batch_success,
            gas_used=gas_used,
            gas_price=gas_price,
            events=events,
            metrics=dict(generated.metrics),
            revert_reason=revert_reason,
            total_filled_lots=lns_to_lot(filled_lns, market.lot_decimals),
        )

    def _fund_contract_subject(self, fork: LedgerClient, subject: str) -> None:
        """Give a contract subject gas money on the fork if it has none."""
        if not fork.get_code(subject):
            return
        if fork.get_balance(subject) > 0:
            return
        fork.set_balance(subject, FORK_GAS_FUNDING_WEI)
        logger.info("STRATEGY_SUBJECT_FUNDED", extra={"account": subject})


def run_strategy_batch(
    env_config: EnvConfig,
    strategy_config: StrategyBatchConfig,
    *,
    fork_manager: ForkManager | None = None,
    client_factory: Callable[[str], LedgerClient] | None = None,
    tooling_check: Callable[[], bool] | None = None,
) -> StrategyBatchResult:
    """Run one strategy batch with the given configuration."""
    simulator = StrategyBatchSimulator(
        env_config,
        fork_manager=fork_manager,
        client_factory=client_factory,
        tooling_check=tooling_check,
    )
    return simulator.run(strategy_config)
