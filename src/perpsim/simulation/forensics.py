"""Transaction forensics: replay a historical transaction on a fork.

Workflow (one fork per analysis, always stopped):
1. Fetch the transaction and receipt from the live endpoint.
2. Classify the target: the exchange itself, or an account proxy
   (answers ``exchange()``). The subject account is the proxy when
   delegated, else the sender.
3. Decode calldata; the perpetual id comes from the order(s), else from
   the first OrderRequest event in the live receipt.
4. Decode live receipt events.
5. Fork at ``block_number - 1``.
6. On the fork: read market state (best-effort), pre-snapshot, probe the
   call to capture a revert reason, replay by impersonation with the
   original gas limit, mine, decode replay events, post-snapshot.
7. Match analysis: matches, volume-weighted fill price, filled lots.
8. Failure analysis for live calls that failed.

A replay that reverts or fails on the fork is a result (replay_success=False,
post_state equal to pre_state), never an exception.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import TYPE_CHECKING, Any

from eth_abi.exceptions import DecodingError

from perpsim.abi import EXEC_ORDER, EXEC_ORDERS, FUNCTIONS_BY_SELECTOR, PROXY_EXCHANGE
from perpsim.config import ForkSettings
from perpsim.core import perp_name
from perpsim.errors import CallReverted, LedgerTransportError, SimulationError
from perpsim.events import EventDecoder
from perpsim.fixed_point import lns_to_lot, pns_to_price
from perpsim.ledger.client import TxRequest, Web3LedgerClient
from perpsim.ledger.fork import AnvilForkManager, fork_session
from perpsim.snapshot import Snapshotter
from perpsim.types import MatchRecord, OrderDescriptor

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from perpsim.ledger.client import LedgerClient
    from perpsim.ledger.fork import ForkManager
    from perpsim.types import AccountSnapshot, DomainEvent, MarketState

logger = logging.getLogger(__name__)

# Used when the market could not be read on the fork
FALLBACK_PRICE_DECIMALS = 1
FALLBACK_LOT_DECIMALS = 5

UNKNOWN_REVERT = "Unknown revert"


# --- Revert reason classification ---


@dataclass(frozen=True)
class FailureAnalysis:
    """Human explanation of a revert.

    Attributes:
        raw_reason: Reason as reported by the ledger
        explanation: What went wrong
        suggestion: How to fix it, when known
        is_matching_failure: True for order-book-condition failures
            (post-only crossed, fill-or-kill short)
    """

    raw_reason: str
    explanation: str
    suggestion: str | None = None
    is_matching_failure: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_reason": self.raw_reason,
            "explanation": self.explanation,
            "suggestion": self.suggestion,
            "is_matching_failure": self.is_matching_failure,
        }


@dataclass(frozen=True)
class _RevertRule:
    pattern: re.Pattern[str]
    explanation: str
    suggestion: str | None
    is_matching_failure: bool


# Order matters: first match wins
REVERT_RULES: tuple[_RevertRule, ...] = (
    _RevertRule(
        re.compile(r"InsufficientBalance", re.IGNORECASE),
        "Not enough collateral for this trade",
        "Deposit more collateral before trading",
        False,
    ),
    _RevertRule(
        re.compile(r"PostOnlyFailed|post[- ]?only", re.IGNORECASE),
        "Post-only order would have matched immediately",
        "Remove the post-only flag or adjust your limit price",
        True,
    ),
    _RevertRule(
        re.compile(r"FillOrKillFailed|fill[- ]?or[- ]?kill", re.IGNORECASE),
        "Order couldn't be completely filled",
        "Use IOC instead, or increase your limit price for buys / decrease for sells",
        True,
    ),
    _RevertRule(
        re.compile(r"OrderExpired", re.IGNORECASE),
        "Order expired before it could be executed",
        "Set a later expiry block or use 0 for no expiry",
        False,
    ),
    _RevertRule(
        re.compile(r"InvalidOrder", re.IGNORECASE),
        "The order parameters are invalid",
        None,
        False,
    ),
    _RevertRule(
        re.compile(r"Paused", re.IGNORECASE),
        "The perpetual market is currently paused",
        "Wait for the market to be unpaused",
        False,
    ),
)


def map_revert_reason(reason: str) -> FailureAnalysis:
    """Classify a revert reason with the ordered rule table."""
    for rule in REVERT_RULES:
        if rule.pattern.search(reason):
            return FailureAnalysis(
                raw_reason=reason,
                explanation=rule.explanation,
                suggestion=rule.suggestion,
                is_matching_failure=rule.is_matching_failure,
            )
    return FailureAnalysis(
        raw_reason=reason,
        explanation=f"Transaction reverted with: {reason}",
    )


# --- Calldata decoding ---


@dataclass(frozen=True)
class DecodedCall:
    """Exchange call decoded from transaction input."""

    function_name: str
    args: dict[str, Any] = field(default_factory=dict, hash=False)
    order: OrderDescriptor | None = None
    orders: tuple[OrderDescriptor, ...] | None = None

    @property
    def perp_id(self) -> int | None:
        if self.order is not None:
            return self.order.perp_id
        if self.orders:
            return self.orders[0].perp_id
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "function_name": self.function_name,
            "args": self.args,
            "order": None if self.order is None else self.order.to_dict(),
            "orders": None if self.orders is None else [o.to_dict() for o in self.orders],
        }


def _order_from_struct(d: dict[str, Any]) -> OrderDescriptor:
    return OrderDescriptor.from_abi_tuple(
        (
            d["orderDescId"],
            d["perpId"],
            d["orderType"],
            d["orderId"],
            d["pricePNS"],
            d["lotLNS"],
            d["expiryBlock"],
            d["postOnly"],
            d["fillOrKill"],
            d["immediateOrCancel"],
            d["maxMatches"],
            d["leverageHdths"],
            d["lastExecutionBlock"],
            d["amountCNS"],
        )
    )


def decode_exchange_calldata(data: bytes | str) -> DecodedCall | None:
    """Decode exchange calldata; None when it matches no known function."""
    if isinstance(data, str):
        try:
            data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        except ValueError:
            return None
    if len(data) < 4:
        return None
    fn = FUNCTIONS_BY_SELECTOR.get(data[:4])
    if fn is None:
        return None
    try:
        args = fn.decode_input(data)
        order = _order_from_struct(args["orderDesc"]) if fn is EXEC_ORDER else None
        orders = (
            tuple(_order_from_struct(d) for d in args["orderDescs"]) if fn is EXEC_ORDERS else None
        )
    except (DecodingError, ValueError, OverflowError):
        return None
    return DecodedCall(function_name=fn.name, args=args, order=order, orders=orders)


# --- Match analysis ---


def extract_matches(events: Iterable[DomainEvent]) -> list[MatchRecord]:
    return [MatchRecord.from_event(e) for e in events if e.name == "MakerOrderFilled"]


def volume_weighted_fill_price(
    matches: Iterable[MatchRecord], price_decimals: int
) -> Decimal | None:
    """Σ(price·lot)/Σ(lot), floored in PNS, then scaled to a human price.

    None when there are no matches or the total lot is zero.
    """
    total_value = 0
    total_lots = 0
    for m in matches:
        total_value += m.price * m.lot
        total_lots += m.lot
    if total_lots == 0:
        return None
    return pns_to_price(total_value // total_lots, price_decimals)


# --- Result ---


@dataclass(frozen=True)
class ForensicsResult:
    """Everything learned about one historical transaction."""

    tx_hash: str
    block_number: int
    sender: str
    target: str | None
    is_delegated: bool
    subject_account: str
    decoded_input: DecodedCall | None
    original_success: bool
    original_events: list[DomainEvent]
    original_gas_used: int
    replay_success: bool
    replay_events: list[DomainEvent]
    pre_state: AccountSnapshot
    post_state: AccountSnapshot
    perp_id: int | None
    perp_name: str | None
    market: MarketState | None
    matches: list[MatchRecord]
    fill_price: Decimal | None
    total_filled_lots: Decimal | None
    failure: FailureAnalysis | None
    replay_revert_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "sender": self.sender,
            "target": self.target,
            "is_delegated": self.is_delegated,
            "subject_account": self.subject_account,
            "decoded_input": None if self.decoded_input is None else self.decoded_input.to_dict(),
            "original_success": self.original_success,
            "original_events": [e.to_dict() for e in self.original_events],
            "original_gas_used": self.original_gas_used,
            "replay_success": self.replay_success,
            "replay_events": [e.to_dict() for e in self.replay_events],
            "pre_state": self.pre_state.to_dict(),
            "post_state": self.post_state.to_dict(),
            "perp_id": self.perp_id,
            "perp_name": self.perp_name,
            "market": None if self.market is None else self.market.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "fill_price": None if self.fill_price is None else str(self.fill_price),
            "total_filled_lots": (
                None if self.total_filled_lots is None else str(self.total_filled_lots)
            ),
            "failure": None if self.failure is None else self.failure.to_dict(),
            "replay_revert_reason": self.replay_revert_reason,
        }


# --- Analyzer ---


def is_account_proxy(client: LedgerClient, address: str) -> bool:
    """True if ``address`` answers the account-proxy ``exchange()`` read."""
    tx = TxRequest(sender=address, to=address, data=PROXY_EXCHANGE.encode_call())
    try:
        raw = client.call(tx)
        PROXY_EXCHANGE.decode_output(raw)
    except (CallReverted, LedgerTransportError, DecodingError, ValueError):
        return False
    return True


def resolve_perp_name(perp_id: int | None, market: MarketState | None) -> str | None:
    if perp_id is None:
        return None
    return perp_name(perp_id, market.symbol if market is not None else None)


class ForensicsAnalyzer:
    """Replays historical transactions on disposable forks.

    Args:
        fork_manager: Fork lifecycle manager (default: local anvil built
            from ``fork_settings``)
        client_factory: Endpoint URL -> LedgerClient (default: web3.py)
        fork_settings: Fork tooling binary and start timeout
    """

    def __init__(
        self,
        *,
        fork_manager: ForkManager | None = None,
        client_factory: Callable[[str], LedgerClient] | None = None,
        decoder: EventDecoder | None = None,
        fork_settings: ForkSettings | None = None,
        rpc_timeout_s: int = 30,
    ) -> None:
        settings = fork_settings or ForkSettings()
        self._fork_manager = fork_manager or AnvilForkManager(
            binary=settings.binary, start_timeout_ms=settings.start_timeout_ms
        )
        self._client_factory = client_factory or partial(
            Web3LedgerClient, timeout_s=rpc_timeout_s
        )
        self._decoder = decoder or EventDecoder()

    def analyze(self, live_rpc_url: str, exchange_address: str, tx_hash: str) -> ForensicsResult:
        live = self._client_factory(live_rpc_url)
        tx = live.get_transaction(tx_hash)
        receipt = live.get_receipt(tx_hash)

        target = tx.to
        is_direct = target is not None and target.lower() == exchange_address.lower()
        is_delegated = (
            not is_direct and target is not None and is_account_proxy(live, target)
        )
        subject = target if is_delegated and target is not None else tx.sender

        decoded = decode_exchange_calldata(tx.input)
        original_events = self._decoder.decode(receipt.logs)
        original_success = receipt.success

        perp_id = decoded.perp_id if decoded is not None else None
        if perp_id is None:
            first_request = next((e for e in original_events if e.name == "OrderRequest"), None)
            if first_request is not None:
                perp_id = int(first_request.args["perpId"])

        logger.info(
            "FORENSICS_START",
            extra={
                "tx_hash": tx_hash,
                "block_number": tx.block_number,
                "is_delegated": is_delegated,
                "perp_id": perp_id,
            },
        )

        with fork_session(
            self._fork_manager, live_rpc_url, block_number=tx.block_number - 1
        ) as handle:
            fork = self._client_factory(handle.endpoint_url)
            snap = Snapshotter(fork, exchange_address)

            market: MarketState | None = None
            if perp_id is not None:
                try:
                    market = snap.market(perp_id)
                except (CallReverted, LedgerTransportError) as e:
                    logger.warning(
                        "FORENSICS_MARKET_READ_FAILED",
                        extra={"perp_id": perp_id, "error": str(e)},
                    )

            pre_state = snap.account(subject, perp_id or 0)
            post_state = pre_state

            replay_tx = TxRequest(
                sender=tx.sender,
                to=target or exchange_address,
                data=tx.input,
                value=tx.value,
                gas=tx.gas,
            )

            replay_revert_reason: str | None = None
            try:
                fork.call(replay_tx)
            except CallReverted as e:
                replay_revert_reason = e.reason
            except LedgerTransportError as e:
                logger.info("FORENSICS_PROBE_FAILED", extra={"tx_hash": tx_hash, "error": str(e)})

            replay_success = False
            replay_events: list[DomainEvent] = []
            try:
                replay_hash = fork.send_transaction(replay_tx)
                fork.mine()
                replay_receipt = fork.wait_for_receipt(replay_hash)
                replay_success = replay_receipt.success
                replay_events = self._decoder.decode(replay_receipt.logs)
                if replay_success:
                    post_state = snap.account(subject, perp_id or 0)
            except CallReverted as e:
                replay_success = False
                replay_revert_reason = replay_revert_reason or e.reason
                logger.info(
                    "FORENSICS_REPLAY_REVERTED",
                    extra={"tx_hash": tx_hash, "reason": e.reason},
                )
            except (SimulationError, DecodingError, ValueError) as e:
                replay_success = False
                post_state = pre_state
                logger.warning(
                    "FORENSICS_REPLAY_FAILED",
                    extra={"tx_hash": tx_hash, "error": str(e)},
                )

        matches = extract_matches(replay_events)
        price_decimals = market.price_decimals if market else FALLBACK_PRICE_DECIMALS
        lot_decimals = market.lot_decimals if market else FALLBACK_LOT_DECIMALS
        fill_price = volume_weighted_fill_price(matches, price_decimals)
        total_filled_lots = (
            lns_to_lot(sum(m.lot for m in matches), lot_decimals) if matches else None
        )

        failure: FailureAnalysis | None = None
        if not original_success:
            failure = map_revert_reason(replay_revert_reason or UNKNOWN_REVERT)

        return ForensicsResult(
            tx_hash=tx.tx_hash,
            block_number=tx.block_number,
            sender=tx.sender,
            target=target,
            is_delegated=is_delegated,
            subject_account=subject,
            decoded_input=decoded,
            original_success=original_success,
            original_events=original_events,
            original_gas_used=receipt.gas_used,
            replay_success=replay_success,
            replay_events=replay_events,
            pre_state=pre_state,
            post_state=post_state,
            perp_id=perp_id,
            perp_name=resolve_perp_name(perp_id, market),
            market=market,
            matches=matches,
            fill_price=fill_price,
            total_filled_lots=total_filled_lots,
            failure=failure,
            replay_revert_reason=replay_revert_reason,
        )


def analyze_transaction(
    live_rpc_url: str,
    exchange_address: str,
    tx_hash: str,
    *,
    fork_manager: ForkManager | None = None,
    client_factory: Callable[[str], LedgerClient] | None = None,
    fork_settings: ForkSettings | None = None,
) -> ForensicsResult:
    """Analyze one historical transaction."""
    analyzer = ForensicsAnalyzer(
        fork_manager=fork_manager,
        client_factory=client_factory,
        fork_settings=fork_settings,
    )
    return analyzer.analyze(live_rpc_url, exchange_address, tx_hash)
