"""Account, market and fee snapshots read from the exchange contract.

Reads are plain ``eth_call``s against whatever endpoint the client points
at (live or fork). Snapshots are immutable values; a workflow takes one
before and one after a mutating call.

Error contract:
- A read that reverts for an unregistered account yields an empty
  snapshot; a getPosition revert means "no position".
- Any transport failure or undecodable return data raises
  SnapshotReadError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from eth_abi.exceptions import DecodingError

from perpsim.abi import (
    GET_ACCOUNT_BY_ADDR,
    GET_MAKER_FEE,
    GET_PERPETUAL_INFO,
    GET_POSITION,
    GET_TAKER_FEE,
    FunctionSpec,
)
from perpsim.core import PositionSide
from perpsim.errors import CallReverted, LedgerTransportError, SnapshotReadError
from perpsim.ledger.client import TxRequest
from perpsim.types import AccountSnapshot, FeeSchedule, MarketState, PositionSnapshot

if TYPE_CHECKING:
    from perpsim.ledger.client import LedgerClient

logger = logging.getLogger(__name__)

# Reads need a sender; nothing is signed
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Snapshotter:
    """Read-only view of one exchange through one ledger client."""

    def __init__(self, client: LedgerClient, exchange_address: str) -> None:
        self._client = client
        self._exchange = exchange_address

    def _read(self, fn: FunctionSpec, *args: Any) -> dict[str, Any]:
        tx = TxRequest(sender=ZERO_ADDRESS, to=self._exchange, data=fn.encode_call(*args))
        try:
            raw = self._client.call(tx)
        except LedgerTransportError as e:
            if isinstance(e, SnapshotReadError):
                raise
            raise SnapshotReadError(fn.name, f"{fn.name} read failed: {e}") from e
        try:
            return fn.decode_output(raw)
        except (DecodingError, ValueError) as e:
            raise SnapshotReadError(fn.name, f"{fn.name} returned undecodable data: {e}") from e

    def _native_balance(self, address: str) -> int:
        try:
            return self._client.get_balance(address)
        except LedgerTransportError as e:
            raise SnapshotReadError("get_balance", f"balance read failed: {e}") from e

    def account(self, account: str, perp_id: int) -> AccountSnapshot:
        """Collateral, locked margin, position and native balance of ``account``."""
        native = self._native_balance(account)
        try:
            info = self._read(GET_ACCOUNT_BY_ADDR, account)["accountInfo"]
        except CallReverted:
            return AccountSnapshot.empty(native)

        account_id = int(info["accountId"])
        if account_id == 0:
            return AccountSnapshot.empty(native)

        position: PositionSnapshot | None = None
        mark_price: int | None = None
        try:
            out = self._read(GET_POSITION, perp_id, account_id)
        except CallReverted:
            out = None
        if out is not None:
            pos = out["positionInfo"]
            mark_price = int(out["markPricePNS"]) if out["markPriceValid"] else None
            if int(pos["lotLNS"]) > 0:
                position = PositionSnapshot(
                    side=PositionSide.from_raw(pos["positionType"]),
                    lot=int(pos["lotLNS"]),
                    entry_price=int(pos["pricePNS"]),
                    margin=int(pos["depositCNS"]),
                    unrealized_pnl=int(pos["pnlCNS"]),
                )

        return AccountSnapshot(
            account_id=account_id,
            balance=int(info["balanceCNS"]),
            locked_balance=int(info["lockedBalanceCNS"]),
            position=position,
            native_balance=native,
            mark_price=mark_price,
        )

    def market(self, perp_id: int) -> MarketState:
        info = self._read(GET_PERPETUAL_INFO, perp_id)["perpetualInfo"]
        return MarketState(
            perp_id=perp_id,
            name=str(info["name"]),
            symbol=str(info["symbol"]),
            price_decimals=int(info["priceDecimals"]),
            lot_decimals=int(info["lotDecimals"]),
            mark_price=int(info["markPNS"]),
            oracle_price=int(info["oraclePNS"]),
            long_open_interest=int(info["longOpenInterestLNS"]),
            short_open_interest=int(info["shortOpenInterestLNS"]),
            funding_rate_raw=int(info["fundingRatePct100k"]),
            paused=bool(info["paused"]),
            base_price=int(info["basePricePNS"]),
            max_bid=int(info["maxBidPriceONS"]),
            min_bid=int(info["minBidPriceONS"]),
            max_ask=int(info["maxAskPriceONS"]),
            min_ask=int(info["minAskPriceONS"]),
            resting_order_count=int(info["numOrders"]),
        )

    def fees(self, perp_id: int) -> FeeSchedule:
        return FeeSchedule(
            taker_fee_per_100k=int(self._read(GET_TAKER_FEE, perp_id)["fee"]),
            maker_fee_per_100k=int(self._read(GET_MAKER_FEE, perp_id)["fee"]),
        )


def snapshot(
    client: LedgerClient, exchange_address: str, account: str, perp_id: int
) -> AccountSnapshot:
    """One-call account snapshot."""
    return Snapshotter(client, exchange_address).account(account, perp_id)
