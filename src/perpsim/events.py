"""Protocol event decoding.

Turns raw receipt logs into DomainEvents. Only the order-lifecycle events
are recognised; every other log (other contracts, unknown signatures,
malformed payloads) is dropped. Output preserves input order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from eth_abi.exceptions import DecodingError

from perpsim.abi import EXCHANGE_EVENTS, EventSpec
from perpsim.types import DomainEvent

if TYPE_CHECKING:
    from collections.abc import Iterable

    from perpsim.ledger.client import RawLog

logger = logging.getLogger(__name__)


class EventDecoder:
    """Decode raw logs against a fixed set of event specs."""

    def __init__(self, specs: Iterable[EventSpec] = EXCHANGE_EVENTS) -> None:
        self._by_topic: dict[bytes, EventSpec] = {s.topic0: s for s in specs}

    def decode_one(self, log: RawLog) -> DomainEvent | None:
        if not log.topics:
            logger.debug("Dropping log without topics", extra={"address": log.address})
            return None
        spec = self._by_topic.get(bytes(log.topics[0]))
        if spec is None:
            return None
        try:
            args = spec.decode(list(log.topics), log.data)
        except (DecodingError, ValueError, OverflowError) as e:
            logger.debug(
                "Dropping undecodable log",
                extra={"event": spec.name, "address": log.address, "error": str(e)},
            )
            return None
        return DomainEvent(name=spec.name, args=args)

    def decode(self, raw_logs: Iterable[RawLog]) -> list[DomainEvent]:
        events: list[DomainEvent] = []
        for log in raw_logs:
            event = self.decode_one(log)
            if event is not None:
                events.append(event)
        return events


_default_decoder = EventDecoder()


def decode_events(raw_logs: Iterable[RawLog]) -> list[DomainEvent]:
    """Decode with the exchange event set."""
    return _default_decoder.decode(raw_logs)
