from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from arcane_market.core.events import EventType, MarketEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[MarketEvent], None]


@dataclass(slots=True)
class _Subscription:
    callback: Subscriber
    types: frozenset[str] | None


class EventStream:
    """In-process pub/sub for engine notifications.

    Contract:
      - register a consumer with `subscribe(callback, types=...)`; the return value unsubscribes.
      - `publish(event)` delivers synchronously, in subscription order.

    A failing subscriber is logged and skipped so UI/log consumers can never
    interrupt matching or settlement.
    """

    def __init__(self, *, history_limit: int = 50) -> None:
        self._subs: list[_Subscription] = []
        self._recent: deque[MarketEvent] = deque(maxlen=history_limit)

    def subscribe(self, callback: Subscriber, *, types: Iterable[EventType] | None = None) -> Callable[[], None]:
        sub = _Subscription(callback=callback, types=frozenset(types) if types is not None else None)
        self._subs.append(sub)

        def _unsubscribe() -> None:
            if sub in self._subs:
                self._subs.remove(sub)

        return _unsubscribe

    def publish(self, event: MarketEvent) -> None:
        self._recent.append(event)
        for sub in list(self._subs):
            if sub.types is not None and event.type not in sub.types:
                continue
            try:
                sub.callback(event)
            except Exception:
                logger.exception("event subscriber failed on %s", event.type)

    def emit(self, type: EventType, *, round_id: int = 0, **payload: object) -> MarketEvent:
        event = MarketEvent.now(type=type, round_id=round_id, payload=dict(payload))
        self.publish(event)
        return event

    def recent(self, count: int = 10) -> list[MarketEvent]:
        if count <= 0:
            return []
        return list(self._recent)[-count:]

    def clear(self) -> None:
        self._recent.clear()
