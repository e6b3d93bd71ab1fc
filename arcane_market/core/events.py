from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

EventType = Literal[
    "AUCTION_PHASE_STARTED",
    "RESOURCE_AUCTION_STARTED",
    "POSITION_SET",
    "TRADE_EXECUTED",
    "RESOURCE_AUCTION_ENDED",
    "TRANSACTION_COMPLETED",
    "TRANSACTION_FAILED",
    "QUEUE_PROGRESS",
    "QUEUE_TRANSITION",
    "QUEUE_COMPLETE",
    "MARKET_EVENT",
    "AUCTION_RESET",
]


@dataclass(frozen=True, slots=True)
class MarketEvent:
    """One engine notification; `round_id` is 0 outside any resource round."""

    type: EventType
    round_id: int
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, round_id: int, payload: dict[str, Any]) -> MarketEvent:
        return MarketEvent(type=type, round_id=round_id, payload=payload, ts=datetime.now(tz=UTC))

    @property
    def resource(self) -> str | None:
        """Resource the event concerns, if it names one."""

        value = self.payload.get("resource")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for UI and log consumers."""

        return {"type": self.type, "round_id": self.round_id, "ts": self.ts.isoformat(), "payload": self.payload}
