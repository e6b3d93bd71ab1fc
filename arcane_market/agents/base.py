from __future__ import annotations

from typing import Protocol

from arcane_market.api.models import BiddingDecision, LedgerSnapshot
from arcane_market.resources import ResourceKind


class Bidder(Protocol):
    name: str

    def decide(self, *, participant: LedgerSnapshot, resource: ResourceKind) -> BiddingDecision | None:  # pragma: no cover
        ...

    def execute_decision(self, participant: LedgerSnapshot, decision: BiddingDecision | None) -> bool:  # pragma: no cover
        ...
