from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from arcane_market.api.models import LedgerSnapshot, Participant, StrategyProfile
from arcane_market.resources import ResourceKind

logger = logging.getLogger(__name__)


class LedgerReader(Protocol):
    """Read-only view handed to every component except the Transaction Engine."""

    def ids(self) -> list[str]: ...

    def snapshot(self, participant_id: str) -> LedgerSnapshot | None: ...

    def snapshots(self) -> list[LedgerSnapshot]: ...


@dataclass(slots=True)
class _Ledger:
    participant_id: str
    gold: int
    resources: dict[ResourceKind, int] = field(default_factory=dict)
    planned_resource_cost: dict[ResourceKind, int] = field(default_factory=dict)
    is_ai: bool = False
    strategy: StrategyProfile | None = None

    def to_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            participant_id=self.participant_id,
            gold=self.gold,
            resources=dict(self.resources),
            planned_resource_cost=dict(self.planned_resource_cost),
            is_ai=self.is_ai,
            strategy=self.strategy,
        )


class LedgerStore:
    """Participant gold and resource holdings.

    `apply_settlement` is the only mutating operation during play and only the
    Transaction Engine calls it; everything else gets snapshots.
    """

    def __init__(self) -> None:
        self._ledgers: dict[str, _Ledger] = {}

    def load(self, participants: Iterable[Participant | dict[str, Any]]) -> None:
        ledgers: dict[str, _Ledger] = {}
        for raw in participants:
            p = raw if isinstance(raw, Participant) else Participant.model_validate(raw)
            if p.participant_id in ledgers:
                raise ValueError(f"Duplicate participant id: {p.participant_id}")
            ledgers[p.participant_id] = _Ledger(
                participant_id=p.participant_id,
                gold=p.gold,
                resources={k: v for k, v in p.resources.items()},
                planned_resource_cost={k: v for k, v in p.planned_resource_cost.items()},
                is_ai=p.is_ai,
                strategy=p.strategy,
            )
        self._ledgers = ledgers
        logger.info("loaded %d participant ledgers", len(ledgers))

    def ids(self) -> list[str]:
        return list(self._ledgers)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._ledgers

    def __len__(self) -> int:
        return len(self._ledgers)

    def snapshot(self, participant_id: str) -> LedgerSnapshot | None:
        ledger = self._ledgers.get(participant_id)
        return ledger.to_snapshot() if ledger is not None else None

    def snapshots(self) -> list[LedgerSnapshot]:
        return [ledger.to_snapshot() for ledger in self._ledgers.values()]

    def export(self) -> list[dict[str, Any]]:
        """Plain dicts in roster shape, for the persistence collaborator."""

        return [
            Participant(
                participant_id=ledger.participant_id,
                gold=ledger.gold,
                resources=dict(ledger.resources),
                planned_resource_cost=dict(ledger.planned_resource_cost),
                is_ai=ledger.is_ai,
                strategy=ledger.strategy,
            ).model_dump(mode="json")
            for ledger in self._ledgers.values()
        ]

    def apply_settlement(
        self,
        *,
        buyer_id: str,
        seller_id: str,
        resource: ResourceKind,
        price: int,
        quantity: int,
    ) -> None:
        """Move gold buyer->seller and `quantity` units seller->buyer, all or nothing.

        Raises ValueError before touching any balance if the move is not covered.
        """

        buyer = self._ledgers.get(buyer_id)
        seller = self._ledgers.get(seller_id)
        if buyer is None or seller is None:
            raise ValueError("Participant not found")
        if buyer is seller:
            raise ValueError("Cannot settle a trade with yourself")

        total = price * quantity
        if buyer.gold < total:
            raise ValueError(f"Buyer lacks sufficient gold (needs {total}, has {buyer.gold})")
        held = seller.resources.get(resource, 0)
        if held < quantity:
            raise ValueError(f"Seller lacks sufficient {resource.value} (needs {quantity}, has {held})")

        buyer.gold -= total
        seller.gold += total
        seller.resources[resource] = held - quantity
        buyer.resources[resource] = buyer.resources.get(resource, 0) + quantity

    def clear(self) -> None:
        self._ledgers = {}
