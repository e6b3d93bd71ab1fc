from __future__ import annotations

from collections.abc import Mapping, Sequence
from itertools import cycle

from arcane_market.api.models import LedgerSnapshot, Participant, StrategyProfile
from arcane_market.ledger import LedgerReader
from arcane_market.resources import ResourceKind


def make_participant(
    *,
    participant_id: str,
    gold: int = 0,
    resources: Mapping[ResourceKind | str, int] | None = None,
    planned_resource_cost: Mapping[ResourceKind | str, int] | None = None,
    is_ai: bool = False,
    strategy: StrategyProfile | str | None = None,
    display_name: str | None = None,
) -> Participant:
    """Build a validated roster entry.

    Convenience helper for wiring up example sessions/tests.
    """

    return Participant.model_validate(
        {
            "participant_id": participant_id,
            "gold": gold,
            "resources": dict(resources or {}),
            "planned_resource_cost": dict(planned_resource_cost or {}),
            "is_ai": is_ai,
            "strategy": strategy,
            "display_name": display_name,
        }
    )


def make_ai_roster(
    count: int,
    *,
    gold: int = 500,
    resources: Mapping[ResourceKind | str, int] | None = None,
    profiles: Sequence[StrategyProfile] = tuple(StrategyProfile),
    prefix: str = "ai",
) -> list[Participant]:
    """`count` AI participants, cycling through `profiles` in order."""

    if not profiles:
        raise ValueError("profiles must not be empty")
    return [
        make_participant(
            participant_id=f"{prefix}-{i + 1}",
            gold=gold,
            resources=resources,
            is_ai=True,
            strategy=profile,
            display_name=f"{profile.value.title()} trader {i + 1}",
        )
        for i, profile in zip(range(count), cycle(profiles))
    ]


def ai_snapshots(ledgers: LedgerReader) -> list[LedgerSnapshot]:
    return [s for s in ledgers.snapshots() if s.is_ai]
