"""Drive one full auction phase with a small mixed roster and print the outcome.

Usage:
  python scripts/simulate_round.py [--seed N] [--ai N] [--step SECONDS]
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace

from arcane_market.api.models import AuctionPhase
from arcane_market.config import settings_from_env
from arcane_market.players import make_ai_roster, make_participant
from arcane_market.session import MarketSession

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--ai", type=int, default=3)
    parser.add_argument("--step", type=float, default=10.0)
    args = parser.parse_args()

    settings = settings_from_env()
    if args.seed is not None:
        settings = replace(settings, seed=args.seed)

    session = MarketSession(settings)
    roster = [
        make_participant(
            participant_id="human-1",
            gold=300,
            resources={"mana": 20, "vitality": 10, "arcanum": 5, "aether": 2},
            planned_resource_cost={"arcanum": 15},
            display_name="Player One",
        ),
        *make_ai_roster(args.ai, gold=400, resources={"mana": 10, "vitality": 10, "arcanum": 10, "aether": 3}),
    ]
    session.load_roster(roster)
    session.events.subscribe(lambda e: logger.info("event %s [%s] %s", e.type, e.resource or "-", e.payload))

    session.start_auction_phase()
    while True:
        state = session.tick(args.step)
        if state.phase == AuctionPhase.active:
            session.run_ai_turn()
        if state.phase == AuctionPhase.inactive:
            break

    stats = session.transactions.get_statistics()
    print(f"transactions: {stats.completed} completed, {stats.failed} failed ({stats.success_rate}% success)")
    for snap in session.ledgers.snapshots():
        holdings = ", ".join(f"{k.value}={v}" for k, v in sorted(snap.resources.items()))
        print(f"{snap.participant_id}: gold={snap.gold} {holdings}")


if __name__ == "__main__":
    main()
