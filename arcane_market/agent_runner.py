from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from arcane_market.api.models import AuctionPhase
from arcane_market.core.errors import EngineNotReadyError
from arcane_market.players import ai_snapshots

if TYPE_CHECKING:
    from arcane_market.session import MarketSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AgentRunnerConfig:
    # Cap on positions submitted per call; None means every AI participant.
    max_submissions: int | None = None


def run_ai_participants_once(session: MarketSession, *, config: AgentRunnerConfig | None = None) -> int:
    """Run one scan over all AI participants for the round under auction.

    Each participant is asked for at most one decision, in roster order, and
    accepted decisions are placed as positions (matching runs on each one).

    Returns the number of positions placed.
    """

    if session.market_data is None:
        raise EngineNotReadyError("AI participants need a market data service")

    auction = session.auction
    resource = auction.current_resource
    if auction.phase != AuctionPhase.active or resource is None:
        return 0

    cfg = config or AgentRunnerConfig()
    bidder = session.bidding
    placed = 0

    for participant in ai_snapshots(session.ledgers):
        if cfg.max_submissions is not None and placed >= cfg.max_submissions:
            break
        decision = bidder.decide(participant=participant, resource=resource)
        if decision is None:
            continue
        if bidder.execute_decision(participant, decision):
            placed += 1

    if placed:
        logger.info("AI participants placed %d positions on %s", placed, resource.value)
    return placed
