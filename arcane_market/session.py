from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from typing import Any

from arcane_market import agent_runner
from arcane_market.agents.bidding import AIBiddingStrategy
from arcane_market.api.models import (
    AuctionStateSnapshot,
    LedgerSnapshot,
    MarketSummary,
    Participant,
    PositionMode,
    StrategyProfile,
)
from arcane_market.auction import AuctionManager
from arcane_market.config import EngineSettings
from arcane_market.core.errors import EngineNotReadyError
from arcane_market.core.events import MarketEvent
from arcane_market.forecast import PricePredictor
from arcane_market.ledger import LedgerStore
from arcane_market.market_data import MarketDataService
from arcane_market.market_events import MarketEventSystem
from arcane_market.resources import ResourceKind
from arcane_market.streams import EventStream
from arcane_market.transactions import TransactionEngine

__all__ = ["EngineNotReadyError", "MarketSession"]

logger = logging.getLogger(__name__)


class MarketSession:
    """All market components wired around one ledger store and one event stream.

    This is the surface the game-flow controller talks to: load the roster,
    start the auction phase, then drive `tick()` and submit positions.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        events: EventStream | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.events = events or EventStream(history_limit=self.settings.market_event_log_limit)

        self.ledgers = LedgerStore()
        self.market_data = MarketDataService(self.ledgers, settings=self.settings)
        self.transactions = TransactionEngine(
            self.ledgers, self.market_data, settings=self.settings, events=self.events
        )
        self.market_events = MarketEventSystem(self.market_data, settings=self.settings, rng=rng)
        self.auction = AuctionManager(
            settings=self.settings,
            transactions=self.transactions,
            market_data=self.market_data,
            market_events=self.market_events,
            events=self.events,
        )
        self.bidding = AIBiddingStrategy(self.market_data, self.auction, settings=self.settings)
        self.predictor = PricePredictor(self.market_data)

        self._loaded = False
        self.events.subscribe(self._on_settlement, types=("TRANSACTION_COMPLETED", "TRANSACTION_FAILED"))

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def _require_roster(self) -> None:
        if not self._loaded:
            raise EngineNotReadyError("Load a roster before driving the market")

    def load_roster(self, participants: Iterable[Participant | dict[str, Any]]) -> None:
        self.ledgers.load(participants)
        for snap in self.ledgers.snapshots():
            if snap.is_ai:
                self.bidding.assign_strategy(snap.participant_id, snap.strategy or StrategyProfile.balanced)
        self.market_data.calculate_supply_demand()
        self._loaded = True

    def start_auction_phase(self) -> bool:
        self._require_roster()
        return self.auction.start_auction_phase()

    def tick(self, delta: float) -> AuctionStateSnapshot:
        self._require_roster()
        self.auction.update_timer(delta)
        return self.auction.get_state()

    def submit_position(
        self, participant_id: str, price: float, mode: PositionMode | str, quantity: int = 1
    ) -> bool:
        self._require_roster()
        if participant_id not in self.ledgers:
            logger.warning("position from unknown participant %s rejected", participant_id)
            return False
        return self.auction.update_player_position(participant_id, price, mode, quantity)

    def run_ai_turn(self) -> int:
        self._require_roster()
        return agent_runner.run_ai_participants_once(self)

    def state(self) -> AuctionStateSnapshot:
        return self.auction.get_state()

    def market_summary(self, resource: ResourceKind | str) -> MarketSummary:
        return self.market_data.get_market_summary(resource)

    def ledger(self, participant_id: str) -> LedgerSnapshot | None:
        return self.ledgers.snapshot(participant_id)

    def reset(self) -> None:
        """Back to a fresh inactive market. The loaded roster is kept."""

        self.auction.reset()
        self.transactions.reset()
        self.market_data.reset()
        self.market_events.reset()
        self.bidding.reset()
        self.events.clear()
        if self._loaded:
            self.market_data.calculate_supply_demand()

    def _on_settlement(self, event: MarketEvent) -> None:
        ok = event.type == "TRANSACTION_COMPLETED"
        for key in ("buyer_id", "seller_id"):
            pid = event.payload.get(key)
            snap = self.ledgers.snapshot(pid) if isinstance(pid, str) else None
            if snap is not None and snap.is_ai:
                self.bidding.update_success_rate(pid, ok)
