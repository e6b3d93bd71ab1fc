from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from arcane_market.api.models import (
    BiddingDecision,
    DecisionRecord,
    LedgerSnapshot,
    PositionMode,
    StrategyProfile,
    StrategyStats,
)
from arcane_market.config import EngineSettings
from arcane_market.core.numbers import clamp, round_half_up
from arcane_market.market_data import MarketDataService
from arcane_market.resources import DEFAULT_PRICE, ResourceKind, position_bounds

if TYPE_CHECKING:
    from arcane_market.auction import AuctionManager

logger = logging.getLogger(__name__)

EXPECTED_PRICE_WINDOW = 5
MAX_BUY_QUANTITY = 10
# |trend| above which the profile's trend rule kicks in.
TREND_TRIGGER = 0.1


@dataclass(frozen=True, slots=True)
class StrategyParams:
    buy_threshold: float
    sell_threshold: float
    max_risk: float
    price_adjustment: float
    sell_ratio: float
    confidence_multiplier: float


STRATEGY_PROFILES: dict[StrategyProfile, StrategyParams] = {
    StrategyProfile.conservative: StrategyParams(0.9, 1.1, 0.2, 0.05, 0.3, 0.8),
    StrategyProfile.balanced: StrategyParams(0.95, 1.05, 0.3, 0.1, 0.3, 1.0),
    StrategyProfile.aggressive: StrategyParams(1.05, 0.95, 0.5, 0.15, 0.5, 1.2),
}


@dataclass(slots=True)
class _Tally:
    successful: int = 0
    total: int = 0


def _now() -> datetime:
    return datetime.now(tz=UTC)


def trend_bonus(trend: float) -> float:
    strength = abs(trend)
    if strength > 0.2:
        return 0.3
    if strength > 0.1:
        return 0.2
    return 0.0


class AIBiddingStrategy:
    """Rule-based bidder for non-human participants.

    Reads prices and trends from the Market Data Service and turns them into
    one buy or sell decision per participant and round. Decisions are submitted
    through the Auction Manager's position API like any human position.
    """

    def __init__(
        self,
        market_data: MarketDataService,
        auction: AuctionManager | None = None,
        *,
        settings: EngineSettings | None = None,
        name: str = "rule-based",
    ) -> None:
        self.name = name
        self._market_data = market_data
        self._auction = auction
        self._settings = settings or EngineSettings()

        self._profiles: dict[str, StrategyProfile] = {}
        self._tallies: dict[str, _Tally] = {}
        self._history: deque[DecisionRecord] = deque(maxlen=self._settings.decision_history_limit)

    def assign_strategy(self, participant_id: str, profile: StrategyProfile | str = StrategyProfile.balanced) -> StrategyProfile:
        try:
            chosen = StrategyProfile(profile)
        except ValueError:
            logger.warning("unknown strategy profile %r for %s; using balanced", profile, participant_id)
            chosen = StrategyProfile.balanced

        self._profiles[participant_id] = chosen
        self._tallies[participant_id] = _Tally()
        logger.info("assigned %s strategy to %s", chosen.value, participant_id)
        return chosen

    def profile_for(self, participant: LedgerSnapshot) -> StrategyProfile:
        return self._profiles.get(participant.participant_id) or participant.strategy or StrategyProfile.balanced

    def expected_price(self, resource: ResourceKind) -> float:
        history = self._market_data.get_history(resource)
        if not history:
            return float(DEFAULT_PRICE)
        recent = [e.price for e in history[-EXPECTED_PRICE_WINDOW:]]
        return sum(recent) / len(recent)

    def make_bidding_decision(self, participant: LedgerSnapshot, resource: ResourceKind) -> BiddingDecision | None:
        profile = self.profile_for(participant)
        params = STRATEGY_PROFILES[profile]

        market_price = self._market_data.get_current_price(resource)
        trend = self._market_data.price_trend_ratio(resource)
        expected = self.expected_price(resource)
        ratio = market_price / expected if expected else 1.0
        held = participant.holding(resource)

        should_buy = participant.gold >= market_price and (
            ratio <= params.buy_threshold or (profile == StrategyProfile.aggressive and trend > TREND_TRIGGER)
        )
        should_sell = held > 0 and (
            ratio >= params.sell_threshold or (profile == StrategyProfile.conservative and trend < -TREND_TRIGGER)
        )

        decision: BiddingDecision | None = None
        if should_buy:
            price = self._adjusted_price(resource, market_price, params, up=trend > 0)
            quantity = int(clamp(math.floor(params.max_risk * participant.gold / price), 1, MAX_BUY_QUANTITY))
            decision = self._decision(participant, PositionMode.buy, resource, price, quantity, trend, params)
        elif should_sell:
            price = self._adjusted_price(resource, market_price, params, up=trend >= 0)
            quantity = max(1, math.floor(held * params.sell_ratio))
            decision = self._decision(participant, PositionMode.sell, resource, price, quantity, trend, params)

        if decision is not None:
            self._record(decision)
            logger.debug(
                "%s (%s) decides %s %s x%s @ %s",
                participant.participant_id,
                profile.value,
                decision.action.value,
                resource.value,
                decision.quantity,
                decision.price,
            )
        return decision

    # Bidder protocol
    def decide(self, *, participant: LedgerSnapshot, resource: ResourceKind) -> BiddingDecision | None:
        return self.make_bidding_decision(participant, resource)

    def _adjusted_price(self, resource: ResourceKind, market_price: int, params: StrategyParams, *, up: bool) -> int:
        factor = 1 + params.price_adjustment if up else 1 - params.price_adjustment
        lo, hi = position_bounds(resource, self._settings)
        return round_half_up(clamp(market_price * factor, lo, hi))

    @staticmethod
    def _decision(
        participant: LedgerSnapshot,
        action: PositionMode,
        resource: ResourceKind,
        price: int,
        quantity: int,
        trend: float,
        params: StrategyParams,
    ) -> BiddingDecision:
        confidence = clamp(0.5 + trend_bonus(trend), 0, 1) * params.confidence_multiplier
        return BiddingDecision(
            participant_id=participant.participant_id,
            action=action,
            resource=resource,
            price=price,
            quantity=quantity,
            confidence=clamp(confidence, 0, 1),
        )

    def _record(self, decision: BiddingDecision) -> None:
        self._history.append(DecisionRecord(participant_id=decision.participant_id, decision=decision, timestamp=_now()))
        tally = self._tallies.get(decision.participant_id)
        if tally is not None:
            tally.total += 1

    def update_success_rate(self, participant_id: str, was_successful: bool) -> None:
        tally = self._tallies.get(participant_id)
        if tally is not None and was_successful:
            tally.successful += 1

    def get_player_stats(self, participant_id: str) -> StrategyStats:
        tally = self._tallies.get(participant_id) or _Tally()
        return StrategyStats(
            strategy=self._profiles.get(participant_id),
            total_decisions=tally.total,
            successful_trades=tally.successful,
            success_rate=tally.successful / tally.total if tally.total > 0 else 0.0,
            recent_decisions=[r for r in self._history if r.participant_id == participant_id][-5:],
        )

    @property
    def decision_history(self) -> list[DecisionRecord]:
        return list(self._history)

    def execute_decision(self, participant: LedgerSnapshot, decision: BiddingDecision | None) -> bool:
        """Submit `decision` as `participant`'s position in the current round."""

        if decision is None or self._auction is None:
            return False
        if decision.participant_id != participant.participant_id:
            logger.warning("decision for %s cannot be executed by %s", decision.participant_id, participant.participant_id)
            return False
        if decision.resource != self._auction.current_resource:
            logger.warning(
                "decision for %s ignored; %s is under auction",
                decision.resource.value,
                self._auction.current_resource,
            )
            return False

        ok = self._auction.update_player_position(
            decision.participant_id, decision.price, decision.action, decision.quantity
        )
        if ok:
            logger.info(
                "AI %s set position: %s %s %s @ %s",
                decision.participant_id,
                decision.action.value,
                decision.quantity,
                decision.resource.value,
                decision.price,
            )
        return ok

    def reset(self) -> None:
        self._history.clear()
        for pid in self._tallies:
            self._tallies[pid] = _Tally()
