from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Any, Literal

from arcane_market.config import EngineSettings
from arcane_market.core.numbers import clamp, round_half_up
from arcane_market.market_data import MarketDataService
from arcane_market.resources import ResourceKind

logger = logging.getLogger(__name__)

EffectType = Literal["price_modifier", "volatility", "price_push", "buyer_boost", "seller_pressure"]

HISTORY_LIMIT = 20
# Half-width of the one-off jitter applied per unit of volatility increase.
VOLATILITY_JITTER = 2.5


@dataclass(frozen=True, slots=True)
class MarketEventDefinition:
    id: str
    name: str
    description: str
    effect: EffectType
    # Multiplier for price_modifier/volatility, gold amount for the others.
    magnitude: float
    duration: float
    weight: int


EVENT_DEFINITIONS: tuple[MarketEventDefinition, ...] = (
    MarketEventDefinition(
        "surge_demand", "Demand Surge", "A sudden need for {resource} drives prices up!", "price_modifier", 1.2, 60, 30
    ),
    MarketEventDefinition(
        "supply_shortage",
        "Supply Shortage",
        "A shortage of {resource} is causing panic buying!",
        "price_modifier",
        1.3,
        45,
        20,
    ),
    MarketEventDefinition(
        "abundant_harvest",
        "Abundant Harvest",
        "An unexpected surplus of {resource} floods the market!",
        "price_modifier",
        0.7,
        60,
        25,
    ),
    MarketEventDefinition(
        "trade_disruption",
        "Trade Disruption",
        "Magical interference is affecting {resource} trades!",
        "volatility",
        2.0,
        30,
        15,
    ),
    MarketEventDefinition(
        "merchant_speculation",
        "Merchant Speculation",
        "Wealthy merchants are manipulating {resource} prices!",
        "price_push",
        15,
        40,
        20,
    ),
    MarketEventDefinition(
        "quality_discovery",
        "Quality Discovery",
        "Higher quality {resource} discovered - buyers willing to pay more!",
        "buyer_boost",
        10,
        50,
        15,
    ),
    MarketEventDefinition(
        "storage_crisis",
        "Storage Crisis",
        "Storage facilities full - sellers desperate to offload {resource}!",
        "seller_pressure",
        10,
        50,
        15,
    ),
)


@dataclass(slots=True)
class ActiveMarketEvent:
    event_id: str
    definition: MarketEventDefinition
    resource: ResourceKind
    remaining: float
    # +1 / -1 for price pushes, 0 otherwise.
    direction: int = 0

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def description(self) -> str:
        return self.definition.description.replace("{resource}", self.resource.value)

    def as_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "definition_id": self.definition.id,
            "name": self.name,
            "description": self.description,
            "resource": self.resource.value,
            "effect": self.definition.effect,
            "magnitude": self.definition.magnitude,
            "direction": self.direction,
            "remaining": self.remaining,
        }


class MarketEventSystem:
    """Random market shocks rolled at the start of each resource round.

    All randomness comes from one seeded `random.Random`, and lifetimes count
    down through `tick()`, so a recorded tick sequence replays identically.
    """

    def __init__(
        self,
        market_data: MarketDataService | None = None,
        *,
        settings: EngineSettings | None = None,
        rng: random.Random | None = None,
        definitions: tuple[MarketEventDefinition, ...] = EVENT_DEFINITIONS,
    ) -> None:
        cfg = settings or EngineSettings()
        self._market_data = market_data
        self.probability = cfg.market_event_probability
        self._rng = rng or random.Random(cfg.seed)
        self._definitions = definitions
        self._total_weight = sum(d.weight for d in definitions)
        self._active: list[ActiveMarketEvent] = []
        self._history: deque[dict[str, Any]] = deque(maxlen=HISTORY_LIMIT)
        self._counter = 0

    def check_for_event(self, resource: ResourceKind) -> ActiveMarketEvent | None:
        if not self._definitions or self._rng.random() >= self.probability:
            return None

        definition = self._select()
        self._counter += 1
        event = ActiveMarketEvent(
            event_id=f"{definition.id}_{self._counter}",
            definition=definition,
            resource=resource,
            remaining=definition.duration,
            direction=self._rng.choice((1, -1)) if definition.effect == "price_push" else 0,
        )
        self._active.append(event)
        self._history.appendleft(event.as_dict())
        logger.info("market event %s on %s", event.name, resource.value)
        return event

    def _select(self) -> MarketEventDefinition:
        roll = self._rng.random() * self._total_weight
        acc = 0
        for d in self._definitions:
            acc += d.weight
            if roll <= acc:
                return d
        return self._definitions[0]

    def apply_to_price(self, event: ActiveMarketEvent, price: int, bounds: tuple[int, int]) -> int:
        """Reference price for the round after `event`; clamped to the auction band."""

        lo, hi = bounds
        d = event.definition
        if d.effect == "price_modifier":
            new_price = round_half_up(price * d.magnitude)
        elif d.effect == "price_push":
            new_price = price + event.direction * int(d.magnitude)
        elif d.effect == "volatility":
            spread = VOLATILITY_JITTER * d.magnitude
            new_price = round_half_up(price + self._rng.uniform(-spread, spread))
        else:
            # Buyer/seller effects act on effective prices, not on the reference price.
            return price

        new_price = int(clamp(new_price, lo, hi))
        if d.effect == "price_modifier" and self._market_data is not None:
            self._market_data.record_trade(event.resource, new_price, 0)
        return new_price

    def tick(self, delta: float) -> list[ActiveMarketEvent]:
        """Age active events; returns the ones that expired."""

        expired: list[ActiveMarketEvent] = []
        still: list[ActiveMarketEvent] = []
        for event in self._active:
            event.remaining -= delta
            (expired if event.remaining <= 0 else still).append(event)
        self._active = still
        for event in expired:
            logger.info("market event ended: %s", event.name)
        return expired

    def get_active_events(self, resource: ResourceKind | None = None) -> list[ActiveMarketEvent]:
        if resource is None:
            return list(self._active)
        return [e for e in self._active if e.resource == resource]

    def get_effective_prices(
        self, resource: ResourceKind, buyer_price: int, seller_price: int, bounds: tuple[int, int]
    ) -> tuple[int, int]:
        lo, hi = bounds
        buy, sell = buyer_price, seller_price
        for event in self.get_active_events(resource):
            if event.definition.effect == "buyer_boost":
                buy += int(event.definition.magnitude)
            elif event.definition.effect == "seller_pressure":
                sell -= int(event.definition.magnitude)
        return int(clamp(buy, lo, hi)), int(clamp(sell, lo, hi))

    def get_event_history(self, limit: int = 10) -> list[dict[str, Any]]:
        return list(self._history)[:limit]

    def get_event_summary(self) -> dict[str, Any]:
        return {
            "active_count": len(self._active),
            "events": [
                {"name": e.name, "description": e.description, "time_remaining": max(0.0, e.remaining)}
                for e in self._active
            ],
        }

    def reset(self) -> None:
        self._active = []
        self._history.clear()
        self._counter = 0
