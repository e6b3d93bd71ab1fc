from __future__ import annotations

import random

from arcane_market.config import EngineSettings
from arcane_market.market_data import MarketDataService
from arcane_market.market_events import (
    EVENT_DEFINITIONS,
    HISTORY_LIMIT,
    MarketEventDefinition,
    MarketEventSystem,
)
from arcane_market.resources import ResourceKind

BOUNDS = (10, 100)


def _only(effect: str, magnitude: float, duration: float = 30) -> tuple[MarketEventDefinition, ...]:
    return (MarketEventDefinition("test", "Test", "Something about {resource}", effect, magnitude, duration, 1),)  # type: ignore[arg-type]


def test_weights_match_catalogue() -> None:
    weights = {d.id: d.weight for d in EVENT_DEFINITIONS}
    assert weights == {
        "surge_demand": 30,
        "supply_shortage": 20,
        "abundant_harvest": 25,
        "trade_disruption": 15,
        "merchant_speculation": 20,
        "quality_discovery": 15,
        "storage_crisis": 15,
    }


def test_zero_probability_never_fires() -> None:
    system = MarketEventSystem(settings=EngineSettings(market_event_probability=0.0))
    assert all(system.check_for_event(ResourceKind.mana) is None for _ in range(50))
    assert system.get_active_events() == []


def test_same_seed_replays_identically() -> None:
    def run(seed: int) -> list[str | None]:
        system = MarketEventSystem(settings=EngineSettings(market_event_probability=0.5), rng=random.Random(seed))
        out = []
        for _ in range(30):
            event = system.check_for_event(ResourceKind.vitality)
            out.append(event.definition.id if event else None)
        return out

    assert run(42) == run(42)
    assert any(x is not None for x in run(42))


def test_events_expire_through_ticks() -> None:
    system = MarketEventSystem(settings=EngineSettings(market_event_probability=1.0), definitions=_only("volatility", 2.0, 30))
    event = system.check_for_event(ResourceKind.mana)
    assert event is not None

    assert system.tick(20) == []
    assert system.get_active_events(ResourceKind.mana) == [event]
    assert system.get_active_events(ResourceKind.aether) == []

    assert system.tick(10) == [event]
    assert system.get_active_events() == []
    assert system.get_event_summary()["active_count"] == 0


def test_price_modifier_is_clamped_and_recorded() -> None:
    md = MarketDataService()
    system = MarketEventSystem(
        md, settings=EngineSettings(market_event_probability=1.0), definitions=_only("price_modifier", 1.2)
    )
    event = system.check_for_event(ResourceKind.mana)

    assert system.apply_to_price(event, 50, BOUNDS) == 60
    assert md.get_current_price(ResourceKind.mana) == 60
    assert system.apply_to_price(event, 95, BOUNDS) == 100


def test_price_push_moves_by_magnitude() -> None:
    system = MarketEventSystem(settings=EngineSettings(market_event_probability=1.0), definitions=_only("price_push", 15))
    event = system.check_for_event(ResourceKind.mana)
    assert event.direction in (1, -1)
    assert system.apply_to_price(event, 50, BOUNDS) == 50 + 15 * event.direction


def test_buyer_and_seller_effects_shift_effective_prices() -> None:
    boost = MarketEventSystem(settings=EngineSettings(market_event_probability=1.0), definitions=_only("buyer_boost", 10))
    event = boost.check_for_event(ResourceKind.mana)
    assert boost.apply_to_price(event, 50, BOUNDS) == 50
    assert boost.get_effective_prices(ResourceKind.mana, 50, 60, BOUNDS) == (60, 60)
    assert boost.get_effective_prices(ResourceKind.mana, 95, 60, BOUNDS) == (100, 60)
    assert boost.get_effective_prices(ResourceKind.aether, 50, 60, BOUNDS) == (50, 60)

    crisis = MarketEventSystem(settings=EngineSettings(market_event_probability=1.0), definitions=_only("seller_pressure", 10))
    crisis.check_for_event(ResourceKind.mana)
    assert crisis.get_effective_prices(ResourceKind.mana, 50, 60, BOUNDS) == (50, 50)


def test_history_is_capped_newest_first() -> None:
    system = MarketEventSystem(settings=EngineSettings(market_event_probability=1.0), rng=random.Random(1))
    for _ in range(HISTORY_LIMIT + 5):
        system.check_for_event(ResourceKind.arcanum)

    history = system.get_event_history(limit=100)
    assert len(history) == HISTORY_LIMIT
    assert history[0]["event_id"].endswith(f"_{HISTORY_LIMIT + 5}")
    assert "arcanum" in history[0]["description"]


def test_reset_clears_everything() -> None:
    system = MarketEventSystem(settings=EngineSettings(market_event_probability=1.0))
    system.check_for_event(ResourceKind.mana)
    system.reset()
    assert system.get_active_events() == []
    assert system.get_event_history() == []
