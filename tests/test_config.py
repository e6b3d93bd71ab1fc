from __future__ import annotations

import pytest

from arcane_market.config import EngineSettings, settings_from_env
from arcane_market.resources import ResourceKind, position_bounds


def test_defaults_without_env() -> None:
    s = settings_from_env()
    assert s == EngineSettings()
    assert (s.setup_duration, s.auction_duration, s.transition_delay) == (30, 120, 5)
    assert s.seed is None


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCANE_MARKET_AUCTION_DURATION", "60")
    monkeypatch.setenv("ARCANE_MARKET_MAX_PENDING_TRANSACTIONS", " 7 ")
    monkeypatch.setenv("ARCANE_MARKET_POSITION_BOUNDS", "per_resource")
    monkeypatch.setenv("ARCANE_MARKET_SEED", "42")
    monkeypatch.setenv("ARCANE_MARKET_MARKET_EVENT_PROBABILITY", "")

    s = settings_from_env()

    assert s.auction_duration == 60
    assert s.max_pending_transactions == 7
    assert s.position_bounds == "per_resource"
    assert s.seed == 42
    assert s.market_event_probability == 0.15


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ARCANE_MARKET_MAX_PENDING_TRANSACTIONS", "many"),
        ("ARCANE_MARKET_SETUP_DURATION", "soon"),
        ("ARCANE_MARKET_POSITION_BOUNDS", "loose"),
    ],
)
def test_invalid_env_values_raise(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        settings_from_env()


def test_position_bounds_modes() -> None:
    assert position_bounds(ResourceKind.aether, EngineSettings()) == (10, 100)
    assert position_bounds(ResourceKind.aether, EngineSettings(position_bounds="per_resource")) == (10, 500)
    assert position_bounds(ResourceKind.vitality, EngineSettings(position_bounds="per_resource")) == (10, 125)
