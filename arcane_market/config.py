from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

PositionBoundsMode = Literal["fixed", "per_resource"]

ENV_PREFIX = "ARCANE_MARKET_"


@dataclass(frozen=True, slots=True)
class EngineSettings:
    # Countdowns, in the tick driver's time units (seconds in the game client).
    setup_duration: float = 30
    auction_duration: float = 120
    transition_delay: float = 5

    max_pending_transactions: int = 100
    max_completed_history: int = 1000
    max_failed_history: int = 100

    price_history_limit: int = 100
    market_event_log_limit: int = 50
    decision_history_limit: int = 100

    position_bounds: PositionBoundsMode = "fixed"
    position_min_price: int = 10
    position_max_price: int = 100

    market_event_probability: float = 0.15

    # For reproducibility of market events.
    seed: int | None = None


def _env(name: str) -> str | None:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e


def settings_from_env() -> EngineSettings:
    d = EngineSettings()

    bounds = _env("POSITION_BOUNDS") or d.position_bounds
    if bounds not in ("fixed", "per_resource"):
        raise ValueError(f"{ENV_PREFIX}POSITION_BOUNDS must be 'fixed' or 'per_resource', got {bounds!r}")

    seed_raw = _env("SEED")
    seed = _env_int("SEED", 0) if seed_raw is not None else None

    return EngineSettings(
        setup_duration=_env_float("SETUP_DURATION", d.setup_duration),
        auction_duration=_env_float("AUCTION_DURATION", d.auction_duration),
        transition_delay=_env_float("TRANSITION_DELAY", d.transition_delay),
        max_pending_transactions=_env_int("MAX_PENDING_TRANSACTIONS", d.max_pending_transactions),
        max_completed_history=_env_int("MAX_COMPLETED_HISTORY", d.max_completed_history),
        max_failed_history=_env_int("MAX_FAILED_HISTORY", d.max_failed_history),
        price_history_limit=_env_int("PRICE_HISTORY_LIMIT", d.price_history_limit),
        market_event_log_limit=_env_int("MARKET_EVENT_LOG_LIMIT", d.market_event_log_limit),
        decision_history_limit=_env_int("DECISION_HISTORY_LIMIT", d.decision_history_limit),
        position_bounds=bounds,  # type: ignore[arg-type]
        position_min_price=_env_int("POSITION_MIN_PRICE", d.position_min_price),
        position_max_price=_env_int("POSITION_MAX_PRICE", d.position_max_price),
        market_event_probability=_env_float("MARKET_EVENT_PROBABILITY", d.market_event_probability),
        seed=seed,
    )
