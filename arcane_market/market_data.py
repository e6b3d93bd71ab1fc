from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from arcane_market.api.models import (
    LedgerSnapshot,
    MarketMetrics,
    MarketPressure,
    MarketSummary,
    PriceHistoryEntry,
    PriceTrend,
    SupplyDemand,
)
from arcane_market.config import EngineSettings
from arcane_market.core.numbers import clamp, round_half_up
from arcane_market.ledger import LedgerReader
from arcane_market.resources import DEFAULT_PRICE, RESOURCE_SPECS, ResourceKind, ResourceSpec, parse_resource

logger = logging.getLogger(__name__)

# Relative move between the two 3-entry windows that counts as a trend.
TREND_THRESHOLD = 0.05
# One side must exceed the other by this factor to be called pressure.
PRESSURE_RATIO = 1.5
# Dynamic prices are only written to history when they move more than this.
REPRICE_THRESHOLD = 0.05


def _now() -> datetime:
    return datetime.now(tz=UTC)


def dynamic_price(spec: ResourceSpec, *, supply: int, demand: int) -> int:
    """Price = Base Price x (1 + [(Demand - Supply) / Equilibrium] x Volatility), clamped."""

    modifier = 1 + ((demand - supply) / spec.equilibrium) * spec.volatility
    price = round_half_up(spec.base_price * modifier)
    return int(clamp(price, spec.min_price, spec.max_price))


def _mean(values: list[int]) -> float:
    return sum(values) / len(values)


class MarketDataService:
    """Price history, supply/demand aggregates and the derived pricing signals.

    Knows nothing about auction phases or turn order. Unknown resources never
    raise: reads fall back to defaults and writes return False.
    """

    def __init__(self, ledgers: LedgerReader | None = None, *, settings: EngineSettings | None = None) -> None:
        self._ledgers = ledgers
        self._settings = settings or EngineSettings()

        self._history: dict[ResourceKind, deque[PriceHistoryEntry]] = {}
        self._metrics: dict[ResourceKind, MarketMetrics] = {}
        self._supply: dict[ResourceKind, SupplyDemand] = {}
        self._demand: dict[ResourceKind, SupplyDemand] = {}
        self._events: deque[dict[str, Any]] = deque(maxlen=self._settings.market_event_log_limit)

        self.reset()

    # ---- history ----

    def record_trade(self, resource: ResourceKind | str, price: int, volume: int) -> bool:
        kind = parse_resource(resource)
        if kind is None:
            logger.warning("record_trade ignored for unknown resource %r", resource)
            return False

        ts = _now()
        # deque(maxlen=...) evicts the oldest entry on overflow.
        self._history[kind].append(PriceHistoryEntry(price=int(price), volume=int(volume), timestamp=ts))
        self._update_metrics(kind)

        self._events.append({"type": "trade", "resource": kind.value, "price": int(price), "volume": int(volume), "timestamp": ts})
        logger.debug("recorded %s price=%s volume=%s", kind.value, price, volume)
        return True

    def get_history(self, resource: ResourceKind | str) -> tuple[PriceHistoryEntry, ...]:
        kind = parse_resource(resource)
        if kind is None:
            return ()
        return tuple(self._history[kind])

    def get_current_price(self, resource: ResourceKind | str) -> int:
        kind = parse_resource(resource)
        if kind is None or not self._history[kind]:
            return DEFAULT_PRICE
        return self._history[kind][-1].price

    def get_metrics(self, resource: ResourceKind | str) -> MarketMetrics:
        kind = parse_resource(resource)
        if kind is None:
            return MarketMetrics(min=DEFAULT_PRICE, max=DEFAULT_PRICE, avg=DEFAULT_PRICE, volatility=0)
        return self._metrics[kind].model_copy()

    def _update_metrics(self, kind: ResourceKind) -> None:
        prices = [e.price for e in self._history[kind]]
        if not prices:
            return
        avg = round_half_up(_mean(prices))
        # Population standard deviation around the rounded average.
        variance = sum((p - avg) ** 2 for p in prices) / len(prices)
        self._metrics[kind] = MarketMetrics(
            min=min(prices),
            max=max(prices),
            avg=avg,
            volatility=round_half_up(math.sqrt(variance)),
        )

    # ---- supply / demand ----

    def calculate_supply_demand(self, participants: Iterable[LedgerSnapshot] | None = None) -> None:
        """Recompute supply (holdings) and demand (unmet planned costs) for every resource."""

        if participants is None:
            if self._ledgers is None:
                return
            participants = self._ledgers.snapshots()

        supply = {kind: SupplyDemand() for kind in ResourceKind}
        demand = {kind: SupplyDemand() for kind in ResourceKind}

        for p in participants:
            for kind in ResourceKind:
                amount = p.holding(kind)
                if amount > 0:
                    supply[kind].total += amount
                    supply[kind].by_participant[p.participant_id] = amount

            for kind, cost in p.planned_resource_cost.items():
                needed = max(0, cost - p.holding(kind))
                if needed > 0:
                    demand[kind].total += needed
                    demand[kind].by_participant[p.participant_id] = (
                        demand[kind].by_participant.get(p.participant_id, 0) + needed
                    )

        self._supply = supply
        self._demand = demand

    def set_supply_demand(self, resource: ResourceKind | str, *, supply: int, demand: int) -> bool:
        """Override the totals for one resource (scenario setup and tests)."""

        kind = parse_resource(resource)
        if kind is None:
            return False
        self._supply[kind] = SupplyDemand(total=supply)
        self._demand[kind] = SupplyDemand(total=demand)
        return True

    def get_supply(self, resource: ResourceKind | str) -> SupplyDemand:
        kind = parse_resource(resource)
        return self._supply[kind].model_copy(deep=True) if kind is not None else SupplyDemand()

    def get_demand(self, resource: ResourceKind | str) -> SupplyDemand:
        kind = parse_resource(resource)
        return self._demand[kind].model_copy(deep=True) if kind is not None else SupplyDemand()

    # ---- derived signals ----

    def calculate_dynamic_price(self, resource: ResourceKind | str) -> int:
        kind = parse_resource(resource)
        if kind is None:
            return DEFAULT_PRICE
        return dynamic_price(RESOURCE_SPECS[kind], supply=self._supply[kind].total, demand=self._demand[kind].total)

    def price_trend_ratio(self, resource: ResourceKind | str) -> float:
        """Relative change of the last 3 prices' mean against the 3 before them."""

        kind = parse_resource(resource)
        if kind is None:
            return 0.0
        prices = [e.price for e in self._history[kind]]
        recent = prices[-3:]
        older = prices[-6:-3]
        if not recent or not older:
            return 0.0
        older_avg = _mean(older)
        if older_avg == 0:
            return 0.0
        return (_mean(recent) - older_avg) / older_avg

    def get_price_trend(self, resource: ResourceKind | str) -> PriceTrend:
        ratio = self.price_trend_ratio(resource)
        if ratio > TREND_THRESHOLD:
            return PriceTrend.rising
        if ratio < -TREND_THRESHOLD:
            return PriceTrend.falling
        return PriceTrend.stable

    def calculate_market_pressure(self, resource: ResourceKind | str) -> MarketPressure:
        kind = parse_resource(resource)
        if kind is None:
            return MarketPressure.balanced
        supply = self._supply[kind].total
        demand = self._demand[kind].total
        if demand > supply * PRESSURE_RATIO:
            return MarketPressure.high_demand
        if supply > demand * PRESSURE_RATIO:
            return MarketPressure.high_supply
        return MarketPressure.balanced

    def get_market_summary(self, resource: ResourceKind | str) -> MarketSummary:
        kind = parse_resource(resource)
        if kind is None:
            return MarketSummary(
                resource=str(resource),
                base_price=DEFAULT_PRICE,
                current_price=DEFAULT_PRICE,
                dynamic_price=DEFAULT_PRICE,
                metrics=self.get_metrics(resource),
                supply=0,
                demand=0,
                trend=PriceTrend.stable,
                pressure=MarketPressure.balanced,
            )

        return MarketSummary(
            resource=kind.value,
            base_price=RESOURCE_SPECS[kind].base_price,
            current_price=self.get_current_price(kind),
            dynamic_price=self.calculate_dynamic_price(kind),
            metrics=self.get_metrics(kind),
            supply=self._supply[kind].total,
            demand=self._demand[kind].total,
            trend=self.get_price_trend(kind),
            pressure=self.calculate_market_pressure(kind),
        )

    def update_market_prices(self) -> list[ResourceKind]:
        """Recompute supply/demand and write significant dynamic-price moves to history.

        Returns the resources whose price was re-recorded (as zero-volume entries).
        """

        self.calculate_supply_demand()
        repriced: list[ResourceKind] = []
        for kind in ResourceKind:
            new_price = self.calculate_dynamic_price(kind)
            current = self.get_current_price(kind)
            if current and abs(new_price - current) / current > REPRICE_THRESHOLD:
                self.record_trade(kind, new_price, 0)
                repriced.append(kind)
        return repriced

    # ---- events / bulk views ----

    def get_recent_events(self, count: int = 10) -> list[dict[str, Any]]:
        if count <= 0:
            return []
        return [dict(e) for e in list(self._events)[-count:]]

    def get_all_market_data(self) -> dict[str, Any]:
        return {
            "resources": {kind.value: self.get_market_summary(kind) for kind in ResourceKind},
            "events": self.get_recent_events(),
        }

    def reset(self) -> None:
        ts = _now()
        limit = self._settings.price_history_limit
        for kind, spec in RESOURCE_SPECS.items():
            self._history[kind] = deque(
                [PriceHistoryEntry(price=spec.base_price, volume=0, timestamp=ts)],
                maxlen=limit,
            )
            self._metrics[kind] = MarketMetrics(
                min=spec.base_price, max=spec.base_price, avg=spec.base_price, volatility=0
            )
            self._supply[kind] = SupplyDemand()
            self._demand[kind] = SupplyDemand()
        self._events.clear()
