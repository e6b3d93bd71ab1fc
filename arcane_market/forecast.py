from __future__ import annotations

import math
from enum import StrEnum

from pydantic import BaseModel, Field

from arcane_market.core.numbers import clamp, round_half_up
from arcane_market.market_data import MarketDataService
from arcane_market.resources import RESOURCE_SPECS, ResourceKind, parse_resource

HISTORY_WINDOW = 10
MIN_DATA_POINTS = 5
HORIZON = 3

UPTREND_THRESHOLD = 0.1
DOWNTREND_THRESHOLD = -0.1
VOLATILE_THRESHOLD = 0.15


class PricePattern(StrEnum):
    uptrend = "uptrend"
    downtrend = "downtrend"
    volatile = "volatile"
    stable = "stable"
    unknown = "unknown"


# Multiplier applied to the trend when projecting forward.
PATTERN_WEIGHTS: dict[PricePattern, float] = {
    PricePattern.uptrend: 1.2,
    PricePattern.downtrend: 0.8,
}


class ProjectedPrice(BaseModel):
    step: int
    price: int
    low: int
    high: int


class PricePrediction(BaseModel):
    resource: str
    current_price: int
    projections: list[ProjectedPrice] = Field(default_factory=list)
    trend: float = 0.0
    volatility: float = 0.0
    pattern: PricePattern = PricePattern.unknown
    support: int
    resistance: int
    confidence: float = Field(0.0, ge=0, le=1)


class Recommendation(BaseModel):
    action: str
    confidence: float
    target_price: int | None = None
    reason: str | None = None


def linear_trend(prices: list[int]) -> float:
    """Least-squares slope over the index, relative to the mean price."""

    n = len(prices)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(prices)
    sum_xy = sum(i * p for i, p in enumerate(prices))
    sum_x2 = sum(i * i for i in range(n))
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    mean = sum_y / n
    return slope / mean if mean else 0.0


def coefficient_of_variation(prices: list[int]) -> float:
    if len(prices) < 2:
        return 0.0
    mean = sum(prices) / len(prices)
    if not mean:
        return 0.0
    variance = sum((p - mean) ** 2 for p in prices) / len(prices)
    return math.sqrt(variance) / mean


def classify(trend: float, volatility: float) -> PricePattern:
    if trend > UPTREND_THRESHOLD:
        return PricePattern.uptrend
    if trend < DOWNTREND_THRESHOLD:
        return PricePattern.downtrend
    if volatility > VOLATILE_THRESHOLD:
        return PricePattern.volatile
    return PricePattern.stable


class PricePredictor:
    """Short-horizon price outlook computed from the retained trade history."""

    def __init__(self, market_data: MarketDataService) -> None:
        self._market_data = market_data

    def predict(self, resource: ResourceKind | str) -> PricePrediction:
        kind = parse_resource(resource)
        history = self._market_data.get_history(resource)
        if kind is None or len(history) < MIN_DATA_POINTS:
            return self._default(resource)

        prices = [e.price for e in history][-HISTORY_WINDOW:]
        trend = linear_trend(prices)
        volatility = coefficient_of_variation(prices)
        pattern = classify(trend, volatility)
        current = prices[-1]

        return PricePrediction(
            resource=str(resource),
            current_price=current,
            projections=self._project(kind, current, trend, volatility, pattern),
            trend=trend,
            volatility=volatility,
            pattern=pattern,
            support=math.floor(min(prices[-5:]) * 0.95),
            resistance=math.ceil(max(prices[-5:]) * 1.05),
            confidence=self._confidence(len(prices), volatility, pattern),
        )

    @staticmethod
    def _project(
        kind: ResourceKind, current: int, trend: float, volatility: float, pattern: PricePattern
    ) -> list[ProjectedPrice]:
        # Market band of the resource itself; aether trades well above the auction band.
        spec = RESOURCE_SPECS[kind]
        lo, hi = spec.min_price, spec.max_price
        weight = PATTERN_WEIGHTS.get(pattern, 1.0)
        price = float(current)
        out: list[ProjectedPrice] = []
        for step in range(1, HORIZON + 1):
            price = clamp(price * (1 + trend * weight), lo, hi)
            out.append(
                ProjectedPrice(
                    step=step,
                    price=round_half_up(price),
                    low=round_half_up(clamp(price * (1 - volatility), lo, hi)),
                    high=round_half_up(clamp(price * (1 + volatility), lo, hi)),
                )
            )
        return out

    @staticmethod
    def _confidence(points: int, volatility: float, pattern: PricePattern) -> float:
        confidence = 0.5
        confidence += min(0.3, points / 20 * 0.3)
        confidence += max(0.0, 0.2 - volatility)
        if pattern in (PricePattern.stable, PricePattern.uptrend):
            confidence += 0.1
        return float(clamp(confidence, 0.1, 0.9))

    def _default(self, resource: ResourceKind | str) -> PricePrediction:
        current = self._market_data.get_current_price(resource)
        return PricePrediction(
            resource=str(resource),
            current_price=current,
            projections=[ProjectedPrice(step=s, price=current, low=current, high=current) for s in range(1, HORIZON + 1)],
            support=current,
            resistance=current,
            confidence=0.0,
        )

    def predict_all(self) -> dict[ResourceKind, PricePrediction]:
        return {kind: self.predict(kind) for kind in ResourceKind}

    def recommend(self, resource: ResourceKind | str) -> Recommendation:
        prediction = self.predict(resource)
        if prediction.confidence < 0.4:
            return Recommendation(action="hold", confidence=prediction.confidence)

        current = prediction.current_price
        change = (prediction.projections[0].price - current) / current if current else 0.0
        if change > 0.1 and prediction.pattern == PricePattern.uptrend:
            return Recommendation(
                action="buy",
                confidence=prediction.confidence,
                target_price=round_half_up(current * 0.95),
                reason="Uptrend with rising projection",
            )
        if change < -0.1 and prediction.pattern == PricePattern.downtrend:
            return Recommendation(
                action="sell",
                confidence=prediction.confidence,
                target_price=round_half_up(current * 1.05),
                reason="Downtrend with falling projection",
            )
        if prediction.volatility > 0.2:
            return Recommendation(action="wait", confidence=prediction.confidence, reason="High volatility")
        return Recommendation(action="hold", confidence=prediction.confidence)
