from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from arcane_market.resources import ResourceKind


class PositionMode(StrEnum):
    buy = "buy"
    sell = "sell"


class AuctionPhase(StrEnum):
    inactive = "inactive"
    setup = "setup"
    active = "active"
    resolution = "resolution"


class TransactionStatus(StrEnum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class PriceTrend(StrEnum):
    rising = "rising"
    falling = "falling"
    stable = "stable"


class MarketPressure(StrEnum):
    high_demand = "high_demand"
    high_supply = "high_supply"
    balanced = "balanced"


class StrategyProfile(StrEnum):
    conservative = "conservative"
    balanced = "balanced"
    aggressive = "aggressive"


class Participant(BaseModel):
    """Roster entry handed over by the game-flow controller."""

    participant_id: str = Field(..., min_length=1)
    gold: int = Field(0, ge=0)
    resources: dict[ResourceKind, int] = Field(default_factory=dict)

    # Outstanding construction costs; unmet parts count as market demand.
    planned_resource_cost: dict[ResourceKind, int] = Field(default_factory=dict)

    is_ai: bool = False
    strategy: StrategyProfile | None = None

    # Human-friendly name for logs.
    display_name: str | None = None


class LedgerSnapshot(BaseModel):
    """Read-only copy of a participant's ledger. Mutating it never touches the store."""

    model_config = ConfigDict(frozen=True)

    participant_id: str
    gold: int
    resources: dict[ResourceKind, int] = Field(default_factory=dict)
    planned_resource_cost: dict[ResourceKind, int] = Field(default_factory=dict)
    is_ai: bool = False
    strategy: StrategyProfile | None = None

    def holding(self, resource: ResourceKind) -> int:
        return self.resources.get(resource, 0)


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_id: str
    mode: PositionMode
    price: int
    quantity: int = Field(..., gt=0)
    submitted_at: datetime
    # Submission order within the round; breaks ties between equal timestamps.
    seq: int


class Trade(BaseModel):
    model_config = ConfigDict(frozen=True)

    trade_id: str
    buyer_id: str
    seller_id: str
    resource: ResourceKind
    clearing_price: int
    quantity: int
    timestamp: datetime


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    sequence: int
    buyer_id: str
    seller_id: str
    # Kept as the raw identifier so validation can report unknown kinds.
    resource: str
    price: int
    quantity: int
    status: TransactionStatus = TransactionStatus.pending
    failure_reason: str | None = None
    errors: tuple[str, ...] = ()
    created_at: datetime
    settled_at: datetime | None = None

    @property
    def total_cost(self) -> int:
        return self.price * self.quantity


class PriceHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: int
    volume: int
    timestamp: datetime


class MarketMetrics(BaseModel):
    min: int
    max: int
    avg: int
    volatility: int


class SupplyDemand(BaseModel):
    total: int = 0
    by_participant: dict[str, int] = Field(default_factory=dict)


class MarketSummary(BaseModel):
    resource: str
    base_price: int
    current_price: int
    dynamic_price: int
    metrics: MarketMetrics
    supply: int
    demand: int
    trend: PriceTrend
    pressure: MarketPressure


class AuctionStateSnapshot(BaseModel):
    phase: AuctionPhase
    current_resource: ResourceKind | None = None
    time_remaining: float = 0
    market_price: int
    last_trade_price: int
    price_range: tuple[int, int]
    paused: bool = False
    open_positions: list[Position] = Field(default_factory=list)
    pending_trades: list[Trade] = Field(default_factory=list)
    active_market_events: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _resource_matches_phase(self) -> "AuctionStateSnapshot":
        needs_resource = self.phase in {AuctionPhase.active, AuctionPhase.resolution}
        if needs_resource and self.current_resource is None:
            raise ValueError(f"phase '{self.phase.value}' requires a current resource")
        if not needs_resource and self.current_resource is not None:
            raise ValueError(f"phase '{self.phase.value}' cannot carry a current resource")
        return self


class TransactionErrorReport(BaseModel):
    transaction_id: str
    errors: list[str]


class SettlementResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[TransactionErrorReport] = Field(default_factory=list)
    transaction_ids: list[str] = Field(default_factory=list)


class TransactionFilter(BaseModel):
    player_id: str | None = None
    resource: str | None = None
    status: TransactionStatus | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    limit: int | None = Field(None, gt=0)


class TransactionStatistics(BaseModel):
    pending: int
    completed: int
    failed: int
    total: int
    # Percentage, 0-100.
    success_rate: int
    volume_by_resource: dict[ResourceKind, int]
    average_price_by_resource: dict[ResourceKind, int]


class BiddingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_id: str
    action: PositionMode
    resource: ResourceKind
    price: int
    quantity: int = Field(..., gt=0)
    confidence: float = Field(..., ge=0, le=1)


class DecisionRecord(BaseModel):
    participant_id: str
    decision: BiddingDecision
    timestamp: datetime


class StrategyStats(BaseModel):
    strategy: StrategyProfile | None
    total_decisions: int
    successful_trades: int
    success_rate: float
    recent_decisions: list[DecisionRecord] = Field(default_factory=list)
