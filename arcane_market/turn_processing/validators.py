from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, TypeVar

from arcane_market.api.models import AuctionPhase, PositionMode, Transaction
from arcane_market.ledger import LedgerReader
from arcane_market.resources import ResourceKind, parse_resource

C = TypeVar("C")
S = TypeVar("S")


class PositionRejected(ValueError):
    pass


class TransactionViolation(ValueError):
    pass


class Validator(ABC, Generic[C, S]):
    """A small, composable validation unit. Raises ValueError on the first problem it sees."""

    @abstractmethod
    def validate(self, *, ctx: C, state: S) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class ValidatorPipeline(Generic[C, S]):
    validators: tuple[Validator[C, S], ...]

    def validate(self, *, ctx: C, state: S) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)

    def violations(self, *, ctx: C, state: S) -> list[str]:
        """Run every validator and collect messages instead of stopping at the first."""

        out: list[str] = []
        for v in self.validators:
            try:
                v.validate(ctx=ctx, state=state)
            except ValueError as e:
                out.append(str(e))
        return out


# ---- positions ----


@dataclass(frozen=True, slots=True)
class PositionRequest:
    """A submission as received, before any coercion. Kept loggable."""

    participant_id: str
    price: object
    mode: object
    quantity: object


@dataclass(frozen=True, slots=True)
class AuctionView:
    phase: AuctionPhase
    resource: ResourceKind | None
    price_range: tuple[int, int]


@dataclass(frozen=True, slots=True)
class PhaseValidator(Validator[PositionRequest, AuctionView]):
    allowed_phases: frozenset[AuctionPhase]

    def validate(self, *, ctx: PositionRequest, state: AuctionView) -> None:
        if state.phase not in self.allowed_phases or state.resource is None:
            allowed = ",".join(sorted(p.value for p in self.allowed_phases))
            raise PositionRejected(f"Positions not accepted in phase '{state.phase.value}' (allowed: {allowed})")


@dataclass(frozen=True, slots=True)
class ParticipantIdValidator(Validator[PositionRequest, AuctionView]):
    def validate(self, *, ctx: PositionRequest, state: AuctionView) -> None:
        if not isinstance(ctx.participant_id, str) or not ctx.participant_id:
            raise PositionRejected("Invalid participant id")


@dataclass(frozen=True, slots=True)
class ModeValidator(Validator[PositionRequest, AuctionView]):
    def validate(self, *, ctx: PositionRequest, state: AuctionView) -> None:
        if ctx.mode not in {m.value for m in PositionMode}:
            raise PositionRejected(f"Invalid mode: {ctx.mode!r}")


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class PriceRangeValidator(Validator[PositionRequest, AuctionView]):
    def validate(self, *, ctx: PositionRequest, state: AuctionView) -> None:
        lo, hi = state.price_range
        if not _is_number(ctx.price) or not (lo <= ctx.price <= hi):  # type: ignore[operator]
            raise PositionRejected(f"Price out of range: {ctx.price!r} (allowed {lo}-{hi})")


@dataclass(frozen=True, slots=True)
class QuantityValidator(Validator[PositionRequest, AuctionView]):
    def validate(self, *, ctx: PositionRequest, state: AuctionView) -> None:
        q = ctx.quantity
        if not isinstance(q, int) or isinstance(q, bool) or q <= 0:
            raise PositionRejected(f"Quantity must be a positive whole number, got {q!r}")


POSITION_PIPELINE: ValidatorPipeline[PositionRequest, AuctionView] = ValidatorPipeline(
    validators=(
        PhaseValidator(allowed_phases=frozenset({AuctionPhase.active})),
        ParticipantIdValidator(),
        ModeValidator(),
        PriceRangeValidator(),
        QuantityValidator(),
    )
)


# ---- settlement ----

MIN_TRADE_PRICE = 1
MAX_TRADE_PRICE = 999
MIN_TRADE_QUANTITY = 1
MAX_TRADE_QUANTITY = 999


@dataclass(frozen=True, slots=True)
class CounterpartyValidator(Validator[Transaction, LedgerReader]):
    def validate(self, *, ctx: Transaction, state: LedgerReader) -> None:
        if not ctx.buyer_id or not ctx.seller_id:
            raise TransactionViolation("Invalid buyer or seller ID")
        if ctx.buyer_id == ctx.seller_id:
            raise TransactionViolation("Cannot trade with yourself")


@dataclass(frozen=True, slots=True)
class ResourceKindValidator(Validator[Transaction, LedgerReader]):
    def validate(self, *, ctx: Transaction, state: LedgerReader) -> None:
        if parse_resource(ctx.resource) is None:
            raise TransactionViolation(f"Invalid resource type: {ctx.resource!r}")


@dataclass(frozen=True, slots=True)
class TradeSizeValidator(Validator[Transaction, LedgerReader]):
    def validate(self, *, ctx: Transaction, state: LedgerReader) -> None:
        if not (MIN_TRADE_PRICE <= ctx.price <= MAX_TRADE_PRICE):
            raise TransactionViolation(f"Price out of valid range ({MIN_TRADE_PRICE}-{MAX_TRADE_PRICE})")
        if not (MIN_TRADE_QUANTITY <= ctx.quantity <= MAX_TRADE_QUANTITY):
            raise TransactionViolation(f"Quantity out of valid range ({MIN_TRADE_QUANTITY}-{MAX_TRADE_QUANTITY})")


@dataclass(frozen=True, slots=True)
class BuyerFundsValidator(Validator[Transaction, LedgerReader]):
    def validate(self, *, ctx: Transaction, state: LedgerReader) -> None:
        buyer = state.snapshot(ctx.buyer_id)
        if buyer is None:
            raise TransactionViolation("Buyer not found")
        if buyer.gold < ctx.total_cost:
            raise TransactionViolation(f"Buyer lacks sufficient gold (needs {ctx.total_cost}, has {buyer.gold})")


@dataclass(frozen=True, slots=True)
class SellerHoldingsValidator(Validator[Transaction, LedgerReader]):
    def validate(self, *, ctx: Transaction, state: LedgerReader) -> None:
        seller = state.snapshot(ctx.seller_id)
        if seller is None:
            raise TransactionViolation("Seller not found")
        kind = parse_resource(ctx.resource)
        if kind is None:
            # Already reported by ResourceKindValidator.
            return
        held = seller.holding(kind)
        if held < ctx.quantity:
            raise TransactionViolation(f"Seller lacks sufficient {kind.value} (needs {ctx.quantity}, has {held})")


SETTLEMENT_PIPELINE: ValidatorPipeline[Transaction, LedgerReader] = ValidatorPipeline(
    validators=(
        CounterpartyValidator(),
        ResourceKindValidator(),
        TradeSizeValidator(),
        BuyerFundsValidator(),
        SellerHoldingsValidator(),
    )
)
