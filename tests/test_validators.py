from __future__ import annotations

from datetime import UTC, datetime

import pytest

from arcane_market.api.models import AuctionPhase, Transaction
from arcane_market.ledger import LedgerStore
from arcane_market.resources import ResourceKind
from arcane_market.turn_processing.validators import (
    POSITION_PIPELINE,
    SETTLEMENT_PIPELINE,
    AuctionView,
    PositionRejected,
    PositionRequest,
    TransactionViolation,
)

ACTIVE = AuctionView(phase=AuctionPhase.active, resource=ResourceKind.mana, price_range=(10, 100))


def _txn(**overrides: object) -> Transaction:
    data: dict[str, object] = {
        "transaction_id": "txn_1",
        "sequence": 1,
        "buyer_id": "buyer",
        "seller_id": "seller",
        "resource": "mana",
        "price": 10,
        "quantity": 1,
        "created_at": datetime(2025, 1, 1, tzinfo=UTC),
    }
    data.update(overrides)
    return Transaction.model_validate(data)


def test_phase_validator_denies_wrong_phase() -> None:
    view = AuctionView(phase=AuctionPhase.setup, resource=None, price_range=(10, 100))
    req = PositionRequest(participant_id="p1", price=50, mode="buy", quantity=1)

    with pytest.raises(PositionRejected) as e:
        POSITION_PIPELINE.validate(ctx=req, state=view)

    assert "setup" in str(e.value)
    assert "active" in str(e.value)


def test_position_errors_are_value_errors() -> None:
    req = PositionRequest(participant_id="p1", price=105, mode="buy", quantity=1)
    with pytest.raises(ValueError) as e:
        POSITION_PIPELINE.validate(ctx=req, state=ACTIVE)
    assert str(e.value) == "Price out of range: 105 (allowed 10-100)"


@pytest.mark.parametrize("price", [10, 100, 55.5])
def test_price_bounds_are_inclusive(price: float) -> None:
    req = PositionRequest(participant_id="p1", price=price, mode="sell", quantity=3)
    POSITION_PIPELINE.validate(ctx=req, state=ACTIVE)


@pytest.mark.parametrize("price", [True, None, "60", 9, 101])
def test_bad_prices_rejected(price: object) -> None:
    req = PositionRequest(participant_id="p1", price=price, mode="sell", quantity=3)
    with pytest.raises(PositionRejected):
        POSITION_PIPELINE.validate(ctx=req, state=ACTIVE)


def test_empty_participant_id_rejected() -> None:
    req = PositionRequest(participant_id="", price=50, mode="buy", quantity=1)
    with pytest.raises(PositionRejected) as e:
        POSITION_PIPELINE.validate(ctx=req, state=ACTIVE)
    assert str(e.value) == "Invalid participant id"


def test_settlement_pipeline_stops_at_first_problem(ledgers: LedgerStore) -> None:
    with pytest.raises(TransactionViolation) as e:
        SETTLEMENT_PIPELINE.validate(ctx=_txn(seller_id="buyer", resource="gold"), state=ledgers)
    assert str(e.value) == "Cannot trade with yourself"


def test_settlement_violations_collects_all(ledgers: LedgerStore) -> None:
    out = SETTLEMENT_PIPELINE.violations(ctx=_txn(resource="gold", quantity=1000), state=ledgers)
    assert out == [
        "Invalid resource type: 'gold'",
        "Quantity out of valid range (1-999)",
        "Buyer lacks sufficient gold (needs 10000, has 1000)",
    ]


def test_valid_transaction_has_no_violations(ledgers: LedgerStore) -> None:
    assert SETTLEMENT_PIPELINE.violations(ctx=_txn(quantity=50), state=ledgers) == []


def test_seller_holdings_checked(ledgers: LedgerStore) -> None:
    out = SETTLEMENT_PIPELINE.violations(ctx=_txn(resource="arcanum"), state=ledgers)
    assert out == ["Seller lacks sufficient arcanum (needs 1, has 0)"]
