from __future__ import annotations

import pytest
from pydantic import ValidationError

from arcane_market.ledger import LedgerStore
from arcane_market.players import make_participant
from arcane_market.resources import ResourceKind


def test_load_accepts_models_and_dicts() -> None:
    store = LedgerStore()
    store.load(
        [
            make_participant(participant_id="a", gold=10),
            {"participant_id": "b", "gold": 5, "resources": {"arcanum": 3}},
        ]
    )

    assert store.ids() == ["a", "b"]
    assert len(store) == 2
    assert "b" in store
    assert store.snapshot("b").holding(ResourceKind.arcanum) == 3
    assert store.snapshot("nobody") is None


def test_load_rejects_duplicates_and_bad_entries() -> None:
    store = LedgerStore()
    with pytest.raises(ValueError, match="Duplicate"):
        store.load([{"participant_id": "a"}, {"participant_id": "a"}])
    with pytest.raises(ValidationError):
        store.load([{"participant_id": "a", "gold": -1}])
    with pytest.raises(ValidationError):
        store.load([{"participant_id": "a", "resources": {"gold": 1}}])


def test_snapshots_are_copies(ledgers: LedgerStore) -> None:
    snap = ledgers.snapshot("seller")
    snap.resources[ResourceKind.mana] = 0

    assert ledgers.snapshot("seller").holding(ResourceKind.mana) == 50


def test_apply_settlement_moves_both_sides(ledgers: LedgerStore) -> None:
    ledgers.apply_settlement(buyer_id="buyer", seller_id="seller", resource=ResourceKind.vitality, price=30, quantity=4)

    assert ledgers.snapshot("buyer").gold == 880
    assert ledgers.snapshot("buyer").holding(ResourceKind.vitality) == 4
    assert ledgers.snapshot("seller").gold == 220
    assert ledgers.snapshot("seller").holding(ResourceKind.vitality) == 16


@pytest.mark.parametrize(
    ("buyer", "seller", "price", "quantity", "message"),
    [
        ("buyer", "ghost", 10, 1, "not found"),
        ("buyer", "buyer", 10, 1, "yourself"),
        ("buyer", "seller", 100, 11, "Buyer lacks sufficient gold"),
        ("buyer", "seller", 10, 21, "Seller lacks sufficient vitality"),
    ],
)
def test_apply_settlement_is_all_or_nothing(
    ledgers: LedgerStore, buyer: str, seller: str, price: int, quantity: int, message: str
) -> None:
    before = ledgers.export()
    with pytest.raises(ValueError, match=message):
        ledgers.apply_settlement(
            buyer_id=buyer, seller_id=seller, resource=ResourceKind.vitality, price=price, quantity=quantity
        )
    assert ledgers.export() == before


def test_export_is_roster_shaped(ledgers: LedgerStore) -> None:
    exported = ledgers.export()
    assert exported[1]["participant_id"] == "seller"
    assert exported[1]["resources"] == {"mana": 50, "vitality": 20}

    again = LedgerStore()
    again.load(exported)
    assert again.snapshots() == ledgers.snapshots()
