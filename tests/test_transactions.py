from __future__ import annotations

import pytest

from arcane_market.api.models import TransactionStatus
from arcane_market.core.events import MarketEvent
from arcane_market.ledger import LedgerStore
from arcane_market.market_data import MarketDataService
from arcane_market.players import make_participant
from arcane_market.resources import ResourceKind
from arcane_market.streams import EventStream
from arcane_market.transactions import QUEUE_OVERFLOW, TransactionEngine


def test_create_transaction_assigns_sequential_ids(engine: TransactionEngine) -> None:
    t1 = engine.create_transaction("buyer", "seller", ResourceKind.mana, 40, 5)
    t2 = engine.create_transaction("buyer", "seller", "vitality", 30, 1)

    assert (t1, t2) == ("txn_1", "txn_2")
    assert [t.transaction_id for t in engine.pending] == ["txn_1", "txn_2"]
    assert engine.get_transaction("txn_2").status == TransactionStatus.pending


def test_queue_overflow_fails_new_transactions(engine: TransactionEngine) -> None:
    engine.max_pending_transactions = 5
    for _ in range(7):
        engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)

    assert len(engine.pending) == 5
    assert len(engine.failed) == 2
    assert all(t.failure_reason == QUEUE_OVERFLOW for t in engine.failed)
    # Overflow never reorders: the first five stay pending.
    assert [t.transaction_id for t in engine.pending] == [f"txn_{i}" for i in range(1, 6)]


def test_settlement_moves_gold_and_resources(
    engine: TransactionEngine, ledgers: LedgerStore, market_data: MarketDataService
) -> None:
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 40, 5)
    result = engine.process_pending_transactions()

    assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
    buyer = ledgers.snapshot("buyer")
    seller = ledgers.snapshot("seller")
    assert buyer.gold == 800
    assert buyer.holding(ResourceKind.mana) == 5
    assert seller.gold == 300
    assert seller.holding(ResourceKind.mana) == 45

    assert engine.pending == []
    assert engine.completed[0].status == TransactionStatus.completed
    assert engine.completed[0].settled_at is not None
    assert market_data.get_current_price(ResourceKind.mana) == 40


def test_insufficient_gold_leaves_ledgers_untouched() -> None:
    store = LedgerStore()
    store.load(
        [
            make_participant(participant_id="poor", gold=50),
            make_participant(participant_id="rich", gold=0, resources={"aether": 20}),
        ]
    )
    engine = TransactionEngine(store)
    before = store.export()

    engine.create_transaction("poor", "rich", ResourceKind.aether, 100, 10)
    violations = engine.validate_transaction(engine.pending[0])
    assert violations == ["Buyer lacks sufficient gold (needs 1000, has 50)"]

    result = engine.process_pending_transactions()
    assert result.failed == 1
    assert result.errors[0].errors == violations
    assert store.export() == before
    assert engine.failed[0].failure_reason == "Buyer lacks sufficient gold (needs 1000, has 50)"


def test_validation_collects_every_violation(engine: TransactionEngine) -> None:
    engine.create_transaction("buyer", "buyer", "gold", 0, 1000)
    violations = engine.validate_transaction(engine.pending[0])

    assert violations[0] == "Cannot trade with yourself"
    assert any(v.startswith("Invalid resource type") for v in violations)
    assert any(v.startswith("Price out of valid range") for v in violations)


def test_unknown_participants_are_reported(engine: TransactionEngine) -> None:
    engine.create_transaction("ghost", "seller", ResourceKind.mana, 10, 1)
    assert "Buyer not found" in engine.validate_transaction(engine.pending[0])

    engine.create_transaction("buyer", "ghost", ResourceKind.mana, 10, 1)
    assert "Seller not found" in engine.validate_transaction(engine.pending[1])


def test_settlement_revalidates_each_transaction_in_order(engine: TransactionEngine, ledgers: LedgerStore) -> None:
    first = engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 30)
    second = engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 30)

    result = engine.process_pending_transactions()

    assert (result.succeeded, result.failed) == (1, 1)
    assert engine.get_transaction(first).status == TransactionStatus.completed
    failed = engine.get_transaction(second)
    assert failed.status == TransactionStatus.failed
    assert failed.failure_reason == "Seller lacks sufficient mana (needs 30, has 20)"
    assert ledgers.snapshot("seller").holding(ResourceKind.mana) == 20


def test_statistics_are_quantity_weighted(engine: TransactionEngine) -> None:
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 40, 5)
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 40, 5)
    engine.process_pending_transactions()

    stats = engine.get_statistics()
    assert stats.completed == 2
    assert stats.success_rate == 100
    assert stats.volume_by_resource[ResourceKind.mana] == 10
    assert stats.average_price_by_resource[ResourceKind.mana] == 40
    assert stats.average_price_by_resource[ResourceKind.aether] == 0

    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 3)
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 20, 1)
    engine.create_transaction("buyer", "seller", ResourceKind.aether, 10, 1)
    engine.process_pending_transactions()

    stats = engine.get_statistics()
    assert (stats.completed, stats.failed, stats.total) == (4, 1, 5)
    assert stats.success_rate == 80
    # (400 + 30 + 20) / 14
    assert stats.average_price_by_resource[ResourceKind.mana] == 32


def test_history_filters_newest_first(engine: TransactionEngine) -> None:
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)
    engine.create_transaction("buyer", "seller", ResourceKind.vitality, 10, 1)
    engine.create_transaction("seller", "buyer", ResourceKind.mana, 10, 5)
    engine.process_pending_transactions()

    history = engine.get_transaction_history()
    assert [t.transaction_id for t in history] == ["txn_3", "txn_2", "txn_1"]

    mana = engine.get_transaction_history(resource="mana")
    assert {t.transaction_id for t in mana} == {"txn_1", "txn_3"}

    failed = engine.get_transaction_history({"status": "failed"})
    assert [t.transaction_id for t in failed] == ["txn_3"]

    assert len(engine.get_transaction_history(player_id="buyer", limit=1)) == 1


def test_settlement_events(ledgers: LedgerStore) -> None:
    events = EventStream()
    seen: list[MarketEvent] = []
    events.subscribe(seen.append)
    engine = TransactionEngine(ledgers, events=events)

    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 1, 100)
    engine.process_pending_transactions()

    assert [e.type for e in seen] == ["TRANSACTION_COMPLETED", "TRANSACTION_FAILED"]
    assert seen[0].payload["buyer_id"] == "buyer"
    assert seen[1].payload["failure_reason"].startswith("Seller lacks sufficient mana")


def test_reset_clears_queues_and_counter(engine: TransactionEngine) -> None:
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)
    engine.process_pending_transactions()
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)

    engine.reset()

    assert engine.pending == [] and engine.completed == [] and engine.failed == []
    assert engine.get_statistics().total == 0
    assert engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1) == "txn_1"


def test_clear_history_keeps_pending(engine: TransactionEngine) -> None:
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)
    engine.process_pending_transactions()
    engine.create_transaction("buyer", "seller", ResourceKind.mana, 10, 1)

    engine.clear_history()

    assert engine.completed == []
    assert len(engine.pending) == 1


@pytest.mark.parametrize(
    ("buyer", "price", "quantity", "reason"),
    [
        ("buyer", 57.5, 1, "Price must be a whole number, got 57.5"),
        ("buyer", 40, 2.5, "Quantity must be a whole number, got 2.5"),
        ("buyer", "40", 1, "Price must be a whole number, got '40'"),
        ("buyer", float("nan"), 1, "Price must be a whole number, got nan"),
        (None, 40, 1, "Participant ids must be strings"),
    ],
)
def test_malformed_transactions_fail_without_raising(
    engine: TransactionEngine, ledgers: LedgerStore, buyer: object, price: object, quantity: object, reason: str
) -> None:
    before = ledgers.export()

    txn_id = engine.create_transaction(buyer, "seller", ResourceKind.mana, price, quantity)  # type: ignore[arg-type]

    assert txn_id == "txn_1"
    assert engine.pending == []
    failed = engine.get_transaction(txn_id)
    assert failed.status == TransactionStatus.failed
    assert failed.failure_reason == reason

    assert engine.process_pending_transactions().processed == 0
    assert ledgers.export() == before


def test_whole_float_values_are_accepted(engine: TransactionEngine) -> None:
    txn_id = engine.create_transaction("buyer", "seller", ResourceKind.mana, 40.0, 5.0)  # type: ignore[arg-type]

    (pending,) = engine.pending
    assert pending.transaction_id == txn_id
    assert (pending.price, pending.quantity) == (40, 5)
    assert engine.process_pending_transactions().succeeded == 1
