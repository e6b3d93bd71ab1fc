from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from arcane_market.api.models import (
    SettlementResult,
    Transaction,
    TransactionErrorReport,
    TransactionFilter,
    TransactionStatistics,
    TransactionStatus,
)
from arcane_market.config import EngineSettings
from arcane_market.core.numbers import round_half_up
from arcane_market.ledger import LedgerStore
from arcane_market.market_data import MarketDataService
from arcane_market.resources import ResourceKind, parse_resource
from arcane_market.streams import EventStream
from arcane_market.turn_processing.validators import SETTLEMENT_PIPELINE

logger = logging.getLogger(__name__)

QUEUE_OVERFLOW = "queue overflow"


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _whole(value: object) -> int | None:
    """`value` as an int when it is a whole number (57.0 counts, 57.5 and True do not)."""

    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return int(value)


class TransactionEngine:
    """Validates and settles trades against participant ledgers.

    The engine is the single writer of the ledger store. Settlement is
    all-or-nothing per transaction and transactions are drained strictly in
    enqueue order, each one validated against the ledgers as left by the
    previous one.
    """

    def __init__(
        self,
        ledgers: LedgerStore,
        market_data: MarketDataService | None = None,
        *,
        settings: EngineSettings | None = None,
        events: EventStream | None = None,
    ) -> None:
        cfg = settings or EngineSettings()
        self._ledgers = ledgers
        self._market_data = market_data
        self._events = events

        self.max_pending_transactions = cfg.max_pending_transactions
        self._pending: deque[Transaction] = deque()
        self._completed: deque[Transaction] = deque(maxlen=cfg.max_completed_history)
        self._failed: deque[Transaction] = deque(maxlen=cfg.max_failed_history)
        self._counter = 0

    @property
    def pending(self) -> list[Transaction]:
        return list(self._pending)

    @property
    def completed(self) -> list[Transaction]:
        return list(self._completed)

    @property
    def failed(self) -> list[Transaction]:
        return list(self._failed)

    def create_transaction(
        self,
        buyer_id: str,
        seller_id: str,
        resource: ResourceKind | str,
        price: int,
        quantity: int,
    ) -> str:
        """Enqueue a pending transaction and return its id.

        A full queue never evicts or reorders: the new transaction goes straight
        to the failed list with reason "queue overflow". Malformed ids or
        non-whole price/quantity values fail the same way instead of raising.
        """

        self._counter += 1
        whole_price = _whole(price)
        whole_quantity = _whole(quantity)
        malformed: list[str] = []
        if not isinstance(buyer_id, str) or not isinstance(seller_id, str):
            malformed.append("Participant ids must be strings")
        if whole_price is None:
            malformed.append(f"Price must be a whole number, got {price!r}")
        if whole_quantity is None:
            malformed.append(f"Quantity must be a whole number, got {quantity!r}")

        txn = Transaction(
            transaction_id=f"txn_{self._counter}",
            sequence=self._counter,
            buyer_id=buyer_id if isinstance(buyer_id, str) else "",
            seller_id=seller_id if isinstance(seller_id, str) else "",
            resource=resource.value if isinstance(resource, ResourceKind) else str(resource),
            price=whole_price if whole_price is not None else 0,
            quantity=whole_quantity if whole_quantity is not None else 0,
            created_at=_now(),
        )

        if malformed:
            self._fail(txn, malformed)
            return txn.transaction_id

        if len(self._pending) >= self.max_pending_transactions:
            logger.warning(
                "pending queue full (%d); failing %s immediately", self.max_pending_transactions, txn.transaction_id
            )
            self._fail(txn, [QUEUE_OVERFLOW])
            return txn.transaction_id

        self._pending.append(txn)
        return txn.transaction_id

    def validate_transaction(self, transaction: Transaction) -> list[str]:
        """Every rule the transaction breaks right now, against current ledgers. Empty means valid."""

        return SETTLEMENT_PIPELINE.violations(ctx=transaction, state=self._ledgers)

    def process_pending_transactions(self) -> SettlementResult:
        result = SettlementResult()

        while self._pending:
            txn = self._pending.popleft()
            result.processed += 1
            result.transaction_ids.append(txn.transaction_id)

            errors = self.validate_transaction(txn)
            if not errors:
                errors = self._execute(txn)

            if errors:
                result.failed += 1
                result.errors.append(TransactionErrorReport(transaction_id=txn.transaction_id, errors=errors))
                self._fail(txn, errors)
            else:
                result.succeeded += 1

        if result.processed:
            logger.info(
                "settled %d transactions: %d succeeded, %d failed", result.processed, result.succeeded, result.failed
            )
        return result

    def _execute(self, txn: Transaction) -> list[str]:
        kind = parse_resource(txn.resource)
        if kind is None:
            return [f"Invalid resource type: {txn.resource!r}"]

        try:
            self._ledgers.apply_settlement(
                buyer_id=txn.buyer_id,
                seller_id=txn.seller_id,
                resource=kind,
                price=txn.price,
                quantity=txn.quantity,
            )
        except ValueError as e:
            return [str(e)]

        if self._market_data is not None:
            self._market_data.record_trade(kind, txn.price, txn.quantity)

        done = txn.model_copy(update={"status": TransactionStatus.completed, "settled_at": _now()})
        self._completed.append(done)
        if self._events is not None:
            self._events.emit("TRANSACTION_COMPLETED", **_payload(done))
        return []

    def _fail(self, txn: Transaction, errors: list[str]) -> None:
        failed = txn.model_copy(
            update={
                "status": TransactionStatus.failed,
                "failure_reason": errors[0],
                "errors": tuple(errors),
                "settled_at": _now(),
            }
        )
        self._failed.append(failed)
        logger.warning("transaction %s failed: %s", failed.transaction_id, failed.failure_reason)
        if self._events is not None:
            self._events.emit("TRANSACTION_FAILED", **_payload(failed))

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        for txn in self._all():
            if txn.transaction_id == transaction_id:
                return txn
        return None

    def _all(self) -> Iterable[Transaction]:
        yield from self._pending
        yield from self._completed
        yield from self._failed

    def get_transaction_history(
        self, filter: TransactionFilter | dict[str, Any] | None = None, **criteria: Any
    ) -> list[Transaction]:
        """Settled transactions (completed and failed), newest first."""

        if filter is None:
            f = TransactionFilter.model_validate(criteria)
        elif isinstance(filter, TransactionFilter):
            f = filter
        else:
            f = TransactionFilter.model_validate({**filter, **criteria})

        txns = [*self._completed, *self._failed]
        if f.player_id is not None:
            txns = [t for t in txns if f.player_id in (t.buyer_id, t.seller_id)]
        if f.resource is not None:
            txns = [t for t in txns if t.resource == f.resource]
        if f.status is not None:
            txns = [t for t in txns if t.status == f.status]
        if f.start_time is not None:
            txns = [t for t in txns if t.created_at >= f.start_time]
        if f.end_time is not None:
            txns = [t for t in txns if t.created_at <= f.end_time]

        txns.sort(key=lambda t: (t.created_at, t.sequence), reverse=True)
        if f.limit is not None:
            txns = txns[: f.limit]
        return txns

    def get_statistics(self) -> TransactionStatistics:
        completed = len(self._completed)
        failed = len(self._failed)
        total = completed + failed

        volume: dict[ResourceKind, int] = {}
        average: dict[ResourceKind, int] = {}
        for kind in ResourceKind:
            trades = [t for t in self._completed if t.resource == kind.value]
            qty = sum(t.quantity for t in trades)
            value = sum(t.total_cost for t in trades)
            volume[kind] = qty
            average[kind] = round_half_up(value / qty) if qty > 0 else 0

        return TransactionStatistics(
            pending=len(self._pending),
            completed=completed,
            failed=failed,
            total=total,
            success_rate=round_half_up(completed / total * 100) if total > 0 else 0,
            volume_by_resource=volume,
            average_price_by_resource=average,
        )

    def clear_history(self) -> None:
        self._completed.clear()
        self._failed.clear()

    def reset(self) -> None:
        self._pending.clear()
        self.clear_history()
        self._counter = 0


def _payload(txn: Transaction) -> dict[str, Any]:
    return {
        "transaction_id": txn.transaction_id,
        "buyer_id": txn.buyer_id,
        "seller_id": txn.seller_id,
        "resource": txn.resource,
        "price": txn.price,
        "quantity": txn.quantity,
        "status": txn.status.value,
        "failure_reason": txn.failure_reason,
    }
