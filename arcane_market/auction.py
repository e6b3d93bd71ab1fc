from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from statemachine.exceptions import TransitionNotAllowed

from arcane_market.api.models import AuctionPhase, AuctionStateSnapshot, Position, PositionMode, Trade
from arcane_market.config import EngineSettings
from arcane_market.core.errors import EngineNotReadyError
from arcane_market.core.events import EventType
from arcane_market.core.numbers import round_half_up
from arcane_market.fsm import AuctionFSM
from arcane_market.market_data import MarketDataService
from arcane_market.market_events import MarketEventSystem
from arcane_market.resource_queue import ResourceQueue
from arcane_market.resources import DEFAULT_PRICE, ResourceKind, parse_resource, position_bounds
from arcane_market.streams import EventStream
from arcane_market.transactions import TransactionEngine
from arcane_market.turn_processing.validators import POSITION_PIPELINE, AuctionView, PositionRequest

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=UTC)


class AuctionManager:
    """Phase progression, position book and matching for the resource rounds.

    Time only moves through `update_timer(delta)`. Trades found by matching sit
    in `pending_trades` until the round ends, when they are handed to the
    Transaction Engine for settlement.
    """

    def __init__(
        self,
        *,
        settings: EngineSettings | None = None,
        transactions: TransactionEngine | None = None,
        market_data: MarketDataService | None = None,
        market_events: MarketEventSystem | None = None,
        events: EventStream | None = None,
        queue: ResourceQueue | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._transactions = transactions
        self._market_data = market_data
        self._market_events = market_events
        self._events = events
        self._queue = queue or ResourceQueue()

        self._fsm = AuctionFSM()
        self.current_resource: ResourceKind | None = None
        self.time_remaining: float = 0
        self.market_price = DEFAULT_PRICE
        self.last_trade_price = DEFAULT_PRICE
        self.round_id = 0
        self._paused = False

        # Open positions in submission order; at most one per participant.
        self._positions: list[Position] = []
        self._pending_trades: list[Trade] = []
        self._seq = 0
        self._trade_counter = 0

    # ---- read side ----

    @property
    def phase(self) -> AuctionPhase:
        return self._fsm.phase

    @property
    def queue(self) -> ResourceQueue:
        return self._queue

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def price_range(self) -> tuple[int, int]:
        if self.current_resource is None:
            return self._settings.position_min_price, self._settings.position_max_price
        return position_bounds(self.current_resource, self._settings)

    @property
    def open_positions(self) -> list[Position]:
        return list(self._positions)

    @property
    def pending_trades(self) -> list[Trade]:
        return list(self._pending_trades)

    def get_state(self) -> AuctionStateSnapshot:
        active_events: list[str] = []
        if self._market_events is not None and self.current_resource is not None:
            active_events = [e.name for e in self._market_events.get_active_events(self.current_resource)]

        return AuctionStateSnapshot(
            phase=self.phase,
            current_resource=self.current_resource,
            time_remaining=self.time_remaining,
            market_price=self.market_price,
            last_trade_price=self.last_trade_price,
            price_range=self.price_range,
            paused=self._paused,
            open_positions=self.open_positions,
            pending_trades=self.pending_trades,
            active_market_events=active_events,
        )

    # ---- phase control ----

    def start_auction_phase(self) -> bool:
        try:
            self._fsm.open_setup()
        except TransitionNotAllowed:
            logger.warning("cannot start auction phase from %s", self.phase.value)
            return False

        self.time_remaining = self._settings.setup_duration
        self._positions = []
        self._pending_trades = []
        self._paused = False
        self._queue.reset()
        logger.info("auction setup started (%ss)", self.time_remaining)
        self._emit("AUCTION_PHASE_STARTED", phase=self.phase.value, duration=self.time_remaining)
        return True

    def start_resource_auction(self, resource: ResourceKind | str) -> bool:
        kind = parse_resource(resource)
        if kind is None:
            logger.warning("invalid resource type: %r", resource)
            return False
        return self._open_round(kind, from_queue=False)

    def _open_round(self, kind: ResourceKind, *, from_queue: bool) -> bool:
        try:
            self._fsm.open_round()
        except TransitionNotAllowed:
            logger.warning("cannot open %s round from %s", kind.value, self.phase.value)
            return False

        if self._pending_trades:
            logger.warning("discarding %d unsettled trades from the previous round", len(self._pending_trades))
        if not from_queue:
            self._queue.sync_to(kind)

        self.round_id += 1
        self.current_resource = kind
        self.time_remaining = self._settings.auction_duration
        self._positions = []
        self._pending_trades = []

        if self._market_data is not None:
            self._market_data.update_market_prices()
            self.market_price = self._market_data.calculate_dynamic_price(kind)
        self.last_trade_price = self.market_price

        if self._market_events is not None:
            event = self._market_events.check_for_event(kind)
            if event is not None:
                self.market_price = self._market_events.apply_to_price(event, self.market_price, self.price_range)
                self._emit("MARKET_EVENT", resource=kind.value, event=event.as_dict(), market_price=self.market_price)

        logger.info("round %d: %s auction started at %s", self.round_id, kind.value, self.market_price)
        self._emit(
            "RESOURCE_AUCTION_STARTED",
            resource=kind.value,
            market_price=self.market_price,
            duration=self.time_remaining,
        )
        self._emit("QUEUE_PROGRESS", **self._queue.status())
        return True

    def end_resource_auction(self) -> bool:
        """Close the active round and settle its pending trades."""

        resource = self.current_resource
        if resource is None:
            return False
        try:
            self._fsm.close_round()
        except TransitionNotAllowed:
            logger.warning("cannot end auction from %s", self.phase.value)
            return False

        trades = self._pending_trades
        self._pending_trades = []
        self._positions = []

        settlement: dict[str, Any] | None = None
        if self._transactions is not None:
            for t in trades:
                self._transactions.create_transaction(t.buyer_id, t.seller_id, t.resource, t.clearing_price, t.quantity)
            settlement = self._transactions.process_pending_transactions().model_dump()
        elif self._market_data is not None and trades:
            self._market_data.record_trade(resource, self.last_trade_price, sum(t.quantity for t in trades))

        self._queue.mark_completed(resource)
        self.time_remaining = self._settings.transition_delay

        logger.info("round %d: %s auction ended, %d trades", self.round_id, resource.value, len(trades))
        self._emit(
            "RESOURCE_AUCTION_ENDED",
            resource=resource.value,
            final_price=self.last_trade_price,
            total_trades=len(trades),
            trades=[t.model_dump(mode="json") for t in trades],
            settlement=settlement,
        )
        return True

    def skip_current(self) -> bool:
        """End the active round now and move straight to the next resource."""

        if self.phase != AuctionPhase.active:
            return False
        self.end_resource_auction()
        self._advance_queue()
        return True

    def pause(self) -> bool:
        if self.phase == AuctionPhase.inactive or self._paused:
            return False
        self._paused = True
        self._queue.pause()
        logger.info("auction paused")
        return True

    def resume(self) -> bool:
        if not self._paused:
            return False
        self._paused = False
        self._queue.resume()
        logger.info("auction resumed")
        return True

    def update_timer(self, delta: float) -> None:
        """Advance the countdown of the current phase by `delta` time units.

        Hitting zero moves to the next phase, whose countdown starts fresh;
        any overshoot is dropped.
        """

        if self.phase == AuctionPhase.inactive or self._paused:
            return

        if self._market_events is not None:
            self._market_events.tick(delta)

        self.time_remaining = max(0.0, self.time_remaining - delta)
        if self.time_remaining > 0:
            return

        if self.phase == AuctionPhase.setup:
            first = self._queue.start()
            if first is not None:
                self._open_round(first, from_queue=True)
        elif self.phase == AuctionPhase.active:
            self.end_resource_auction()
            if self.time_remaining <= 0:
                self._advance_queue()
        elif self.phase == AuctionPhase.resolution:
            self._advance_queue()

    def _advance_queue(self) -> None:
        previous = self.current_resource
        nxt = self._queue.advance()
        if nxt is not None:
            self._emit(
                "QUEUE_TRANSITION",
                from_resource=previous.value if previous else None,
                to_resource=nxt.value,
            )
            self._open_round(nxt, from_queue=True)
            return

        self._fsm.finish()
        self.current_resource = None
        self.time_remaining = 0
        self._paused = False
        logger.info("auction phase complete")
        self._emit("QUEUE_COMPLETE", completed=[r.value for r in self._queue.completed()])

    def reset(self) -> None:
        self._fsm = AuctionFSM()
        self.current_resource = None
        self.time_remaining = 0
        self.market_price = DEFAULT_PRICE
        self.last_trade_price = DEFAULT_PRICE
        self.round_id = 0
        self._paused = False
        self._positions = []
        self._pending_trades = []
        self._seq = 0
        self._trade_counter = 0
        self._queue.reset()
        self._emit("AUCTION_RESET")

    # ---- positions ----

    def update_player_position(
        self, participant_id: str, price: float, mode: PositionMode | str, quantity: int = 1
    ) -> bool:
        """Place or replace `participant_id`'s position for the active round, then match.

        Returns False, with nothing changed, if the phase, price, mode or quantity is invalid.
        """

        req = PositionRequest(participant_id=participant_id, price=price, mode=mode, quantity=quantity)
        view = AuctionView(phase=self.phase, resource=self.current_resource, price_range=self.price_range)
        try:
            POSITION_PIPELINE.validate(ctx=req, state=view)
        except ValueError as e:
            logger.warning("position from %s rejected: %s", participant_id, e)
            return False

        self._seq += 1
        position = Position(
            participant_id=participant_id,
            mode=PositionMode(mode),
            price=round_half_up(price),
            quantity=quantity,
            submitted_at=_now(),
            seq=self._seq,
        )
        # A replacement goes to the back of the book.
        self._positions = [p for p in self._positions if p.participant_id != participant_id]
        self._positions.append(position)

        self._emit(
            "POSITION_SET",
            participant_id=participant_id,
            price=position.price,
            mode=position.mode.value,
            quantity=quantity,
        )
        self._match()
        return True

    def _match(self) -> list[Trade]:
        """Pair crossing positions until none remain.

        Each pass takes the earliest buyer that crosses any seller, paired with the
        earliest seller it crosses. A partially filled position keeps its place in
        the book with the remaining quantity.
        """

        trades: list[Trade] = []
        while True:
            pair = self._find_crossing()
            if pair is None:
                return trades
            buyer, seller = pair
            trades.append(self._execute(buyer, seller))

    def _find_crossing(self) -> tuple[Position, Position] | None:
        sellers = [p for p in self._positions if p.mode == PositionMode.sell]
        for buyer in (p for p in self._positions if p.mode == PositionMode.buy):
            for seller in sellers:
                if buyer.price >= seller.price:
                    return buyer, seller
        return None

    def _execute(self, buyer: Position, seller: Position) -> Trade:
        resource = self.current_resource
        if resource is None:
            raise EngineNotReadyError("Cannot execute a trade with no resource under auction")
        quantity = min(buyer.quantity, seller.quantity)
        self._trade_counter += 1
        trade = Trade(
            trade_id=f"trade_{self.round_id}_{self._trade_counter}",
            buyer_id=buyer.participant_id,
            seller_id=seller.participant_id,
            resource=resource,
            clearing_price=round_half_up((buyer.price + seller.price) / 2),
            quantity=quantity,
            timestamp=_now(),
        )

        book: list[Position] = []
        for p in self._positions:
            if p is buyer or p is seller:
                left = p.quantity - quantity
                if left > 0:
                    book.append(p.model_copy(update={"quantity": left}))
            else:
                book.append(p)
        self._positions = book

        self._pending_trades.append(trade)
        self.last_trade_price = trade.clearing_price
        logger.debug(
            "matched %s buy@%s with %s sell@%s -> %s x%s",
            buyer.participant_id,
            buyer.price,
            seller.participant_id,
            seller.price,
            trade.clearing_price,
            quantity,
        )
        self._emit("TRADE_EXECUTED", **trade.model_dump(mode="json"))
        return trade

    def _emit(self, type: EventType, **payload: Any) -> None:
        if self._events is not None:
            self._events.emit(type, round_id=self.round_id, **payload)
