from __future__ import annotations

import os

import pytest

from arcane_market.api.models import Participant
from arcane_market.auction import AuctionManager
from arcane_market.config import ENV_PREFIX, EngineSettings
from arcane_market.ledger import LedgerStore
from arcane_market.market_data import MarketDataService
from arcane_market.players import make_participant
from arcane_market.session import MarketSession
from arcane_market.streams import EventStream
from arcane_market.transactions import TransactionEngine


@pytest.fixture(autouse=True)
def _clean_engine_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's ARCANE_MARKET_* exports out of the tests."""

    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def settings() -> EngineSettings:
    # No random market events unless a test opts in.
    return EngineSettings(market_event_probability=0.0, seed=7)


@pytest.fixture()
def roster() -> list[Participant]:
    return [
        make_participant(participant_id="buyer", gold=1000),
        make_participant(participant_id="seller", gold=100, resources={"mana": 50, "vitality": 20}),
    ]


@pytest.fixture()
def ledgers(roster: list[Participant]) -> LedgerStore:
    store = LedgerStore()
    store.load(roster)
    return store


@pytest.fixture()
def events() -> EventStream:
    return EventStream()


@pytest.fixture()
def market_data(ledgers: LedgerStore, settings: EngineSettings) -> MarketDataService:
    return MarketDataService(ledgers, settings=settings)


@pytest.fixture()
def engine(
    ledgers: LedgerStore, market_data: MarketDataService, settings: EngineSettings, events: EventStream
) -> TransactionEngine:
    return TransactionEngine(ledgers, market_data, settings=settings, events=events)


@pytest.fixture()
def auction(
    engine: TransactionEngine, market_data: MarketDataService, settings: EngineSettings, events: EventStream
) -> AuctionManager:
    return AuctionManager(settings=settings, transactions=engine, market_data=market_data, events=events)


@pytest.fixture()
def session(settings: EngineSettings, roster: list[Participant]) -> MarketSession:
    s = MarketSession(settings)
    s.load_roster(roster)
    return s
