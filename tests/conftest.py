"""Shared fixtures: an in-memory custody store and a wallet engine on a manual clock."""

from __future__ import annotations

import pytest

from treasury_sentinel.engine import WalletEngine
from treasury_sentinel.ledger.models import Base
from treasury_sentinel.ledger.service import create_database_engine
from treasury_sentinel.wallet.clock import ManualClock


@pytest.fixture
def database():
    engine = create_database_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return ManualClock(0)


@pytest.fixture
def wallet_engine(clock):
    engine = WalletEngine.from_url("sqlite://", clock=clock, echo=False)
    yield engine
    engine.database.dispose()
