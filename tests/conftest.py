"""
Shared fixtures for simulator tests.

Sessions run on a fixed clock (Monday 2026-10-19 10:00, nearest weekly
expiry Thursday 2026-10-22), a seeded numpy generator, zero simulated
latency and, unless a test overrides it, a fill probability of 1.0.
"""

from __future__ import annotations

from datetime import datetime

import numpy as np
import pytest

from optsim.api.service import TradingSession
from optsim.derivatives.contracts import Action, OptionType
from optsim.derivatives.orders import OrderBook
from optsim.utils.config import Settings

FIXED_NOW = datetime(2026, 10, 19, 10, 0, 0)
SEED = 20261019


def make_settings(**overrides) -> Settings:
    values = {
        "fill_probability": 1.0,
        "order_latency_seconds": 0.0,
        "basket_latency_seconds": 0.0,
        "auto_refresh": False,
        "random_seed": SEED,
        "log_file": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_session(**overrides) -> TradingSession:
    settings = make_settings(**overrides)
    return TradingSession(settings, rng=np.random.default_rng(SEED), clock=lambda: FIXED_NOW)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(SEED)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def session() -> TradingSession:
    return make_session()


@pytest.fixture
def rejecting_session() -> TradingSession:
    return make_session(fill_probability=0.0)


@pytest.fixture
def order_book() -> OrderBook:
    return OrderBook()


def intent_payload(
    strike: float = 21350.0,
    option_type: OptionType = OptionType.CALL,
    action: Action = Action.BUY,
    quantity=1,
    price=100.0,
    symbol: str = "NIFTY",
) -> dict:
    return {
        "symbol": symbol,
        "strike": strike,
        "option_type": option_type.value,
        "action": action.value,
        "quantity": quantity,
        "price": price,
    }
