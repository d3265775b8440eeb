"""
Shared fixtures for ledger tests.

Every test gets its own SQLite database file; the cached settings and
engine are rebuilt around it.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

import config
import db_engine
from services.market_data import PriceOracle, PriceQuote


class FakePriceOracle(PriceOracle):
    """In-memory oracle; symbols without a configured price are unavailable."""

    def __init__(self, prices: Optional[Dict[str, float]] = None) -> None:
        self.prices = {k: Decimal(str(v)) for k, v in (prices or {}).items()}
        self.requested: List[List[str]] = []

    def get_price(self, symbol: str, asset_type: Optional[str] = None) -> Optional[PriceQuote]:
        price = self.prices.get(symbol)
        if price is None:
            return None
        return PriceQuote(symbol=symbol, price=price, timestamp=datetime.now(), source="fake")

    def get_prices(self, symbols, asset_types=None) -> Dict[str, PriceQuote]:
        self.requested.append(list(symbols))
        quotes = {}
        for symbol in symbols:
            quote = self.get_price(symbol)
            if quote is not None:
                quotes[symbol] = quote
        return quotes


@pytest.fixture(autouse=True)
def ledger_db(tmp_path, monkeypatch):
    """Point the ledger at a fresh SQLite database and create the schema."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    monkeypatch.setenv("COMMISSION_RATE", "0.001")
    monkeypatch.setenv("LOCK_TIMEOUT_MS", "10000")
    config.reload_settings()
    db_engine.reset_engine()
    db_engine.init_db()
    yield
    db_engine.reset_engine()
    config.reload_settings()


@pytest.fixture
def fake_oracle() -> FakePriceOracle:
    return FakePriceOracle()
