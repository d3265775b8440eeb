"""
Tests for the yfinance price oracle.

Network access is replaced by canned pandas histories.
"""

from decimal import Decimal

import pandas as pd
import pytest

from services.common import normalize_symbol
from services.market_data import YFinancePriceOracle


def _history(closes):
    index = pd.date_range("2024-03-01", periods=len(closes), freq="D")
    return pd.DataFrame({"Close": closes}, index=index)


@pytest.fixture
def oracle(monkeypatch) -> YFinancePriceOracle:
    """Oracle whose ticker histories come from a dict keyed by Yahoo ticker."""
    histories = {
        "SBER.ME": _history([250.0, 255.5]),
        "BTC-USD": _history([60000.0, float("nan")]),
        "USDRUB=X": _history([91.25]),
        "GAZP.ME": _history([]),
        "DEAD.ME": _history([0.0]),
    }
    instance = YFinancePriceOracle(max_workers=2)
    instance.fetched = []

    def fake_fetch(yf_symbol, period="5d"):
        instance.fetched.append(yf_symbol)
        if yf_symbol not in histories:
            raise ConnectionError(f"no route to {yf_symbol}")
        return histories[yf_symbol]

    monkeypatch.setattr(instance, "_fetch_ticker_history", fake_fetch)
    return instance


class TestNormalizeSymbol:
    """Tests for ledger-to-Yahoo ticker mapping."""

    @pytest.mark.parametrize(
        "symbol, asset_type, expected",
        [
            ("SBER", "stock", "SBER.ME"),
            ("sber", None, "SBER.ME"),
            ("AAPL.US", "stock", "AAPL.US"),
            ("BTC", "crypto", "BTC-USD"),
            ("ETH-EUR", "crypto", "ETH-EUR"),
            ("USD", "currency", "USDRUB=X"),
            ("EURRUB=X", "currency", "EURRUB=X"),
            ("XYZ", "bond", "XYZ"),
        ],
    )
    def test_mapping(self, symbol, asset_type, expected) -> None:
        """Each asset type maps to its Yahoo Finance ticker form."""
        assert normalize_symbol(symbol, asset_type) == expected


class TestGetPrice:
    """Tests for single-symbol lookups."""

    def test_latest_close_is_used(self, oracle: YFinancePriceOracle) -> None:
        """The last close in the history is the quote."""
        quote = oracle.get_price("SBER", "stock")

        assert quote.symbol == "SBER"
        assert quote.price == Decimal("255.5")
        assert quote.source == "yfinance"
        assert quote.timestamp.day == 2

    def test_trailing_nan_is_skipped(self, oracle: YFinancePriceOracle) -> None:
        """A missing latest close falls back to the previous one."""
        assert oracle.get_price("BTC", "crypto").price == Decimal("60000.0")

    def test_currency_quote(self, oracle: YFinancePriceOracle) -> None:
        """Currencies are quoted against the base currency."""
        assert oracle.get_price("USD", "currency").price == Decimal("91.25")

    @pytest.mark.parametrize("symbol", ["GAZP", "DEAD", "NOPE"])
    def test_unpriceable_symbols_return_none(self, oracle: YFinancePriceOracle, symbol) -> None:
        """Empty history, a zero close or a failed fetch give no quote."""
        assert oracle.get_price(symbol, "stock") is None


class TestGetPrices:
    """Tests for batch lookups."""

    def test_batch_omits_failures(self, oracle: YFinancePriceOracle) -> None:
        """Only symbols with a usable quote appear in the result."""
        quotes = oracle.get_prices(
            ["SBER", "BTC", "GAZP", "NOPE"],
            asset_types={"BTC": "crypto"},
        )

        assert set(quotes) == {"SBER", "BTC"}
        assert quotes["BTC"].price == Decimal("60000.0")

    def test_duplicate_symbols_fetched_once(self, oracle: YFinancePriceOracle) -> None:
        """Repeated symbols are fetched a single time."""
        quotes = oracle.get_prices(["SBER", "SBER", "SBER"])

        assert list(quotes) == ["SBER"]
        assert oracle.fetched == ["SBER.ME"]

    def test_empty_request(self, oracle: YFinancePriceOracle) -> None:
        """No symbols means no fetches."""
        assert oracle.get_prices([]) == {}
        assert oracle.fetched == []
