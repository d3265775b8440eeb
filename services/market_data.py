"""
Market data service supplying current prices to the ledger.
Defines the PriceOracle contract and a yfinance-backed implementation.
Enhanced with tenacity for retry logic and resilience.
"""

import yfinance as yf
import pandas as pd
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, List

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import get_settings
from errors import PriceUnavailableError
from services.common import normalize_symbol, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    """A current price for one ledger symbol."""
    symbol: str
    price: Decimal
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = "unknown"


class PriceOracle(ABC):
    """
    Contract for anything that can price ledger symbols.
    A missing quote is never an error for the ledger: get_price returns
    None and get_prices leaves the symbol out.
    """

    @abstractmethod
    def get_price(self, symbol: str, asset_type: Optional[str] = None) -> Optional[PriceQuote]:
        """Return the current quote for a symbol, or None if unavailable."""
        raise NotImplementedError

    @abstractmethod
    def get_prices(
        self,
        symbols: List[str],
        asset_types: Optional[Dict[str, str]] = None
    ) -> Dict[str, PriceQuote]:
        """
        Return current quotes keyed by ledger symbol.

        Args:
            symbols: Ledger symbols to price
            asset_types: Optional asset type per symbol, as a ticker mapping hint

        Returns:
            Dict of symbol -> PriceQuote for the symbols that could be priced
        """
        raise NotImplementedError


class YFinancePriceOracle(PriceOracle):
    """
    Price oracle backed by Yahoo Finance through yfinance.
    Ledger symbols are mapped to Yahoo tickers by asset type.
    """

    SOURCE = "yfinance"

    def __init__(self, max_workers: Optional[int] = None):
        """Initialize the oracle with worker count from centralized config."""
        settings = get_settings()
        self.max_workers = max_workers or settings.price_fetch_workers
        self.fetch_attempts = settings.price_fetch_attempts

    def _fetch_ticker_history(self, yf_symbol: str, period: str = "5d") -> pd.DataFrame:
        """Fetch ticker history with retry logic."""
        @retry(
            stop=stop_after_attempt(self.fetch_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(Exception),
            reraise=True
        )
        def _fetch() -> pd.DataFrame:
            ticker = yf.Ticker(yf_symbol)
            return ticker.history(period=period)

        return _fetch()

    def _quote(self, symbol: str, asset_type: Optional[str] = None) -> PriceQuote:
        """
        Build a quote from the latest close in recent history.

        Raises:
            PriceUnavailableError: If the fetch fails or yields no positive price
        """
        yf_symbol = normalize_symbol(symbol, asset_type)
        try:
            hist = self._fetch_ticker_history(yf_symbol)
        except Exception as e:
            raise PriceUnavailableError(symbol, f"{yf_symbol}: {e}") from e

        if hist is None or hist.empty or 'Close' not in hist:
            raise PriceUnavailableError(symbol, f"no history for {yf_symbol}")

        closes = hist['Close'].dropna()
        if closes.empty:
            raise PriceUnavailableError(symbol, f"no close price for {yf_symbol}")

        price = to_decimal(float(closes.iloc[-1]), "price")
        if price <= 0:
            raise PriceUnavailableError(symbol, f"non-positive price {price} for {yf_symbol}")

        last_index = closes.index[-1]
        timestamp = last_index.to_pydatetime() if isinstance(last_index, pd.Timestamp) else datetime.now()
        return PriceQuote(symbol=symbol, price=price, timestamp=timestamp, source=self.SOURCE)

    def get_price(self, symbol: str, asset_type: Optional[str] = None) -> Optional[PriceQuote]:
        """Fetch the current price for one symbol; None when it cannot be priced."""
        try:
            return self._quote(symbol, asset_type)
        except PriceUnavailableError as e:
            logger.warning(e.message)
            return None

    def get_prices(
        self,
        symbols: List[str],
        asset_types: Optional[Dict[str, str]] = None
    ) -> Dict[str, PriceQuote]:
        """
        Fetch current prices for many symbols in parallel.
        Symbols that cannot be priced are logged and left out.
        """
        asset_types = asset_types or {}
        unique_symbols = list(dict.fromkeys(symbols))
        if not unique_symbols:
            return {}

        quotes: Dict[str, PriceQuote] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_symbol = {
                executor.submit(self._quote, symbol, asset_types.get(symbol)): symbol
                for symbol in unique_symbols
            }
            for future in as_completed(future_to_symbol):
                symbol = future_to_symbol[future]
                try:
                    quotes[symbol] = future.result()
                except PriceUnavailableError as e:
                    logger.warning(e.message)

        logger.info(f"Fetched {len(quotes)}/{len(unique_symbols)} prices from {self.SOURCE}")
        return quotes
