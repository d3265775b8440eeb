"""
Services package for the capital ledger.
Provides core business logic separated from the data layer.
"""

from services.common import (
    to_decimal,
    require_positive,
    require_non_negative,
    normalize_symbol,
    normalize_ledger_symbol,
)
from services.market_data import PriceOracle, PriceQuote, YFinancePriceOracle
from services.cash_ledger import CashLedger, CapitalOverview
from services.position_book import PositionBook, TradeResult, calculate_valuation
from services.summary import (
    SummaryCalculator,
    PortfolioSummary,
    PortfolioOverview,
    calculate_realized_pnl,
)

__all__ = [
    # Common utilities
    'to_decimal',
    'require_positive',
    'require_non_negative',
    'normalize_symbol',
    'normalize_ledger_symbol',
    # Market data
    'PriceOracle',
    'PriceQuote',
    'YFinancePriceOracle',
    # Ledger services
    'CashLedger',
    'CapitalOverview',
    'PositionBook',
    'TradeResult',
    'calculate_valuation',
    'SummaryCalculator',
    'PortfolioSummary',
    'PortfolioOverview',
    'calculate_realized_pnl',
]
