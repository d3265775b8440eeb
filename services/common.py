"""
Common utilities and shared functions.
Amount validation, decimal rounding, and symbol/type normalization.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from config import get_settings
from errors import InvalidAmountError, InvalidTradeError
from models import AssetType, TransactionType

logger = logging.getLogger(__name__)

# Scale of NUMERIC(20, 8) columns
AMOUNT_QUANTUM = Decimal("0.00000001")
PERCENT_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Convert a user-supplied number to a finite Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its
    binary expansion. Booleans are rejected even though they are ints.

    Args:
        value: Number or numeric string
        field: Name used in the error message

    Returns:
        Finite Decimal value

    Raises:
        InvalidAmountError: If the value is not numeric, NaN or infinite
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(field, value)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(field, value)
    if not result.is_finite():
        raise InvalidAmountError(field, value)
    return result


def require_positive(value: Any, field: str = "amount") -> Decimal:
    """
    Validate that a value is a finite number strictly greater than zero.
    The check runs on the value rounded to the stored scale, so anything
    that rounds to zero is rejected.
    """
    amount = quantize_amount(to_decimal(value, field))
    if amount <= ZERO:
        raise InvalidAmountError(field, value)
    return amount


def require_non_negative(value: Any, field: str = "amount") -> Decimal:
    """Validate that a value is a finite number greater than or equal to zero."""
    amount = quantize_amount(to_decimal(value, field))
    if amount < ZERO:
        raise InvalidAmountError(field, value)
    return amount


def quantize_amount(value: Decimal) -> Decimal:
    """Round a money or quantity value to the stored scale."""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_percent(value: Decimal) -> Decimal:
    """Round a percentage to the stored scale."""
    return value.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """Return part / whole * 100, or 0 when whole is not positive."""
    if whole <= ZERO:
        return ZERO
    return quantize_percent(part / whole * 100)


def normalize_ledger_symbol(symbol: Optional[str]) -> str:
    """
    Normalize a symbol as stored in the ledger.

    Examples:
        >>> normalize_ledger_symbol(" sber ")
        'SBER'
    """
    cleaned = (symbol or "").strip().upper()
    if not cleaned:
        raise InvalidTradeError("symbol is empty")
    return cleaned


def normalize_asset_type(asset_type: Any) -> AssetType:
    """Parse an asset type case-insensitively ("stock", "CRYPTO", AssetType.CURRENCY)."""
    if isinstance(asset_type, AssetType):
        return asset_type
    try:
        return AssetType(str(asset_type).strip().lower())
    except ValueError:
        raise InvalidTradeError(f"unknown asset type {asset_type!r}")


def normalize_trade_type(trade_type: Any) -> TransactionType:
    """Parse a trade side; only BUY and SELL are trades."""
    if isinstance(trade_type, TransactionType):
        parsed = trade_type
    else:
        try:
            parsed = TransactionType(str(trade_type).strip().lower())
        except ValueError:
            raise InvalidTradeError(f"unknown trade type {trade_type!r}")
    if parsed not in (TransactionType.BUY, TransactionType.SELL):
        raise InvalidTradeError(f"{parsed.value} is not a trade type")
    return parsed


def normalize_symbol(symbol: str, asset_type: Optional[str] = None) -> str:
    """
    Convert a ledger symbol to yfinance format based on asset type.

    Args:
        symbol: Ledger symbol (e.g., "SBER", "BTC", "USD")
        asset_type: "stock", "crypto" or "currency"; defaults to stock

    Returns:
        Properly formatted yfinance symbol

    Examples:
        >>> normalize_symbol("SBER", "stock")
        'SBER.ME'
        >>> normalize_symbol("BTC", "crypto")
        'BTC-USD'
        >>> normalize_symbol("USD", "currency")
        'USDRUB=X'
    """
    settings = get_settings()
    symbol = symbol.strip().upper()
    kind = (asset_type or AssetType.STOCK.value).lower()

    if kind == AssetType.CRYPTO.value:
        if "-" in symbol:
            return symbol
        return f"{symbol}-{settings.crypto_quote_currency}"
    elif kind == AssetType.CURRENCY.value:
        if symbol.endswith("=X"):
            return symbol
        return f"{symbol}{settings.base_currency}=X"
    elif kind == AssetType.STOCK.value:
        if "." in symbol or not settings.stock_symbol_suffix:
            return symbol
        return f"{symbol}{settings.stock_symbol_suffix}"
    else:
        logger.warning(f"Unknown asset type: {asset_type}, returning symbol as-is")
        return symbol
