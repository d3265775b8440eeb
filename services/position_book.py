"""
Position book service for buy/sell trades and position valuation.
Maintains weighted-average cost basis per (user, symbol) and writes the
position change and its Transaction in a single ledger transaction.
"""

import logging
from typing import Any, Dict, List, Optional
from decimal import Decimal
from dataclasses import dataclass

from config import get_settings
from db_engine import ledger_transaction
from errors import InsufficientAssetsError, PriceUnavailableError
from models import Position, Transaction, TransactionType
from repositories import CapitalRepository, PositionRepository, TransactionRepository
from services.common import (
    ZERO,
    normalize_asset_type,
    normalize_ledger_symbol,
    normalize_trade_type,
    percent_of,
    quantize_amount,
    require_non_negative,
    require_positive,
)
from services.market_data import PriceOracle

logger = logging.getLogger(__name__)


@dataclass
class TradeResult:
    """Outcome of an applied trade."""
    transaction: Transaction
    position: Optional[Position]  # None when the trade closed the position

    @property
    def closed(self) -> bool:
        return self.position is None


def calculate_valuation(quantity: Decimal, average_price: Decimal, current_price: Decimal) -> Dict[str, Decimal]:
    """
    Value a holding at a market price.

    Returns:
        Dict with 'total_value', 'profit_loss' and 'profit_loss_percent'
    """
    total_value = quantize_amount(quantity * current_price)
    cost_basis = quantity * average_price
    profit_loss = quantize_amount(total_value - cost_basis)
    return {
        'total_value': total_value,
        'profit_loss': profit_loss,
        'profit_loss_percent': percent_of(profit_loss, cost_basis),
    }


class PositionBook:
    """
    Service owning per-user positions.

    BUY adds to quantity and moves the average price; SELL only reduces
    quantity and deletes the position when it reaches zero.
    """

    def __init__(self, price_oracle: Optional[PriceOracle] = None, commission_rate: Optional[Any] = None):
        """
        Args:
            price_oracle: Source of current prices for update_prices
            commission_rate: Fee rate per trade; defaults to settings.commission_rate
        """
        self.price_oracle = price_oracle
        rate = commission_rate if commission_rate is not None else get_settings().commission_rate
        self.commission_rate = require_non_negative(rate, "commission_rate")

    def get_positions(self, user_id: str) -> List[Position]:
        """Return a user's open positions sorted by total value, largest first."""
        return PositionRepository.get_by_user(user_id)

    def get_position(self, user_id: str, symbol: str) -> Optional[Position]:
        """Return one open position, or None if the symbol is not held."""
        return PositionRepository.get(user_id, normalize_ledger_symbol(symbol))

    def apply_trade(
        self,
        user_id: str,
        symbol: str,
        trade_type: Any,
        quantity: Any,
        price: Any,
        asset_type: Any = "stock",
        notes: Optional[str] = None,
        commission_rate: Optional[Any] = None
    ) -> TradeResult:
        """
        Apply a buy or sell fill to a user's position.

        Args:
            user_id: Trading user
            symbol: Ledger symbol, case-insensitive
            trade_type: "BUY" or "SELL", case-insensitive
            quantity: Units traded, greater than zero
            price: Fill price per unit, greater than zero
            asset_type: "stock", "crypto" or "currency"
            notes: Optional note stored on the Transaction
            commission_rate: Override of the book's commission rate

        Returns:
            TradeResult with the Transaction and the resulting position

        Raises:
            InvalidAmountError: If quantity, price or rate is not a valid number
            InvalidTradeError: If the symbol, trade type or asset type is invalid
            InsufficientAssetsError: If a sell exceeds the held quantity
            TransactionConflictError: If the store reports a lock conflict
        """
        symbol = normalize_ledger_symbol(symbol)
        side = normalize_trade_type(trade_type)
        kind = normalize_asset_type(asset_type)
        quantity = require_positive(quantity, "quantity")
        price = require_positive(price, "price")
        rate = (
            require_non_negative(commission_rate, "commission_rate")
            if commission_rate is not None else self.commission_rate
        )

        total_amount = quantize_amount(quantity * price)
        commission = quantize_amount(total_amount * rate)

        with ledger_transaction() as session:
            # Serializes with the user's cash operations when the user has capital
            CapitalRepository.get_for_update(user_id, session)

            if side == TransactionType.BUY:
                opening = self._new_position(user_id, symbol, kind.value, quantity, price)
                opened = PositionRepository.create_if_absent(opening, session)
                position = PositionRepository.get_for_update(user_id, symbol, session)
                if not opened:
                    position = self._apply_buy(session, position, quantity, price)
            else:
                position = PositionRepository.get_for_update(user_id, symbol, session)
                position = self._apply_sell(session, user_id, symbol, position, quantity, price)

            transaction = TransactionRepository.append(
                user_id=user_id,
                symbol=symbol,
                asset_type=kind.value,
                transaction_type=side.value,
                quantity=quantity,
                price=price,
                total_amount=total_amount,
                commission=commission,
                notes=notes,
                session=session
            )

        logger.info(
            f"{side.value.upper()} {quantity} {symbol} @ {price} for user {user_id} "
            f"(commission {commission})"
        )
        return TradeResult(transaction=transaction, position=position)

    @staticmethod
    def _new_position(user_id: str, symbol: str, asset_type: str, quantity: Decimal, price: Decimal) -> Position:
        """Position opened by a first buy, valued at the fill price."""
        return Position(
            user_id=user_id,
            symbol=symbol,
            asset_type=asset_type,
            quantity=quantity,
            average_price=price,
            current_price=price,
            **calculate_valuation(quantity, price, price)
        )

    @staticmethod
    def _apply_buy(session, position: Position, quantity: Decimal, price: Decimal) -> Position:
        """Add to an open position, moving the weighted average price."""
        old_quantity = position.quantity
        new_quantity = quantize_amount(old_quantity + quantity)
        new_average = quantize_amount(
            (position.average_price * old_quantity + price * quantity) / new_quantity
        )
        position.quantity = new_quantity
        position.average_price = new_average
        PositionBook._revalue(position, price)
        return PositionRepository.save(position, session)

    @staticmethod
    def _apply_sell(
        session,
        user_id: str,
        symbol: str,
        position: Optional[Position],
        quantity: Decimal,
        price: Decimal
    ) -> Optional[Position]:
        """Reduce a position, deleting it when nothing is left. Cost basis is unchanged."""
        held = position.quantity if position is not None else ZERO
        if position is None or held < quantity:
            logger.warning(
                f"Sell of {quantity} {symbol} rejected for user {user_id}: holding {held}"
            )
            raise InsufficientAssetsError(user_id, symbol, str(quantity), str(held))

        new_quantity = quantize_amount(held - quantity)
        if new_quantity == ZERO:
            PositionRepository.delete(position, session)
            logger.info(f"Position {symbol} closed for user {user_id}")
            return None

        position.quantity = new_quantity
        PositionBook._revalue(position, price)
        return PositionRepository.save(position, session)

    @staticmethod
    def _revalue(position: Position, current_price: Decimal):
        """Refresh the cached valuation fields at a price."""
        valuation = calculate_valuation(position.quantity, position.average_price, current_price)
        position.current_price = current_price
        position.total_value = valuation['total_value']
        position.profit_loss = valuation['profit_loss']
        position.profit_loss_percent = valuation['profit_loss_percent']

    def update_prices(self, user_id: Optional[str] = None) -> int:
        """
        Revalue open positions at current market prices.

        Best-effort: a symbol without a usable quote is logged and skipped,
        and the sweep carries on. Only the cached valuation fields are
        written; quantity and average_price are left alone.

        Args:
            user_id: Restrict the sweep to one user (all users when None)

        Returns:
            Number of positions revalued
        """
        if self.price_oracle is None:
            logger.warning("No price oracle configured, skipping price update")
            return 0

        positions = PositionRepository.get_open(user_id)
        if not positions:
            logger.info("No open positions to revalue")
            return 0

        asset_types = {p.symbol: p.asset_type for p in positions}
        symbols = list(asset_types.keys())
        try:
            quotes = self.price_oracle.get_prices(symbols, asset_types=asset_types)
        except PriceUnavailableError as e:
            logger.warning(f"Batch price lookup failed: {e.message}")
            quotes = {}

        updated = 0
        for position in positions:
            quote = quotes.get(position.symbol)
            if quote is None or quote.price <= 0:
                logger.warning(f"Price unavailable for {position.symbol}, skipping position {position.id}")
                continue

            current_price = quantize_amount(quote.price)
            with ledger_transaction() as session:
                fresh = PositionRepository.get_by_id(position.id, session=session)
                if fresh is None:
                    logger.info(f"Position {position.id} closed during price update, skipping")
                    continue
                PositionRepository.update_valuation(
                    fresh,
                    session,
                    current_price,
                    **calculate_valuation(fresh.quantity, fresh.average_price, current_price)
                )
            updated += 1

        logger.info(f"Updated prices for {updated}/{len(positions)} positions")
        return updated
