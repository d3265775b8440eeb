"""
Summary service for portfolio totals and profit/loss.
Read-only aggregation over the cash ledger, the position book and the
transaction log.
"""

import logging
from itertools import groupby
from typing import Dict, Iterable, List, Optional
from decimal import Decimal
from dataclasses import dataclass

from config import get_settings
from models import Position, Transaction, TransactionType
from repositories import PositionRepository, TransactionRepository
from services.cash_ledger import CashLedger
from services.common import ZERO, percent_of, quantize_amount
from services.position_book import PositionBook

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSummary:
    """Portfolio totals for one user."""
    total_value: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percentage: Decimal
    asset_count: int
    unrealized_profit_loss: Decimal
    realized_profit_loss: Decimal


@dataclass
class PortfolioOverview:
    """Everything the dashboard shows for one user's portfolio."""
    positions: List[Position]
    summary: PortfolioSummary
    cash_balance: Decimal
    total_cost: Decimal  # Approximate purchase cost: total_value - total_profit_loss


def calculate_realized_pnl(transactions: Iterable[Transaction]) -> Decimal:
    """
    Realized profit/loss of a trade history.

    Each sell is measured against the commission-inclusive average price of
    every buy of the same symbol with a strictly earlier timestamp. A buy
    sharing the sell's timestamp does not count. This approximates lot
    matching and is not FIFO: buys are never consumed by sells. A sell with
    no earlier buys is measured against 0.

    Args:
        transactions: Buy and sell transactions of one user

    Returns:
        Sum of (sell_price * qty - sell_commission) - avg_buy_price * qty
    """
    ordered = sorted(
        (t for t in transactions
         if t.transaction_type in (TransactionType.BUY.value, TransactionType.SELL.value)),
        key=lambda t: (t.timestamp, t.id or 0)
    )

    buy_cost: Dict[str, Decimal] = {}
    buy_quantity: Dict[str, Decimal] = {}
    realized = ZERO

    for _, group in groupby(ordered, key=lambda t: t.timestamp):
        group = list(group)

        # Sells see only buys from earlier timestamps
        for tx in group:
            if tx.transaction_type != TransactionType.SELL.value:
                continue
            bought = buy_quantity.get(tx.symbol, ZERO)
            avg_buy_price = buy_cost[tx.symbol] / bought if bought > ZERO else ZERO
            proceeds = tx.price * tx.quantity - tx.commission
            realized += proceeds - avg_buy_price * tx.quantity

        for tx in group:
            if tx.transaction_type != TransactionType.BUY.value:
                continue
            buy_cost[tx.symbol] = buy_cost.get(tx.symbol, ZERO) + tx.quantity * tx.price + tx.commission
            buy_quantity[tx.symbol] = buy_quantity.get(tx.symbol, ZERO) + tx.quantity

    return quantize_amount(realized)


class SummaryCalculator:
    """
    Service deriving portfolio totals.
    Never mutates ledger state except through an optional price refresh.
    """

    def __init__(self, cash_ledger: Optional[CashLedger] = None, position_book: Optional[PositionBook] = None):
        self.cash_ledger = cash_ledger or CashLedger()
        self.position_book = position_book or PositionBook()

    def calculate_realized_pnl(self, user_id: str) -> Decimal:
        """Realized profit/loss over the user's whole trade history."""
        return calculate_realized_pnl(TransactionRepository.get_trades(user_id))

    def get_summary(self, user_id: str, refresh_prices: bool = False) -> PortfolioSummary:
        """
        Calculate portfolio totals for a user.

        Args:
            user_id: Portfolio owner
            refresh_prices: Revalue the user's positions before summing

        Returns:
            PortfolioSummary with totals and realized/unrealized split
        """
        if refresh_prices:
            self.position_book.update_prices(user_id=user_id)

        positions = PositionRepository.get_by_user(user_id)
        return self._summarize(user_id, positions)

    def _summarize(self, user_id: str, positions: List[Position]) -> PortfolioSummary:
        total_value = sum((p.total_value for p in positions), ZERO)
        unrealized = sum((p.profit_loss for p in positions), ZERO)
        realized = self.calculate_realized_pnl(user_id)
        total_profit_loss = unrealized + realized

        summary = PortfolioSummary(
            total_value=quantize_amount(total_value),
            total_profit_loss=quantize_amount(total_profit_loss),
            total_profit_loss_percentage=percent_of(total_profit_loss, total_value),
            asset_count=len(positions),
            unrealized_profit_loss=quantize_amount(unrealized),
            realized_profit_loss=realized,
        )
        logger.debug(
            f"Summary for user {user_id}: value={summary.total_value} "
            f"unrealized={summary.unrealized_profit_loss} realized={summary.realized_profit_loss}"
        )
        return summary

    def get_cash_balance(self, user_id: str) -> Decimal:
        """Cash available for trading, as computed by the cash ledger."""
        return self.cash_ledger.get_available_capital(user_id)

    def get_portfolio(self, user_id: str, refresh_prices: bool = False) -> PortfolioOverview:
        """Positions, totals and cash balance of a user in one snapshot."""
        if refresh_prices:
            self.position_book.update_prices(user_id=user_id)

        positions = PositionRepository.get_by_user(user_id)
        summary = self._summarize(user_id, positions)
        return PortfolioOverview(
            positions=positions,
            summary=summary,
            cash_balance=self.get_cash_balance(user_id),
            total_cost=quantize_amount(summary.total_value - summary.total_profit_loss),
        )

    def get_transactions(self, user_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """Return a user's transactions, newest first; limit defaults to settings."""
        if limit is None:
            limit = get_settings().transactions_default_limit
        return TransactionRepository.get_by_user(user_id, limit=limit)
