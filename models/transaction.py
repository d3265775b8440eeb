"""
Transaction model - an immutable record of one cash or asset movement.
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Index
from sqlmodel import SQLModel, Field

# Symbol recorded on deposits and withdrawals
CASH_SYMBOL = "CASH"


class TransactionType(str, Enum):
    """Kind of ledger movement."""
    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class TransactionStatus(str, Enum):
    """Lifecycle state of a transaction row."""
    COMPLETED = "completed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class Transaction(SQLModel, table=True):
    """
    Append-only ledger entry.
    Ordering by (timestamp, id) is the authoritative history used for
    realized PnL.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_symbol_timestamp", "user_id", "symbol", "timestamp"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    symbol: str  # Asset symbol, or "CASH" for deposits/withdrawals
    asset_type: str  # "stock", "crypto", "currency"
    transaction_type: str  # "buy", "sell", "deposit", "withdraw"
    quantity: Decimal = Field(max_digits=20, decimal_places=8)
    price: Decimal = Field(max_digits=20, decimal_places=8)  # Price per unit
    commission: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    total_amount: Decimal = Field(max_digits=20, decimal_places=8)  # quantity * price
    status: str = Field(default=TransactionStatus.COMPLETED.value)
    timestamp: datetime = Field(default_factory=datetime.now)
    notes: Optional[str] = Field(default=None)
