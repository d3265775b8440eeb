"""
Position model - represents a holding of one symbol by one user.
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class AssetType(str, Enum):
    """Kind of asset a position or transaction refers to."""
    STOCK = "stock"
    CRYPTO = "crypto"
    CURRENCY = "currency"


class Position(SQLModel, table=True):
    """
    Represents an open position in a user's portfolio.
    quantity and average_price are authoritative and only change inside a
    locked trade; the valuation fields are a cache refreshed from market prices.
    """
    __tablename__ = "portfolio"
    __table_args__ = (
        UniqueConstraint("user_id", "symbol", name="uq_portfolio_user_symbol"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    symbol: str  # e.g., "SBER", "BTC", "USD"
    asset_type: str = Field(default=AssetType.STOCK.value)  # "stock", "crypto", "currency"
    quantity: Decimal = Field(max_digits=20, decimal_places=8)
    average_price: Decimal = Field(max_digits=20, decimal_places=8)  # Weighted mean of buy fills

    # Cached valuation
    current_price: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    total_value: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    profit_loss: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    profit_loss_percent: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=4)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def total_cost(self) -> Decimal:
        """Cost basis of the held quantity."""
        return self.quantity * self.average_price
