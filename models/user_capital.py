"""
UserCapital model - the cash balance of one user.
"""

from datetime import datetime
from decimal import Decimal
from sqlmodel import SQLModel, Field


class UserCapital(SQLModel, table=True):
    """
    Cash balance of a user.
    One row per user once initialized; never deleted.
    Only mutated by CashLedger while the row is locked.
    """
    __tablename__ = "user_capital"

    user_id: str = Field(primary_key=True)  # Opaque id from the identity provider
    initial_capital: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    current_capital: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
