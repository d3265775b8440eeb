"""
Database models for the capital ledger.
All SQLModel table definitions are centralized here.
"""

from models.user_capital import UserCapital
from models.position import AssetType, Position
from models.transaction import Transaction, TransactionStatus, TransactionType, CASH_SYMBOL

__all__ = [
    'UserCapital',
    'Position',
    'AssetType',
    'Transaction',
    'TransactionType',
    'TransactionStatus',
    'CASH_SYMBOL',
]
