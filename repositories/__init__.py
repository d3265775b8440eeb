"""
Repositories package for the capital ledger.
Provides data access layer for all database operations.
"""

from repositories.capital_repository import CapitalRepository
from repositories.position_repository import PositionRepository
from repositories.transaction_repository import TransactionRepository

__all__ = [
    'CapitalRepository',
    'PositionRepository',
    'TransactionRepository',
]
