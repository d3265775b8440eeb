"""
Cash ledger service for deposits, withdrawals and capital resets.
Every mutation runs in one ledger transaction that locks the user's
capital row before reading it, so cash operations for one user are
serialized while different users proceed concurrently.
"""

import logging
from typing import Any, Optional
from datetime import datetime
from decimal import Decimal
from dataclasses import dataclass

from db_engine import ledger_transaction
from errors import CapitalNotFoundError, InsufficientFundsError
from models import CASH_SYMBOL, AssetType, TransactionType, UserCapital
from repositories import CapitalRepository, PositionRepository, TransactionRepository
from services.common import ZERO, quantize_amount, require_non_negative, require_positive

logger = logging.getLogger(__name__)


@dataclass
class CapitalOverview:
    """Snapshot of a user's cash position for display."""
    user_id: str
    initial_capital: Decimal
    current_capital: Decimal
    invested_capital: Decimal  # Sum of open position values
    available_capital: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CashLedger:
    """
    Service owning the per-user cash balance.
    Validation happens before any lock is taken; failures inside the
    transaction roll it back and leave the balance untouched.
    """

    def get_balance(self, user_id: str) -> Optional[UserCapital]:
        """
        Read a user's capital row without locking.

        Returns:
            UserCapital, or None when the user has never been initialized
        """
        return CapitalRepository.get(user_id)

    def require_balance(self, user_id: str) -> UserCapital:
        """Read a user's capital row, raising CapitalNotFoundError if absent."""
        capital = CapitalRepository.get(user_id)
        if capital is None:
            raise CapitalNotFoundError(user_id)
        return capital

    def initialize_capital(self, user_id: str) -> UserCapital:
        """
        Create a zero capital row for a user who has none.
        Existing rows are returned unchanged.
        """
        with ledger_transaction() as session:
            if CapitalRepository.create_if_absent(user_id, ZERO, ZERO, session):
                logger.info(f"Capital initialized for user {user_id}")
            return CapitalRepository.get_for_update(user_id, session)

    def set_initial_capital(self, user_id: str, amount: Any) -> UserCapital:
        """
        Reset a user's capital to the given amount.

        Sets both initial_capital and current_capital, discarding every
        earlier deposit, withdrawal and trade effect on the balance.

        Args:
            user_id: User whose capital is reset
            amount: New capital, zero or more

        Returns:
            Updated UserCapital

        Raises:
            InvalidAmountError: If amount is negative or not a finite number
        """
        amount = require_non_negative(amount)

        with ledger_transaction() as session:
            created = CapitalRepository.create_if_absent(user_id, amount, amount, session)
            capital = CapitalRepository.get_for_update(user_id, session)
            if not created:
                capital = CapitalRepository.update_balance(
                    capital, session, current_capital=amount, initial_capital=amount
                )

        logger.info(f"Initial capital for user {user_id} set to {amount}")
        return capital

    def deposit(self, user_id: str, amount: Any) -> UserCapital:
        """
        Add cash to a user's balance.

        A user without a capital row gets one with both initial and current
        capital equal to the deposit.

        Args:
            user_id: User receiving the deposit
            amount: Amount to add, greater than zero

        Returns:
            Updated UserCapital; current_capital is the new balance

        Raises:
            InvalidAmountError: If amount is not a positive finite number
            TransactionConflictError: If the store reports a lock conflict
        """
        amount = require_positive(amount)

        with ledger_transaction() as session:
            # A first deposit creates the row with initial = current = amount
            created = CapitalRepository.create_if_absent(user_id, amount, amount, session)
            capital = CapitalRepository.get_for_update(user_id, session)
            if not created:
                capital = CapitalRepository.update_balance(
                    capital, session,
                    current_capital=quantize_amount(capital.current_capital + amount)
                )

            TransactionRepository.append(
                user_id=user_id,
                symbol=CASH_SYMBOL,
                asset_type=AssetType.CURRENCY.value,
                transaction_type=TransactionType.DEPOSIT.value,
                quantity=Decimal("1"),
                price=amount,
                total_amount=amount,
                notes=f"Deposit of {amount:.2f}",
                session=session
            )

        logger.info(f"Deposit of {amount} for user {user_id}, balance {capital.current_capital}")
        return capital

    def withdraw(self, user_id: str, amount: Any) -> UserCapital:
        """
        Take cash out of a user's balance.

        Args:
            user_id: User withdrawing
            amount: Amount to remove, greater than zero

        Returns:
            Updated UserCapital; current_capital is the new balance

        Raises:
            InvalidAmountError: If amount is not a positive finite number
            InsufficientFundsError: If the user has no row or too little cash
            TransactionConflictError: If the store reports a lock conflict
        """
        amount = require_positive(amount)

        with ledger_transaction() as session:
            capital = CapitalRepository.get_for_update(user_id, session)
            available = capital.current_capital if capital is not None else ZERO
            if capital is None or available < amount:
                logger.warning(
                    f"Withdrawal of {amount} rejected for user {user_id}: balance {available}"
                )
                raise InsufficientFundsError(user_id, str(amount), str(available))

            capital = CapitalRepository.update_balance(
                capital, session,
                current_capital=quantize_amount(capital.current_capital - amount)
            )

            TransactionRepository.append(
                user_id=user_id,
                symbol=CASH_SYMBOL,
                asset_type=AssetType.CURRENCY.value,
                transaction_type=TransactionType.WITHDRAW.value,
                quantity=Decimal("1"),
                price=amount,
                total_amount=amount,
                notes=f"Withdrawal of {amount:.2f}",
                session=session
            )

        logger.info(f"Withdrawal of {amount} for user {user_id}, balance {capital.current_capital}")
        return capital

    def get_available_capital(self, user_id: str) -> Decimal:
        """
        Cash not allocated to open positions.

        current_capital minus the value of all open positions, clamped at
        zero. Users without a capital row have nothing available.
        """
        capital = CapitalRepository.get(user_id)
        if capital is None:
            return ZERO

        invested = PositionRepository.total_value(user_id)
        return max(ZERO, quantize_amount(capital.current_capital - invested))

    def get_overview(self, user_id: str) -> CapitalOverview:
        """
        Summarize a user's capital for display.
        Users without a capital row get an all-zero overview.
        """
        capital = CapitalRepository.get(user_id)
        if capital is None:
            return CapitalOverview(
                user_id=user_id,
                initial_capital=ZERO,
                current_capital=ZERO,
                invested_capital=ZERO,
                available_capital=ZERO
            )

        invested = PositionRepository.total_value(user_id)
        return CapitalOverview(
            user_id=user_id,
            initial_capital=capital.initial_capital,
            current_capital=capital.current_capital,
            invested_capital=quantize_amount(invested),
            available_capital=max(ZERO, quantize_amount(capital.current_capital - invested)),
            created_at=capital.created_at,
            updated_at=capital.updated_at
        )
