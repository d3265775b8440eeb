"""
Capital Repository - data access layer for UserCapital model.
Writes made through a caller's session are flushed, not committed,
so they join the caller's ledger transaction.
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlmodel import Session, select

from db_engine import get_engine, insert_if_absent
from models import UserCapital


class CapitalRepository:
    """Repository for UserCapital operations."""

    @staticmethod
    def get(user_id: str, session: Optional[Session] = None) -> Optional[UserCapital]:
        """
        Retrieve a user's capital row without locking it.

        Args:
            user_id: User to look up
            session: Optional existing session for transaction reuse

        Returns:
            UserCapital object or None if the user has no row
        """
        def _get(sess: Session) -> Optional[UserCapital]:
            return sess.get(UserCapital, user_id)

        if session is not None:
            return _get(session)
        else:
            with Session(get_engine()) as session:
                return _get(session)

    @staticmethod
    def get_for_update(user_id: str, session: Session) -> Optional[UserCapital]:
        """
        Retrieve a user's capital row and hold an exclusive lock on it.
        The lock is released when the session's transaction ends.

        Args:
            user_id: User to look up
            session: Session of the ledger transaction that takes the lock

        Returns:
            UserCapital object or None if the user has no row
        """
        statement = (
            select(UserCapital)
            .where(UserCapital.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return session.exec(statement).first()

    @staticmethod
    def create_if_absent(
        user_id: str,
        initial_capital: Decimal,
        current_capital: Decimal,
        session: Session
    ) -> bool:
        """
        Insert a capital row unless the user already has one.
        Concurrent first inserts for one user serialize instead of failing.

        Args:
            user_id: Owner of the row
            initial_capital: Starting capital of a new row
            current_capital: Current cash balance of a new row
            session: Session of the ledger transaction

        Returns:
            True if the row was created by this call
        """
        capital = UserCapital(
            user_id=user_id,
            initial_capital=initial_capital,
            current_capital=current_capital
        )
        return insert_if_absent(session, UserCapital, capital.model_dump(), ["user_id"])

    @staticmethod
    def update_balance(
        capital: UserCapital,
        session: Session,
        current_capital: Decimal,
        initial_capital: Optional[Decimal] = None
    ) -> UserCapital:
        """
        Write new balance values to a row the caller has locked.
        Only updates initial_capital when it is provided.

        Args:
            capital: Locked UserCapital row
            session: Session holding the lock
            current_capital: New current balance
            initial_capital: New initial capital (optional)

        Returns:
            Updated UserCapital object
        """
        capital.current_capital = current_capital
        if initial_capital is not None:
            capital.initial_capital = initial_capital
        capital.updated_at = datetime.now()
        session.add(capital)
        session.flush()
        return capital
