"""
Position Repository - data access layer for Position model.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from sqlalchemy import func
from sqlmodel import Session, select

from db_engine import get_engine, insert_if_absent
from models import Position


class PositionRepository:
    """Repository for Position operations."""

    @staticmethod
    def get_by_user(user_id: str, session: Optional[Session] = None) -> List[Position]:
        """
        Retrieve all open positions of a user, largest first.

        Args:
            user_id: Owner of the positions
            session: Optional existing session for transaction reuse

        Returns:
            List of Position objects sorted by total_value descending
        """
        def _get_by_user(sess: Session) -> List[Position]:
            statement = (
                select(Position)
                .where(Position.user_id == user_id)
                .order_by(Position.total_value.desc(), Position.id)
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_user(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_user(session)

    @staticmethod
    def get(user_id: str, symbol: str, session: Optional[Session] = None) -> Optional[Position]:
        """
        Retrieve one position without locking it.

        Args:
            user_id: Owner of the position
            symbol: Ledger symbol
            session: Optional existing session for transaction reuse

        Returns:
            Position object or None if not held
        """
        def _get(sess: Session) -> Optional[Position]:
            statement = select(Position).where(
                Position.user_id == user_id,
                Position.symbol == symbol
            )
            return sess.exec(statement).first()

        if session is not None:
            return _get(session)
        else:
            with Session(get_engine()) as session:
                return _get(session)

    @staticmethod
    def get_by_id(position_id: int, session: Optional[Session] = None) -> Optional[Position]:
        """
        Retrieve a position by its ID.

        Args:
            position_id: Position ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            Position object or None if it no longer exists
        """
        def _get_by_id(sess: Session) -> Optional[Position]:
            return sess.get(Position, position_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_for_update(user_id: str, symbol: str, session: Session) -> Optional[Position]:
        """
        Retrieve one position and hold an exclusive lock on its row.

        Args:
            user_id: Owner of the position
            symbol: Ledger symbol
            session: Session of the ledger transaction that takes the lock

        Returns:
            Position object or None if not held
        """
        statement = (
            select(Position)
            .where(Position.user_id == user_id, Position.symbol == symbol)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return session.exec(statement).first()

    @staticmethod
    def get_open(user_id: Optional[str] = None, session: Optional[Session] = None) -> List[Position]:
        """
        Retrieve open positions across all users, or for one user.

        Args:
            user_id: Optional filter by owner
            session: Optional existing session for transaction reuse

        Returns:
            List of Position objects
        """
        def _get_open(sess: Session) -> List[Position]:
            statement = select(Position).order_by(Position.id)
            if user_id is not None:
                statement = statement.where(Position.user_id == user_id)
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_open(session)
        else:
            with Session(get_engine()) as session:
                return _get_open(session)

    @staticmethod
    def total_value(user_id: str, session: Optional[Session] = None) -> Decimal:
        """
        Sum the cached total_value of a user's open positions.

        Args:
            user_id: Owner of the positions
            session: Optional existing session for transaction reuse

        Returns:
            Total invested value, 0 when nothing is held
        """
        def _total_value(sess: Session) -> Decimal:
            statement = select(func.coalesce(func.sum(Position.total_value), 0)).where(
                Position.user_id == user_id
            )
            return Decimal(str(sess.exec(statement).one()))

        if session is not None:
            return _total_value(session)
        else:
            with Session(get_engine()) as session:
                return _total_value(session)

    @staticmethod
    def create_if_absent(position: Position, session: Session) -> bool:
        """
        Insert a new position unless the user already holds the symbol.
        Concurrent first buys of one symbol serialize instead of failing.

        Returns:
            True if the row was created by this call
        """
        values = position.model_dump(exclude={"id"})
        return insert_if_absent(session, Position, values, ["user_id", "symbol"])

    @staticmethod
    def save(position: Position, session: Session) -> Position:
        """Write changes to a position the caller has locked."""
        position.updated_at = datetime.now()
        session.add(position)
        session.flush()
        return position

    @staticmethod
    def delete(position: Position, session: Session) -> None:
        """Delete a position inside the caller's transaction."""
        session.delete(position)
        session.flush()

    @staticmethod
    def update_valuation(
        position: Position,
        session: Session,
        current_price: Decimal,
        total_value: Decimal,
        profit_loss: Decimal,
        profit_loss_percent: Decimal
    ) -> Position:
        """
        Write refreshed valuation fields of one position.
        Never touches quantity or average_price.

        Args:
            position: Position to update
            session: Session the position was loaded in
            current_price: Latest market price
            total_value: quantity * current_price
            profit_loss: total_value minus cost basis
            profit_loss_percent: profit_loss relative to cost basis, in percent

        Returns:
            Updated Position object
        """
        position.current_price = current_price
        position.total_value = total_value
        position.profit_loss = profit_loss
        position.profit_loss_percent = profit_loss_percent
        position.updated_at = datetime.now()
        session.add(position)
        session.flush()
        return position
