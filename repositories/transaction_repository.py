"""
Transaction Repository - data access layer for Transaction model.
Optimized with optional session parameter for transaction reuse.
Transactions are append-only: there are no update or delete operations.
"""

from typing import Optional, List
from decimal import Decimal
from sqlmodel import Session, select

from db_engine import get_engine
from models import Transaction, TransactionStatus, TransactionType


class TransactionRepository:
    """Repository for Transaction append and query operations."""

    @staticmethod
    def append(
        user_id: str,
        symbol: str,
        asset_type: str,
        transaction_type: str,
        quantity: Decimal,
        price: Decimal,
        total_amount: Decimal,
        commission: Decimal = Decimal("0"),
        notes: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Transaction:
        """
        Append a new transaction to the log.

        Args:
            user_id: Owner of the transaction
            symbol: Asset symbol, or "CASH" for cash movements
            asset_type: 'stock', 'crypto' or 'currency'
            transaction_type: 'buy', 'sell', 'deposit' or 'withdraw'
            quantity: Number of units
            price: Price per unit
            total_amount: quantity * price
            commission: Fee charged on the movement
            notes: Optional free-text note
            session: Optional existing session for transaction reuse

        Returns:
            Created Transaction object
        """
        def _create_transaction(sess: Session) -> Transaction:
            transaction = Transaction(
                user_id=user_id,
                symbol=symbol,
                asset_type=asset_type,
                transaction_type=transaction_type,
                quantity=quantity,
                price=price,
                commission=commission,
                total_amount=total_amount,
                status=TransactionStatus.COMPLETED.value,
                notes=notes
            )
            sess.add(transaction)
            return transaction

        if session is not None:
            transaction = _create_transaction(session)
            session.flush()
            return transaction
        else:
            with Session(get_engine()) as session:
                transaction = _create_transaction(session)
                session.commit()
                session.refresh(transaction)
                return transaction

    @staticmethod
    def get_by_user(
        user_id: str,
        limit: Optional[int] = None,
        session: Optional[Session] = None
    ) -> List[Transaction]:
        """
        Retrieve a user's transactions, newest first.

        Args:
            user_id: Owner of the transactions
            limit: Maximum number of rows (all when None)
            session: Optional existing session for transaction reuse

        Returns:
            List of Transaction objects
        """
        def _get_by_user(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
            )
            if limit is not None:
                statement = statement.limit(limit)
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_user(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_user(session)

    @staticmethod
    def get_trades(user_id: str, session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve a user's buy and sell transactions in chronological order.
        Ties on timestamp are broken by insertion order (id).

        Args:
            user_id: Owner of the transactions
            session: Optional existing session for transaction reuse

        Returns:
            List of Transaction objects, oldest first
        """
        def _get_trades(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .where(
                    Transaction.user_id == user_id,
                    Transaction.transaction_type.in_(
                        [TransactionType.BUY.value, TransactionType.SELL.value]
                    )
                )
                .order_by(Transaction.timestamp, Transaction.id)
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_trades(session)
        else:
            with Session(get_engine()) as session:
                return _get_trades(session)

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Args:
            transaction_id: Transaction ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            Transaction object or None if not found
        """
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)
