"""TransactionRepository for creating and aggregating transactions."""

from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from finance_mailsync.models.enums import TransactionType
from finance_mailsync.models.transaction import Transaction


class TransactionRepository:
    """Repository for transaction writes and aggregate queries."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def create_expense(
        self,
        user_id: str,
        amount: Decimal,
        date: datetime,
        category_id: int,
        description: str,
    ) -> Transaction:
        """Create an EXPENSE transaction."""
        transaction = Transaction(
            user_id=user_id,
            type=TransactionType.EXPENSE,
            amount=amount,
            date=date,
            category_id=category_id,
            description=description[:500],
        )
        self._session.add(transaction)
        self._session.flush()
        return transaction

    def find_same_day_expense(
        self,
        user_id: str,
        amount: Decimal,
        day: datetime,
        merchant: str | None = None,
    ) -> Transaction | None:
        """Find an EXPENSE with the same amount on the same calendar day.

        When ``merchant`` is given the description must also contain it,
        case-insensitively.
        """
        day_start = datetime.combine(day.date(), time.min)
        day_end = day_start + timedelta(days=1)
        stmt = select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.amount == amount,
            Transaction.date >= day_start,
            Transaction.date < day_end,
        )
        if merchant:
            stmt = stmt.where(
                func.lower(Transaction.description).contains(merchant.lower())
            )
        return self._session.execute(stmt.limit(1)).scalar_one_or_none()

    def sum_expenses(
        self,
        user_id: str,
        category_id: int,
        start: datetime,
        end: datetime,
    ) -> Decimal:
        """Sum EXPENSE amounts of a category within [start, end]."""
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.user_id == user_id,
            Transaction.category_id == category_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.date >= start,
            Transaction.date <= end,
        )
        result = self._session.execute(stmt).scalar_one()
        return Decimal(str(result)) if result is not None else Decimal("0")
