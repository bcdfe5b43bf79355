"""BudgetRepository for budget lookups and spent updates."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from finance_mailsync.models.budget import Budget


class BudgetRepository:
    """Repository for budgets touched by the cascade effects."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def create(
        self,
        user_id: str,
        category_id: int,
        name: str,
        amount: Decimal,
        start_date: datetime,
        end_date: datetime,
        alert_percentage: int = 80,
    ) -> Budget:
        """Create an active budget."""
        budget = Budget(
            user_id=user_id,
            category_id=category_id,
            name=name,
            amount=amount,
            spent=Decimal("0"),
            start_date=start_date,
            end_date=end_date,
            alert_percentage=alert_percentage,
            is_active=True,
        )
        self._session.add(budget)
        self._session.flush()
        return budget

    def get_active_covering(
        self, user_id: str, category_id: int, on: datetime
    ) -> list[Budget]:
        """Get active budgets of a category whose window contains a date."""
        stmt = (
            select(Budget)
            .where(Budget.user_id == user_id)
            .where(Budget.category_id == category_id)
            .where(Budget.is_active == True)  # noqa: E712
            .where(Budget.start_date <= on)
            .where(Budget.end_date >= on)
            .order_by(Budget.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def set_spent(self, budget: Budget, spent: Decimal) -> Budget:
        """Overwrite the recomputed spent value."""
        budget.spent = spent
        self._session.flush()
        return budget
