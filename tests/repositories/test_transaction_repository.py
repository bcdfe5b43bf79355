"""Tests for TransactionRepository and BudgetRepository."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from finance_mailsync.models.category import Category
from finance_mailsync.repositories.budget_repository import BudgetRepository
from finance_mailsync.repositories.transaction_repository import TransactionRepository

MARCH_START = datetime(2026, 3, 1)
MARCH_END = datetime(2026, 3, 31, 23, 59, 59)


class TestTransactionRepositoryDuplicates:
    """Tests for find_same_day_expense()."""

    def test_same_day_same_amount_matches(
        self, db_session: Session, expense_categories: dict[str, Category]
    ) -> None:
        """Test a same-day expense of equal amount is found."""
        repo = TransactionRepository(db_session)
        existing = repo.create_expense(
            "user-1",
            Decimal("850.00"),
            datetime(2026, 3, 10, 9, 15),
            expense_categories["Supermercado"].id,
            "SUPERMERCADO NACIONAL - [Importado de Email]",
        )

        found = repo.find_same_day_expense(
            "user-1", Decimal("850.00"), datetime(2026, 3, 10, 21, 0), "supermercado nacional"
        )

        assert found is existing

    def test_different_day_or_merchant_does_not_match(
        self, db_session: Session, expense_categories: dict[str, Category]
    ) -> None:
        """Test the day and merchant both have to agree."""
        repo = TransactionRepository(db_session)
        repo.create_expense(
            "user-1",
            Decimal("850.00"),
            datetime(2026, 3, 10, 9, 15),
            expense_categories["Supermercado"].id,
            "SUPERMERCADO NACIONAL",
        )

        assert (
            repo.find_same_day_expense("user-1", Decimal("850.00"), datetime(2026, 3, 11))
            is None
        )
        assert (
            repo.find_same_day_expense(
                "user-1", Decimal("850.00"), datetime(2026, 3, 10), "JUMBO"
            )
            is None
        )
        assert (
            repo.find_same_day_expense("user-2", Decimal("850.00"), datetime(2026, 3, 10))
            is None
        )


class TestTransactionRepositorySums:
    """Tests for sum_expenses()."""

    def test_sum_within_window(
        self, db_session: Session, expense_categories: dict[str, Category]
    ) -> None:
        """Test only the category's expenses inside the window are summed."""
        repo = TransactionRepository(db_session)
        food = expense_categories["Restaurantes"].id
        repo.create_expense("user-1", Decimal("100.25"), datetime(2026, 3, 2), food, "A")
        repo.create_expense("user-1", Decimal("49.75"), datetime(2026, 3, 30), food, "B")
        repo.create_expense("user-1", Decimal("500"), datetime(2026, 4, 1), food, "April")
        repo.create_expense(
            "user-1", Decimal("70"), datetime(2026, 3, 5), expense_categories["Otros"].id, "C"
        )

        assert repo.sum_expenses("user-1", food, MARCH_START, MARCH_END) == Decimal("150.00")

    def test_sum_empty_window_is_zero(
        self, db_session: Session, expense_categories: dict[str, Category]
    ) -> None:
        """Test an empty window sums to zero."""
        repo = TransactionRepository(db_session)

        total = repo.sum_expenses(
            "user-1", expense_categories["Otros"].id, MARCH_START, MARCH_END
        )

        assert total == Decimal("0")


class TestBudgetRepository:
    """Tests for BudgetRepository."""

    def test_active_covering(
        self, db_session: Session, expense_categories: dict[str, Category]
    ) -> None:
        """Test budgets are matched by user, category, activity and window."""
        repo = BudgetRepository(db_session)
        food = expense_categories["Restaurantes"].id
        march = repo.create("user-1", food, "Comida marzo", Decimal("5000"), MARCH_START, MARCH_END)
        repo.create(
            "user-1", food, "Comida abril", Decimal("5000"), datetime(2026, 4, 1), datetime(2026, 4, 30)
        )
        inactive = repo.create("user-1", food, "Vieja", Decimal("100"), MARCH_START, MARCH_END)
        inactive.is_active = False
        repo.create("user-2", food, "Otro usuario", Decimal("100"), MARCH_START, MARCH_END)
        db_session.flush()

        budgets = repo.get_active_covering("user-1", food, datetime(2026, 3, 15))

        assert budgets == [march]

    def test_set_spent(self, db_session: Session, expense_categories: dict[str, Category]) -> None:
        """Test spent is overwritten, not incremented."""
        repo = BudgetRepository(db_session)
        budget = repo.create(
            "user-1",
            expense_categories["Otros"].id,
            "Varios",
            Decimal("1000"),
            MARCH_START,
            MARCH_END,
        )

        repo.set_spent(budget, Decimal("250.50"))
        repo.set_spent(budget, Decimal("300"))

        assert budget.spent == Decimal("300")
