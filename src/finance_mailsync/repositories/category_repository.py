"""CategoryRepository for looking up transaction categories."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from finance_mailsync.models.category import Category
from finance_mailsync.models.enums import TransactionType

# Name fragments identifying the designated "miscellaneous" category
FALLBACK_CATEGORY_MARKERS = ("otro", "misc", "other")


class CategoryNotFoundError(Exception):
    """Raised when a category is not found."""

    pass


class CategoryRepository:
    """Repository for category reads."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def create(
        self,
        name: str,
        type: TransactionType = TransactionType.EXPENSE,
        icon: str | None = None,
    ) -> Category:
        """Create a category."""
        category = Category(name=name, type=type, icon=icon)
        self._session.add(category)
        self._session.flush()
        return category

    def get(self, category_id: int) -> Category:
        """Get a category by ID.

        Raises:
            CategoryNotFoundError: If category doesn't exist.
        """
        category = self._session.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        return category

    def get_expense_categories(self) -> list[Category]:
        """Get all EXPENSE categories ordered by name."""
        stmt = (
            select(Category)
            .where(Category.type == TransactionType.EXPENSE)
            .order_by(Category.name)
        )
        return list(self._session.execute(stmt).scalars().all())

    def find_expense_by_name(self, name: str) -> Category | None:
        """Find an EXPENSE category by case-insensitive name.

        An exact match wins over a partial match.
        """
        if not name or not name.strip():
            return None
        needle = name.strip().lower()
        base = select(Category).where(Category.type == TransactionType.EXPENSE)

        exact = self._session.execute(
            base.where(func.lower(Category.name) == needle).limit(1)
        ).scalar_one_or_none()
        if exact is not None:
            return exact

        return self._session.execute(
            base.where(func.lower(Category.name).contains(needle))
            .order_by(Category.id)
            .limit(1)
        ).scalar_one_or_none()

    def get_fallback_expense_category(self) -> Category | None:
        """Get the designated miscellaneous category, or any EXPENSE category."""
        categories = self.get_expense_categories()
        for category in categories:
            if any(marker in category.name.lower() for marker in FALLBACK_CATEGORY_MARKERS):
                return category
        return categories[0] if categories else None
