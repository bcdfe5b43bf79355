"""MerchantMappingRepository for learned merchant-category mappings."""

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from finance_mailsync.models.enums import MappingSource
from finance_mailsync.models.merchant_category_mapping import MerchantCategoryMapping


class MerchantMappingRepository:
    """Repository for merchant-category mapping rows."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def _name_matches(self, normalized_name: str):  # type: ignore[no-untyped-def]
        """Exact name, or any mapping containing the first word."""
        first_word = normalized_name.split(" ")[0]
        return or_(
            MerchantCategoryMapping.merchant_name == normalized_name,
            MerchantCategoryMapping.merchant_name.contains(first_word),
        )

    def find_user_mapping(
        self, user_id: str, normalized_name: str
    ) -> MerchantCategoryMapping | None:
        """Find the most used mapping of a user for a merchant."""
        stmt = (
            select(MerchantCategoryMapping)
            .where(MerchantCategoryMapping.user_id == user_id)
            .where(self._name_matches(normalized_name))
            .order_by(
                (MerchantCategoryMapping.merchant_name == normalized_name).desc(),
                MerchantCategoryMapping.times_used.desc(),
            )
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def find_trusted_global(
        self, normalized_name: str, min_users: int, min_confidence: int
    ) -> MerchantCategoryMapping | None:
        """Find a global mapping confirmed by enough users."""
        stmt = (
            select(MerchantCategoryMapping)
            .where(MerchantCategoryMapping.user_id.is_(None))
            .where(MerchantCategoryMapping.confirmed_by_users >= min_users)
            .where(MerchantCategoryMapping.confidence >= min_confidence)
            .where(self._name_matches(normalized_name))
            .order_by(
                MerchantCategoryMapping.confirmed_by_users.desc(),
                MerchantCategoryMapping.confidence.desc(),
                MerchantCategoryMapping.times_used.desc(),
            )
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def get_exact(
        self, user_id: str | None, normalized_name: str
    ) -> MerchantCategoryMapping | None:
        """Get the mapping for an exact (user, merchant) key; None user is global."""
        owner = (
            MerchantCategoryMapping.user_id.is_(None)
            if user_id is None
            else MerchantCategoryMapping.user_id == user_id
        )
        stmt = (
            select(MerchantCategoryMapping)
            .where(owner)
            .where(MerchantCategoryMapping.merchant_name == normalized_name)
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def create(
        self,
        user_id: str | None,
        merchant_name: str,
        merchant_pattern: str,
        category_id: int,
        source: MappingSource,
        confidence: int,
    ) -> MerchantCategoryMapping:
        """Create a mapping row."""
        mapping = MerchantCategoryMapping(
            user_id=user_id,
            merchant_name=merchant_name,
            merchant_pattern=merchant_pattern,
            category_id=category_id,
            source=source,
            times_used=1,
            confirmed_by_users=1,
            confidence=confidence,
        )
        self._session.add(mapping)
        self._session.flush()
        return mapping

    def update(
        self, mapping: MerchantCategoryMapping, **values: object
    ) -> MerchantCategoryMapping:
        """Set columns on a mapping row and flush."""
        for key, value in values.items():
            setattr(mapping, key, value)
        self._session.flush()
        return mapping

    def delete(self, mapping: MerchantCategoryMapping) -> None:
        """Delete a mapping row."""
        self._session.delete(mapping)
        self._session.flush()

    def count_for_user(self, user_id: str) -> int:
        """Count the mappings owned by a user."""
        stmt = select(func.count(MerchantCategoryMapping.id)).where(
            MerchantCategoryMapping.user_id == user_id
        )
        return int(self._session.execute(stmt).scalar_one())

    def count_trusted_global(self, min_users: int) -> int:
        """Count global mappings confirmed by at least ``min_users``."""
        stmt = select(func.count(MerchantCategoryMapping.id)).where(
            MerchantCategoryMapping.user_id.is_(None),
            MerchantCategoryMapping.confirmed_by_users >= min_users,
        )
        return int(self._session.execute(stmt).scalar_one())

    def top_categories_for_user(
        self, user_id: str, limit: int = 5
    ) -> list[tuple[int, int]]:
        """Get (category_id, mapping count) pairs for a user, most used first."""
        count = func.count(MerchantCategoryMapping.id)
        stmt = (
            select(MerchantCategoryMapping.category_id, count)
            .where(MerchantCategoryMapping.user_id == user_id)
            .group_by(MerchantCategoryMapping.category_id)
            .order_by(count.desc())
            .limit(limit)
        )
        return [(row[0], row[1]) for row in self._session.execute(stmt)]
