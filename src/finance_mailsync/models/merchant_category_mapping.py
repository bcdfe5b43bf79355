"""MerchantCategoryMapping model for learned merchant categories."""

from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_mailsync.db.base import Base
from finance_mailsync.models.enums import MappingSource


class MerchantCategoryMapping(Base):
    """Maps a normalized merchant name to a category.

    Rows with ``user_id`` set are a user's own corrections. Rows with a null
    ``user_id`` are global mappings aggregated across users.
    """

    __tablename__ = "merchant_category_mappings"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "merchant_name", name="UQ_merchant_category_mappings_user_merchant"
        ),
        Index("IX_merchant_category_mappings_merchant", "merchant_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    merchant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    merchant_pattern: Mapped[str] = mapped_column(String(200), nullable=False)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=False
    )
    source: Mapped[MappingSource] = mapped_column(
        Enum(MappingSource, native_enum=False, length=30), nullable=False
    )
    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    confirmed_by_users: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    confidence: Mapped[int] = mapped_column(
        Integer, nullable=False, default=50
    )  # 0 to 100
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    category: Mapped["Category"] = relationship("Category")

    def __repr__(self) -> str:
        return (
            f"<MerchantCategoryMapping(id={self.id}, merchant='{self.merchant_name}', "
            f"category_id={self.category_id})>"
        )


# Import at bottom to avoid circular imports
from finance_mailsync.models.category import Category  # noqa: E402
