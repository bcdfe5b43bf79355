"""Category model for transaction categories."""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from finance_mailsync.db.base import Base
from finance_mailsync.models.enums import TransactionType


class Category(Base):
    """A named expense or income category."""

    __tablename__ = "categories"
    __table_args__ = (Index("IX_categories_type_name", "type", "name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False, length=20),
        nullable=False,
        default=TransactionType.EXPENSE,
    )
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name='{self.name}', type='{self.type.value}')>"
