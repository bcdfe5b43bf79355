"""SupportedBank model for the country-scoped bank catalog."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from finance_mailsync.db.base import Base


class SupportedBank(Base):
    """Catalog entry used to create default bank filters on connect."""

    __tablename__ = "supported_banks"
    __table_args__ = (
        Index("IX_supported_banks_country", "country", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    sender_emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    subject_patterns: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<SupportedBank(id={self.id}, name='{self.name}', country='{self.country}')>"
