"""BankEmailFilter model identifying one bank's notification emails."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_mailsync.db.base import Base


class BankEmailFilter(Base):
    """Sender/keyword rule for one bank, attached to a connection."""

    __tablename__ = "bank_email_filters"
    __table_args__ = (
        Index("IX_bank_email_filters_connection", "connection_id", "bank_name", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    connection_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("email_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sender_emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    subject_keywords: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    # Relationships
    connection: Mapped["EmailConnection"] = relationship(
        "EmailConnection",
        back_populates="bank_filters",
    )

    def matches_sender(self, sender: str) -> bool:
        """Check whether a From header belongs to this bank."""
        sender_lower = sender.lower()
        return any(address.lower() in sender_lower for address in self.sender_emails)

    def __repr__(self) -> str:
        return f"<BankEmailFilter(id={self.id}, bank='{self.bank_name}')>"


# Import at bottom to avoid circular imports
from finance_mailsync.models.email_connection import EmailConnection  # noqa: E402
