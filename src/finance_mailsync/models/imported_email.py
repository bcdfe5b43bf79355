"""ImportedEmail model: idempotency and audit record for one message."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_mailsync.db.base import Base
from finance_mailsync.models.enums import ImportedEmailStatus


class ImportedEmail(Base):
    """One provider message seen by a connection.

    (connection_id, provider_message_id) is the idempotency key that keeps a
    message from being processed twice across runs.
    """

    __tablename__ = "imported_bank_emails"
    __table_args__ = (
        UniqueConstraint(
            "connection_id",
            "provider_message_id",
            name="UQ_imported_bank_emails_message",
        ),
        Index("IX_imported_bank_emails_status", "connection_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    connection_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("email_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    sender_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    received_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    raw_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ImportedEmailStatus] = mapped_column(
        Enum(ImportedEmailStatus, native_enum=False, length=20),
        nullable=False,
        default=ImportedEmailStatus.PROCESSING,
    )
    parsed_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    transaction_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    # Relationships
    connection: Mapped["EmailConnection"] = relationship(
        "EmailConnection",
        back_populates="imported_emails",
    )

    def __repr__(self) -> str:
        return (
            f"<ImportedEmail(id={self.id}, message='{self.provider_message_id}', "
            f"status='{self.status.value}')>"
        )


# Import at bottom to avoid circular imports
from finance_mailsync.models.email_connection import EmailConnection  # noqa: E402
