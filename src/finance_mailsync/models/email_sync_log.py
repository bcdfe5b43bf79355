"""EmailSyncLog model: audit record for one sync run."""

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_mailsync.db.base import Base
from finance_mailsync.models.enums import SyncStatus


class EmailSyncLog(Base):
    """Counts and outcome of a single sync run on a connection."""

    __tablename__ = "email_sync_logs"
    __table_args__ = (
        Index("IX_email_sync_logs_connection_started", "connection_id", "started_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    connection_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("email_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, native_enum=False, length=20),
        nullable=False,
        default=SyncStatus.IN_PROGRESS,
    )
    emails_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transactions_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    connection: Mapped["EmailConnection"] = relationship(
        "EmailConnection",
        back_populates="sync_logs",
    )

    def __repr__(self) -> str:
        return f"<EmailSyncLog(id={self.id}, status='{self.status.value}')>"


# Import at bottom to avoid circular imports
from finance_mailsync.models.email_connection import EmailConnection  # noqa: E402
