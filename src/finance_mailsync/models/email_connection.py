"""EmailConnection model for a user's linked mailbox."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_mailsync.db.base import Base
from finance_mailsync.models.enums import EmailProvider, SyncStatus


class EmailConnection(Base):
    """Stores OAuth tokens and sync state for one (user, provider) mailbox."""

    __tablename__ = "email_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="UQ_email_connections_user_provider"),
        Index("IX_email_connections_active_sync", "is_active", "last_sync_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[EmailProvider] = mapped_column(
        Enum(EmailProvider, native_enum=False, length=20), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="DO")
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_sync_status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, native_enum=False, length=20),
        nullable=False,
        default=SyncStatus.PENDING,
    )
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_started_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )  # lease start of the current IN_PROGRESS run
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    bank_filters: Mapped[list["BankEmailFilter"]] = relationship(
        "BankEmailFilter",
        back_populates="connection",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    imported_emails: Mapped[list["ImportedEmail"]] = relationship(
        "ImportedEmail",
        back_populates="connection",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sync_logs: Mapped[list["EmailSyncLog"]] = relationship(
        "EmailSyncLog",
        back_populates="connection",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<EmailConnection(id={self.id}, user_id='{self.user_id}', "
            f"provider='{self.provider.value}')>"
        )


# Import at bottom to avoid circular imports
from finance_mailsync.models.bank_email_filter import BankEmailFilter  # noqa: E402
from finance_mailsync.models.email_sync_log import EmailSyncLog  # noqa: E402
from finance_mailsync.models.imported_email import ImportedEmail  # noqa: E402
