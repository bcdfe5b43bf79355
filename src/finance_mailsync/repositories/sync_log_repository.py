"""SyncLogRepository for sync run audit records."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from finance_mailsync.models.email_sync_log import EmailSyncLog
from finance_mailsync.models.enums import SyncStatus


class SyncLogRepository:
    """Repository for email sync logs."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def start(self, connection_id: int, now: datetime) -> EmailSyncLog:
        """Create an IN_PROGRESS log at run start."""
        log = EmailSyncLog(
            connection_id=connection_id,
            started_at=now,
            status=SyncStatus.IN_PROGRESS,
        )
        self._session.add(log)
        self._session.flush()
        return log

    def finalize(
        self,
        log: EmailSyncLog,
        status: SyncStatus,
        now: datetime,
        emails_found: int,
        emails_processed: int,
        emails_skipped: int,
        transactions_created: int,
        error_message: str | None = None,
    ) -> EmailSyncLog:
        """Record the counts and terminal status of a run."""
        log.status = status
        log.completed_at = now
        log.emails_found = emails_found
        log.emails_processed = emails_processed
        log.emails_skipped = emails_skipped
        log.transactions_created = transactions_created
        log.error_message = error_message
        self._session.flush()
        return log

    def get_recent(self, connection_id: int, limit: int = 10) -> list[EmailSyncLog]:
        """Get the most recent logs of a connection, newest first."""
        stmt = (
            select(EmailSyncLog)
            .where(EmailSyncLog.connection_id == connection_id)
            .order_by(EmailSyncLog.started_at.desc(), EmailSyncLog.id.desc())
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all())

    def abandon_in_progress(
        self, connection_id: int, now: datetime, error_message: str
    ) -> list[EmailSyncLog]:
        """Close every IN_PROGRESS log of a connection as FAILED.

        Called by the lease holder, so any open log belongs to a dead run.
        """
        stmt = select(EmailSyncLog).where(
            EmailSyncLog.connection_id == connection_id,
            EmailSyncLog.status == SyncStatus.IN_PROGRESS,
        )
        logs = list(self._session.execute(stmt).scalars().all())
        for log in logs:
            log.status = SyncStatus.FAILED
            log.completed_at = now
            log.error_message = error_message
        self._session.flush()
        return logs
