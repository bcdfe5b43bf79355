"""ImportedEmailRepository for the per-message idempotency records."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from finance_mailsync.models.enums import ImportedEmailStatus
from finance_mailsync.models.imported_email import ImportedEmail


class ImportedEmailAlreadyFinalizedError(Exception):
    """Raised when a terminal ImportedEmail is finalized a second time."""

    pass


class ImportedEmailRepository:
    """Repository for imported email records."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def exists(self, connection_id: int, provider_message_id: str) -> bool:
        """Check the idempotency key for a provider message."""
        stmt = select(ImportedEmail.id).where(
            ImportedEmail.connection_id == connection_id,
            ImportedEmail.provider_message_id == provider_message_id,
        )
        return self._session.execute(stmt).first() is not None

    def get_by_message(
        self, connection_id: int, provider_message_id: str
    ) -> ImportedEmail | None:
        """Get the record for a provider message, if any."""
        stmt = select(ImportedEmail).where(
            ImportedEmail.connection_id == connection_id,
            ImportedEmail.provider_message_id == provider_message_id,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def count_for_connection(self, connection_id: int) -> int:
        """Count every message ever imported by a connection."""
        stmt = select(func.count(ImportedEmail.id)).where(
            ImportedEmail.connection_id == connection_id
        )
        return int(self._session.execute(stmt).scalar_one())

    def create_processing(
        self,
        connection_id: int,
        provider_message_id: str,
        subject: str,
        sender_email: str,
        received_at: datetime | None,
        raw_content: str,
    ) -> ImportedEmail:
        """Create the record in PROCESSING state at the start of processing."""
        imported = ImportedEmail(
            connection_id=connection_id,
            provider_message_id=provider_message_id,
            subject=subject[:500],
            sender_email=sender_email[:255],
            received_at=received_at,
            raw_content=raw_content,
            status=ImportedEmailStatus.PROCESSING,
        )
        self._session.add(imported)
        self._session.flush()
        return imported

    def finalize(
        self,
        imported: ImportedEmail,
        status: ImportedEmailStatus,
        now: datetime,
        parsed_data: dict[str, Any] | None = None,
        transaction_id: int | None = None,
        error_message: str | None = None,
    ) -> ImportedEmail:
        """Move a PROCESSING record to its terminal status exactly once.

        Raises:
            ValueError: If ``status`` is not terminal.
            ImportedEmailAlreadyFinalizedError: If already finalized.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        if imported.status.is_terminal:
            raise ImportedEmailAlreadyFinalizedError(
                f"Imported email {imported.id} already finalized as {imported.status.value}"
            )
        imported.status = status
        imported.parsed_data = parsed_data
        imported.transaction_id = transaction_id
        imported.error_message = error_message
        imported.processed_at = now
        self._session.flush()
        return imported

    def count_by_status(self, connection_id: int) -> dict[str, int]:
        """Count imported emails of a connection grouped by status."""
        stmt = (
            select(ImportedEmail.status, func.count(ImportedEmail.id))
            .where(ImportedEmail.connection_id == connection_id)
            .group_by(ImportedEmail.status)
        )
        return {status.value: count for status, count in self._session.execute(stmt)}

    def count_transactions_created(self, connection_id: int) -> int:
        """Count SUCCESS records that actually reference a transaction."""
        stmt = select(func.count(ImportedEmail.id)).where(
            ImportedEmail.connection_id == connection_id,
            ImportedEmail.status == ImportedEmailStatus.SUCCESS,
            ImportedEmail.transaction_id.is_not(None),
        )
        return int(self._session.execute(stmt).scalar_one())

    def list_for_connection(
        self,
        connection_id: int,
        status: ImportedEmailStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ImportedEmail], int]:
        """Get one page of imported emails, newest first.

        Returns:
            Tuple of (page items, total matching count).
        """
        conditions = [ImportedEmail.connection_id == connection_id]
        if status is not None:
            conditions.append(ImportedEmail.status == status)

        total = int(
            self._session.execute(
                select(func.count(ImportedEmail.id)).where(*conditions)
            ).scalar_one()
        )
        stmt = (
            select(ImportedEmail)
            .where(*conditions)
            .order_by(ImportedEmail.received_at.desc(), ImportedEmail.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all()), total

    def delete_processing(self, connection_id: int) -> list[str]:
        """Delete the PROCESSING records of a connection.

        A PROCESSING record is committed before its transaction, so one left
        behind by a dead run has no transaction and the message can be
        processed again.

        Returns:
            Provider message ids of the deleted records.
        """
        stmt = select(ImportedEmail).where(
            ImportedEmail.connection_id == connection_id,
            ImportedEmail.status == ImportedEmailStatus.PROCESSING,
        )
        orphans = list(self._session.execute(stmt).scalars().all())
        for imported in orphans:
            self._session.delete(imported)
        self._session.flush()
        return [imported.provider_message_id for imported in orphans]
