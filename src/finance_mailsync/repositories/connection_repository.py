"""ConnectionRepository for managing linked mailboxes and their sync state."""

from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from finance_mailsync.models.email_connection import EmailConnection
from finance_mailsync.models.enums import EmailProvider, SyncStatus


class ConnectionNotFoundError(Exception):
    """Raised when an email connection is not found."""

    pass


class ConnectionRepository:
    """Repository for email connection CRUD and sync-state transitions."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def get(self, connection_id: int) -> EmailConnection:
        """Get a connection by ID.

        Raises:
            ConnectionNotFoundError: If connection doesn't exist.
        """
        connection = self._session.get(EmailConnection, connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Email connection {connection_id} not found")
        return connection

    def find_by_user_provider(
        self, user_id: str, provider: EmailProvider
    ) -> EmailConnection | None:
        """Find the connection for a (user, provider) pair."""
        stmt = select(EmailConnection).where(
            EmailConnection.user_id == user_id,
            EmailConnection.provider == provider,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def get_active_for_user(self, user_id: str) -> list[EmailConnection]:
        """Get all active connections of a user ordered by ID."""
        stmt = (
            select(EmailConnection)
            .where(EmailConnection.user_id == user_id)
            .where(EmailConnection.is_active == True)  # noqa: E712
            .order_by(EmailConnection.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_due_for_sync(self, synced_before: datetime) -> list[EmailConnection]:
        """Get active connections never synced or last synced before a cutoff.

        Args:
            synced_before: Connections synced at or after this instant are excluded.
        """
        stmt = (
            select(EmailConnection)
            .where(EmailConnection.is_active == True)  # noqa: E712
            .where(
                or_(
                    EmailConnection.last_sync_at.is_(None),
                    EmailConnection.last_sync_at < synced_before,
                )
            )
            .order_by(EmailConnection.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def upsert_tokens(
        self,
        user_id: str,
        provider: EmailProvider,
        email: str,
        access_token: str,
        refresh_token: str | None,
        token_expires_at: datetime,
        country: str,
    ) -> EmailConnection:
        """Create or update the connection after a successful OAuth callback.

        An existing refresh token is kept when the provider does not send a
        new one.
        """
        connection = self.find_by_user_provider(user_id, provider)
        if connection is None:
            connection = EmailConnection(
                user_id=user_id,
                provider=provider,
                email=email,
                country=country,
                access_token=access_token,
                refresh_token=refresh_token,
                token_expires_at=token_expires_at,
                is_active=True,
                last_sync_status=SyncStatus.PENDING,
            )
            self._session.add(connection)
        else:
            connection.email = email
            connection.country = country
            connection.access_token = access_token
            if refresh_token:
                connection.refresh_token = refresh_token
            connection.token_expires_at = token_expires_at
            connection.is_active = True
            connection.last_sync_status = SyncStatus.PENDING
            connection.last_sync_error = None
        self._session.flush()
        return connection

    def update_tokens(
        self,
        connection: EmailConnection,
        access_token: str,
        token_expires_at: datetime,
        refresh_token: str | None = None,
    ) -> EmailConnection:
        """Persist refreshed tokens on a connection."""
        connection.access_token = access_token
        connection.token_expires_at = token_expires_at
        if refresh_token:
            connection.refresh_token = refresh_token
        self._session.flush()
        return connection

    def try_begin_sync(
        self, connection_id: int, now: datetime, stale_after: timedelta
    ) -> bool:
        """Atomically move a connection to IN_PROGRESS.

        Compare-and-swap on ``last_sync_status``: the update only applies when
        no other run holds the lease, or when the held lease started before
        ``now - stale_after``.

        Returns:
            True if this caller acquired the lease.
        """
        stale_cutoff = now - stale_after
        stmt = (
            update(EmailConnection)
            .where(EmailConnection.id == connection_id)
            .where(EmailConnection.is_active == True)  # noqa: E712
            .where(
                or_(
                    EmailConnection.last_sync_status != SyncStatus.IN_PROGRESS,
                    EmailConnection.sync_started_at.is_(None),
                    EmailConnection.sync_started_at < stale_cutoff,
                )
            )
            .values(
                last_sync_status=SyncStatus.IN_PROGRESS,
                sync_started_at=now,
                version=EmailConnection.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        acquired = self._session.execute(stmt).rowcount == 1
        connection = self._session.get(EmailConnection, connection_id)
        if connection is not None:
            self._session.refresh(connection)
        return acquired

    def finish_sync(
        self,
        connection: EmailConnection,
        status: SyncStatus,
        now: datetime,
        error: str | None = None,
    ) -> EmailConnection:
        """Record the terminal status of a run and release the lease.

        ``last_sync_at`` is the watermark for the next incremental sync, so it
        only moves forward on SUCCESS.
        """
        connection.last_sync_status = status
        connection.last_sync_error = error
        connection.sync_started_at = None
        if status is SyncStatus.SUCCESS:
            connection.last_sync_at = now
        self._session.flush()
        return connection

    def delete(self, connection: EmailConnection) -> None:
        """Delete a connection with its filters, imported emails and logs."""
        self._session.delete(connection)
        self._session.flush()
