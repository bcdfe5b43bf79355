"""Tests for ConnectionRepository."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from finance_mailsync.models.email_connection import EmailConnection
from finance_mailsync.models.enums import EmailProvider, SyncStatus
from finance_mailsync.repositories.connection_repository import (
    ConnectionNotFoundError,
    ConnectionRepository,
)

NOW = datetime(2026, 3, 15, 12, 0, 0)
STALE_AFTER = timedelta(minutes=30)


class TestConnectionRepositoryGet:
    """Tests for ConnectionRepository.get()."""

    def test_get_existing(self, db_session: Session, gmail_connection: EmailConnection) -> None:
        """Test getting a connection by ID."""
        repo = ConnectionRepository(db_session)

        assert repo.get(gmail_connection.id).email == "ana@gmail.com"

    def test_get_missing_raises(self, db_session: Session) -> None:
        """Test getting a missing connection raises."""
        repo = ConnectionRepository(db_session)

        with pytest.raises(ConnectionNotFoundError, match="999"):
            repo.get(999)


class TestConnectionRepositoryUpsertTokens:
    """Tests for ConnectionRepository.upsert_tokens()."""

    def test_creates_pending_connection(self, db_session: Session) -> None:
        """Test the first OAuth callback creates the connection."""
        repo = ConnectionRepository(db_session)

        connection = repo.upsert_tokens(
            user_id="user-2",
            provider=EmailProvider.OUTLOOK,
            email="luis@outlook.com",
            access_token="a1",
            refresh_token="r1",
            token_expires_at=NOW,
            country="DO",
        )

        assert connection.id is not None
        assert connection.last_sync_status is SyncStatus.PENDING
        assert connection.refresh_token == "r1"

    def test_reconnect_keeps_refresh_token_when_absent(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test a reconnect without a new refresh token keeps the stored one."""
        repo = ConnectionRepository(db_session)
        gmail_connection.is_active = False
        gmail_connection.last_sync_status = SyncStatus.FAILED
        gmail_connection.last_sync_error = "revoked"
        db_session.flush()

        connection = repo.upsert_tokens(
            user_id="user-1",
            provider=EmailProvider.GMAIL,
            email="ana@gmail.com",
            access_token="fresh",
            refresh_token=None,
            token_expires_at=NOW,
            country="DO",
        )

        assert connection.id == gmail_connection.id
        assert connection.access_token == "fresh"
        assert connection.refresh_token == "refresh-token"
        assert connection.is_active is True
        assert connection.last_sync_status is SyncStatus.PENDING
        assert connection.last_sync_error is None


class TestConnectionRepositoryTryBeginSync:
    """Tests for the compare-and-swap sync lease."""

    def test_acquires_idle_connection(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test a PENDING connection moves to IN_PROGRESS."""
        repo = ConnectionRepository(db_session)
        version = gmail_connection.version

        assert repo.try_begin_sync(gmail_connection.id, NOW, STALE_AFTER) is True
        assert gmail_connection.last_sync_status is SyncStatus.IN_PROGRESS
        assert gmail_connection.sync_started_at == NOW
        assert gmail_connection.version == version + 1

    def test_second_caller_loses(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test a held lease cannot be taken again."""
        repo = ConnectionRepository(db_session)
        repo.try_begin_sync(gmail_connection.id, NOW, STALE_AFTER)

        acquired = repo.try_begin_sync(
            gmail_connection.id, NOW + timedelta(minutes=5), STALE_AFTER
        )

        assert acquired is False
        assert gmail_connection.sync_started_at == NOW

    def test_stale_lease_is_taken_over(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test a lease older than the stale window can be taken over."""
        repo = ConnectionRepository(db_session)
        repo.try_begin_sync(gmail_connection.id, NOW, STALE_AFTER)
        later = NOW + timedelta(minutes=31)

        assert repo.try_begin_sync(gmail_connection.id, later, STALE_AFTER) is True
        assert gmail_connection.sync_started_at == later

    def test_inactive_connection_is_not_acquired(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test deactivated connections never start a run."""
        repo = ConnectionRepository(db_session)
        gmail_connection.is_active = False
        db_session.flush()

        assert repo.try_begin_sync(gmail_connection.id, NOW, STALE_AFTER) is False


class TestConnectionRepositoryFinishSync:
    """Tests for ConnectionRepository.finish_sync()."""

    def test_success_moves_watermark(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test SUCCESS records the completion instant as last_sync_at."""
        repo = ConnectionRepository(db_session)
        repo.try_begin_sync(gmail_connection.id, NOW, STALE_AFTER)
        done = NOW + timedelta(minutes=2)

        repo.finish_sync(gmail_connection, SyncStatus.SUCCESS, done)

        assert gmail_connection.last_sync_status is SyncStatus.SUCCESS
        assert gmail_connection.last_sync_at == done
        assert gmail_connection.sync_started_at is None

    def test_failure_keeps_watermark(
        self, db_session: Session, gmail_connection: EmailConnection
    ) -> None:
        """Test FAILED leaves the last good watermark in place."""
        repo = ConnectionRepository(db_session)
        previous = NOW - timedelta(days=1)
        gmail_connection.last_sync_at = previous
        db_session.flush()
        repo.try_begin_sync(gmail_connection.id, NOW, STALE_AFTER)

        repo.finish_sync(gmail_connection, SyncStatus.FAILED, NOW, error="token revoked")

        assert gmail_connection.last_sync_status is SyncStatus.FAILED
        assert gmail_connection.last_sync_error == "token revoked"
        assert gmail_connection.last_sync_at == previous


class TestConnectionRepositoryQueries:
    """Tests for the listing queries."""

    def test_get_due_for_sync(self, db_session: Session, gmail_connection: EmailConnection) -> None:
        """Test never-synced and long-ago-synced connections are due."""
        repo = ConnectionRepository(db_session)
        recent = EmailConnection(
            user_id="user-3",
            provider=EmailProvider.GMAIL,
            email="recent@gmail.com",
            access_token="t",
            last_sync_at=NOW - timedelta(minutes=10),
        )
        old = EmailConnection(
            user_id="user-4",
            provider=EmailProvider.GMAIL,
            email="old@gmail.com",
            access_token="t",
            last_sync_at=NOW - timedelta(hours=3),
        )
        inactive = EmailConnection(
            user_id="user-5",
            provider=EmailProvider.GMAIL,
            email="gone@gmail.com",
            access_token="t",
            is_active=False,
        )
        db_session.add_all([recent, old, inactive])
        db_session.flush()

        due = repo.get_due_for_sync(NOW - timedelta(hours=1))

        assert [c.email for c in due] == ["ana@gmail.com", "old@gmail.com"]

    def test_get_active_for_user(self, db_session: Session, gmail_connection: EmailConnection) -> None:
        """Test only the user's active connections are listed."""
        repo = ConnectionRepository(db_session)
        db_session.add(
            EmailConnection(
                user_id="user-1",
                provider=EmailProvider.OUTLOOK,
                email="ana@outlook.com",
                access_token="t",
                is_active=False,
            )
        )
        db_session.flush()

        assert [c.id for c in repo.get_active_for_user("user-1")] == [gmail_connection.id]
