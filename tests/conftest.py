"""Pytest configuration and fixtures."""

from collections.abc import Generator
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from finance_mailsync.core.config import Settings
from finance_mailsync.db.base import Base, import_models
from finance_mailsync.main import app
from finance_mailsync.models.bank_email_filter import BankEmailFilter
from finance_mailsync.models.category import Category
from finance_mailsync.models.email_connection import EmailConnection
from finance_mailsync.models.enums import EmailProvider, SyncStatus, TransactionType

# Fixed "now" shared by tests that inject a clock
NOW = datetime(2026, 3, 15, 12, 0, 0)

# ============================================================================
# FastAPI test client
# ============================================================================


@pytest.fixture
def client() -> TestClient:
    """Create a test client."""
    return TestClient(app)


# ============================================================================
# Unit test fixtures (SQLite in-memory)
# ============================================================================


@pytest.fixture
def in_memory_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for unit testing.

    This fixture is fast and doesn't require external dependencies.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def setup_sqlite(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    import_models()
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(in_memory_db: Session) -> Session:
    """Alias for in_memory_db fixture (used by unit tests)."""
    return in_memory_db


# ============================================================================
# Domain fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with dummy credentials, independent of the environment."""
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        google_client_id="google-client",
        google_client_secret="google-secret",
        microsoft_client_id="ms-client",
        microsoft_client_secret="ms-secret",
        anthropic_api_key="test-key",
    )


@pytest.fixture
def expense_categories(db_session: Session) -> dict[str, Category]:
    """Create a small EXPENSE catalog plus one INCOME category."""
    categories = {}
    for name in ["Supermercado", "Restaurantes", "Transporte", "Otros"]:
        category = Category(name=name, type=TransactionType.EXPENSE)
        db_session.add(category)
        categories[name] = category
    db_session.add(Category(name="Salario", type=TransactionType.INCOME))
    db_session.commit()
    return categories


@pytest.fixture
def gmail_connection(db_session: Session) -> EmailConnection:
    """Create an active Gmail connection with one bank filter."""
    connection = EmailConnection(
        user_id="user-1",
        provider=EmailProvider.GMAIL,
        email="ana@gmail.com",
        country="DO",
        access_token="access-token",
        refresh_token="refresh-token",
        token_expires_at=NOW + timedelta(hours=1),
        is_active=True,
        last_sync_status=SyncStatus.PENDING,
    )
    db_session.add(connection)
    db_session.flush()
    db_session.add(
        BankEmailFilter(
            connection_id=connection.id,
            bank_name="Banco Popular Dominicano",
            sender_emails=["notificaciones@popularenlinea.com"],
            subject_keywords=["consumo", "compra"],
            is_active=True,
        )
    )
    db_session.commit()
    return connection


# ============================================================================
# Markers
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (SQLite)")


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Automatically mark tests based on their location."""
    for item in items:
        if "models" in str(item.fspath) or "repositories" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
