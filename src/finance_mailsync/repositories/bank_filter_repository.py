"""BankFilterRepository for bank email filters and the supported-bank catalog."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from finance_mailsync.models.bank_email_filter import BankEmailFilter
from finance_mailsync.models.supported_bank import SupportedBank


class BankFilterNotFoundError(Exception):
    """Raised when a bank filter is not found."""

    pass


class BankFilterRepository:
    """Repository for bank filters and supported banks."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def get(self, filter_id: int) -> BankEmailFilter:
        """Get a bank filter by ID.

        Raises:
            BankFilterNotFoundError: If filter doesn't exist.
        """
        bank_filter = self._session.get(BankEmailFilter, filter_id)
        if bank_filter is None:
            raise BankFilterNotFoundError(f"Bank filter {filter_id} not found")
        return bank_filter

    def get_for_connection(
        self, connection_id: int, active_only: bool = False
    ) -> list[BankEmailFilter]:
        """Get the bank filters of a connection ordered by bank name."""
        stmt = select(BankEmailFilter).where(
            BankEmailFilter.connection_id == connection_id
        )
        if active_only:
            stmt = stmt.where(BankEmailFilter.is_active == True)  # noqa: E712
        stmt = stmt.order_by(BankEmailFilter.bank_name)
        return list(self._session.execute(stmt).scalars().all())

    def upsert(
        self,
        connection_id: int,
        bank_name: str,
        sender_emails: list[str],
        subject_keywords: list[str],
    ) -> BankEmailFilter:
        """Create a filter or refresh its senders/keywords.

        The ``is_active`` flag of an existing filter is left untouched so a
        user's toggle survives reconnection.
        """
        stmt = select(BankEmailFilter).where(
            BankEmailFilter.connection_id == connection_id,
            BankEmailFilter.bank_name == bank_name,
        )
        bank_filter = self._session.execute(stmt).scalar_one_or_none()
        if bank_filter is None:
            bank_filter = BankEmailFilter(
                connection_id=connection_id,
                bank_name=bank_name,
                sender_emails=list(sender_emails),
                subject_keywords=list(subject_keywords),
                is_active=True,
            )
            self._session.add(bank_filter)
        else:
            bank_filter.sender_emails = list(sender_emails)
            bank_filter.subject_keywords = list(subject_keywords)
        self._session.flush()
        return bank_filter

    def set_active(self, filter_id: int, is_active: bool) -> BankEmailFilter:
        """Activate or deactivate a bank filter."""
        bank_filter = self.get(filter_id)
        bank_filter.is_active = is_active
        self._session.flush()
        return bank_filter

    def get_supported_banks(self, country: str) -> list[SupportedBank]:
        """Get the active catalog entries for a country."""
        stmt = (
            select(SupportedBank)
            .where(SupportedBank.country == country)
            .where(SupportedBank.is_active == True)  # noqa: E712
            .order_by(SupportedBank.name)
        )
        return list(self._session.execute(stmt).scalars().all())

    def add_supported_bank(
        self,
        name: str,
        country: str,
        sender_emails: list[str],
        subject_patterns: list[str],
        logo_url: str | None = None,
    ) -> SupportedBank:
        """Add or update a catalog entry keyed by (name, country)."""
        stmt = select(SupportedBank).where(
            SupportedBank.name == name, SupportedBank.country == country
        )
        bank = self._session.execute(stmt).scalar_one_or_none()
        if bank is None:
            bank = SupportedBank(name=name, country=country)
            self._session.add(bank)
        bank.sender_emails = list(sender_emails)
        bank.subject_patterns = list(subject_patterns)
        bank.logo_url = logo_url
        bank.is_active = True
        self._session.flush()
        return bank
