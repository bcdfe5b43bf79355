"""EmailSyncService: the bank-email ingestion pipeline.

One run per connection moves it PENDING -> IN_PROGRESS -> SUCCESS/FAILED
and drives search -> fetch -> classify -> resolve -> persist for each
candidate message. The session is committed at every phase boundary so a
crash mid-run leaves each processed message durably recorded.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
from sqlalchemy.orm import Session

from finance_mailsync.core.config import Settings
from finance_mailsync.exceptions import (
    ClassificationFailed,
    ConnectionInactiveError,
    DuplicateTransaction,
    PaymentEmailSkipped,
    ProviderQueryError,
    SyncInProgressError,
)
from finance_mailsync.models.bank_email_filter import BankEmailFilter
from finance_mailsync.models.email_connection import EmailConnection
from finance_mailsync.models.email_sync_log import EmailSyncLog
from finance_mailsync.models.enums import EmailProvider, ImportedEmailStatus, SyncStatus
from finance_mailsync.models.imported_email import ImportedEmail
from finance_mailsync.repositories.bank_filter_repository import (
    BankFilterNotFoundError,
    BankFilterRepository,
)
from finance_mailsync.repositories.budget_repository import BudgetRepository
from finance_mailsync.repositories.category_repository import CategoryRepository
from finance_mailsync.repositories.connection_repository import (
    ConnectionNotFoundError,
    ConnectionRepository,
)
from finance_mailsync.repositories.imported_email_repository import (
    ImportedEmailRepository,
)
from finance_mailsync.repositories.merchant_mapping_repository import (
    MerchantMappingRepository,
)
from finance_mailsync.repositories.sync_log_repository import SyncLogRepository
from finance_mailsync.repositories.transaction_repository import TransactionRepository
from finance_mailsync.services.budget_cascade_service import BudgetCascadeService
from finance_mailsync.services.category_resolver import CategoryResolver
from finance_mailsync.services.events import EventBus, TransactionCreated
from finance_mailsync.services.exchange_rate_service import (
    ConvertedAmount,
    ExchangeRateService,
)
from finance_mailsync.services.merchant_mapping_service import MerchantMappingService
from finance_mailsync.services.notification_service import (
    LoggingNotificationSender,
    NotificationKind,
    NotificationSender,
    sync_complete_payload,
)
from finance_mailsync.services.providers import MailProvider, build_provider
from finance_mailsync.services.providers.base import MailMessage, MessageRef
from finance_mailsync.services.transaction_classifier import (
    ParsedTransaction,
    TransactionClassifier,
)

logger = logging.getLogger(__name__)

IMPORT_MARKER = "[Importado de Email]"
STALE_RUN_ERROR = "stale run abandoned"

COUNTRY_CODES = {
    "República Dominicana": "DO",
    "Republica Dominicana": "DO",
    "Dominican Republic": "DO",
    "Mexico": "MX",
    "México": "MX",
    "Colombia": "CO",
    "Estados Unidos": "US",
    "United States": "US",
    "España": "ES",
    "Spain": "ES",
    "Puerto Rico": "PR",
    "Argentina": "AR",
    "Chile": "CL",
    "Peru": "PE",
    "Perú": "PE",
    "Venezuela": "VE",
    "Ecuador": "EC",
    "Guatemala": "GT",
    "Honduras": "HN",
    "El Salvador": "SV",
    "Nicaragua": "NI",
    "Costa Rica": "CR",
    "Panama": "PA",
    "Panamá": "PA",
}


def map_country_to_code(country: str | None, default: str = "DO") -> str:
    """Map a country name (Spanish or English) or ISO code to an ISO code."""
    if not country:
        return default
    country = country.strip()
    if country in COUNTRY_CODES:
        return COUNTRY_CODES[country]
    if len(country) == 2 and country.upper() in COUNTRY_CODES.values():
        return country.upper()
    return default


def build_description(
    parsed: ParsedTransaction, conversion: ConvertedAmount | None, base_currency: str
) -> str:
    """Build the transaction description with merchant, card and audit markers.

    Example: ``SUPERMERCADO NACIONAL - (****1234) - Auth: 0099 - [Importado de Email]``
    """
    parts = [parsed.merchant]
    if parsed.card_last4:
        parts.append(f"(****{parsed.card_last4})")
    if parsed.authorization_code:
        parts.append(f"Auth: {parsed.authorization_code}")
    parts.append(IMPORT_MARKER)
    if conversion is not None:
        parts.append(
            f"[{conversion.original_currency} {conversion.original_amount} → "
            f"{base_currency} {conversion.amount} @{conversion.rate}]"
        )
    return " - ".join(parts)


@dataclass
class SyncResult:
    """Summary of one connection's sync run."""

    connection_id: int
    success: bool = False
    emails_found: int = 0
    emails_processed: int = 0
    emails_skipped: int = 0
    transactions_created: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ConnectionStatus:
    """Sync overview of one linked mailbox."""

    connection_id: int
    provider: EmailProvider
    email: str
    is_active: bool
    last_sync_at: datetime | None
    last_sync_status: SyncStatus
    last_sync_error: str | None
    banks_configured: int
    emails_imported: int
    transactions_created: int
    stats: dict[str, int] = field(default_factory=dict)


class EmailSyncService:
    """Entry points of the email ingestion pipeline.

    Messages of one connection are processed sequentially, so budget
    recomputation for one transaction never races another from the same run.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings,
        classifier: TransactionClassifier,
        exchange_rate_service: ExchangeRateService,
        event_bus: EventBus,
        notification_sender: NotificationSender,
        provider_factory: Callable[[EmailProvider], MailProvider],
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        """Initialize the service.

        Args:
            session: Database session, committed at phase boundaries.
            settings: Application settings.
            classifier: Email classifier.
            exchange_rate_service: Converter for foreign-currency purchases.
            event_bus: Bus receiving TransactionCreated events.
            notification_sender: Receiver of sync-complete notifications.
            provider_factory: Returns the adapter for a provider.
            clock: Source of the current naive UTC instant.
        """
        self._session = session
        self._settings = settings
        self._classifier = classifier
        self._exchange = exchange_rate_service
        self._events = event_bus
        self._sender = notification_sender
        self._provider_factory = provider_factory
        self._clock = clock

        self._connections = ConnectionRepository(session)
        self._filters = BankFilterRepository(session)
        self._imported = ImportedEmailRepository(session)
        self._sync_logs = SyncLogRepository(session)
        self._categories = CategoryRepository(session)
        self._transactions = TransactionRepository(session)
        self._resolver = CategoryResolver(
            MerchantMappingService(MerchantMappingRepository(session), self._categories),
            self._categories,
            self._transactions,
        )

    # --- Connection lifecycle ---

    def connect_provider(
        self,
        user_id: str,
        provider: EmailProvider,
        auth_code: str,
        country: str | None = None,
    ) -> EmailConnection:
        """Link a mailbox after the OAuth redirect.

        Exchanges the code, creates or updates the user's connection for the
        provider and attaches one bank filter per supported bank of the
        user's country.

        Raises:
            AuthExchangeError: If the code is invalid or expired.
        """
        adapter = self._provider_factory(provider)
        tokens = adapter.exchange_code(auth_code)
        mailbox = adapter.current_user_email(tokens.access_token)
        country_code = map_country_to_code(country, self._settings.default_country)

        connection = self._connections.upsert_tokens(
            user_id=user_id,
            provider=provider,
            email=mailbox,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expires_at=tokens.expires_at(self._clock()),
            country=country_code,
        )
        self._create_default_filters(connection, country_code)
        self._session.commit()
        logger.info("Connected %s mailbox for user %s", provider.value, user_id)
        return connection

    def _create_default_filters(self, connection: EmailConnection, country: str) -> None:
        banks = self._filters.get_supported_banks(country)
        if not banks:
            logger.warning("No supported banks found for country: %s", country)
            return
        logger.info("Creating filters for %d banks in %s", len(banks), country)
        for bank in banks:
            self._filters.upsert(
                connection.id, bank.name, bank.sender_emails, bank.subject_patterns
            )

    def disconnect(self, connection_id: int, user_id: str) -> None:
        """Revoke access (best effort) and delete the connection with its data.

        Raises:
            ConnectionNotFoundError: If the connection doesn't exist or
                belongs to another user.
        """
        connection = self._get_owned_connection(connection_id, user_id)
        self._provider_factory(connection.provider).revoke(connection.access_token)
        self._connections.delete(connection)
        self._session.commit()
        logger.info("Disconnected connection %s for user %s", connection_id, user_id)

    def _get_owned_connection(self, connection_id: int, user_id: str) -> EmailConnection:
        connection = self._connections.get(connection_id)
        if connection.user_id != user_id:
            raise ConnectionNotFoundError(f"Email connection {connection_id} not found")
        return connection

    # --- Sync ---

    def sync_connection(self, connection_id: int) -> SyncResult:
        """Run the ingestion pipeline for one connection.

        Message-local failures are recorded and the run continues; a
        connection-level failure (token refresh, search) ends the run as
        FAILED without moving the ``last_sync_at`` watermark.

        Raises:
            ConnectionNotFoundError: If the connection doesn't exist.
            ConnectionInactiveError: If the connection is deactivated.
            SyncInProgressError: If another run holds the connection's lease.
        """
        connection = self._connections.get(connection_id)
        if not connection.is_active:
            raise ConnectionInactiveError(f"Email connection {connection_id} is inactive")

        stale_after = timedelta(minutes=self._settings.sync_stale_after_minutes)
        if not self._connections.try_begin_sync(connection_id, self._clock(), stale_after):
            self._session.rollback()
            raise SyncInProgressError(connection_id)
        self._close_abandoned_run(connection_id)
        sync_log = self._sync_logs.start(connection_id, self._clock())
        self._session.commit()

        result = SyncResult(connection_id=connection_id)
        try:
            self._run(connection, result)
        except Exception as e:
            self._session.rollback()
            logger.exception("Sync failed for connection %s", connection_id)
            result.success = False
            result.errors.append(str(e))
            self._finalize(connection, sync_log, result, SyncStatus.FAILED, str(e))
            return result

        result.success = True
        self._finalize(connection, sync_log, result, SyncStatus.SUCCESS)
        logger.info(
            "Sync finished for connection %s: found=%d processed=%d skipped=%d created=%d",
            connection_id,
            result.emails_found,
            result.emails_processed,
            result.emails_skipped,
            result.transactions_created,
        )
        if result.transactions_created > 0 or result.emails_processed > 0:
            self._notify_sync_complete(connection.user_id, result.transactions_created)
        return result

    def _close_abandoned_run(self, connection_id: int) -> None:
        abandoned = self._sync_logs.abandon_in_progress(
            connection_id, self._clock(), STALE_RUN_ERROR
        )
        requeued = self._imported.delete_processing(connection_id)
        if abandoned or requeued:
            logger.warning(
                "Connection %s: closed %d abandoned sync logs, requeued messages %s",
                connection_id,
                len(abandoned),
                requeued,
            )

    def _finalize(
        self,
        connection: EmailConnection,
        sync_log: EmailSyncLog,
        result: SyncResult,
        status: SyncStatus,
        error: str | None = None,
    ) -> None:
        now = self._clock()
        self._sync_logs.finalize(
            sync_log,
            status,
            now,
            emails_found=result.emails_found,
            emails_processed=result.emails_processed,
            emails_skipped=result.emails_skipped,
            transactions_created=result.transactions_created,
            error_message=error,
        )
        self._connections.finish_sync(connection, status, now, error)
        self._session.commit()

    def _notify_sync_complete(self, user_id: str, transactions_created: int) -> None:
        try:
            self._sender.notify(
                user_id,
                NotificationKind.EMAIL_SYNC_COMPLETE,
                sync_complete_payload(transactions_created),
            )
        except Exception:
            logger.exception("Error sending sync-complete notification to %s", user_id)

    def search_since(self, connection: EmailConnection) -> datetime:
        """Lower bound for the mailbox search.

        The first sync of a connection looks ``initial_sync_days`` back; later
        syncs continue from the last successful sync.
        """
        first_sync_start = self._clock() - timedelta(days=self._settings.initial_sync_days)
        if self._imported.count_for_connection(connection.id) == 0:
            return first_sync_start
        return connection.last_sync_at or first_sync_start

    def _run(self, connection: EmailConnection, result: SyncResult) -> None:
        filters = self._filters.get_for_connection(connection.id, active_only=True)
        senders: list[str] = []
        keywords: list[str] = []
        for bank_filter in filters:
            senders.extend(bank_filter.sender_emails)
            keywords.extend(bank_filter.subject_keywords)
        logger.info(
            "Connection %s: %d bank filters, %d senders",
            connection.id,
            len(filters),
            len(set(senders)),
        )

        since = self.search_since(connection)
        logger.info("Searching emails after %s", since.isoformat())

        adapter = self._provider_factory(connection.provider)
        access_token = adapter.ensure_valid_token(connection, self._connections)
        self._session.commit()

        refs = adapter.search_messages(
            access_token, senders, keywords, since, self._settings.search_max_results
        )
        result.emails_found = len(refs)
        logger.info("Found %d bank emails for user %s", len(refs), connection.user_id)
        if not refs:
            return

        category_names = [c.name for c in self._categories.get_expense_categories()]
        for ref in refs:
            try:
                self._process_message(
                    connection, adapter, access_token, ref, filters, category_names, result
                )
            except Exception as e:
                self._session.rollback()
                logger.exception("Error processing message %s", ref.id)
                result.errors.append(f"Error processing {ref.id}: {e}")
                self._fail_unfinished(connection.id, ref.id, str(e))

    def _fail_unfinished(self, connection_id: int, message_id: str, error: str) -> None:
        imported = self._imported.get_by_message(connection_id, message_id)
        if imported is not None and not imported.status.is_terminal:
            self._imported.finalize(
                imported, ImportedEmailStatus.FAILED, self._clock(), error_message=error
            )
        self._session.commit()

    def _process_message(
        self,
        connection: EmailConnection,
        adapter: MailProvider,
        access_token: str,
        ref: MessageRef,
        filters: list[BankEmailFilter],
        category_names: list[str],
        result: SyncResult,
    ) -> None:
        if self._imported.exists(connection.id, ref.id):
            result.emails_skipped += 1
            return

        try:
            message = adapter.fetch_message(access_token, ref.id)
        except ProviderQueryError as e:
            imported = self._imported.create_processing(
                connection.id, ref.id, "", ref.sender or "", None, ""
            )
            self._finish(imported, ImportedEmailStatus.FAILED, error_message=str(e))
            result.errors.append(f"Failed to fetch email {ref.id}: {e}")
            return

        body = adapter.extract_body(message)
        imported = self._imported.create_processing(
            connection.id,
            ref.id,
            message.subject,
            message.sender,
            message.received_at,
            body[: self._settings.raw_body_max_chars],
        )
        self._session.commit()

        bank_name = next(
            (f.bank_name for f in filters if f.matches_sender(message.sender)), None
        )
        try:
            parsed = self._classifier.classify(
                body, message.subject, category_names, bank_name, connection.country
            )
        except PaymentEmailSkipped as e:
            logger.info("Skipped payment email %s", ref.id)
            self._finish(imported, ImportedEmailStatus.SKIPPED, error_message=str(e))
            result.emails_skipped += 1
            return
        except ClassificationFailed as e:
            logger.error("Failed to parse email %s: %s", ref.id, e)
            self._finish(imported, ImportedEmailStatus.FAILED, error_message=str(e))
            result.errors.append(f"Failed to parse email {ref.id}: {e}")
            return

        self._persist(connection, message, imported, parsed, result)

    def _persist(
        self,
        connection: EmailConnection,
        message: MailMessage,
        imported: ImportedEmail,
        parsed: ParsedTransaction,
        result: SyncResult,
    ) -> None:
        base_currency = self._settings.base_currency
        amount = parsed.amount
        conversion = None
        if parsed.currency != base_currency:
            conversion = self._exchange.convert_to_base(parsed.amount, parsed.currency)
            amount = conversion.amount
            logger.info(
                "Converted %s %s to %s %s (rate %s)",
                parsed.currency,
                parsed.amount,
                base_currency,
                amount,
                conversion.rate,
            )

        date = parsed.date or message.received_at or self._clock()
        snapshot = parsed.snapshot()

        try:
            self._resolver.ensure_not_duplicate(
                connection.user_id, amount, date, parsed.merchant
            )
        except DuplicateTransaction as e:
            logger.info("Duplicate email %s: %s", imported.provider_message_id, e)
            self._finish(imported, ImportedEmailStatus.DUPLICATE, parsed_data=snapshot)
            result.emails_skipped += 1
            return

        category = self._resolver.resolve_category(connection.user_id, parsed)
        snapshot["categoryId"] = category.category_id
        snapshot["categorySource"] = category.provenance.value

        transaction = self._transactions.create_expense(
            user_id=connection.user_id,
            amount=amount,
            date=date,
            category_id=category.category_id,
            description=build_description(parsed, conversion, base_currency),
        )
        self._finish(
            imported,
            ImportedEmailStatus.SUCCESS,
            parsed_data=snapshot,
            transaction_id=transaction.id,
        )
        result.transactions_created += 1
        result.emails_processed += 1
        logger.info(
            "Created transaction %s for %s %s (%s category %s)",
            transaction.id,
            amount,
            base_currency,
            category.provenance.value,
            category.category_name,
        )

        for error in self._events.publish(
            TransactionCreated(
                user_id=connection.user_id,
                transaction_id=transaction.id,
                category_id=category.category_id,
                transaction_date=date,
                amount=Decimal(amount),
            )
        ):
            result.errors.append(str(error))
        self._session.commit()

    def _finish(
        self,
        imported: ImportedEmail,
        status: ImportedEmailStatus,
        parsed_data: dict[str, Any] | None = None,
        transaction_id: int | None = None,
        error_message: str | None = None,
    ) -> None:
        self._imported.finalize(
            imported,
            status,
            self._clock(),
            parsed_data=parsed_data,
            transaction_id=transaction_id,
            error_message=error_message,
        )
        self._session.commit()

    def sync_all_connections_for_user(self, user_id: str) -> list[SyncResult]:
        """Sync every active connection of a user, one after another.

        Raises:
            SyncInProgressError: If any of the user's connections is already
                syncing; no connection is synced in that case.
        """
        connections = self._connections.get_active_for_user(user_id)
        stale_cutoff = self._clock() - timedelta(
            minutes=self._settings.sync_stale_after_minutes
        )
        for connection in connections:
            if connection.last_sync_status is SyncStatus.IN_PROGRESS and (
                connection.sync_started_at is not None
                and connection.sync_started_at >= stale_cutoff
            ):
                raise SyncInProgressError(connection.id)

        results = []
        for connection in connections:
            try:
                results.append(self.sync_connection(connection.id))
            except SyncInProgressError as e:
                results.append(
                    SyncResult(connection_id=connection.id, success=False, errors=[str(e)])
                )
        return results

    def get_active_connections_for_sync(self) -> list[EmailConnection]:
        """Active connections never synced or not synced within the interval."""
        cutoff = self._clock() - timedelta(minutes=self._settings.sync_min_interval_minutes)
        return self._connections.get_due_for_sync(cutoff)

    # --- Read models ---

    def get_connection_status(self, user_id: str) -> list[ConnectionStatus]:
        """Summarize each active connection of a user."""
        statuses = []
        for connection in self._connections.get_active_for_user(user_id):
            statuses.append(
                ConnectionStatus(
                    connection_id=connection.id,
                    provider=connection.provider,
                    email=connection.email,
                    is_active=connection.is_active,
                    last_sync_at=connection.last_sync_at,
                    last_sync_status=connection.last_sync_status,
                    last_sync_error=connection.last_sync_error,
                    banks_configured=len(self._filters.get_for_connection(connection.id)),
                    emails_imported=self._imported.count_for_connection(connection.id),
                    transactions_created=self._imported.count_transactions_created(
                        connection.id
                    ),
                    stats=self._imported.count_by_status(connection.id),
                )
            )
        return statuses

    def get_import_history(
        self,
        connection_id: int,
        user_id: str,
        status: ImportedEmailStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ImportedEmail], int]:
        """Page through a connection's imported emails, newest first."""
        self._get_owned_connection(connection_id, user_id)
        return self._imported.list_for_connection(connection_id, status, page, limit)

    def get_sync_logs(
        self, connection_id: int, user_id: str, limit: int = 10
    ) -> list[EmailSyncLog]:
        """Most recent sync runs of a connection."""
        self._get_owned_connection(connection_id, user_id)
        return self._sync_logs.get_recent(connection_id, limit)

    def get_bank_filters(self, connection_id: int, user_id: str) -> list[BankEmailFilter]:
        """Bank filters of a connection."""
        self._get_owned_connection(connection_id, user_id)
        return self._filters.get_for_connection(connection_id)

    def toggle_bank_filter(
        self, filter_id: int, user_id: str, is_active: bool
    ) -> BankEmailFilter:
        """Enable or disable a bank filter owned by the user.

        Raises:
            BankFilterNotFoundError: If the filter doesn't exist or belongs to
                another user's connection.
        """
        bank_filter = self._filters.get(filter_id)
        if bank_filter.connection.user_id != user_id:
            raise BankFilterNotFoundError(f"Bank filter {filter_id} not found")
        self._filters.set_active(filter_id, is_active)
        self._session.commit()
        return bank_filter


def build_email_sync_service(
    session: Session,
    settings: Settings,
    http_client: httpx.Client,
    notification_sender: NotificationSender | None = None,
) -> EmailSyncService:
    """Wire the pipeline with its default collaborators.

    Every outbound call (provider APIs, rate feed, Anthropic) goes through
    ``http_client``; the caller closes it when the service is done.
    """
    sender = notification_sender or LoggingNotificationSender()
    event_bus = EventBus()
    cascade = BudgetCascadeService(
        BudgetRepository(session),
        TransactionRepository(session),
        sender,
        currency=settings.base_currency,
    )
    event_bus.subscribe(TransactionCreated, cascade.handle)
    return EmailSyncService(
        session=session,
        settings=settings,
        classifier=TransactionClassifier(settings, http_client=http_client),
        exchange_rate_service=ExchangeRateService(settings, client=http_client),
        event_bus=event_bus,
        notification_sender=sender,
        provider_factory=lambda provider: build_provider(provider, settings, client=http_client),
    )
