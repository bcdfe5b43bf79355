"""Business logic services."""

from finance_mailsync.services.budget_cascade_service import (
    BudgetCascadeService,
    BudgetUpdate,
)
from finance_mailsync.services.category_resolver import (
    CategoryProvenance,
    CategoryResolver,
    NoExpenseCategoryError,
    ResolvedCategory,
)
from finance_mailsync.services.email_sync_service import (
    ConnectionStatus,
    EmailSyncService,
    SyncResult,
    build_email_sync_service,
    map_country_to_code,
)
from finance_mailsync.services.events import EventBus, TransactionCreated
from finance_mailsync.services.exchange_rate_service import (
    ConvertedAmount,
    ExchangeRateService,
    ExchangeRateUnavailable,
)
from finance_mailsync.services.merchant_mapping_service import (
    MappingStats,
    MerchantMappingService,
    MerchantMatch,
    normalize_merchant_name,
)
from finance_mailsync.services.notification_service import (
    LoggingNotificationSender,
    NotificationKind,
    NotificationPayload,
    NotificationSender,
)
from finance_mailsync.services.transaction_classifier import (
    ParsedTransaction,
    TransactionClassifier,
    is_payment_email,
    normalize_card_last4,
    normalize_currency,
)

__all__ = [
    "BudgetCascadeService",
    "BudgetUpdate",
    "CategoryProvenance",
    "CategoryResolver",
    "ConnectionStatus",
    "ConvertedAmount",
    "EmailSyncService",
    "EventBus",
    "ExchangeRateService",
    "ExchangeRateUnavailable",
    "LoggingNotificationSender",
    "MappingStats",
    "MerchantMappingService",
    "MerchantMatch",
    "NoExpenseCategoryError",
    "NotificationKind",
    "NotificationPayload",
    "NotificationSender",
    "ParsedTransaction",
    "ResolvedCategory",
    "SyncResult",
    "TransactionClassifier",
    "TransactionCreated",
    "build_email_sync_service",
    "is_payment_email",
    "map_country_to_code",
    "normalize_card_last4",
    "normalize_currency",
    "normalize_merchant_name",
]
