"""Repository layer for data access patterns."""

from finance_mailsync.repositories.bank_filter_repository import (
    BankFilterNotFoundError,
    BankFilterRepository,
)
from finance_mailsync.repositories.budget_repository import BudgetRepository
from finance_mailsync.repositories.category_repository import (
    CategoryNotFoundError,
    CategoryRepository,
)
from finance_mailsync.repositories.connection_repository import (
    ConnectionNotFoundError,
    ConnectionRepository,
)
from finance_mailsync.repositories.imported_email_repository import (
    ImportedEmailAlreadyFinalizedError,
    ImportedEmailRepository,
)
from finance_mailsync.repositories.merchant_mapping_repository import (
    MerchantMappingRepository,
)
from finance_mailsync.repositories.sync_log_repository import SyncLogRepository
from finance_mailsync.repositories.transaction_repository import (
    TransactionRepository,
)

__all__ = [
    "BankFilterNotFoundError",
    "BankFilterRepository",
    "BudgetRepository",
    "CategoryNotFoundError",
    "CategoryRepository",
    "ConnectionNotFoundError",
    "ConnectionRepository",
    "ImportedEmailAlreadyFinalizedError",
    "ImportedEmailRepository",
    "MerchantMappingRepository",
    "SyncLogRepository",
    "TransactionRepository",
]
