"""SQLAlchemy models for the Finance Mail Sync application."""

from finance_mailsync.models.bank_email_filter import BankEmailFilter
from finance_mailsync.models.budget import Budget
from finance_mailsync.models.category import Category
from finance_mailsync.models.email_connection import EmailConnection
from finance_mailsync.models.email_sync_log import EmailSyncLog
from finance_mailsync.models.enums import (
    EmailProvider,
    ImportedEmailStatus,
    MappingSource,
    SyncStatus,
    TransactionType,
)
from finance_mailsync.models.imported_email import ImportedEmail
from finance_mailsync.models.merchant_category_mapping import MerchantCategoryMapping
from finance_mailsync.models.supported_bank import SupportedBank
from finance_mailsync.models.transaction import Transaction

__all__ = [
    "BankEmailFilter",
    "Budget",
    "Category",
    "EmailConnection",
    "EmailProvider",
    "EmailSyncLog",
    "ImportedEmail",
    "ImportedEmailStatus",
    "MappingSource",
    "MerchantCategoryMapping",
    "SupportedBank",
    "SyncStatus",
    "Transaction",
    "TransactionType",
]
