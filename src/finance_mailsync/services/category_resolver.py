"""CategoryResolver for final category choice and duplicate detection."""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from finance_mailsync.exceptions import DuplicateTransaction
from finance_mailsync.repositories.category_repository import CategoryRepository
from finance_mailsync.repositories.transaction_repository import TransactionRepository
from finance_mailsync.services.merchant_mapping_service import MerchantMappingService
from finance_mailsync.services.transaction_classifier import UNKNOWN_MERCHANT, ParsedTransaction

logger = logging.getLogger(__name__)


class CategoryProvenance(str, enum.Enum):
    """Where a resolved category came from."""

    LEARNED = "learned"
    INFERRED = "inferred"
    FALLBACK = "fallback"


@dataclass
class ResolvedCategory:
    """Final category for a parsed transaction."""

    category_id: int
    category_name: str
    provenance: CategoryProvenance


class NoExpenseCategoryError(Exception):
    """Raised when no EXPENSE category exists to assign."""

    pass


class CategoryResolver:
    """Resolves categories and detects duplicates for parsed candidates.

    A learned merchant mapping always wins over the classifier's category,
    since it reflects the user's own corrections.
    """

    def __init__(
        self,
        merchant_mapping_service: MerchantMappingService,
        category_repository: CategoryRepository,
        transaction_repository: TransactionRepository,
    ) -> None:
        """Initialize the resolver.

        Args:
            merchant_mapping_service: Learned merchant-category store.
            category_repository: Repository for category lookups.
            transaction_repository: Repository used for the duplicate check.
        """
        self._mappings = merchant_mapping_service
        self._category_repo = category_repository
        self._transaction_repo = transaction_repository

    def resolve_category(self, user_id: str, parsed: ParsedTransaction) -> ResolvedCategory:
        """Pick the category for a parsed candidate.

        Order: learned mapping, then the classifier's category, then the
        miscellaneous fallback category.

        Raises:
            NoExpenseCategoryError: If there is no EXPENSE category at all.
        """
        if parsed.merchant and parsed.merchant != UNKNOWN_MERCHANT:
            match = self._mappings.find_mapping(user_id, parsed.merchant)
            if match is not None:
                logger.info(
                    "Merchant %r resolved from %s mapping to %s",
                    parsed.merchant,
                    match.source,
                    match.category_name,
                )
                return ResolvedCategory(
                    category_id=match.category_id,
                    category_name=match.category_name,
                    provenance=CategoryProvenance.LEARNED,
                )

        category = self._category_repo.find_expense_by_name(parsed.category)
        if category is not None:
            return ResolvedCategory(
                category_id=category.id,
                category_name=category.name,
                provenance=CategoryProvenance.INFERRED,
            )

        category = self._category_repo.get_fallback_expense_category()
        if category is None:
            raise NoExpenseCategoryError("No EXPENSE category available")
        logger.debug("Category %r not found, using %s", parsed.category, category.name)
        return ResolvedCategory(
            category_id=category.id,
            category_name=category.name,
            provenance=CategoryProvenance.FALLBACK,
        )

    def is_duplicate(
        self,
        user_id: str,
        amount: Decimal,
        date: datetime,
        merchant: str | None = None,
    ) -> bool:
        """Check for an expense of equal amount on the same day.

        When a merchant is known, the existing description must contain it.
        """
        if merchant == UNKNOWN_MERCHANT:
            merchant = None
        existing = self._transaction_repo.find_same_day_expense(
            user_id, amount, date, merchant
        )
        return existing is not None

    def ensure_not_duplicate(
        self,
        user_id: str,
        amount: Decimal,
        date: datetime,
        merchant: str | None = None,
    ) -> None:
        """Raise DuplicateTransaction if the candidate already exists."""
        if self.is_duplicate(user_id, amount, date, merchant):
            raise DuplicateTransaction(
                f"Transaction of {amount} on {date.date().isoformat()} already exists"
            )
