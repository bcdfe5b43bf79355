"""MerchantMappingService for learning merchant-to-category assignments.

Lookups go user mapping first, then a global mapping trusted by enough
users. Global mappings are reinforced when users agree and weakened when
they disagree, and switch category once confidence drops low enough.
"""

import logging
import re
from dataclasses import dataclass, field

from finance_mailsync.models.enums import MappingSource
from finance_mailsync.models.merchant_category_mapping import MerchantCategoryMapping
from finance_mailsync.repositories.category_repository import (
    CategoryNotFoundError,
    CategoryRepository,
)
from finance_mailsync.repositories.merchant_mapping_repository import (
    MerchantMappingRepository,
)

logger = logging.getLogger(__name__)

MIN_USERS_FOR_GLOBAL_TRUST = 3
MIN_CONFIDENCE_FOR_GLOBAL = 70

GLOBAL_INITIAL_CONFIDENCE = 50
GLOBAL_AGREE_BONUS = 5
GLOBAL_DISAGREE_PENALTY = 10
GLOBAL_SWITCH_THRESHOLD = 30

_SPECIAL_CHARS_RE = re.compile(r"[*#@!$%^&()_+=\[\]{}|\\:\";'<>,.?/~`]")
_TRAILING_CODE_RE = re.compile(r"\s+\d{4,}$")
_CARD_PREFIX_RE = re.compile(r"^(COMPRA|PAGO|CONSUMO|CARGO)\s+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class MerchantMatch:
    """A learned category for a merchant."""

    category_id: int
    category_name: str
    source: str  # "user" or "global"
    confidence: int


@dataclass
class CategoryCount:
    """Number of mappings pointing at one category."""

    category_name: str
    count: int


@dataclass
class MappingStats:
    """Mapping counts for one user."""

    user_mappings: int
    global_mappings: int
    top_categories: list[CategoryCount] = field(default_factory=list)


def normalize_merchant_name(merchant_name: str | None) -> str:
    """Normalize a merchant name for consistent lookups.

    Upper-cases, collapses whitespace, strips punctuation, drops trailing
    numeric store codes and card prefixes such as ``COMPRA``.

    Example: ``"Compra  Farmacia Carol, 12345"`` -> ``"FARMACIA CAROL"``
    """
    if not merchant_name:
        return ""
    name = _WHITESPACE_RE.sub(" ", merchant_name.upper().strip())
    name = _SPECIAL_CHARS_RE.sub("", name)
    name = _TRAILING_CODE_RE.sub("", name)
    name = _CARD_PREFIX_RE.sub("", name)
    return name.strip()


def generate_pattern(merchant_name: str) -> str:
    """Build a prefix pattern from the first two significant words."""
    normalized = normalize_merchant_name(merchant_name)
    words = [w for w in normalized.split(" ") if len(w) > 2]
    if len(words) >= 2:
        return " ".join(words[:2]) + "*"
    return normalized + "*"


class MerchantMappingService:
    """Service for the merchant-category learning store."""

    def __init__(
        self,
        mapping_repository: MerchantMappingRepository,
        category_repository: CategoryRepository,
    ) -> None:
        """Initialize the service.

        Args:
            mapping_repository: Repository for mapping rows.
            category_repository: Repository for resolving category names.
        """
        self._mapping_repo = mapping_repository
        self._category_repo = category_repository

    def find_mapping(self, user_id: str, merchant_name: str) -> MerchantMatch | None:
        """Find the learned category for a merchant.

        Args:
            user_id: Owner of the transaction.
            merchant_name: Raw merchant name from the email.

        Returns:
            The user's own mapping if present, else a trusted global
            mapping, else None.
        """
        normalized = normalize_merchant_name(merchant_name)
        if not normalized:
            return None

        mapping = self._mapping_repo.find_user_mapping(user_id, normalized)
        if mapping is not None:
            self._mapping_repo.update(mapping, times_used=mapping.times_used + 1)
            return MerchantMatch(
                category_id=mapping.category_id,
                category_name=mapping.category.name,
                source="user",
                confidence=100,
            )

        mapping = self._mapping_repo.find_trusted_global(
            normalized, MIN_USERS_FOR_GLOBAL_TRUST, MIN_CONFIDENCE_FOR_GLOBAL
        )
        if mapping is not None:
            self._mapping_repo.update(mapping, times_used=mapping.times_used + 1)
            return MerchantMatch(
                category_id=mapping.category_id,
                category_name=mapping.category.name,
                source="global",
                confidence=mapping.confidence,
            )

        return None

    def save_mapping(
        self,
        user_id: str,
        merchant_name: str,
        category_id: int,
        source: MappingSource = MappingSource.USER_CORRECTION,
    ) -> MerchantCategoryMapping | None:
        """Record that a user assigns a merchant to a category.

        Call when the user corrects or confirms a transaction's category.
        The global mapping for the merchant is updated as well.

        Returns:
            The user's mapping, or None if the merchant name normalizes to
            nothing.

        Raises:
            CategoryNotFoundError: If the category does not exist.
        """
        normalized = normalize_merchant_name(merchant_name)
        if not normalized:
            return None
        self._category_repo.get(category_id)

        mapping = self._mapping_repo.get_exact(user_id, normalized)
        if mapping is None:
            mapping = self._mapping_repo.create(
                user_id=user_id,
                merchant_name=normalized,
                merchant_pattern=generate_pattern(merchant_name),
                category_id=category_id,
                source=source,
                confidence=100,
            )
        else:
            self._mapping_repo.update(
                mapping,
                category_id=category_id,
                source=source,
                times_used=mapping.times_used + 1,
            )

        self._update_global_mapping(normalized, category_id, source)
        logger.info("Saved merchant mapping %r -> category %s", normalized, category_id)
        return mapping

    def _update_global_mapping(
        self, normalized: str, category_id: int, source: MappingSource
    ) -> None:
        existing = self._mapping_repo.get_exact(None, normalized)
        if existing is None:
            self._mapping_repo.create(
                user_id=None,
                merchant_name=normalized,
                merchant_pattern=generate_pattern(normalized),
                category_id=category_id,
                source=source,
                confidence=GLOBAL_INITIAL_CONFIDENCE,
            )
            return

        if existing.category_id == category_id:
            self._mapping_repo.update(
                existing,
                times_used=existing.times_used + 1,
                confirmed_by_users=existing.confirmed_by_users + 1,
                confidence=min(100, existing.confidence + GLOBAL_AGREE_BONUS),
            )
            return

        confidence = existing.confidence - GLOBAL_DISAGREE_PENALTY
        if confidence <= GLOBAL_SWITCH_THRESHOLD:
            logger.info(
                "Global mapping %r switched from category %s to %s",
                normalized,
                existing.category_id,
                category_id,
            )
            self._mapping_repo.update(
                existing, category_id=category_id, confidence=GLOBAL_INITIAL_CONFIDENCE
            )
        else:
            self._mapping_repo.update(existing, confidence=confidence)

    def delete_user_mapping(self, user_id: str, merchant_name: str) -> bool:
        """Delete a user's mapping for a merchant.

        Returns:
            True if a mapping was deleted.
        """
        mapping = self._mapping_repo.get_exact(user_id, normalize_merchant_name(merchant_name))
        if mapping is None:
            return False
        self._mapping_repo.delete(mapping)
        return True

    def get_user_mapping_stats(self, user_id: str) -> MappingStats:
        """Summarize a user's mappings and the trusted global catalog."""
        top: list[CategoryCount] = []
        for category_id, count in self._mapping_repo.top_categories_for_user(user_id):
            try:
                name = self._category_repo.get(category_id).name
            except CategoryNotFoundError:
                name = "Desconocida"
            top.append(CategoryCount(category_name=name, count=count))

        return MappingStats(
            user_mappings=self._mapping_repo.count_for_user(user_id),
            global_mappings=self._mapping_repo.count_trusted_global(
                MIN_USERS_FOR_GLOBAL_TRUST
            ),
            top_categories=top,
        )
