"""Tests for MerchantMappingRepository."""

from sqlalchemy.orm import Session

from finance_mailsync.models.category import Category
from finance_mailsync.models.enums import MappingSource
from finance_mailsync.repositories.merchant_mapping_repository import (
    MerchantMappingRepository,
)


def test_user_mapping_prefers_exact_name(
    db_session: Session, expense_categories: dict[str, Category]
) -> None:
    """Test an exact name beats a first-word match."""
    repo = MerchantMappingRepository(db_session)
    partial = repo.create(
        "user-1",
        "SUPERMERCADO BRAVO",
        "SUPERMERCADO BRAVO*",
        expense_categories["Supermercado"].id,
        MappingSource.USER_CORRECTION,
        100,
    )
    partial.times_used = 10
    exact = repo.create(
        "user-1",
        "SUPERMERCADO NACIONAL",
        "SUPERMERCADO NACIONAL*",
        expense_categories["Otros"].id,
        MappingSource.USER_CORRECTION,
        100,
    )
    db_session.flush()

    assert repo.find_user_mapping("user-1", "SUPERMERCADO NACIONAL") is exact
    assert repo.find_user_mapping("user-1", "SUPERMERCADO JUMBO") is partial
    assert repo.find_user_mapping("user-2", "SUPERMERCADO NACIONAL") is None


def test_trusted_global_requires_users_and_confidence(
    db_session: Session, expense_categories: dict[str, Category]
) -> None:
    """Test global mappings need enough confirmations and confidence."""
    repo = MerchantMappingRepository(db_session)
    mapping = repo.create(
        None,
        "UBER",
        "UBER*",
        expense_categories["Transporte"].id,
        MappingSource.USER_CORRECTION,
        75,
    )
    db_session.flush()
    assert repo.find_trusted_global("UBER", min_users=3, min_confidence=70) is None

    mapping.confirmed_by_users = 3
    db_session.flush()
    assert repo.find_trusted_global("UBER", min_users=3, min_confidence=70) is mapping
    assert repo.find_trusted_global("UBER", min_users=3, min_confidence=80) is None


def test_get_exact_separates_user_and_global(
    db_session: Session, expense_categories: dict[str, Category]
) -> None:
    """Test the None owner selects the global row."""
    repo = MerchantMappingRepository(db_session)
    category_id = expense_categories["Restaurantes"].id
    user_row = repo.create(
        "user-1", "PAPA JOHNS", "PAPA JOHNS*", category_id, MappingSource.USER_CORRECTION, 100
    )
    global_row = repo.create(
        None, "PAPA JOHNS", "PAPA JOHNS*", category_id, MappingSource.USER_CORRECTION, 50
    )

    assert repo.get_exact("user-1", "PAPA JOHNS") is user_row
    assert repo.get_exact(None, "PAPA JOHNS") is global_row
    assert repo.count_for_user("user-1") == 1
