"""Tests for MerchantMappingService."""

import pytest
from sqlalchemy.orm import Session

from finance_mailsync.models.category import Category
from finance_mailsync.repositories.category_repository import (
    CategoryNotFoundError,
    CategoryRepository,
)
from finance_mailsync.repositories.merchant_mapping_repository import (
    MerchantMappingRepository,
)
from finance_mailsync.services.merchant_mapping_service import (
    MerchantMappingService,
    generate_pattern,
    normalize_merchant_name,
)


@pytest.fixture
def service(db_session: Session) -> MerchantMappingService:
    return MerchantMappingService(
        MerchantMappingRepository(db_session), CategoryRepository(db_session)
    )


class TestNormalization:
    """Tests for merchant name normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Compra  Farmacia Carol, 12345", "FARMACIA CAROL"),
            ("supermercado nacional", "SUPERMERCADO NACIONAL"),
            ("UBER *TRIP", "UBER TRIP"),
            ("CONSUMO SHELL LOS PRADOS", "SHELL LOS PRADOS"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize_merchant_name(self, raw: str | None, expected: str) -> None:
        """Test case, punctuation, store codes and card prefixes are normalized."""
        assert normalize_merchant_name(raw) == expected

    def test_generate_pattern(self) -> None:
        """Test the pattern keeps the first two significant words."""
        assert generate_pattern("Supermercado Nacional Naco") == "SUPERMERCADO NACIONAL*"
        assert generate_pattern("KFC") == "KFC*"


class TestUserMappings:
    """Tests for a user's own mappings."""

    def test_no_mapping(self, service: MerchantMappingService) -> None:
        """Test unknown merchants have no mapping."""
        assert service.find_mapping("user-1", "JUMBO") is None
        assert service.find_mapping("user-1", "") is None

    def test_saved_mapping_is_found(
        self, service: MerchantMappingService, expense_categories: dict[str, Category]
    ) -> None:
        """Test a correction is returned on the next lookup with full confidence."""
        category = expense_categories["Supermercado"]
        service.save_mapping("user-1", "Supermercado Nacional", category.id)

        match = service.find_mapping("user-1", "SUPERMERCADO NACIONAL, 0042")

        assert match is not None
        assert match.category_id == category.id
        assert match.category_name == "Supermercado"
        assert match.source == "user"
        assert match.confidence == 100

    def test_correction_overwrites_previous(
        self, service: MerchantMappingService, expense_categories: dict[str, Category]
    ) -> None:
        """Test a second correction replaces the user's category."""
        service.save_mapping("user-1", "PriceSmart", expense_categories["Otros"].id)
        mapping = service.save_mapping(
            "user-1", "PriceSmart", expense_categories["Supermercado"].id
        )

        assert mapping is not None
        assert mapping.category_id == expense_categories["Supermercado"].id
        assert mapping.times_used == 2

    def test_unknown_category_raises(self, service: MerchantMappingService) -> None:
        """Test mapping to a missing category raises."""
        with pytest.raises(CategoryNotFoundError):
            service.save_mapping("user-1", "JUMBO", 999)

    def test_delete_user_mapping(
        self, service: MerchantMappingService, expense_categories: dict[str, Category]
    ) -> None:
        """Test deleting a mapping removes only the user's row."""
        service.save_mapping("user-1", "JUMBO", expense_categories["Supermercado"].id)

        assert service.delete_user_mapping("user-1", "jumbo") is True
        assert service.delete_user_mapping("user-1", "jumbo") is False
        assert service.find_mapping("user-1", "JUMBO") is None


class TestGlobalMappings:
    """Tests for mappings aggregated across users."""

    def test_global_trusted_after_three_users(
        self, service: MerchantMappingService, expense_categories: dict[str, Category]
    ) -> None:
        """Test a global mapping is used once enough users agree."""
        transport = expense_categories["Transporte"].id
        for user in ("u1", "u2"):
            service.save_mapping(user, "Uber", transport)
        assert service.find_mapping("new-user", "UBER") is None

        # 50 -> 55 -> 60 -> 65 -> 70 over five confirmations
        for user in ("u3", "u4", "u5"):
            service.save_mapping(user, "Uber", transport)
        match = service.find_mapping("new-user", "UBER")

        assert match is not None
        assert match.source == "global"
        assert match.category_id == transport
        assert match.confidence == 70

    def test_disagreement_switches_category(
        self,
        db_session: Session,
        service: MerchantMappingService,
        expense_categories: dict[str, Category],
    ) -> None:
        """Test repeated disagreement moves the global mapping."""
        otros = expense_categories["Otros"].id
        food = expense_categories["Restaurantes"].id
        service.save_mapping("u1", "Carnes Don Pepe", otros)
        repo = MerchantMappingRepository(db_session)

        service.save_mapping("u2", "Carnes Don Pepe", food)
        assert repo.get_exact(None, "CARNES DON PEPE").confidence == 40  # type: ignore[union-attr]

        service.save_mapping("u3", "Carnes Don Pepe", food)
        global_row = repo.get_exact(None, "CARNES DON PEPE")

        assert global_row is not None
        assert global_row.category_id == food
        assert global_row.confidence == 50

    def test_stats(
        self, service: MerchantMappingService, expense_categories: dict[str, Category]
    ) -> None:
        """Test the user's mapping counts and top categories."""
        food = expense_categories["Restaurantes"].id
        service.save_mapping("user-1", "KFC", food)
        service.save_mapping("user-1", "Pizza Hut", food)
        service.save_mapping("user-1", "Shell", expense_categories["Transporte"].id)

        stats = service.get_user_mapping_stats("user-1")

        assert stats.user_mappings == 3
        assert stats.global_mappings == 0
        assert stats.top_categories[0].category_name == "Restaurantes"
        assert stats.top_categories[0].count == 2
