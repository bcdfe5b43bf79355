"""Tests for BudgetCascadeService."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from finance_mailsync.exceptions import CascadeEffectError
from finance_mailsync.models.budget import Budget
from finance_mailsync.models.category import Category
from finance_mailsync.repositories.budget_repository import BudgetRepository
from finance_mailsync.repositories.transaction_repository import TransactionRepository
from finance_mailsync.services.budget_cascade_service import (
    BudgetCascadeService,
    crossed,
)
from finance_mailsync.services.events import EventBus, TransactionCreated
from finance_mailsync.services.notification_service import (
    NotificationKind,
    NotificationPayload,
)

MONTH_START = datetime(2026, 3, 1)
MONTH_END = datetime(2026, 3, 31, 23, 59, 59)
SPENT_ON = datetime(2026, 3, 14, 10, 0)


class RecordingSender:
    """Collects notifications instead of delivering them."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, NotificationKind, NotificationPayload]] = []
        self.fail = fail

    def notify(
        self, user_id: str, kind: NotificationKind, payload: NotificationPayload
    ) -> None:
        if self.fail:
            raise RuntimeError("push gateway unavailable")
        self.sent.append((user_id, kind, payload))


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def food_id(expense_categories: dict[str, Category]) -> int:
    return expense_categories["Supermercado"].id


@pytest.fixture
def budget(db_session: Session, food_id: int) -> Budget:
    return BudgetRepository(db_session).create(
        "user-1", food_id, "Comida marzo", Decimal("1000"), MONTH_START, MONTH_END
    )


def make_service(db_session: Session, sender: RecordingSender) -> BudgetCascadeService:
    return BudgetCascadeService(
        BudgetRepository(db_session), TransactionRepository(db_session), sender
    )


def spend(db_session: Session, category_id: int, amount: str, on: datetime = SPENT_ON) -> None:
    TransactionRepository(db_session).create_expense(
        "user-1", Decimal(amount), on, category_id, "Compra [Auto-importado]"
    )


def test_crossed() -> None:
    """Test a crossing needs the previous value below the threshold."""
    assert crossed(Decimal("79"), Decimal("80"), Decimal("80"))
    assert not crossed(Decimal("80"), Decimal("95"), Decimal("80"))
    assert not crossed(Decimal("50"), Decimal("79.9"), Decimal("80"))


class TestRecalculate:
    """Tests for BudgetCascadeService.recalculate()."""

    def test_spent_is_resummed(
        self, db_session: Session, sender: RecordingSender, budget: Budget, food_id: int
    ) -> None:
        """Test spent is the full window sum, not an increment."""
        spend(db_session, food_id, "300")
        spend(db_session, food_id, "200")
        spend(db_session, food_id, "999", on=datetime(2026, 4, 1))
        service = make_service(db_session, sender)

        updates = service.recalculate("user-1", food_id, SPENT_ON)

        assert len(updates) == 1
        assert updates[0].previous_spent == Decimal("0")
        assert updates[0].new_spent == Decimal("500")
        assert budget.spent == Decimal("500")
        assert sender.sent == []

    def test_alert_fires_once(
        self, db_session: Session, sender: RecordingSender, budget: Budget, food_id: int
    ) -> None:
        """Test the alert fires on the crossing and not on a repeat run."""
        service = make_service(db_session, sender)
        spend(db_session, food_id, "500")
        service.recalculate("user-1", food_id, SPENT_ON)
        spend(db_session, food_id, "350")

        first = service.recalculate("user-1", food_id, SPENT_ON)
        second = service.recalculate("user-1", food_id, SPENT_ON)

        assert first[0].alert_sent is True
        assert second[0].alert_sent is False
        assert budget.spent == Decimal("850")
        assert len(sender.sent) == 1
        user_id, kind, payload = sender.sent[0]
        assert user_id == "user-1"
        assert kind == NotificationKind.BUDGET_ALERT
        assert payload.data["percentageUsed"] == "85"
        assert "RD$150.00" in payload.body

    def test_exceeded_after_alert(
        self, db_session: Session, sender: RecordingSender, budget: Budget, food_id: int
    ) -> None:
        """Test exceeding 100% sends only the exceeded notification."""
        service = make_service(db_session, sender)
        spend(db_session, food_id, "850")
        service.recalculate("user-1", food_id, SPENT_ON)
        spend(db_session, food_id, "300")

        updates = service.recalculate("user-1", food_id, SPENT_ON)

        assert updates[0].alert_sent is False
        assert updates[0].exceeded_sent is True
        assert [kind for _, kind, _ in sender.sent] == [
            NotificationKind.BUDGET_ALERT,
            NotificationKind.BUDGET_EXCEEDED,
        ]
        assert sender.sent[-1][2].data["amountExceeded"] == "150.00"

    def test_jump_past_limit_skips_alert(
        self, db_session: Session, sender: RecordingSender, budget: Budget, food_id: int
    ) -> None:
        """Test going from under the alert straight past 100% sends only exceeded."""
        spend(db_session, food_id, "1200")

        make_service(db_session, sender).recalculate("user-1", food_id, SPENT_ON)

        assert [kind for _, kind, _ in sender.sent] == [NotificationKind.BUDGET_EXCEEDED]

    def test_untouched_budgets(
        self,
        db_session: Session,
        sender: RecordingSender,
        budget: Budget,
        expense_categories: dict[str, Category],
    ) -> None:
        """Test budgets of other categories or users are ignored."""
        other = expense_categories["Transporte"].id
        spend(db_session, other, "100")

        updates = make_service(db_session, sender).recalculate("user-1", other, SPENT_ON)
        assert updates == []
        updates = make_service(db_session, sender).recalculate(
            "user-2", budget.category_id, SPENT_ON
        )
        assert updates == []
        assert budget.spent == Decimal("0")

    def test_inactive_budget_skipped(
        self, db_session: Session, sender: RecordingSender, budget: Budget, food_id: int
    ) -> None:
        """Test deactivated budgets are not recomputed."""
        budget.is_active = False
        spend(db_session, food_id, "900")

        assert make_service(db_session, sender).recalculate("user-1", food_id, SPENT_ON) == []

    def test_notification_failure_after_all_budgets(
        self, db_session: Session, budget: Budget, food_id: int
    ) -> None:
        """Test a failing sender still lets every budget be recomputed."""
        second = BudgetRepository(db_session).create(
            "user-1", food_id, "Supermercado Q1", Decimal("900"), MONTH_START, MONTH_END
        )
        spend(db_session, food_id, "850")
        service = make_service(db_session, RecordingSender(fail=True))

        with pytest.raises(CascadeEffectError, match="push gateway unavailable"):
            service.recalculate("user-1", food_id, SPENT_ON)

        assert budget.spent == Decimal("850")
        assert second.spent == Decimal("850")


class TestEventWiring:
    """Tests for the cascade subscribed to the event bus."""

    def test_transaction_created_triggers_recalculate(
        self, db_session: Session, sender: RecordingSender, budget: Budget, food_id: int
    ) -> None:
        """Test publishing TransactionCreated recomputes the budget."""
        bus = EventBus()
        bus.subscribe(TransactionCreated, make_service(db_session, sender).handle)
        spend(db_session, food_id, "820")

        errors = bus.publish(
            TransactionCreated(
                user_id="user-1",
                transaction_id=1,
                category_id=food_id,
                transaction_date=SPENT_ON,
                amount=Decimal("820"),
            )
        )

        assert errors == []
        assert budget.spent == Decimal("820")
        assert sender.sent[0][1] == NotificationKind.BUDGET_ALERT

    def test_failure_returned_to_publisher(
        self, db_session: Session, budget: Budget, food_id: int
    ) -> None:
        """Test a notification failure comes back as a CascadeEffectError."""
        bus = EventBus()
        bus.subscribe(
            TransactionCreated, make_service(db_session, RecordingSender(fail=True)).handle
        )
        spend(db_session, food_id, "1500")

        errors = bus.publish(
            TransactionCreated("user-1", 1, food_id, SPENT_ON, Decimal("1500"))
        )

        assert len(errors) == 1
        assert isinstance(errors[0], CascadeEffectError)
        assert budget.spent == Decimal("1500")
