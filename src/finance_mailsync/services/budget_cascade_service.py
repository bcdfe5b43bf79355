"""BudgetCascadeService for budget recomputation after imported expenses."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from finance_mailsync.exceptions import CascadeEffectError
from finance_mailsync.models.budget import Budget
from finance_mailsync.repositories.budget_repository import BudgetRepository
from finance_mailsync.repositories.transaction_repository import TransactionRepository
from finance_mailsync.services.events import TransactionCreated
from finance_mailsync.services.notification_service import (
    NotificationKind,
    NotificationSender,
    budget_alert_payload,
    budget_exceeded_payload,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass
class BudgetUpdate:
    """Outcome of recomputing one budget."""

    budget_id: int
    previous_spent: Decimal
    new_spent: Decimal
    alert_sent: bool = False
    exceeded_sent: bool = False


def crossed(previous: Decimal, new: Decimal, threshold: Decimal) -> bool:
    """True when a percentage moves from below a threshold to at/above it."""
    return previous < threshold <= new


class BudgetCascadeService:
    """Recomputes ``spent`` for budgets touched by a new expense.

    ``spent`` is a full resum of the window's EXPENSE transactions, so
    running it twice with no new transactions is a no-op and fires no
    notification.
    """

    def __init__(
        self,
        budget_repository: BudgetRepository,
        transaction_repository: TransactionRepository,
        notification_sender: NotificationSender,
        currency: str = "RD$",
    ) -> None:
        """Initialize the service.

        Args:
            budget_repository: Repository for budget reads and writes.
            transaction_repository: Repository for the expense sum.
            notification_sender: Receiver of threshold notifications.
            currency: Currency symbol used in notification text.
        """
        self._budget_repo = budget_repository
        self._transaction_repo = transaction_repository
        self._sender = notification_sender
        self._currency = currency

    def handle(self, event: TransactionCreated) -> list[BudgetUpdate]:
        """Event handler for TransactionCreated."""
        return self.recalculate(event.user_id, event.category_id, event.transaction_date)

    def recalculate(
        self, user_id: str, category_id: int, on: datetime
    ) -> list[BudgetUpdate]:
        """Recompute every active budget of a category covering a date.

        Raises:
            CascadeEffectError: If any notification failed; all budgets are
                still recomputed first.
        """
        updates: list[BudgetUpdate] = []
        failures: list[str] = []
        for budget in self._budget_repo.get_active_covering(user_id, category_id, on):
            previous = Decimal(budget.spent or 0)
            new = self._transaction_repo.sum_expenses(
                user_id, category_id, budget.start_date, budget.end_date
            )
            self._budget_repo.set_spent(budget, new)
            logger.info("Updated budget %s spent: %s -> %s", budget.id, previous, new)

            update = BudgetUpdate(budget_id=budget.id, previous_spent=previous, new_spent=new)
            try:
                self._notify_crossings(budget, update)
            except Exception as e:
                logger.exception("Budget notification failed for budget %s", budget.id)
                failures.append(f"budget {budget.id}: {e}")
            updates.append(update)

        if failures:
            raise CascadeEffectError("; ".join(failures))
        return updates

    def _notify_crossings(self, budget: Budget, update: BudgetUpdate) -> None:
        amount = Decimal(budget.amount)
        if amount <= 0:
            return
        previous_pct = update.previous_spent / amount * HUNDRED
        new_pct = update.new_spent / amount * HUNDRED
        threshold = Decimal(budget.alert_percentage or 80)

        if crossed(previous_pct, new_pct, threshold) and new_pct < HUNDRED:
            self._sender.notify(
                budget.user_id,
                NotificationKind.BUDGET_ALERT,
                budget_alert_payload(
                    budget.name,
                    int(new_pct),
                    amount - update.new_spent,
                    self._currency,
                ),
            )
            update.alert_sent = True
            logger.info("Sent budget alert for %s", budget.name)

        if crossed(previous_pct, new_pct, HUNDRED):
            self._sender.notify(
                budget.user_id,
                NotificationKind.BUDGET_EXCEEDED,
                budget_exceeded_payload(
                    budget.name, update.new_spent - amount, self._currency
                ),
            )
            update.exceeded_sent = True
            logger.info("Sent budget exceeded for %s", budget.name)
