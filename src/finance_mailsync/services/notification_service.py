"""Notification payloads and the delivery contract.

Delivery (push, email) is external. The pipeline only builds payloads and
hands them to a ``NotificationSender``.
"""

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    """Notification categories emitted by the sync pipeline."""

    BUDGET_ALERT = "BUDGET_ALERT"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    EMAIL_SYNC_COMPLETE = "EMAIL_SYNC_COMPLETE"


@dataclass
class NotificationPayload:
    """User-facing message plus string data for the client app."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


class NotificationSender(Protocol):
    """Delivers notifications to a user's devices."""

    def notify(
        self, user_id: str, kind: NotificationKind, payload: NotificationPayload
    ) -> None: ...


class LoggingNotificationSender:
    """Sender that only records notifications in the log."""

    def notify(
        self, user_id: str, kind: NotificationKind, payload: NotificationPayload
    ) -> None:
        logger.info("Notification %s for user %s: %s", kind.value, user_id, payload.title)


def budget_alert_payload(
    budget_name: str,
    percentage_used: int,
    amount_remaining: Decimal,
    currency: str,
) -> NotificationPayload:
    return NotificationPayload(
        title="⚠️ Alerta de presupuesto",
        body=(
            f'Has usado el {percentage_used}% de tu presupuesto "{budget_name}". '
            f"Te quedan {currency}{amount_remaining:.2f}"
        ),
        data={
            "type": NotificationKind.BUDGET_ALERT.value,
            "budgetName": budget_name,
            "percentageUsed": str(percentage_used),
            "screen": "Budgets",
        },
    )


def budget_exceeded_payload(
    budget_name: str, amount_exceeded: Decimal, currency: str
) -> NotificationPayload:
    return NotificationPayload(
        title="🚨 Presupuesto excedido",
        body=f'Has excedido tu presupuesto "{budget_name}" por {currency}{amount_exceeded:.2f}',
        data={
            "type": NotificationKind.BUDGET_EXCEEDED.value,
            "budgetName": budget_name,
            "amountExceeded": f"{amount_exceeded:.2f}",
            "screen": "Budgets",
        },
    )


def sync_complete_payload(transactions_imported: int) -> NotificationPayload:
    if transactions_imported > 0:
        body = f"Se importaron {transactions_imported} transacciones de tus emails bancarios"
    else:
        body = "No se encontraron nuevas transacciones en tus emails"
    return NotificationPayload(
        title="Sincronización completada",
        body=body,
        data={
            "type": NotificationKind.EMAIL_SYNC_COMPLETE.value,
            "transactionsImported": str(transactions_imported),
            "screen": "Dashboard",
        },
    )
