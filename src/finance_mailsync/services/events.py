"""In-process domain events raised by the ingestion pipeline."""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from finance_mailsync.exceptions import CascadeEffectError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionCreated:
    """An imported expense was persisted."""

    user_id: str
    transaction_id: int
    category_id: int
    transaction_date: datetime
    amount: Decimal


Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe dispatcher.

    Handlers run in subscription order on the publisher's thread. A failing
    handler does not stop the others; failures are collected and returned
    to the publisher as ``CascadeEffectError``s.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: Any) -> list[CascadeEffectError]:
        """Deliver an event to every handler of its type.

        Returns:
            One error per handler that raised.
        """
        errors: list[CascadeEffectError] = []
        for handler in self._handlers.get(type(event), []):
            try:
                handler(event)
            except Exception as e:
                logger.exception("Handler %r failed for %s", handler, type(event).__name__)
                error = CascadeEffectError(f"{type(event).__name__} handler failed: {e}")
                error.__cause__ = e
                errors.append(error)
        return errors
