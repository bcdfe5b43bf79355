"""Closed status and type enumerations shared by the models."""

import enum


class EmailProvider(str, enum.Enum):
    """Supported mailbox providers."""

    GMAIL = "GMAIL"
    OUTLOOK = "OUTLOOK"


class SyncStatus(str, enum.Enum):
    """Status of a connection's last sync and of a sync log."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ImportedEmailStatus(str, enum.Enum):
    """Processing status of one imported message."""

    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    DUPLICATE = "DUPLICATE"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self) -> bool:
        return self is not ImportedEmailStatus.PROCESSING


class TransactionType(str, enum.Enum):
    """Direction of a transaction."""

    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class MappingSource(str, enum.Enum):
    """Origin of a merchant-category mapping."""

    USER_CORRECTION = "USER_CORRECTION"
    USER_CONFIRMED = "USER_CONFIRMED"
    AI_SUGGESTION = "AI_SUGGESTION"
