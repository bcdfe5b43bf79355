"""Error taxonomy for the email ingestion pipeline.

Connection-level errors (``AuthExchangeError``, ``AuthRefreshError``,
persistent ``ProviderQueryError``) abort the remaining messages of one
connection. Message-level errors (``ClassificationFailed``, ``InvalidAmount``)
mark a single ImportedEmail as FAILED and the run continues.
``PaymentEmailSkipped`` and ``DuplicateTransaction`` are expected filtering
outcomes, not failures.
"""


class MailSyncError(Exception):
    """Base class for all email sync errors."""

    pass


class AuthExchangeError(MailSyncError):
    """Raised when an OAuth authorization code cannot be exchanged."""

    pass


class AuthRefreshError(MailSyncError):
    """Raised when a refresh token is revoked or missing.

    The connection is broken and the user must re-authorize.
    """

    pass


class ProviderQueryError(MailSyncError):
    """Raised when the mail provider rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        """True for 4xx responses (query rejected by the provider)."""
        return self.status_code is not None and 400 <= self.status_code < 500


class ClassificationFailed(MailSyncError):
    """Raised when the classifier returns an empty or unparseable response."""

    pass


class InvalidAmount(ClassificationFailed):
    """Raised when the classified amount is missing or not positive."""

    pass


class PaymentEmailSkipped(MailSyncError):
    """Signals that an email is a card-payment confirmation, not a purchase."""

    pass


class DuplicateTransaction(MailSyncError):
    """Signals that a parsed candidate matches an existing transaction."""

    pass


class CascadeEffectError(MailSyncError):
    """Raised when budget recomputation or alerting fails after a transaction."""

    pass


class ConnectionInactiveError(MailSyncError):
    """Raised when a sync is requested for a deactivated connection."""

    pass


class SyncInProgressError(MailSyncError):
    """Raised when a sync run is requested while another one holds the lease."""

    def __init__(self, connection_id: int) -> None:
        super().__init__(f"Sync already in progress for connection {connection_id}")
        self.connection_id = connection_id
