"""Mail provider adapter interface shared by Gmail and Outlook."""

import html
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.utils import parseaddr
from typing import Any

import httpx

from finance_mailsync.core.config import Settings
from finance_mailsync.exceptions import (
    AuthExchangeError,
    AuthRefreshError,
    ProviderQueryError,
)
from finance_mailsync.models.email_connection import EmailConnection
from finance_mailsync.models.enums import EmailProvider
from finance_mailsync.repositories.connection_repository import ConnectionRepository
from finance_mailsync.schemas.oauth import OAuthState, TokenSet

logger = logging.getLogger(__name__)

_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.DOTALL | re.IGNORECASE)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace to single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def html_to_text(body: str) -> str:
    """Convert an HTML email body to a single line of plain text.

    ``<style>`` and ``<script>`` blocks are dropped with their content, the
    remaining tags become spaces, entities are decoded and whitespace is
    collapsed.
    """
    text = _STYLE_RE.sub(" ", body)
    text = _SCRIPT_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text).replace("\xa0", " ")
    return collapse_whitespace(text)


def sender_address(sender: str) -> str:
    """Extract the bare, lower-cased address from a From header."""
    _, address = parseaddr(sender)
    return (address or sender).strip().lower()


@dataclass
class MessageRef:
    """A search hit: provider-native message id plus the sender when known."""

    id: str
    sender: str | None = None


@dataclass
class MailMessage:
    """A fetched message with its headers normalized and the raw payload kept."""

    id: str
    subject: str
    sender: str
    received_at: datetime | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


class MailProvider(ABC):
    """OAuth2 mailbox adapter.

    Subclasses implement the wire protocol for one provider. Token refresh
    policy and the complex-query fallback live here so both providers share
    them.
    """

    provider: EmailProvider

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        """Initialize the adapter.

        Args:
            settings: Application settings (OAuth credentials, timeouts).
            client: HTTP client; one with the configured timeout is created if None.
            clock: Source of the current naive UTC instant.
        """
        self._settings = settings
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)
        self._clock = clock

    # --- OAuth ---

    @abstractmethod
    def authorization_url(self, user_id: str, return_url: str | None = None) -> str:
        """Build the consent URL carrying ``{userId, returnUrl}`` in the state."""

    @abstractmethod
    def exchange_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for tokens.

        Raises:
            AuthExchangeError: If the code is invalid or expired.
        """

    @abstractmethod
    def refresh(self, refresh_token: str) -> TokenSet:
        """Obtain a new access token.

        Raises:
            AuthRefreshError: If the refresh token was revoked.
        """

    @abstractmethod
    def current_user_email(self, access_token: str) -> str:
        """Get the mailbox address of the token's owner."""

    @abstractmethod
    def revoke(self, access_token: str) -> None:
        """Revoke access. Best effort, never raises."""

    # --- Mailbox ---

    @abstractmethod
    def _search_filtered(
        self,
        access_token: str,
        sender_emails: list[str],
        subject_keywords: list[str],
        since: datetime,
        max_results: int,
    ) -> list[MessageRef]:
        """Run the provider-side sender/keyword query."""

    @abstractmethod
    def _search_recent(
        self, access_token: str, since: datetime, max_results: int
    ) -> list[MessageRef]:
        """List recent messages newest first, with ``sender`` populated."""

    @abstractmethod
    def fetch_message(self, access_token: str, message_id: str) -> MailMessage:
        """Fetch one message with headers and body."""

    @abstractmethod
    def extract_body(self, message: MailMessage) -> str:
        """Extract the plain-text body of a fetched message."""

    def _state(self, user_id: str, return_url: str | None) -> str:
        return OAuthState(
            user_id=user_id,
            return_url=return_url or self._settings.default_return_url,
        ).encode()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and map failures to ProviderQueryError."""
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderQueryError(
                f"{self.provider.value} request failed with "
                f"{e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TransportError as e:
            raise ProviderQueryError(
                f"{self.provider.value} request failed: {e!r}"
            ) from e
        return response

    def _token_request(self, url: str, data: dict[str, str], refreshing: bool) -> TokenSet:
        """POST to a token endpoint and parse the response."""
        try:
            response = self._request("POST", url, data=data)
        except ProviderQueryError as e:
            if not refreshing:
                raise AuthExchangeError(f"Authorization code exchange failed: {e}") from e
            if e.is_client_error:
                raise AuthRefreshError(f"Refresh token rejected: {e}") from e
            raise
        return TokenSet.model_validate(response.json())

    def ensure_valid_token(
        self,
        connection: EmailConnection,
        connection_repository: ConnectionRepository,
    ) -> str:
        """Return a usable access token, refreshing it when close to expiry.

        A token expiring within ``token_refresh_window_seconds`` of now is
        refreshed and the new tokens are persisted on the connection;
        otherwise the stored token is returned unchanged.

        Raises:
            AuthRefreshError: If a refresh is needed but impossible or rejected.
        """
        now = self._clock()
        window = timedelta(seconds=self._settings.token_refresh_window_seconds)
        expires_at = connection.token_expires_at
        if expires_at is None or expires_at > now + window:
            return connection.access_token

        if not connection.refresh_token:
            raise AuthRefreshError(
                f"No refresh token available for connection {connection.id}"
            )

        logger.info("Refreshing %s token for connection %s", self.provider.value, connection.id)
        tokens = self.refresh(connection.refresh_token)
        connection_repository.update_tokens(
            connection,
            access_token=tokens.access_token,
            token_expires_at=tokens.expires_at(self._clock()),
            refresh_token=tokens.refresh_token,
        )
        return tokens.access_token

    def search_messages(
        self,
        access_token: str,
        sender_emails: list[str],
        subject_keywords: list[str],
        since: datetime,
        max_results: int = 100,
    ) -> list[MessageRef]:
        """Search bank emails from any sender matching any subject keyword.

        When the provider rejects the query as too complex (4xx), recent
        messages are listed instead and filtered by sender locally.

        Raises:
            ProviderQueryError: If both the query and the fallback fail.
        """
        senders = list(dict.fromkeys(s.strip() for s in sender_emails if s.strip()))
        keywords = list(dict.fromkeys(k.strip() for k in subject_keywords if k.strip()))
        if not senders:
            return []

        try:
            return self._search_filtered(access_token, senders, keywords, since, max_results)
        except ProviderQueryError as e:
            if not e.is_client_error:
                raise
            logger.warning(
                "%s rejected filtered query (%s senders, status %s); "
                "fetching recent messages and filtering locally",
                self.provider.value,
                len(senders),
                e.status_code,
            )

        wanted = {s.lower() for s in senders}
        recent = self._search_recent(access_token, since, max_results * 2)
        matched = [
            ref
            for ref in recent
            if ref.sender is not None and sender_address(ref.sender) in wanted
        ]
        return matched[:max_results]
