"""Mailbox provider adapters."""

import httpx

from finance_mailsync.core.config import Settings
from finance_mailsync.models.enums import EmailProvider
from finance_mailsync.services.providers.base import (
    MailMessage,
    MailProvider,
    MessageRef,
    html_to_text,
)
from finance_mailsync.services.providers.gmail import GmailProvider
from finance_mailsync.services.providers.outlook import OutlookProvider

PROVIDER_CLASSES: dict[EmailProvider, type[MailProvider]] = {
    EmailProvider.GMAIL: GmailProvider,
    EmailProvider.OUTLOOK: OutlookProvider,
}


def build_http_client(settings: Settings) -> httpx.Client:
    """Create the HTTP client shared by the adapters and the rate feed.

    The caller owns the client and must close it.
    """
    return httpx.Client(timeout=settings.http_timeout_seconds)


def build_provider(
    provider: EmailProvider,
    settings: Settings,
    client: httpx.Client | None = None,
) -> MailProvider:
    """Instantiate the adapter for a provider."""
    return PROVIDER_CLASSES[provider](settings, client=client)


__all__ = [
    "GmailProvider",
    "MailMessage",
    "MailProvider",
    "MessageRef",
    "OutlookProvider",
    "PROVIDER_CLASSES",
    "build_http_client",
    "build_provider",
    "html_to_text",
]
