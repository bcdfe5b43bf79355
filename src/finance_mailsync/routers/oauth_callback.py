"""FastAPI router for the public OAuth redirect callbacks."""

import logging
from collections.abc import Generator
from typing import Annotated
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from finance_mailsync.core.config import settings
from finance_mailsync.db.session import get_db
from finance_mailsync.exceptions import MailSyncError
from finance_mailsync.models.enums import EmailProvider
from finance_mailsync.schemas.oauth import OAuthState
from finance_mailsync.services.email_sync_service import (
    EmailSyncService,
    build_email_sync_service,
)
from finance_mailsync.services.providers import (
    MailProvider,
    build_http_client,
    build_provider,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_http_client() -> Generator[httpx.Client, None, None]:
    """Dependency that provides an HTTP client closed after the request."""
    client = build_http_client(settings)
    try:
        yield client
    finally:
        client.close()


def get_sync_service(
    db: Session = Depends(get_db),  # noqa: B008
    http_client: httpx.Client = Depends(get_http_client),  # noqa: B008
) -> EmailSyncService:
    """Get the email sync service."""
    return build_email_sync_service(db, settings, http_client)


def get_gmail_provider(
    http_client: httpx.Client = Depends(get_http_client),  # noqa: B008
) -> MailProvider:
    """Get the Gmail adapter."""
    return build_provider(EmailProvider.GMAIL, settings, client=http_client)


def get_outlook_provider(
    http_client: httpx.Client = Depends(get_http_client),  # noqa: B008
) -> MailProvider:
    """Get the Outlook adapter."""
    return build_provider(EmailProvider.OUTLOOK, settings, client=http_client)


def redirect_to(return_url: str, **params: str) -> RedirectResponse:
    """Redirect to the app's return URL with query parameters appended."""
    separator = "&" if "?" in return_url else "?"
    return RedirectResponse(f"{return_url}{separator}{urlencode(params)}", status_code=302)


def handle_callback(
    provider: EmailProvider,
    service: EmailSyncService,
    code: str | None,
    state: str | None,
    error: str | None,
) -> RedirectResponse:
    """Finish an OAuth consent and send the user back to the app."""
    return_url = settings.default_return_url
    try:
        oauth_state = OAuthState.decode(state or "")
    except ValueError:
        logger.warning("%s callback with invalid state", provider.value)
        return redirect_to(return_url, error="invalid_state")
    return_url = oauth_state.return_url

    if error:
        logger.error("%s OAuth error: %s", provider.value, error)
        return redirect_to(return_url, error=error)
    if not code:
        return redirect_to(return_url, error="missing_params")

    try:
        connection = service.connect_provider(oauth_state.user_id, provider, code)
    except MailSyncError as e:
        logger.error("%s callback failed for user %s: %s", provider.value, oauth_state.user_id, e)
        return redirect_to(return_url, error=str(e))

    logger.info(
        "%s connected for user %s: %s", provider.value, oauth_state.user_id, connection.email
    )
    return redirect_to(return_url, success="true", email=connection.email)


@router.get("/gmail/auth-url")
def gmail_auth_url(
    provider: Annotated[MailProvider, Depends(get_gmail_provider)],
    user_id: str = Query(..., alias="userId"),
    return_url: str | None = Query(None, alias="returnUrl"),
) -> dict[str, str]:
    """Consent URL for linking a Gmail mailbox."""
    return {"url": provider.authorization_url(user_id, return_url)}


@router.get("/outlook/auth-url")
def outlook_auth_url(
    provider: Annotated[MailProvider, Depends(get_outlook_provider)],
    user_id: str = Query(..., alias="userId"),
    return_url: str | None = Query(None, alias="returnUrl"),
) -> dict[str, str]:
    """Consent URL for linking an Outlook mailbox."""
    return {"url": provider.authorization_url(user_id, return_url)}


@router.get("/gmail/callback")
def gmail_callback(
    service: Annotated[EmailSyncService, Depends(get_sync_service)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    """Google OAuth redirect target."""
    return handle_callback(EmailProvider.GMAIL, service, code, state, error)


@router.get("/outlook/callback")
def outlook_callback(
    service: Annotated[EmailSyncService, Depends(get_sync_service)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    """Microsoft OAuth redirect target."""
    return handle_callback(EmailProvider.OUTLOOK, service, code, state, error)
