"""Gmail adapter over the Google OAuth2 and Gmail REST APIs."""

import base64
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from finance_mailsync.exceptions import ProviderQueryError
from finance_mailsync.models.enums import EmailProvider
from finance_mailsync.schemas.oauth import TokenSet
from finance_mailsync.services.providers.base import (
    MailMessage,
    MailProvider,
    MessageRef,
    collapse_whitespace,
    html_to_text,
)

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]


def _quote_term(term: str) -> str:
    """Quote a search term when it contains spaces."""
    return f'"{term}"' if " " in term else term


def _decode_part(data: str) -> str:
    """Decode a base64url message part, tolerating missing padding."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _find_part(payload: dict[str, Any], mime_type: str) -> str | None:
    """Depth-first search for the first part of a MIME type with data."""
    if payload.get("mimeType") == mime_type:
        data = payload.get("body", {}).get("data")
        if data:
            return _decode_part(data)
    for part in payload.get("parts", []) or []:
        found = _find_part(part, mime_type)
        if found is not None:
            return found
    return None


class GmailProvider(MailProvider):
    """Google mailbox adapter."""

    provider = EmailProvider.GMAIL

    def authorization_url(self, user_id: str, return_url: str | None = None) -> str:
        params = {
            "client_id": self._settings.google_client_id,
            "redirect_uri": self._settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(GMAIL_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": self._state(user_id, return_url),
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> TokenSet:
        return self._token_request(
            GOOGLE_TOKEN_URL,
            {
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self._settings.google_redirect_uri,
            },
            refreshing=False,
        )

    def refresh(self, refresh_token: str) -> TokenSet:
        return self._token_request(
            GOOGLE_TOKEN_URL,
            {
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            refreshing=True,
        )

    def current_user_email(self, access_token: str) -> str:
        response = self._request(
            "GET", GOOGLE_USERINFO_URL, headers=self._auth(access_token)
        )
        return str(response.json()["email"])

    def revoke(self, access_token: str) -> None:
        try:
            self._client.post(GOOGLE_REVOKE_URL, params={"token": access_token})
        except httpx.HTTPError as e:
            logger.warning("Error revoking Gmail access: %s", e)

    def build_query(
        self,
        sender_emails: list[str],
        subject_keywords: list[str],
        since: datetime | None,
    ) -> str:
        """Build a Gmail search query.

        Example: ``(from:a@bank.com OR from:b@bank.com) (subject:compra) after:1700000000``
        """
        query = "(" + " OR ".join(f"from:{s}" for s in sender_emails) + ")"
        if subject_keywords:
            query += (
                " ("
                + " OR ".join(f"subject:{_quote_term(k)}" for k in subject_keywords)
                + ")"
            )
        if since is not None:
            query += f" {self._after(since)}"
        return query

    def _after(self, since: datetime) -> str:
        epoch = int(since.replace(tzinfo=timezone.utc).timestamp())
        return f"after:{epoch}"

    def _auth(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _list(self, access_token: str, query: str, max_results: int) -> list[str]:
        response = self._request(
            "GET",
            f"{GMAIL_API_URL}/messages",
            headers=self._auth(access_token),
            params={"q": query, "maxResults": max_results},
        )
        return [m["id"] for m in response.json().get("messages", []) or []]

    def _search_filtered(
        self,
        access_token: str,
        sender_emails: list[str],
        subject_keywords: list[str],
        since: datetime,
        max_results: int,
    ) -> list[MessageRef]:
        query = self.build_query(sender_emails, subject_keywords, since)
        logger.debug("Gmail search query: %s", query)
        return [MessageRef(id=mid) for mid in self._list(access_token, query, max_results)]

    def _search_recent(
        self, access_token: str, since: datetime, max_results: int
    ) -> list[MessageRef]:
        refs: list[MessageRef] = []
        for message_id in self._list(access_token, self._after(since), max_results):
            try:
                response = self._request(
                    "GET",
                    f"{GMAIL_API_URL}/messages/{message_id}",
                    headers=self._auth(access_token),
                    params={"format": "metadata", "metadataHeaders": "From"},
                )
            except ProviderQueryError as e:
                logger.warning("Skipping Gmail message %s metadata: %s", message_id, e)
                continue
            sender = self._header(response.json(), "From") or ""
            refs.append(MessageRef(id=message_id, sender=sender))
        return refs

    @staticmethod
    def _header(message: dict[str, Any], name: str) -> str | None:
        for header in message.get("payload", {}).get("headers", []) or []:
            if header.get("name", "").lower() == name.lower():
                return header.get("value")
        return None

    def fetch_message(self, access_token: str, message_id: str) -> MailMessage:
        response = self._request(
            "GET",
            f"{GMAIL_API_URL}/messages/{message_id}",
            headers=self._auth(access_token),
            params={"format": "full"},
        )
        raw = response.json()
        received_at = None
        if raw.get("internalDate"):
            received_at = datetime.fromtimestamp(
                int(raw["internalDate"]) / 1000, tz=timezone.utc
            ).replace(tzinfo=None)
        return MailMessage(
            id=raw.get("id", message_id),
            subject=self._header(raw, "Subject") or "",
            sender=self._header(raw, "From") or "",
            received_at=received_at,
            raw=raw,
        )

    def extract_body(self, message: MailMessage) -> str:
        """Prefer the HTML part, fall back to text/plain, then the snippet."""
        payload = message.raw.get("payload", {})
        body = _find_part(payload, "text/html")
        if body is not None:
            return html_to_text(body)
        body = _find_part(payload, "text/plain")
        if body is None:
            data = payload.get("body", {}).get("data")
            body = _decode_part(data) if data else message.raw.get("snippet", "")
        return collapse_whitespace(body)
