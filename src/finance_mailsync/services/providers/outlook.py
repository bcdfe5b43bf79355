"""Outlook adapter over the Microsoft identity platform and Graph API."""

import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

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

MICROSOFT_AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"
GRAPH_MESSAGES_URL = "https://graph.microsoft.com/v1.0/me/messages"

OUTLOOK_SCOPES = [
    "openid",
    "profile",
    "email",
    "offline_access",
    "https://graph.microsoft.com/Mail.Read",
]

MESSAGE_FIELDS = "id,conversationId,subject,bodyPreview,body,from,receivedDateTime,isRead"


def _odata_literal(value: str) -> str:
    """Quote a string for an OData filter, doubling embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def _graph_datetime(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat() + "Z"


def _parse_graph_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


def _message_sender(message: dict[str, Any]) -> str:
    return ((message.get("from") or {}).get("emailAddress") or {}).get("address", "")


class OutlookProvider(MailProvider):
    """Microsoft 365 / Outlook.com mailbox adapter."""

    provider = EmailProvider.OUTLOOK

    def authorization_url(self, user_id: str, return_url: str | None = None) -> str:
        params = {
            "client_id": self._settings.microsoft_client_id,
            "redirect_uri": self._settings.microsoft_redirect_uri,
            "response_type": "code",
            "scope": " ".join(OUTLOOK_SCOPES),
            "response_mode": "query",
            "state": self._state(user_id, return_url),
        }
        return f"{MICROSOFT_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> TokenSet:
        return self._token_request(
            MICROSOFT_TOKEN_URL,
            {
                "client_id": self._settings.microsoft_client_id,
                "client_secret": self._settings.microsoft_client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self._settings.microsoft_redirect_uri,
            },
            refreshing=False,
        )

    def refresh(self, refresh_token: str) -> TokenSet:
        return self._token_request(
            MICROSOFT_TOKEN_URL,
            {
                "client_id": self._settings.microsoft_client_id,
                "client_secret": self._settings.microsoft_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            refreshing=True,
        )

    def current_user_email(self, access_token: str) -> str:
        """Graph returns the address in ``mail`` or only in ``userPrincipalName``."""
        response = self._request("GET", GRAPH_ME_URL, headers=self._auth(access_token))
        data = response.json()
        return str(data.get("mail") or data["userPrincipalName"])

    def revoke(self, access_token: str) -> None:
        # Graph has no per-token revocation endpoint; users revoke consent at
        # https://account.live.com/consent/Manage. Dropping the tokens is enough.
        logger.info("Outlook access released (tokens removed from storage)")

    def build_filter(
        self,
        sender_emails: list[str],
        subject_keywords: list[str],
        since: datetime | None,
    ) -> str:
        """Build an OData ``$filter`` for Graph message search."""
        clauses = [
            "("
            + " or ".join(
                f"from/emailAddress/address eq {_odata_literal(s)}" for s in sender_emails
            )
            + ")"
        ]
        if subject_keywords:
            clauses.append(
                "("
                + " or ".join(
                    f"contains(subject,{_odata_literal(k)})" for k in subject_keywords
                )
                + ")"
            )
        if since is not None:
            clauses.append(f"receivedDateTime ge {_graph_datetime(since)}")
        return " and ".join(clauses)

    def _auth(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _list(
        self, access_token: str, odata_filter: str | None, top: int
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "$top": top,
            "$select": MESSAGE_FIELDS,
            "$orderby": "receivedDateTime desc",
        }
        if odata_filter:
            params["$filter"] = odata_filter
        response = self._request(
            "GET", GRAPH_MESSAGES_URL, headers=self._auth(access_token), params=params
        )
        return list(response.json().get("value", []) or [])

    def _search_filtered(
        self,
        access_token: str,
        sender_emails: list[str],
        subject_keywords: list[str],
        since: datetime,
        max_results: int,
    ) -> list[MessageRef]:
        odata_filter = self.build_filter(sender_emails, subject_keywords, since)
        messages = self._list(access_token, odata_filter, max_results)
        return [MessageRef(id=m["id"], sender=_message_sender(m)) for m in messages]

    def _search_recent(
        self, access_token: str, since: datetime, max_results: int
    ) -> list[MessageRef]:
        odata_filter = f"receivedDateTime ge {_graph_datetime(since)}"
        messages = self._list(access_token, odata_filter, max_results)
        return [MessageRef(id=m["id"], sender=_message_sender(m)) for m in messages]

    def fetch_message(self, access_token: str, message_id: str) -> MailMessage:
        response = self._request(
            "GET",
            f"{GRAPH_MESSAGES_URL}/{message_id}",
            headers=self._auth(access_token),
            params={"$select": MESSAGE_FIELDS},
        )
        raw = response.json()
        return MailMessage(
            id=raw.get("id", message_id),
            subject=raw.get("subject") or "",
            sender=_message_sender(raw),
            received_at=_parse_graph_datetime(raw.get("receivedDateTime")),
            raw=raw,
        )

    def extract_body(self, message: MailMessage) -> str:
        body = message.raw.get("body") or {}
        content = body.get("content") or message.raw.get("bodyPreview") or ""
        if str(body.get("contentType", "")).lower() == "html":
            return html_to_text(content)
        return collapse_whitespace(content)
