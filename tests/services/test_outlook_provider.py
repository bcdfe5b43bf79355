"""Tests for OutlookProvider."""

from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from finance_mailsync.core.config import Settings
from finance_mailsync.exceptions import AuthRefreshError
from finance_mailsync.models.enums import EmailProvider
from finance_mailsync.services.providers import build_provider
from finance_mailsync.services.providers.base import MailMessage
from finance_mailsync.services.providers.outlook import OutlookProvider

NOW = datetime(2026, 3, 15, 12, 0, 0)

BANK_SENDERS = [f"alertas{i}@banco{i}.com.do" for i in range(12)]


def make_provider(settings: Settings, handler) -> OutlookProvider:  # type: ignore[no-untyped-def]
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return OutlookProvider(settings, client=client, clock=lambda: NOW)


def graph_message(message_id: str, sender: str, **extra) -> dict:  # type: ignore[no-untyped-def]
    message = {
        "id": message_id,
        "subject": "Consumo aprobado",
        "from": {"emailAddress": {"address": sender, "name": "Banco"}},
        "receivedDateTime": "2026-03-14T18:30:00Z",
    }
    message.update(extra)
    return message


def test_build_provider_returns_outlook(test_settings: Settings) -> None:
    """Test the factory picks the adapter class by provider."""
    assert isinstance(build_provider(EmailProvider.OUTLOOK, test_settings), OutlookProvider)


def test_authorization_url(test_settings: Settings) -> None:
    """Test the consent URL requests offline access to mail."""
    provider = make_provider(test_settings, lambda request: httpx.Response(500))

    params = parse_qs(urlparse(provider.authorization_url("user-1")).query)

    assert params["client_id"] == ["ms-client"]
    assert "offline_access" in params["scope"][0]
    assert "Mail.Read" in params["scope"][0]
    assert params["response_mode"] == ["query"]


def test_current_user_email_falls_back_to_principal_name(test_settings: Settings) -> None:
    """Test userPrincipalName is used when mail is empty."""
    provider = make_provider(
        test_settings,
        lambda request: httpx.Response(
            200, json={"mail": None, "userPrincipalName": "luis@outlook.com"}
        ),
    )

    assert provider.current_user_email("a1") == "luis@outlook.com"


def test_refresh_rejected(test_settings: Settings) -> None:
    """Test a revoked refresh token raises AuthRefreshError."""
    provider = make_provider(
        test_settings, lambda request: httpx.Response(401, json={"error": "invalid_grant"})
    )

    with pytest.raises(AuthRefreshError):
        provider.refresh("r1")


def test_build_filter_quotes_literals(test_settings: Settings) -> None:
    """Test the OData filter ORs senders and keywords and escapes quotes."""
    provider = make_provider(test_settings, lambda request: httpx.Response(500))

    odata = provider.build_filter(
        ["a@bank.com", "b@bank.com"], ["consumo", "d'oro"], datetime(2026, 3, 1)
    )

    assert odata == (
        "(from/emailAddress/address eq 'a@bank.com' or "
        "from/emailAddress/address eq 'b@bank.com') and "
        "(contains(subject,'consumo') or contains(subject,'d''oro')) and "
        "receivedDateTime ge 2026-03-01T00:00:00Z"
    )


def test_search_filtered(test_settings: Settings) -> None:
    """Test the Graph query returns refs with senders."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200, json={"value": [graph_message("m1", "alertas@banreservas.com")]}
        )

    refs = make_provider(test_settings, handler).search_messages(
        "a1", ["alertas@banreservas.com"], [], NOW - timedelta(days=1), max_results=50
    )

    assert [(r.id, r.sender) for r in refs] == [("m1", "alertas@banreservas.com")]
    assert seen["params"]["$top"] == "50"
    assert seen["params"]["$orderby"] == "receivedDateTime desc"


def test_complex_filter_rejected_falls_back(test_settings: Settings) -> None:
    """Test a 400 for a 12-sender filter is answered by local sender filtering."""
    target_sender = BANK_SENDERS[11]
    requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        odata = request.url.params["$filter"]
        requests.append(odata)
        if odata.startswith("("):
            return httpx.Response(
                400, json={"error": {"code": "InefficientFilter", "message": "too complex"}}
            )
        return httpx.Response(
            200,
            json={
                "value": [
                    graph_message("promo", "ofertas@tienda.com"),
                    graph_message("target", target_sender.upper()),
                ]
            },
        )

    refs = make_provider(test_settings, handler).search_messages(
        "a1", BANK_SENDERS, ["consumo"], NOW - timedelta(days=30), max_results=10
    )

    assert [r.id for r in refs] == ["target"]
    assert len(requests) == 2
    assert requests[1] == "receivedDateTime ge 2026-02-13T12:00:00Z"


def test_fetch_message(test_settings: Settings) -> None:
    """Test the Graph message is normalized."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/me/messages/m1")
        return httpx.Response(200, json=graph_message("m1", "alertas@bhdleon.com.do"))

    message = make_provider(test_settings, handler).fetch_message("a1", "m1")

    assert message.sender == "alertas@bhdleon.com.do"
    assert message.subject == "Consumo aprobado"
    assert message.received_at == datetime(2026, 3, 14, 18, 30)


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        (
            {"contentType": "html", "content": "<div>Consumo&nbsp;de <b>US$ 45.00</b></div>"},
            "Consumo de US$ 45.00",
        ),
        ({"contentType": "text", "content": "Consumo\n\nde  RD$ 300"}, "Consumo de RD$ 300"),
    ],
)
def test_extract_body(test_settings: Settings, body: dict, expected: str) -> None:
    """Test HTML and text bodies are both reduced to one line of text."""
    provider = make_provider(test_settings, lambda request: httpx.Response(500))
    message = MailMessage(
        id="m1", subject="s", sender="x", received_at=None, raw={"body": body}
    )

    assert provider.extract_body(message) == expected


def test_extract_body_uses_preview_without_body(test_settings: Settings) -> None:
    """Test bodyPreview is the last resort."""
    provider = make_provider(test_settings, lambda request: httpx.Response(500))
    message = MailMessage(
        id="m1", subject="s", sender="x", received_at=None, raw={"bodyPreview": "Consumo RD$ 10"}
    )

    assert provider.extract_body(message) == "Consumo RD$ 10"
