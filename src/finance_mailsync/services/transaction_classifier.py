"""TransactionClassifier for turning bank notification emails into transactions.

Classification is a two-stage gate. A local keyword filter rejects
card-payment confirmations without any network call; everything else is
sent to Claude, which returns either a payment flag or the structured
purchase fields.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import anthropic
import httpx
from anthropic import Anthropic

from finance_mailsync.core.config import Settings
from finance_mailsync.exceptions import (
    ClassificationFailed,
    InvalidAmount,
    PaymentEmailSkipped,
)
from finance_mailsync.repositories.category_repository import FALLBACK_CATEGORY_MARKERS

logger = logging.getLogger(__name__)

# Card-payment confirmations; these are never purchases.
PAYMENT_KEYWORDS = [
    "pago recibido",
    "pago exitoso",
    "pago aplicado",
    "abono recibido",
    "abono aplicado",
    "pago de tarjeta",
    "pago a tarjeta",
    "pago minimo",
    "pago mínimo",
    "gracias por tu pago",
    "hemos recibido tu pago",
    "tu pago fue procesado",
    "confirmacion de pago",
    "confirmación de pago",
    "payment received",
    "payment applied",
]

CURRENCY_ALIASES = {
    "DOP": "RD$",
    "RD": "RD$",
    "RD$": "RD$",
    "PESOS": "RD$",
    "USD": "USD",
    "US$": "USD",
    "DOLARES": "USD",
    "EUR": "EUR",
    "EUROS": "EUR",
}

UNKNOWN_MERCHANT = "Desconocido"

_CARD_LAST4_RE = re.compile(r"^\d{4}$")
_NON_DIGIT_RE = re.compile(r"\D")

SYSTEM_PROMPT = """You extract structured data from bank transaction notification emails.
Always answer with ONLY valid JSON, no additional text.
Use null for any value you cannot extract.
The amount is always a positive number.
The date uses ISO 8601.
The currency is one of: RD$, USD, EUR, DOP.
The category MUST be exactly one of: {category_list}.
Pick the one that best fits the merchant.
If no category fits with certainty, use "{fallback_category}".
If the email confirms a payment TO a credit card (not a purchase), answer {{"isPaymentEmail": true}}."""

CLASSIFICATION_PROMPT = """Extract the transaction from this bank notification{bank_hint}{country_hint}:

SUBJECT: {subject}

CONTENT:
{body}

Answer ONLY with this JSON:
{{
    "amount": <positive number>,
    "currency": "<RD$|USD|EUR|DOP>",
    "merchant": "<merchant or establishment name>",
    "category": "<MUST be exactly one of: {category_list}>",
    "date": "<ISO 8601 date>",
    "cardLast4": "<last 4 card digits or null>",
    "authorizationCode": "<authorization code or null>",
    "description": "<extra description or null>"
}}"""


@dataclass
class ParsedTransaction:
    """Structured purchase fields extracted from one email."""

    amount: Decimal
    currency: str
    merchant: str
    category: str
    date: datetime | None = None
    card_last4: str | None = None
    authorization_code: str | None = None
    description: str | None = None
    confidence: int = 0

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable copy for the ImportedEmail audit record."""
        return {
            "amount": str(self.amount),
            "currency": self.currency,
            "merchant": self.merchant,
            "category": self.category,
            "date": self.date.isoformat() if self.date else None,
            "cardLast4": self.card_last4,
            "authorizationCode": self.authorization_code,
            "description": self.description,
            "confidence": self.confidence,
        }


def is_payment_email(subject: str, body: str) -> bool:
    """Check subject and body for a card-payment confirmation phrase."""
    text = f"{subject} {body}".lower()
    return any(keyword in text for keyword in PAYMENT_KEYWORDS)


def normalize_currency(currency: str | None, base_currency: str = "RD$") -> str:
    """Map free-form currency strings to RD$, USD or EUR.

    Unknown or missing currencies fall back to ``base_currency``.
    """
    if not currency:
        return base_currency
    return CURRENCY_ALIASES.get(currency.strip().upper(), base_currency)


def pick_fallback_category(category_names: list[str]) -> str | None:
    """Pick the miscellaneous category name, else the first one listed."""
    for name in category_names:
        if any(marker in name.lower() for marker in FALLBACK_CATEGORY_MARKERS):
            return name
    return category_names[0] if category_names else None


def normalize_card_last4(value: Any) -> str | None:
    """Keep only the last 4 digits of a card reference, or None if it has fewer."""
    if value is None:
        return None
    card = str(value).strip()
    if _CARD_LAST4_RE.match(card):
        return card
    digits = _NON_DIGIT_RE.sub("", card)
    return digits[-4:] if len(digits) >= 4 else None


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO 8601 date into a naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def calculate_confidence(data: dict[str, Any]) -> int:
    """Score 0-100 from the presence and validity of the extracted fields."""
    confidence = 0
    amount = _to_decimal(data.get("amount"))
    if amount is not None and amount > 0:
        confidence += 30
    merchant = data.get("merchant")
    if merchant and merchant != UNKNOWN_MERCHANT:
        confidence += 25
    if parse_date(data.get("date")) is not None:
        confidence += 20
    card = data.get("cardLast4") or data.get("card_last4")
    if card and _CARD_LAST4_RE.match(str(card)):
        confidence += 15
    if data.get("category"):
        confidence += 10
    return confidence


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).replace(",", ""))
    except InvalidOperation:
        return None


class TransactionClassifier:
    """Classifies bank emails into purchase transactions using Claude.

    The caller supplies the valid category names on every call, so the
    classifier never invents a category outside the user's catalog.
    """

    def __init__(
        self, settings: Settings, http_client: httpx.Client | None = None
    ) -> None:
        """Initialize the classifier.

        Args:
            settings: Application settings (API key, model, timeouts).
            http_client: Shared HTTP client for the Anthropic API, if any.
        """
        self._client = Anthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.http_timeout_seconds,
            http_client=http_client,
        )
        self._model = settings.classifier_model
        self._body_max_chars = settings.classifier_body_max_chars
        self._base_currency = settings.base_currency

    def _build_prompt(
        self,
        body: str,
        subject: str,
        category_list: str,
        bank_name: str | None,
        country: str | None,
    ) -> str:
        return CLASSIFICATION_PROMPT.format(
            bank_hint=f" from {bank_name}" if bank_name else "",
            country_hint=f" (country: {country})" if country else "",
            subject=subject,
            body=body[: self._body_max_chars],
            category_list=category_list,
        )

    def _parse_response(self, response_text: str) -> dict[str, Any]:
        """Parse the model response as a JSON object.

        Raises:
            ClassificationFailed: If the response is empty or not a JSON object.
        """
        text = response_text.strip()
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
        if not text:
            raise ClassificationFailed("Empty response from classifier")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ClassificationFailed(f"Failed to parse classifier response as JSON: {e}") from e
        if not isinstance(data, dict):
            raise ClassificationFailed("Classifier response is not a JSON object")
        return data

    def _constrain_category(
        self, category: Any, category_names: list[str], fallback: str | None
    ) -> str:
        if category:
            wanted = str(category).strip().lower()
            for name in category_names:
                if name.lower() == wanted:
                    return name
        return fallback or ""

    def classify(
        self,
        body: str,
        subject: str,
        category_names: list[str],
        bank_name: str | None = None,
        country: str | None = None,
    ) -> ParsedTransaction:
        """Classify one bank email.

        Args:
            body: Plain-text email body.
            subject: Email subject.
            category_names: Valid EXPENSE category names for this call.
            bank_name: Display name of the bank that sent the email, if known.
            country: Country hint for currency and merchant conventions.

        Returns:
            ParsedTransaction with a category from ``category_names``.

        Raises:
            PaymentEmailSkipped: If the email is a card-payment confirmation.
            ClassificationFailed: If the classifier call fails or its response
                cannot be parsed.
            InvalidAmount: If no positive amount was extracted.
        """
        if is_payment_email(subject, body):
            raise PaymentEmailSkipped("Email is a card payment, not a purchase")

        fallback = pick_fallback_category(category_names)
        category_list = ", ".join(category_names)
        logger.debug("Classifying with %d categories", len(category_names))

        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=500,
                temperature=0.1,
                system=SYSTEM_PROMPT.format(
                    category_list=category_list, fallback_category=fallback or ""
                ),
                messages=[
                    {
                        "role": "user",
                        "content": self._build_prompt(
                            body, subject, category_list, bank_name, country
                        ),
                    }
                ],
            )
        except anthropic.APIError as e:
            raise ClassificationFailed(f"Classifier call failed: {e}") from e

        if not response.content:
            raise ClassificationFailed("Empty response from classifier")
        data = self._parse_response(response.content[0].text)  # type: ignore[union-attr]

        if data.get("isPaymentEmail") is True:
            raise PaymentEmailSkipped("Classifier flagged a card payment")

        amount = _to_decimal(data.get("amount"))
        if amount is None or amount <= 0:
            raise InvalidAmount("Could not extract a valid amount")

        return ParsedTransaction(
            amount=abs(amount),
            currency=normalize_currency(data.get("currency"), self._base_currency),
            merchant=str(data.get("merchant") or UNKNOWN_MERCHANT),
            category=self._constrain_category(data.get("category"), category_names, fallback),
            date=parse_date(data.get("date")),
            card_last4=normalize_card_last4(data.get("cardLast4") or data.get("card_last4")),
            authorization_code=(
                data.get("authorizationCode") or data.get("authorization_code") or None
            ),
            description=data.get("description") or None,
            confidence=calculate_confidence(data),
        )
