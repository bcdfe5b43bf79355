"""Pydantic schemas for the OAuth state token and provider token responses."""

import base64
import binascii
import json
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class OAuthState(BaseModel):
    """State round-tripped verbatim through the provider's consent screen."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    return_url: str = Field(..., alias="returnUrl", min_length=1)

    def encode(self) -> str:
        """Encode as base64 JSON for the ``state`` query parameter."""
        payload = json.dumps(self.model_dump(by_alias=True), separators=(",", ":"))
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, state: str) -> "OAuthState":
        """Decode a ``state`` parameter produced by :meth:`encode`.

        Raises:
            ValueError: If the state is not base64 JSON of the expected shape.
        """
        try:
            raw = base64.b64decode(state.encode("ascii"), validate=True)
            return cls.model_validate(json.loads(raw.decode("utf-8")))
        except (binascii.Error, UnicodeError, json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid OAuth state: {e}") from e


class TokenSet(BaseModel):
    """Token endpoint response shared by Google and Microsoft."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int = 3600
    token_type: str = "Bearer"
    scope: str | None = None

    def expires_at(self, now: datetime) -> datetime:
        """Absolute expiry instant relative to ``now``."""
        return now + timedelta(seconds=self.expires_in)
