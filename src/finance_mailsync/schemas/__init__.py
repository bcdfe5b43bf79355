"""Pydantic schemas for OAuth payloads."""

from finance_mailsync.schemas.oauth import OAuthState, TokenSet

__all__ = ["OAuthState", "TokenSet"]
