"""API routers."""

from finance_mailsync.routers.oauth_callback import router as oauth_callback_router

__all__ = ["oauth_callback_router"]
