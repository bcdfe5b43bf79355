"""Database module for Finance Mail Sync."""

from finance_mailsync.db.base import Base
from finance_mailsync.db.engine import engine
from finance_mailsync.db.session import SessionLocal, get_db

__all__ = ["Base", "engine", "SessionLocal", "get_db"]
