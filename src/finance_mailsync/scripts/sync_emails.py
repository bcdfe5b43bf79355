"""Trigger bank email syncs from the command line or a scheduler."""

import argparse
import logging
import sys

from finance_mailsync.core.config import settings
from finance_mailsync.db.session import SessionLocal
from finance_mailsync.exceptions import MailSyncError
from finance_mailsync.repositories.connection_repository import ConnectionNotFoundError
from finance_mailsync.services.email_sync_service import (
    SyncResult,
    build_email_sync_service,
)
from finance_mailsync.services.providers import build_http_client

logger = logging.getLogger(__name__)


def print_result(result: SyncResult) -> None:
    """Print the summary of one connection's run."""
    status = "SUCCESS" if result.success else "FAILED"
    print(
        f"Connection {result.connection_id}: {status} "
        f"found={result.emails_found} processed={result.emails_processed} "
        f"skipped={result.emails_skipped} created={result.transactions_created}"
    )
    for error in result.errors:
        print(f"  - {error}")


def run(connection_id: int | None, user_id: str | None, due: bool) -> list[SyncResult]:
    """Run the requested syncs and return their results."""
    db = SessionLocal()
    http_client = build_http_client(settings)
    try:
        service = build_email_sync_service(db, settings, http_client)
        if connection_id is not None:
            return [service.sync_connection(connection_id)]
        if user_id is not None:
            return service.sync_all_connections_for_user(user_id)

        results = []
        connections = service.get_active_connections_for_sync() if due else []
        logger.info("%d connections due for sync", len(connections))
        for connection in connections:
            try:
                results.append(service.sync_connection(connection.id))
            except MailSyncError as e:
                logger.warning("Skipping connection %s: %s", connection.id, e)
        return results
    finally:
        http_client.close()
        db.close()


def main() -> int:
    """CLI entrypoint for the sync script."""
    parser = argparse.ArgumentParser(description="Import bank transactions from email.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--connection-id", type=int, help="Sync one connection")
    target.add_argument("--user-id", help="Sync every active connection of a user")
    target.add_argument(
        "--due",
        action="store_true",
        help="Sync every active connection not synced within the sync interval",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        results = run(args.connection_id, args.user_id, args.due)
    except (MailSyncError, ConnectionNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    for result in results:
        print_result(result)
    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
