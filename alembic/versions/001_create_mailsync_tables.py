"""Create mail sync tables.

Revision ID: 001_create_mailsync_tables
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_create_mailsync_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the ledger and mail sync tables."""
    # Create categories table
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("IX_categories_type_name", "categories", ["type", "name"])

    # Create transactions table
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(19, 4), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
    )
    op.create_index("IX_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "IX_transactions_user_category",
        "transactions",
        ["user_id", "category_id", "type"],
    )

    # Create budgets table
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("amount", sa.Numeric(19, 4), nullable=False),
        sa.Column("spent", sa.Numeric(19, 4), nullable=False, server_default="0"),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("alert_percentage", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
    )
    op.create_index(
        "IX_budgets_user_category_active",
        "budgets",
        ["user_id", "category_id", "is_active"],
    )

    # Create supported_banks table
    op.create_table(
        "supported_banks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("sender_emails", sa.JSON(), nullable=False),
        sa.Column("subject_patterns", sa.JSON(), nullable=False),
        sa.Column("logo_url", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "IX_supported_banks_country", "supported_banks", ["country", "is_active"]
    )

    # Create email_connections table
    op.create_table(
        "email_connections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("country", sa.String(2), nullable=False, server_default="DO"),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column(
            "last_sync_status", sa.String(20), nullable=False, server_default="PENDING"
        ),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("sync_started_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "provider", name="UQ_email_connections_user_provider"
        ),
    )
    op.create_index(
        "IX_email_connections_active_sync",
        "email_connections",
        ["is_active", "last_sync_at"],
    )

    # Create bank_email_filters table
    op.create_table(
        "bank_email_filters",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("connection_id", sa.Integer(), nullable=False),
        sa.Column("bank_name", sa.String(200), nullable=False),
        sa.Column("sender_emails", sa.JSON(), nullable=False),
        sa.Column("subject_keywords", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["connection_id"], ["email_connections.id"], ondelete="CASCADE"
        ),
    )
    op.create_index(
        "IX_bank_email_filters_connection",
        "bank_email_filters",
        ["connection_id", "bank_name"],
        unique=True,
    )

    # Create imported_bank_emails table
    op.create_table(
        "imported_bank_emails",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("connection_id", sa.Integer(), nullable=False),
        sa.Column("provider_message_id", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(500), nullable=False, server_default=""),
        sa.Column("sender_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.Column("raw_content", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PROCESSING"),
        sa.Column("parsed_data", sa.JSON(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["connection_id"], ["email_connections.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["transaction_id"], ["transactions.id"], ondelete="SET NULL"
        ),
        sa.UniqueConstraint(
            "connection_id",
            "provider_message_id",
            name="UQ_imported_bank_emails_message",
        ),
    )
    op.create_index(
        "IX_imported_bank_emails_status",
        "imported_bank_emails",
        ["connection_id", "status"],
    )

    # Create email_sync_logs table
    op.create_table(
        "email_sync_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("connection_id", sa.Integer(), nullable=False),
        sa.Column(
            "started_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("emails_found", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emails_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emails_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "transactions_created", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["connection_id"], ["email_connections.id"], ondelete="CASCADE"
        ),
    )
    op.create_index(
        "IX_email_sync_logs_connection_started",
        "email_sync_logs",
        ["connection_id", "started_at"],
    )

    # Create merchant_category_mappings table
    op.create_table(
        "merchant_category_mappings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("merchant_name", sa.String(200), nullable=False),
        sa.Column("merchant_pattern", sa.String(200), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "confirmed_by_users", sa.Integer(), nullable=False, server_default="1"
        ),
        sa.Column("confidence", sa.Integer(), nullable=False, server_default="50"),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.UniqueConstraint(
            "user_id",
            "merchant_name",
            name="UQ_merchant_category_mappings_user_merchant",
        ),
    )
    op.create_index(
        "IX_merchant_category_mappings_merchant",
        "merchant_category_mappings",
        ["merchant_name"],
    )


def downgrade() -> None:
    """Drop all mail sync tables."""
    op.drop_table("merchant_category_mappings")
    op.drop_table("email_sync_logs")
    op.drop_table("imported_bank_emails")
    op.drop_table("bank_email_filters")
    op.drop_table("email_connections")
    op.drop_table("supported_banks")
    op.drop_table("budgets")
    op.drop_table("transactions")
    op.drop_table("categories")
