"""Create clients and audit_logs tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

What:  Creates the `clients` table (profiles, lifecycle status, embedded
       history) and the independent `audit_logs` table.
How:   JSONB for history and the structured sub-objects; unique slug.

Rollback: downgrade() drops both tables (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "slug",
            sa.String(255),
            nullable=False,
            comment="URL-safe identifier derived from full_name; immutable once set",
        ),

        # Contact fields
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("phone1", sa.String(50), nullable=True),
        sa.Column("phone2", sa.String(50), nullable=True),
        sa.Column("phone3", sa.String(50), nullable=True),
        sa.Column("email1", sa.String(255), nullable=True),
        sa.Column("email2", sa.String(255), nullable=True),
        sa.Column("email3", sa.String(255), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),

        # Links and structured sub-objects
        sa.Column("business_website", sa.String(500), nullable=True),
        sa.Column("portfolio_website", sa.String(500), nullable=True),
        sa.Column("location_map", sa.String(1000), nullable=True),
        sa.Column(
            "social_links",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "working_hours",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),

        # Generated artifacts
        sa.Column("photo_url", sa.String(1000), nullable=True),
        sa.Column("pdf_url", sa.String(1000), nullable=True),
        sa.Column("vcard_url", sa.String(1000), nullable=True),
        sa.Column("qr_code_url", sa.String(1000), nullable=True),

        # Lifecycle
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
            comment="pending, processed, active, rejected, disabled, deleted",
        ),
        sa.Column(
            "history",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Append-only list of {action, notes, actor, timestamp}",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", name="uq_clients_slug"),
    )
    op.create_index("idx_clients_created_at", "clients", [sa.text("created_at DESC")])
    op.create_index("idx_clients_status", "clients", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column(
            "actor_role",
            sa.String(50),
            nullable=False,
            server_default=sa.text("'admin'"),
            comment="admin, public or system",
        ),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target_client_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["target_client_id"], ["clients.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_logs_target_client_id", "audit_logs", ["target_client_id"])
    op.create_index("idx_audit_logs_timestamp", "audit_logs", [sa.text("timestamp DESC")])


def downgrade() -> None:
    op.drop_index("idx_audit_logs_timestamp", table_name="audit_logs")
    op.drop_index("idx_audit_logs_target_client_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("idx_clients_status", table_name="clients")
    op.drop_index("idx_clients_created_at", table_name="clients")
    op.drop_table("clients")
