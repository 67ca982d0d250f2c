"""
Add users and document_versions tables.

document_versions holds every row of every version family. Family membership is
coalesce(root_id, id); root_id is intentionally not a foreign key so later
versions survive deletion of the original row.

Constraints:
- ck_document_versions_draft_inactive: drafts are never active
- uq_document_versions_one_active: at most one active published row per family

Revision ID: 5c1e8a2f7d40
Revises:
Create Date: 2026-10-19 09:12:41.208311
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5c1e8a2f7d40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "auth0_id",
            sa.String(length=255),
            nullable=False,
            comment="Auth0 'sub' claim - unique identifier from Auth0",
        ),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_auth0_id"), "users", ["auth0_id"], unique=True)
    op.create_index(op.f("ix_users_created_at"), "users", ["created_at"])
    op.create_index(op.f("ix_users_updated_at"), "users", ["updated_at"])

    op.create_table(
        "document_versions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("root_id", sa.Uuid(), nullable=True),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("is_draft", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("change_log", sa.String(length=500), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("attributes", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "NOT (is_draft AND is_active)",
            name="ck_document_versions_draft_inactive",
        ),
        sa.CheckConstraint(
            "version_number >= 1",
            name="ck_document_versions_version_positive",
        ),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_document_versions_root_id"), "document_versions", ["root_id"])
    op.create_index(op.f("ix_document_versions_owner_id"), "document_versions", ["owner_id"])
    op.create_index(
        op.f("ix_document_versions_created_at"), "document_versions", ["created_at"],
    )
    op.create_index(
        op.f("ix_document_versions_updated_at"), "document_versions", ["updated_at"],
    )
    op.create_index(
        "ix_document_versions_root_version_draft",
        "document_versions",
        ["root_id", "version_number", "is_draft"],
    )
    op.create_index(
        "uq_document_versions_one_active",
        "document_versions",
        [sa.text("coalesce(root_id, id)")],
        unique=True,
        postgresql_where=sa.text("is_active AND NOT is_draft"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_document_versions_one_active", table_name="document_versions")
    op.drop_index("ix_document_versions_root_version_draft", table_name="document_versions")
    op.drop_index(op.f("ix_document_versions_updated_at"), table_name="document_versions")
    op.drop_index(op.f("ix_document_versions_created_at"), table_name="document_versions")
    op.drop_index(op.f("ix_document_versions_owner_id"), table_name="document_versions")
    op.drop_index(op.f("ix_document_versions_root_id"), table_name="document_versions")
    op.drop_table("document_versions")

    op.drop_index(op.f("ix_users_updated_at"), table_name="users")
    op.drop_index(op.f("ix_users_created_at"), table_name="users")
    op.drop_index(op.f("ix_users_auth0_id"), table_name="users")
    op.drop_table("users")
