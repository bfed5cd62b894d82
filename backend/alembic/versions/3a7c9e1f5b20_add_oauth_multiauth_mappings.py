"""Add local users, user groups and the multi-provider remote mapping table.

Revision ID: 3a7c9e1f5b20
Revises:
Create Date: 2026-10-19

- users / user_groups: local accounts and explicit group memberships
- oauth_multiauth_mappings: (remote_name, provider_id) -> users.id, unique per pair

The legacy oauth_users / oauth_mappings tables are left alone; run
``python -m multiauth.scripts.multiauth_migrate --provider=<id>`` to move their
rows into oauth_multiauth_mappings.
"""

from typing import Union

import sqlalchemy as sa
from alembic import op

revision: str = "3a7c9e1f5b20"
down_revision: Union[str, None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("real_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_name", "users", ["name"], unique=True)

    # ------------------------------------------------------------------
    # user_groups
    # ------------------------------------------------------------------
    op.create_table(
        "user_groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("group_name", sa.String(255), nullable=False),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "group_name", name="uq_user_groups_user_group"),
    )
    op.create_index("ix_user_groups_user_id", "user_groups", ["user_id"])

    # ------------------------------------------------------------------
    # oauth_multiauth_mappings
    # ------------------------------------------------------------------
    op.create_table(
        "oauth_multiauth_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("remote_name", sa.String(255), nullable=False),
        sa.Column("provider_id", sa.String(255), nullable=False),
        sa.Column("linked_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "remote_name",
            "provider_id",
            name="uq_oauth_multiauth_remote_provider",
        ),
    )
    op.create_index(
        "ix_oauth_multiauth_mappings_user_id", "oauth_multiauth_mappings", ["user_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_oauth_multiauth_mappings_user_id", table_name="oauth_multiauth_mappings")
    op.drop_table("oauth_multiauth_mappings")
    op.drop_index("ix_user_groups_user_id", table_name="user_groups")
    op.drop_table("user_groups")
    op.drop_index("ix_users_name", table_name="users")
    op.drop_table("users")
