"""entity store v1 (memorials/family_groups/virtual_offerings/user_preferences)

Revision ID: 0001_entity_store
Revises:
Create Date: 2026-10-16
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_entity_store"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ---- tables ----
    op.create_table(
        "memorials",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("altar_level", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("relationship", sa.Text(), nullable=True),
        sa.Column("sync_status", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
    )
    op.create_index("ix_memorials_altar_level", "memorials", ["altar_level"], unique=False)
    op.create_index("ix_memorials_name", "memorials", ["name"], unique=False)
    op.create_index("ix_memorials_sync_status", "memorials", ["sync_status"], unique=False)

    op.create_table(
        "family_groups",
        sa.Column("group_id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("invite_code", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
    )
    op.create_index("ix_family_groups_invite_code", "family_groups", ["invite_code"], unique=True)

    op.create_table(
        "virtual_offerings",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("memorial_id", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("placed_by", sa.Text(), nullable=True),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
    )
    op.create_index("ix_virtual_offerings_memorial_id", "virtual_offerings", ["memorial_id"], unique=False)
    op.create_index("ix_virtual_offerings_type", "virtual_offerings", ["type"], unique=False)
    op.create_index("ix_virtual_offerings_placed_by", "virtual_offerings", ["placed_by"], unique=False)

    op.create_table(
        "user_preferences",
        sa.Column("user_id", sa.Text(), primary_key=True),
        sa.Column("updated_at", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("user_preferences")

    op.drop_index("ix_virtual_offerings_placed_by", table_name="virtual_offerings")
    op.drop_index("ix_virtual_offerings_type", table_name="virtual_offerings")
    op.drop_index("ix_virtual_offerings_memorial_id", table_name="virtual_offerings")
    op.drop_table("virtual_offerings")

    op.drop_index("ix_family_groups_invite_code", table_name="family_groups")
    op.drop_table("family_groups")

    op.drop_index("ix_memorials_sync_status", table_name="memorials")
    op.drop_index("ix_memorials_name", table_name="memorials")
    op.drop_index("ix_memorials_altar_level", table_name="memorials")
    op.drop_table("memorials")
