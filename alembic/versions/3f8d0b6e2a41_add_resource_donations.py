"""add resource donations

Revision ID: 3f8d0b6e2a41
Revises: 7c1e4a2b9d10
Create Date: 2026-10-19 16:40:03.771902
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3f8d0b6e2a41"
down_revision: Union[str, Sequence[str], None] = "7c1e4a2b9d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "resource_donations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("donor_id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("resource_type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["donor_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["recipient_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_resource_donations_donor_id"), "resource_donations", ["donor_id"], unique=False)
    op.create_index(op.f("ix_resource_donations_recipient_id"), "resource_donations", ["recipient_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_resource_donations_recipient_id"), table_name="resource_donations")
    op.drop_index(op.f("ix_resource_donations_donor_id"), table_name="resource_donations")
    op.drop_table("resource_donations")
