"""create village tables

Revision ID: 7c1e4a2b9d10
Revises:
Create Date: 2026-10-19 10:12:41.508113
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "7c1e4a2b9d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=32), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("village_name", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_players_username"), "players", ["username"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sessions_player_id"), "sessions", ["player_id"], unique=False)
    op.create_index(op.f("ix_sessions_token"), "sessions", ["token"], unique=True)

    op.create_table(
        "resource_counters",
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("wood", sa.Integer(), nullable=False),
        sa.Column("stone", sa.Integer(), nullable=False),
        sa.Column("food", sa.Integer(), nullable=False),
        sa.Column("iron", sa.Integer(), nullable=False),
        sa.Column("gold", sa.Integer(), nullable=False),
        sa.Column("elixir", sa.Integer(), nullable=False),
        sa.Column("gems", sa.Integer(), nullable=False),
        sa.Column("population_used", sa.Integer(), nullable=False),
        sa.Column("population_cap", sa.Integer(), nullable=False),
        sa.Column("last_accrual_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("player_id"),
    )

    op.create_table(
        "buildings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("type_key", sa.String(length=32), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("x", sa.Integer(), nullable=False),
        sa.Column("y", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id", "x", "y", name="uq_buildings_player_cell"),
    )
    op.create_index(op.f("ix_buildings_player_id"), "buildings", ["player_id"], unique=False)
    op.create_index(op.f("ix_buildings_type_key"), "buildings", ["type_key"], unique=False)

    op.create_table(
        "player_troops",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("troop_key", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id", "troop_key", name="uq_player_troops_player_troop"),
    )
    op.create_index(op.f("ix_player_troops_player_id"), "player_troops", ["player_id"], unique=False)

    op.create_table(
        "training_queue",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("troop_key", sa.String(length=32), nullable=False),
        sa.Column("building_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_training_queue_player_id"), "training_queue", ["player_id"], unique=False)
    op.create_index(op.f("ix_training_queue_building_id"), "training_queue", ["building_id"], unique=False)
    op.create_index(op.f("ix_training_queue_status"), "training_queue", ["status"], unique=False)

    op.create_table(
        "defense_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("building_id", sa.Integer(), nullable=False),
        sa.Column("troop_key", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["building_id"], ["buildings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("building_id", "troop_key", name="uq_defense_building_troop"),
    )
    op.create_index(op.f("ix_defense_assignments_player_id"), "defense_assignments", ["player_id"], unique=False)
    op.create_index(op.f("ix_defense_assignments_building_id"), "defense_assignments", ["building_id"], unique=False)

    op.create_table(
        "battle_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("attacker_id", sa.Integer(), nullable=False),
        sa.Column("defender_id", sa.Integer(), nullable=False),
        sa.Column("attack_power", sa.Integer(), nullable=False),
        sa.Column("defense_power", sa.Integer(), nullable=False),
        sa.Column("attacker_won", sa.Boolean(), nullable=False),
        sa.Column("stolen_wood", sa.Integer(), nullable=False),
        sa.Column("stolen_stone", sa.Integer(), nullable=False),
        sa.Column("stolen_food", sa.Integer(), nullable=False),
        sa.Column("stolen_iron", sa.Integer(), nullable=False),
        sa.Column("attacking_troops_json", sa.Text(), nullable=False),
        sa.Column("attacker_losses_json", sa.Text(), nullable=False),
        sa.Column("defender_losses_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["attacker_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["defender_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_battle_records_attacker_id"), "battle_records", ["attacker_id"], unique=False)
    op.create_index(op.f("ix_battle_records_defender_id"), "battle_records", ["defender_id"], unique=False)


def downgrade() -> None:
    op.drop_table("battle_records")
    op.drop_table("defense_assignments")
    op.drop_table("training_queue")
    op.drop_table("player_troops")
    op.drop_table("buildings")
    op.drop_table("resource_counters")
    op.drop_table("sessions")
    op.drop_table("players")
