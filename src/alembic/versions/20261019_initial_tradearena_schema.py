"""Initial TradeArena schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates the queue, rating, battle session and challenge stores:
- users (read-only mirror of the identity store)
- rating_records with a version column for optimistic locking
- queue_entries, one row per user (unique user_id)
- battle_sessions / battle_participants / battle_trades
- friend_challenges
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create all TradeArena tables."""
    # === USERS ===
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    # === RATING_RECORDS ===
    op.create_table(
        "rating_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("ratings", sa.JSON(), nullable=False),
        sa.Column("peak_ratings", sa.JSON(), nullable=False),
        sa.Column("stats", sa.JSON(), nullable=False),
        sa.Column("win_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "longest_win_streak", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("total_battles", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("recent_games", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index(
        "ix_rating_records_user_id", "rating_records", ["user_id"], unique=True
    )

    # === QUEUE_ENTRIES ===
    op.create_table(
        "queue_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("game_mode", sa.String(), nullable=False),
        sa.Column("current_rating", sa.Integer(), nullable=False),
        sa.Column("rating_min", sa.Integer(), nullable=False),
        sa.Column("rating_max", sa.Integer(), nullable=False),
        sa.Column("search_start_time", sa.DateTime(), nullable=False),
        sa.Column(
            "expansions_applied", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("status", sa.String(), nullable=False, server_default="searching"),
        sa.Column("matched_session_id", sa.String(), nullable=True),
        sa.Column("matched_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_queue_entries_user_id", "queue_entries", ["user_id"], unique=True
    )
    op.create_index("ix_queue_entries_game_mode", "queue_entries", ["game_mode"])
    op.create_index(
        "ix_queue_entries_search_start_time", "queue_entries", ["search_start_time"]
    )
    op.create_index("ix_queue_entries_status", "queue_entries", ["status"])

    # === BATTLE_SESSIONS ===
    op.create_table(
        "battle_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.String(), nullable=False, unique=True),
        sa.Column("game_mode", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="ready"),
        sa.Column("starting_capital", sa.Float(), nullable=False),
        sa.Column("market", sa.String(), nullable=False),
        sa.Column("historical_data_start", sa.DateTime(), nullable=False),
        sa.Column("historical_data_end", sa.DateTime(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=True),
        sa.Column("ends_at", sa.DateTime(), nullable=True),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("winner", sa.String(), nullable=True),
        sa.Column("win_condition", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_battle_sessions_game_mode", "battle_sessions", ["game_mode"])
    op.create_index("ix_battle_sessions_kind", "battle_sessions", ["kind"])
    op.create_index("ix_battle_sessions_status", "battle_sessions", ["status"])

    # === BATTLE_PARTICIPANTS ===
    op.create_table(
        "battle_participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "battle_id",
            sa.Integer(),
            sa.ForeignKey("battle_sessions.id"),
            nullable=False,
        ),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("starting_rating", sa.Integer(), nullable=False),
        sa.Column("current_rating", sa.Integer(), nullable=False),
        sa.Column("rating_delta", sa.Integer(), nullable=True),
        sa.Column("results", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("battle_id", "slot", name="_battle_slot_uc"),
        sa.UniqueConstraint("battle_id", "user_id", name="_battle_user_uc"),
    )
    op.create_index(
        "ix_battle_participants_battle_id", "battle_participants", ["battle_id"]
    )
    op.create_index(
        "ix_battle_participants_user_id", "battle_participants", ["user_id"]
    )

    # === BATTLE_TRADES ===
    op.create_table(
        "battle_trades",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "participant_id",
            sa.Integer(),
            sa.ForeignKey("battle_participants.id"),
            nullable=False,
        ),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("symbol", sa.String(), nullable=False),
        sa.Column("shares", sa.Float(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("total_value", sa.Float(), nullable=False),
        sa.Column("cash_after", sa.Float(), nullable=False),
        sa.Column("portfolio_value_after", sa.Float(), nullable=False),
        sa.Column("executed_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_battle_trades_participant_id", "battle_trades", ["participant_id"]
    )

    # === FRIEND_CHALLENGES ===
    op.create_table(
        "friend_challenges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("challenge_id", sa.String(), nullable=False, unique=True),
        sa.Column("challenger_id", sa.String(), nullable=False),
        sa.Column("challenger_username", sa.String(), nullable=False),
        sa.Column("challenger_rating", sa.Integer(), nullable=False),
        sa.Column("challenged_id", sa.String(), nullable=False),
        sa.Column("challenged_username", sa.String(), nullable=False),
        sa.Column("challenged_rating", sa.Integer(), nullable=False),
        sa.Column("game_mode", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("session_id", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_friend_challenges_challenger_id", "friend_challenges", ["challenger_id"]
    )
    op.create_index(
        "ix_friend_challenges_challenged_id", "friend_challenges", ["challenged_id"]
    )
    op.create_index("ix_friend_challenges_status", "friend_challenges", ["status"])
    op.create_index(
        "ix_friend_challenges_expires_at", "friend_challenges", ["expires_at"]
    )


def downgrade() -> None:
    """Drop all TradeArena tables."""
    op.drop_table("friend_challenges")
    op.drop_table("battle_trades")
    op.drop_table("battle_participants")
    op.drop_table("battle_sessions")
    op.drop_table("queue_entries")
    op.drop_table("rating_records")
    op.drop_table("users")
