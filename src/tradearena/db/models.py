# src/tradearena/db/models.py

"""Database models for the TradeArena application."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, TypedDict

from sqlalchemy import (
    JSON,
    ForeignKey,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import (
    Mapped,
    declarative_base,
    declared_attr,
    mapped_column,
    relationship,
)

from tradearena.matchmaking.algorithm import expansions_due
from tradearena.utils import ensure_utc

Base = declarative_base()


# ===============================================
# Enumerations
# ===============================================


class GameMode(str, Enum):
    """Battle formats. Each mode carries its own independent rating."""

    SPRINT = "sprint"
    STANDARD = "standard"
    MARATHON = "marathon"


class QueueStatus(str, Enum):
    SEARCHING = "searching"
    MATCHED = "matched"


class SessionKind(str, Enum):
    """Ranked sessions come from the matchmaker and move ratings; friendly ones don't."""

    RANKED = "ranked"
    FRIENDLY = "friendly"


class SessionStatus(str, Enum):
    READY = "ready"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class BattleOutcome(str, Enum):
    """A single player's result in a completed battle."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


# Forward-only order of session states
SESSION_STATUS_ORDER = [
    SessionStatus.READY.value,
    SessionStatus.IN_PROGRESS.value,
    SessionStatus.COMPLETED.value,
]


# ===============================================
# Type Definitions for JSON Fields
# ===============================================


class ModeStats(TypedDict):
    """Win/loss record for one game mode."""

    wins: int
    losses: int
    draws: int
    games_played: int


class BattleResults(TypedDict):
    """Final valuation of one participant's portfolio."""

    final_portfolio_value: float
    total_return: float
    return_percentage: float
    trades_executed: int
    max_drawdown: float
    sharpe_ratio: float | None


# ===============================================
# Mixins for Common Columns
# ===============================================


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        default=None,
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=True,
    )


class VersionMixin:
    """Mixin providing optimistic locking via version column.

    Concurrent writers that loaded the same row version make the second
    flush fail with StaleDataError instead of silently overwriting.
    """

    version: Mapped[int] = mapped_column(default=1, nullable=False)

    @declared_attr.directive
    def __mapper_args__(cls) -> dict:
        return {"version_id_col": cls.__table__.c.version}


# ===============================================
# Identity (owned by the auth layer)
# ===============================================


class User(Base):
    """Read-only view of the identity store: id -> display name."""

    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# ===============================================
# Rating Store
# ===============================================


class RatingRecord(Base, TimestampMixin, VersionMixin):
    """A user's Elo ratings and battle record across all game modes."""

    __tablename__ = "rating_records"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String, unique=True, nullable=False, index=True
    )

    # One rating per game mode: {'sprint': 1200, 'standard': 1250, ...}
    ratings: Mapped[dict] = mapped_column(JSON, nullable=False)
    peak_ratings: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Per-mode records, see ModeStats
    stats: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Streaks span all modes; any non-win resets the current streak
    win_streak: Mapped[int] = mapped_column(default=0, nullable=False)
    longest_win_streak: Mapped[int] = mapped_column(default=0, nullable=False)
    total_battles: Mapped[int] = mapped_column(default=0, nullable=False)

    # Most recent first, capped at RECENT_GAMES_LIMIT
    recent_games: Mapped[list] = mapped_column(JSON, default=lambda: [])

    RECENT_GAMES_LIMIT = 10

    @classmethod
    def with_defaults(cls, user_id: str, default_rating: int) -> "RatingRecord":
        """Build a fresh record with the default rating in every mode."""
        modes = [mode.value for mode in GameMode]
        return cls(
            user_id=user_id,
            ratings={mode: default_rating for mode in modes},
            peak_ratings={mode: default_rating for mode in modes},
            stats={
                mode: {"wins": 0, "losses": 0, "draws": 0, "games_played": 0}
                for mode in modes
            },
            win_streak=0,
            longest_win_streak=0,
            total_battles=0,
            recent_games=[],
        )

    def rating_for(self, game_mode: GameMode | str) -> int:
        return int(self.ratings[GameMode(game_mode).value])

    @classmethod
    async def find_by_user(
        cls, db: AsyncSession, user_id: str
    ) -> "RatingRecord | None":
        """Find the rating record of a user."""
        result = await db.execute(select(cls).where(cls.user_id == user_id))
        return result.scalar_one_or_none()


# ===============================================
# Queue Store
# ===============================================


class QueueEntry(Base, TimestampMixin):
    """A player currently searching for (or just matched into) a ranked battle."""

    __tablename__ = "queue_entries"
    id: Mapped[int] = mapped_column(primary_key=True)
    # One entry per user at a time
    user_id: Mapped[str] = mapped_column(
        String, unique=True, nullable=False, index=True
    )
    username: Mapped[str] = mapped_column(String, nullable=False)
    game_mode: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # Snapshot taken at enqueue time
    current_rating: Mapped[int] = mapped_column(nullable=False)

    # Acceptable opponent ratings, inclusive on both ends
    rating_min: Mapped[int] = mapped_column(nullable=False)
    rating_max: Mapped[int] = mapped_column(nullable=False)

    search_start_time: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(timezone.utc), nullable=False, index=True
    )
    expansions_applied: Mapped[int] = mapped_column(default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String, default=QueueStatus.SEARCHING.value, nullable=False, index=True
    )
    matched_session_id: Mapped[str | None] = mapped_column(String, nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def expand_range(
        self, now: datetime, interval_ms: int, step: int
    ) -> int:
        """Widen the rating range for every expansion interval waited.

        Returns the number of points added to each side (0 if nothing was due).
        """
        waited = ensure_utc(now) - ensure_utc(self.search_start_time)
        due = expansions_due(waited.total_seconds() * 1000, interval_ms)
        if due <= self.expansions_applied:
            return 0

        widen_by = step * (due - self.expansions_applied)
        self.rating_min -= widen_by
        self.rating_max += widen_by
        self.expansions_applied = due
        return widen_by

    @classmethod
    async def find_by_user(cls, db: AsyncSession, user_id: str) -> "QueueEntry | None":
        """Find the queue entry of a user, whatever its status."""
        result = await db.execute(select(cls).where(cls.user_id == user_id))
        return result.scalar_one_or_none()


# ===============================================
# Session Store
# ===============================================


class BattleSession(Base, TimestampMixin, VersionMixin):
    """A head-to-head trading battle between exactly two players."""

    __tablename__ = "battle_sessions"
    id: Mapped[int] = mapped_column(primary_key=True)
    # Public identifier handed to clients, e.g. 'battle-9f2c...'
    session_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    game_mode: Mapped[str] = mapped_column(String, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String, default=SessionStatus.READY.value, nullable=False, index=True
    )

    starting_capital: Mapped[float] = mapped_column(nullable=False)
    market: Mapped[str] = mapped_column(String, nullable=False)

    # Simulated trading window over historical data (not wall-clock time)
    historical_data_start: Mapped[datetime] = mapped_column(nullable=False)
    historical_data_end: Mapped[datetime] = mapped_column(nullable=False)

    # Wall-clock lifecycle
    start_time: Mapped[datetime | None] = mapped_column(nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)

    # Winning user_id, or 'draw'
    winner: Mapped[str | None] = mapped_column(String, nullable=True)
    # 'higher-value' or 'equal-value'
    win_condition: Mapped[str | None] = mapped_column(String, nullable=True)

    participants: Mapped[List["BattleParticipant"]] = relationship(
        back_populates="battle",
        cascade="all, delete-orphan",
        order_by="BattleParticipant.slot",
    )

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED.value

    def participant_for(self, user_id: str) -> "BattleParticipant | None":
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def can_advance_to(self, status: SessionStatus) -> bool:
        """Status only ever moves forward: ready -> in-progress -> completed."""
        return SESSION_STATUS_ORDER.index(status.value) > SESSION_STATUS_ORDER.index(
            self.status
        )


class BattleParticipant(Base, TimestampMixin):
    """One side of a battle, with its rating snapshot and final results."""

    __tablename__ = "battle_participants"
    id: Mapped[int] = mapped_column(primary_key=True)
    battle_id: Mapped[int] = mapped_column(
        ForeignKey("battle_sessions.id"), nullable=False, index=True
    )
    # 1 or 2
    slot: Mapped[int] = mapped_column(nullable=False)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    username: Mapped[str] = mapped_column(String, nullable=False)

    starting_rating: Mapped[int] = mapped_column(nullable=False)
    current_rating: Mapped[int] = mapped_column(nullable=False)
    # Written exactly once, when a ranked battle is rated
    rating_delta: Mapped[int | None] = mapped_column(nullable=True)

    # See BattleResults; populated at completion
    results: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    battle: Mapped["BattleSession"] = relationship(back_populates="participants")
    trades: Mapped[List["Trade"]] = relationship(
        back_populates="participant",
        cascade="all, delete-orphan",
        order_by="Trade.id",
    )

    __table_args__ = (
        UniqueConstraint("battle_id", "slot", name="_battle_slot_uc"),
        UniqueConstraint("battle_id", "user_id", name="_battle_user_uc"),
    )


class Trade(Base):
    """An append-only trade submitted by a participant during a battle."""

    __tablename__ = "battle_trades"
    id: Mapped[int] = mapped_column(primary_key=True)
    participant_id: Mapped[int] = mapped_column(
        ForeignKey("battle_participants.id"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String, nullable=False)
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    shares: Mapped[float] = mapped_column(nullable=False)
    price: Mapped[float] = mapped_column(nullable=False)
    total_value: Mapped[float] = mapped_column(nullable=False)
    cash_after: Mapped[float] = mapped_column(nullable=False)
    portfolio_value_after: Mapped[float] = mapped_column(nullable=False)
    executed_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(timezone.utc), nullable=False
    )

    participant: Mapped["BattleParticipant"] = relationship(back_populates="trades")


# ===============================================
# Friend Challenges
# ===============================================


class FriendChallenge(Base, TimestampMixin):
    """A direct invitation to a friendly (unrated) battle."""

    __tablename__ = "friend_challenges"
    id: Mapped[int] = mapped_column(primary_key=True)
    challenge_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)

    challenger_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    challenger_username: Mapped[str] = mapped_column(String, nullable=False)
    challenger_rating: Mapped[int] = mapped_column(nullable=False)

    challenged_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    challenged_username: Mapped[str] = mapped_column(String, nullable=False)
    challenged_rating: Mapped[int] = mapped_column(nullable=False)

    game_mode: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, default=ChallengeStatus.PENDING.value, nullable=False, index=True
    )
    # Set when accepted and the battle is created
    session_id: Mapped[str | None] = mapped_column(String, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
