# src/tradearena/schemas/rating.py

"""Rating and leaderboard schemas."""

from datetime import datetime

from pydantic import Field

from tradearena.db.models import BattleOutcome, GameMode

from .common import CamelModel, ModeStats


class RecentGame(CamelModel):
    session_id: str | None = None
    game_mode: GameMode
    result: BattleOutcome
    rating_change: int
    played_at: datetime


class RatingRead(CamelModel):
    """A user's ratings and record across every game mode."""

    user_id: str
    ratings: dict[str, int]
    peak_ratings: dict[str, int]
    stats: dict[str, ModeStats]
    win_streak: int
    longest_win_streak: int
    total_battles: int
    recent_games: list[RecentGame] = Field(default_factory=list)


class LeaderboardEntry(CamelModel):
    """Single entry in a game mode leaderboard.

    Attributes:
        rank: Position in leaderboard (1-indexed)
        rating: Rating in the requested mode
        stats: Record in the requested mode
    """

    rank: int = Field(..., ge=1, description="Position in leaderboard (1-indexed)")
    user_id: str
    username: str
    rating: int
    stats: ModeStats
    win_streak: int
    total_battles: int
