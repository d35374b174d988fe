# src/tradearena/schemas/__init__.py

"""Pydantic schemas for API validation and serialization."""

from .challenge import ChallengeAccepted, ChallengeCreate, ChallengeRead
from .common import CamelModel, ModeStats, UserRef
from .matchmaking import (
    JoinRequest,
    JoinResponse,
    LeaveRequest,
    LeaveResponse,
    OpponentInfo,
    QueueEntryRead,
    QueueStats,
    StatusResponse,
)
from .pagination import PaginatedResponse
from .rating import LeaderboardEntry, RatingRead, RecentGame
from .session import (
    BattleResultsRead,
    CompleteRequest,
    CompleteResponse,
    ParticipantRead,
    SessionRead,
    TradeCreate,
    TradeRead,
)

__all__ = [
    # Common
    "CamelModel",
    "ModeStats",
    "UserRef",
    "PaginatedResponse",
    # Challenge
    "ChallengeAccepted",
    "ChallengeCreate",
    "ChallengeRead",
    # Matchmaking
    "JoinRequest",
    "JoinResponse",
    "LeaveRequest",
    "LeaveResponse",
    "OpponentInfo",
    "QueueEntryRead",
    "QueueStats",
    "StatusResponse",
    # Rating
    "LeaderboardEntry",
    "RatingRead",
    "RecentGame",
    # Session
    "BattleResultsRead",
    "CompleteRequest",
    "CompleteResponse",
    "ParticipantRead",
    "SessionRead",
    "TradeCreate",
    "TradeRead",
]
