# src/tradearena/schemas/matchmaking.py

"""Pydantic schemas for the matchmaking queue."""

from datetime import datetime

from pydantic import Field

from tradearena.db.models import GameMode

from .common import CamelModel, UserRef


class JoinRequest(UserRef):
    """Payload for joining the ranked queue. Unknown modes are rejected with 422."""

    game_mode: GameMode


class LeaveRequest(UserRef):
    pass


class OpponentInfo(CamelModel):
    username: str
    rating: int


class QueueEntryRead(CamelModel):
    """A queue entry as seen by its owner."""

    user_id: str
    username: str
    game_mode: GameMode
    current_rating: int
    rating_min: int
    rating_max: int
    search_start_time: datetime
    expansions_applied: int
    status: str


class JoinResponse(CamelModel):
    """Either an immediate match or confirmation of a place in the queue."""

    matched: bool = False
    in_queue: bool = False
    already_in_queue: bool | None = None
    session_id: str | None = None
    opponent: OpponentInfo | None = None
    queue_entry: QueueEntryRead | None = None


class LeaveResponse(CamelModel):
    ok: bool = True
    removed: bool


class StatusResponse(CamelModel):
    in_queue: bool
    matched: bool | None = None
    session_id: str | None = None
    queue_entry: QueueEntryRead | None = None


class QueueStats(CamelModel):
    searching: int = Field(..., ge=0)
    matched: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    by_mode: dict[str, int] = Field(default_factory=dict)
    scanner_running: bool
