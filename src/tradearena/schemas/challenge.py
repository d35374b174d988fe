# src/tradearena/schemas/challenge.py

"""Pydantic schemas for friend challenges."""

from datetime import datetime

from pydantic import Field

from tradearena.db.models import ChallengeStatus, GameMode

from .common import CamelModel
from .session import SessionRead


class ChallengeCreate(CamelModel):
    challenger_id: str = Field(..., min_length=1)
    challenged_id: str = Field(..., min_length=1)
    game_mode: GameMode
    message: str | None = Field(default=None, max_length=280)


class ChallengeRead(CamelModel):
    challenge_id: str
    challenger_id: str
    challenger_username: str
    challenger_rating: int
    challenged_id: str
    challenged_username: str
    challenged_rating: int
    game_mode: GameMode
    message: str | None = None
    status: ChallengeStatus
    session_id: str | None = None
    expires_at: datetime
    created_at: datetime


class ChallengeAccepted(CamelModel):
    challenge: ChallengeRead
    session: SessionRead
