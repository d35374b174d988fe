# src/tradearena/schemas/session.py

"""Pydantic schemas for battle sessions."""

from datetime import datetime

from pydantic import Field

from tradearena.db.models import GameMode, SessionKind, SessionStatus, TradeAction

from .common import CamelModel, UserRef

# ===============================================
# == Trade Schemas
# ===============================================


class TradeCreate(UserRef):
    """A trade submitted by one side of an in-progress battle."""

    action: TradeAction
    symbol: str = Field(..., min_length=1, max_length=12)
    shares: float = Field(..., gt=0)
    price: float = Field(..., gt=0)


class TradeRead(CamelModel):
    id: int
    action: TradeAction
    symbol: str
    shares: float
    price: float
    total_value: float
    cash_after: float
    portfolio_value_after: float
    executed_at: datetime


# ===============================================
# == Participant Schemas
# ===============================================


class BattleResultsRead(CamelModel):
    final_portfolio_value: float
    total_return: float
    return_percentage: float
    trades_executed: int
    max_drawdown: float
    sharpe_ratio: float | None = None


class ParticipantRead(CamelModel):
    slot: int
    user_id: str
    username: str
    starting_rating: int
    current_rating: int
    # Only set once a ranked battle has been rated
    rating_delta: int | None = None
    results: BattleResultsRead | None = None
    trades: list[TradeRead] = Field(default_factory=list)


# ===============================================
# == Session Schemas
# ===============================================


class SessionRead(CamelModel):
    session_id: str
    game_mode: GameMode
    kind: SessionKind
    status: SessionStatus
    starting_capital: float
    market: str
    historical_data_start: datetime
    historical_data_end: datetime
    start_time: datetime | None = None
    ends_at: datetime | None = None
    end_time: datetime | None = None
    # Winning user_id, or 'draw'
    winner: str | None = None
    win_condition: str | None = None
    participants: list[ParticipantRead]


class CompleteRequest(CamelModel):
    """Optional closing prices used to mark holdings to market."""

    prices: dict[str, float] | None = Field(
        default=None,
        description="Symbol -> closing price. Unlisted symbols use their last trade price.",
    )


class CompleteResponse(CamelModel):
    session: SessionRead
    winner: str | None
