# src/tradearena/api/session.py

"""API endpoints for battle sessions: lifecycle, trading and history."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.db.models import BattleSession, GameMode, Trade
from tradearena.db.session import get_db
from tradearena.schemas import session as session_schema
from tradearena.services import session_service
from tradearena.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# Declared before /{session_id} so "history" is never taken for an ID
@router.get("/history/{user_id}", response_model=list[session_schema.SessionRead])
async def read_history(
    user_id: str,
    game_mode: GameMode | None = Query(None, description="Filter by game mode"),
    limit: int = Query(20, ge=1, le=100, description="Max battles to return"),
    db: AsyncSession = Depends(get_db),
) -> list[BattleSession]:
    """Completed battles of a user, most recent first."""
    return await session_service.list_history(db, user_id, game_mode, limit)


@router.get("/{session_id}", response_model=session_schema.SessionRead)
async def read_session(
    session_id: str, db: AsyncSession = Depends(get_db)
) -> BattleSession:
    """Retrieve a battle with both participants and their trades."""
    return await session_service.get_session(db, session_id)


@router.post("/{session_id}/start", response_model=session_schema.SessionRead)
async def start_session(
    session_id: str, db: AsyncSession = Depends(get_db)
) -> BattleSession:
    """
    Start the battle clock.

    Raises:
        404 Not Found: If the battle doesn't exist.
        409 Conflict: If the battle is already completed.
    """
    return await session_service.start_session(db, session_id)


@router.post(
    "/{session_id}/trades",
    response_model=session_schema.TradeRead,
    status_code=status.HTTP_201_CREATED,
)
async def submit_trade(
    session_id: str,
    trade_in: session_schema.TradeCreate,
    db: AsyncSession = Depends(get_db),
) -> Trade:
    """
    Record a buy or sell for one participant.

    Raises:
        403 Forbidden: If the user is not in this battle.
        409 Conflict: If the battle is not in progress or its time is up.
        422 Unprocessable Entity: If cash or holdings don't cover the trade.
    """
    return await session_service.record_trade(
        db,
        session_id,
        trade_in.user_id,
        trade_in.action,
        trade_in.symbol,
        trade_in.shares,
        trade_in.price,
    )


@router.post("/{session_id}/complete", response_model=session_schema.CompleteResponse)
async def complete_session(
    session_id: str,
    complete_in: session_schema.CompleteRequest | None = None,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> session_schema.CompleteResponse:
    """
    Finish a battle: value both portfolios, pick the winner and, for ranked
    battles, update both players' ratings.

    Completing an already completed battle returns the stored result.
    """
    prices = complete_in.prices if complete_in is not None else None
    battle, winner = await session_service.complete_session(
        db, session_id, prices=prices, notifier=notifier
    )
    return session_schema.CompleteResponse(
        session=session_schema.SessionRead.model_validate(battle),
        winner=winner,
    )
