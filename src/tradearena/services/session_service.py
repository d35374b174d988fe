# src/tradearena/services/session_service.py

"""Session Store operations: battle creation, trading, completion and history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tradearena.config import GAME_MODE_DURATIONS, Settings, get_settings
from tradearena.db import models
from tradearena.exceptions import (
    DuplicateParticipantError,
    InvalidTradeError,
    NotAParticipantError,
    SessionNotFoundError,
    SessionStateError,
)
from tradearena.rating import elo_engine
from tradearena.services import valuation
from tradearena.services.notifier import Notifier, notify_quietly
from tradearena.utils import ensure_utc, generate_public_id, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipantSeed:
    """Who joins a new battle, with the rating snapshot they bring."""

    user_id: str
    username: str
    rating: int


def historical_window(
    now: datetime, settings: Settings
) -> tuple[datetime, datetime]:
    """The slice of market history a battle is simulated over."""
    return (
        now - timedelta(days=settings.history_window_start_days),
        now - timedelta(days=settings.history_window_end_days),
    )


def _session_query():
    return select(models.BattleSession).options(
        selectinload(models.BattleSession.participants).selectinload(
            models.BattleParticipant.trades
        )
    )


async def create_session(
    db: AsyncSession,
    participants: list[ParticipantSeed],
    game_mode: models.GameMode | str,
    kind: models.SessionKind | str,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> models.BattleSession:
    """
    Create a battle in the 'ready' state for exactly two distinct players.

    Flushes but does not commit, so the matchmaker can commit the battle
    together with the queue updates that pair the players.
    """
    settings = settings or get_settings()
    now = now or utcnow()

    if len(participants) != 2:
        raise ValueError(f"A battle needs exactly 2 participants, got {len(participants)}")
    if participants[0].user_id == participants[1].user_id:
        raise DuplicateParticipantError(participants[0].user_id)

    window_start, window_end = historical_window(now, settings)
    battle = models.BattleSession(
        session_id=generate_public_id("battle"),
        game_mode=models.GameMode(game_mode).value,
        kind=models.SessionKind(kind).value,
        status=models.SessionStatus.READY.value,
        starting_capital=settings.starting_capital,
        market=settings.default_market,
        historical_data_start=window_start,
        historical_data_end=window_end,
        participants=[
            models.BattleParticipant(
                slot=slot,
                user_id=seed.user_id,
                username=seed.username,
                starting_rating=seed.rating,
                current_rating=seed.rating,
                trades=[],
            )
            for slot, seed in enumerate(participants, start=1)
        ],
    )
    db.add(battle)
    await db.flush()

    logger.info(
        "Created battle session",
        extra={
            "session_id": battle.session_id,
            "game_mode": battle.game_mode,
            "kind": battle.kind,
        },
    )
    return battle


async def get_session(db: AsyncSession, session_id: str) -> models.BattleSession:
    """Load a battle with its participants and trades.

    Raises:
        SessionNotFoundError: If no battle has this public ID
    """
    result = await db.execute(
        _session_query().where(models.BattleSession.session_id == session_id)
    )
    battle = result.scalar_one_or_none()
    if battle is None:
        raise SessionNotFoundError(session_id)
    return battle


async def start_session(
    db: AsyncSession, session_id: str, now: datetime | None = None
) -> models.BattleSession:
    """Move a ready battle to in-progress and start its clock."""
    battle = await get_session(db, session_id)

    if battle.status == models.SessionStatus.IN_PROGRESS.value:
        return battle
    if not battle.can_advance_to(models.SessionStatus.IN_PROGRESS):
        raise SessionStateError(session_id, battle.status, "start")

    now = now or utcnow()
    battle.status = models.SessionStatus.IN_PROGRESS.value
    battle.start_time = now
    battle.ends_at = now + timedelta(seconds=GAME_MODE_DURATIONS[battle.game_mode])
    await db.commit()

    logger.info("Battle started", extra={"session_id": session_id})
    return battle


async def record_trade(
    db: AsyncSession,
    session_id: str,
    user_id: str,
    action: models.TradeAction | str,
    symbol: str,
    shares: float,
    price: float,
    now: datetime | None = None,
) -> models.Trade:
    """
    Append a trade to a participant's log.

    Raises:
        SessionStateError: If the battle is not in progress or its time is up
        NotAParticipantError: If the user is not in this battle
        InvalidTradeError: If the portfolio cannot cover the trade
        StaleDataError: If another trade was committed since the battle was read
    """
    now = now or utcnow()
    action = models.TradeAction(action)
    symbol = symbol.upper()
    battle = await get_session(db, session_id)

    if battle.status != models.SessionStatus.IN_PROGRESS.value:
        raise SessionStateError(session_id, battle.status, "trade in")
    if battle.ends_at is not None and ensure_utc(now) > ensure_utc(battle.ends_at):
        raise SessionStateError(session_id, "expired", "trade in")

    participant = battle.participant_for(user_id)
    if participant is None:
        raise NotAParticipantError(session_id, user_id)

    if shares <= 0 or price <= 0:
        raise InvalidTradeError(user_id, "shares and price must be positive")

    portfolio = valuation.replay(participant.trades, battle.starting_capital)
    if action == models.TradeAction.BUY and not portfolio.can_buy(shares, price):
        raise InvalidTradeError(user_id, "insufficient cash")
    if action == models.TradeAction.SELL and not portfolio.can_sell(symbol, shares):
        raise InvalidTradeError(user_id, f"insufficient {symbol} shares")

    portfolio.apply(action.value, symbol, shares, price)
    marks = valuation.latest_prices(*(p.trades for p in battle.participants))
    marks[symbol] = price

    trade = models.Trade(
        action=action.value,
        symbol=symbol,
        shares=shares,
        price=price,
        total_value=round(shares * price, 2),
        cash_after=round(portfolio.cash, 2),
        portfolio_value_after=round(portfolio.market_value(marks), 2),
        executed_at=now,
    )
    participant.trades.append(trade)
    # Every trade moves the battle's version, so a writer that validated
    # against an older trade log fails with StaleDataError on commit.
    battle.updated_at = now
    await db.commit()

    logger.info(
        "Trade recorded",
        extra={
            "session_id": session_id,
            "user_id": user_id,
            "action": action.value,
            "symbol": symbol,
            "shares": shares,
        },
    )
    return trade


async def complete_session(
    db: AsyncSession,
    session_id: str,
    prices: dict[str, float] | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> tuple[models.BattleSession, str | None]:
    """
    Value both portfolios, decide the winner and, for ranked battles, update
    ratings.

    Results, status, both rating records and the participants' rating deltas
    are committed in a single transaction. Completing an already completed
    battle returns the stored outcome without touching anything.
    """
    settings = settings or get_settings()
    battle = await get_session(db, session_id)

    if battle.is_completed:
        logger.info("Battle already completed", extra={"session_id": session_id})
        return battle, battle.winner

    try:
        marks = valuation.latest_prices(*(p.trades for p in battle.participants))
        marks.update({symbol.upper(): price for symbol, price in (prices or {}).items()})

        results = {
            p.user_id: valuation.evaluate(p.trades, battle.starting_capital, marks)
            for p in battle.participants
        }
        for participant in battle.participants:
            participant.results = results[participant.user_id]

        battle.winner, battle.win_condition = valuation.decide_winner(results)
        battle.status = models.SessionStatus.COMPLETED.value
        battle.end_time = now or utcnow()

        deltas = None
        if battle.kind == models.SessionKind.RANKED.value:
            deltas = await elo_engine.update_ratings_for_session(db, battle, settings)

        await db.commit()
    except Exception as e:
        logger.error(
            "Failed to complete battle",
            extra={"session_id": session_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    logger.info(
        "Battle completed",
        extra={"session_id": session_id, "winner": battle.winner},
    )

    if notifier is not None and deltas:
        for participant in battle.participants:
            await notify_quietly(
                notifier.on_rating_change(
                    participant.user_id,
                    {
                        "session_id": battle.session_id,
                        "game_mode": battle.game_mode,
                        "rating": participant.current_rating,
                        "rating_delta": participant.rating_delta,
                    },
                ),
                event="rating_change",
                user_id=participant.user_id,
            )

    return battle, battle.winner


async def list_history(
    db: AsyncSession,
    user_id: str,
    game_mode: models.GameMode | str | None = None,
    limit: int = 20,
) -> list[models.BattleSession]:
    """Completed battles a user took part in, most recent first."""
    query = (
        _session_query()
        .join(models.BattleParticipant)
        .where(
            models.BattleParticipant.user_id == user_id,
            models.BattleSession.status == models.SessionStatus.COMPLETED.value,
        )
    )
    if game_mode is not None:
        query = query.where(
            models.BattleSession.game_mode == models.GameMode(game_mode).value
        )
    query = query.order_by(
        models.BattleSession.end_time.desc(), models.BattleSession.id.desc()
    ).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().unique().all())
