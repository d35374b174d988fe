# src/tradearena/services/rating_service.py

"""Rating Store operations: lazy creation, delta write-back, leaderboards."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.config import Settings, get_settings
from tradearena.db import models
from tradearena.utils import utcnow

logger = logging.getLogger(__name__)


async def get_or_create_rating(
    db: AsyncSession, user_id: str, settings: Settings | None = None
) -> models.RatingRecord:
    """
    Retrieves a user's rating record, creating it with the default rating in
    every game mode if it doesn't exist.
    """
    record = await models.RatingRecord.find_by_user(db, user_id)
    if record is None:
        settings = settings or get_settings()
        record = models.RatingRecord.with_defaults(user_id, settings.default_rating)
        db.add(record)
        # Flush only; the caller owns the transaction.
        await db.flush()
        logger.debug("Created new RatingRecord", extra={"user_id": user_id})
    return record


async def apply_rating_delta(
    db: AsyncSession,
    user_id: str,
    game_mode: models.GameMode | str,
    delta: int,
    outcome: models.BattleOutcome | str,
    session_id: str | None = None,
    settings: Settings | None = None,
) -> models.RatingRecord:
    """
    Apply one battle's result to a user's rating record.

    The rating is clamped at MIN_RATING. Stats, streaks, totals, peaks and
    the recent-games list are updated alongside. Only flushes.
    """
    settings = settings or get_settings()
    mode = models.GameMode(game_mode).value
    outcome = models.BattleOutcome(outcome)

    record = await get_or_create_rating(db, user_id, settings)

    # JSON columns are only persisted on reassignment, so always copy.
    ratings = dict(record.ratings)
    new_rating = max(
        settings.min_rating, ratings.get(mode, settings.default_rating) + delta
    )
    ratings[mode] = new_rating
    record.ratings = ratings

    peaks = dict(record.peak_ratings)
    if new_rating > peaks.get(mode, settings.default_rating):
        peaks[mode] = new_rating
    record.peak_ratings = peaks

    stats = {name: dict(values) for name, values in record.stats.items()}
    mode_stats = stats.setdefault(
        mode, {"wins": 0, "losses": 0, "draws": 0, "games_played": 0}
    )
    mode_stats["games_played"] += 1
    if outcome == models.BattleOutcome.WIN:
        mode_stats["wins"] += 1
    elif outcome == models.BattleOutcome.LOSS:
        mode_stats["losses"] += 1
    else:
        mode_stats["draws"] += 1
    record.stats = stats

    if outcome == models.BattleOutcome.WIN:
        record.win_streak += 1
        record.longest_win_streak = max(record.longest_win_streak, record.win_streak)
    else:
        record.win_streak = 0

    record.total_battles += 1

    recent = {
        "session_id": session_id,
        "game_mode": mode,
        "result": outcome.value,
        "rating_change": delta,
        "played_at": utcnow().isoformat(),
    }
    record.recent_games = [recent] + list(record.recent_games or [])[
        : models.RatingRecord.RECENT_GAMES_LIMIT - 1
    ]

    db.add(record)
    await db.flush()
    logger.debug(
        "Applied rating delta",
        extra={
            "user_id": user_id,
            "game_mode": mode,
            "delta": delta,
            "new_rating": new_rating,
        },
    )
    return record


async def get_leaderboard(
    db: AsyncSession,
    game_mode: models.GameMode | str,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[tuple[models.RatingRecord, str | None]], int]:
    """
    Page through rating records ordered by one mode's rating, best first.

    Returns (rows, total) where each row is (record, username or None).
    """
    mode = models.GameMode(game_mode).value
    rating_column = models.RatingRecord.ratings[mode].as_integer()

    total = (
        await db.execute(select(func.count()).select_from(models.RatingRecord))
    ).scalar_one()

    query = (
        select(models.RatingRecord, models.User.username)
        .outerjoin(models.User, models.User.id == models.RatingRecord.user_id)
        .order_by(rating_column.desc(), models.RatingRecord.id)
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    rows = [(record, username) for record, username in result.all()]
    return rows, total
