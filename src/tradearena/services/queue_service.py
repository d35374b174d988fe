# src/tradearena/services/queue_service.py

"""Queue Store operations for ranked matchmaking."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.config import Settings, get_settings
from tradearena.db import models
from tradearena.exceptions import AlreadyQueuedError
from tradearena.matchmaking.algorithm import QueueCandidate
from tradearena.services import identity_service, rating_service
from tradearena.utils import utcnow

logger = logging.getLogger(__name__)


def to_candidate(entry: models.QueueEntry) -> QueueCandidate:
    """Snapshot a queue row for the pairing algorithm."""
    return QueueCandidate(
        entry_id=entry.id,
        user_id=entry.user_id,
        username=entry.username,
        game_mode=entry.game_mode,
        rating=entry.current_rating,
        rating_min=entry.rating_min,
        rating_max=entry.rating_max,
        search_start_time=entry.search_start_time,
    )


async def _release_stale_match(db: AsyncSession, entry: models.QueueEntry) -> bool:
    """
    Drop a matched entry whose battle is already over so the user can queue
    again before the grace window purges it. Returns True if it was dropped.
    """
    status = (
        await db.execute(
            select(models.BattleSession.status).where(
                models.BattleSession.session_id == entry.matched_session_id
            )
        )
    ).scalar_one_or_none()

    if status is not None and status != models.SessionStatus.COMPLETED.value:
        return False

    await db.delete(entry)
    await db.flush()
    return True


async def enqueue(
    db: AsyncSession,
    user_id: str,
    game_mode: models.GameMode | str,
    rating: int | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> models.QueueEntry:
    """
    Put a user in the matchmaking queue for a game mode.

    The rating defaults to the user's stored rating for that mode (creating
    the rating record on first use). The acceptable opponent range starts at
    rating +/- INITIAL_RATING_RANGE.

    Raises:
        AlreadyQueuedError: If the user is already searching, or was matched
            into a battle that has not finished yet. The existing entry is
            attached to the error.
    """
    settings = settings or get_settings()
    mode = models.GameMode(game_mode).value

    existing = await models.QueueEntry.find_by_user(db, user_id)
    if existing is not None:
        if existing.status == models.QueueStatus.SEARCHING.value:
            raise AlreadyQueuedError(user_id, existing)
        if not await _release_stale_match(db, existing):
            raise AlreadyQueuedError(user_id, existing)

    if rating is None:
        record = await rating_service.get_or_create_rating(db, user_id, settings)
        rating = record.rating_for(mode)

    entry = models.QueueEntry(
        user_id=user_id,
        username=await identity_service.resolve_username(db, user_id),
        game_mode=mode,
        current_rating=rating,
        rating_min=rating - settings.initial_rating_range,
        rating_max=rating + settings.initial_rating_range,
        search_start_time=now or utcnow(),
        expansions_applied=0,
        status=models.QueueStatus.SEARCHING.value,
    )
    db.add(entry)

    try:
        await db.commit()
    except IntegrityError:
        # Another request for the same user won the unique constraint race
        await db.rollback()
        raise AlreadyQueuedError(user_id)

    logger.info(
        "User joined matchmaking queue",
        extra={"user_id": user_id, "game_mode": mode, "rating": rating},
    )
    return entry


async def dequeue(db: AsyncSession, user_id: str) -> bool:
    """Remove a user's queue entry. Returns True if one existed."""
    result = await db.execute(
        delete(models.QueueEntry).where(models.QueueEntry.user_id == user_id)
    )
    await db.commit()
    removed = bool(result.rowcount)
    if removed:
        logger.info("User left matchmaking queue", extra={"user_id": user_id})
    return removed


async def get_entry(db: AsyncSession, user_id: str) -> models.QueueEntry | None:
    return await models.QueueEntry.find_by_user(db, user_id)


async def list_searching(
    db: AsyncSession, game_mode: models.GameMode | str | None = None
) -> list[models.QueueEntry]:
    """All searching entries, oldest search first (FIFO)."""
    query = select(models.QueueEntry).where(
        models.QueueEntry.status == models.QueueStatus.SEARCHING.value
    )
    if game_mode is not None:
        query = query.where(
            models.QueueEntry.game_mode == models.GameMode(game_mode).value
        )
    query = query.order_by(
        models.QueueEntry.search_start_time, models.QueueEntry.id
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def claim_entries(
    db: AsyncSession, entry_ids: list[int], session_id: str, now: datetime
) -> bool:
    """
    Flip entries to matched, but only if every one of them is still searching.

    This is the commit-time re-validation for a pair: if a player left the
    queue or was matched by someone else since the pool was read, fewer rows
    match and the caller must roll back. Does not commit.
    """
    stmt = (
        update(models.QueueEntry)
        .where(
            models.QueueEntry.id.in_(entry_ids),
            models.QueueEntry.status == models.QueueStatus.SEARCHING.value,
        )
        .values(
            status=models.QueueStatus.MATCHED.value,
            matched_session_id=session_id,
            matched_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == len(entry_ids)


async def purge_matched(db: AsyncSession, older_than: datetime) -> int:
    """Delete matched entries whose grace window ended before `older_than`."""
    result = await db.execute(
        delete(models.QueueEntry)
        .where(
            models.QueueEntry.status == models.QueueStatus.MATCHED.value,
            models.QueueEntry.matched_at < older_than,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def queue_stats(db: AsyncSession) -> dict:
    """Counts of queue entries by status, and of searching entries by mode."""
    by_status = dict(
        (
            await db.execute(
                select(models.QueueEntry.status, func.count()).group_by(
                    models.QueueEntry.status
                )
            )
        ).all()
    )
    by_mode = dict(
        (
            await db.execute(
                select(models.QueueEntry.game_mode, func.count())
                .where(models.QueueEntry.status == models.QueueStatus.SEARCHING.value)
                .group_by(models.QueueEntry.game_mode)
            )
        ).all()
    )
    searching = by_status.get(models.QueueStatus.SEARCHING.value, 0)
    matched = by_status.get(models.QueueStatus.MATCHED.value, 0)
    return {
        "searching": searching,
        "matched": matched,
        "total": searching + matched,
        "by_mode": by_mode,
    }
