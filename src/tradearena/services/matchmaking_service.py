# src/tradearena/services/matchmaking_service.py

"""Turning compatible queue entries into ranked battles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.config import Settings, get_settings
from tradearena.db import models
from tradearena.matchmaking.algorithm import QueueCandidate, find_opponent
from tradearena.services import queue_service, session_service
from tradearena.services.notifier import Notifier, notify_quietly
from tradearena.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    """A committed pairing, seen from the player who asked for it."""

    session_id: str
    opponent: QueueCandidate


async def commit_pair(
    db: AsyncSession,
    first: QueueCandidate,
    second: QueueCandidate,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> models.BattleSession | None:
    """
    Create a ranked battle for two candidates and mark both entries matched.

    The battle and both queue updates commit together. If either entry is no
    longer searching (the player left, or another scan took them), or any
    write fails, everything is rolled back, both players keep searching and
    None is returned.
    """
    settings = settings or get_settings()
    now = now or utcnow()

    try:
        battle = await session_service.create_session(
            db,
            participants=[
                session_service.ParticipantSeed(first.user_id, first.username, first.rating),
                session_service.ParticipantSeed(second.user_id, second.username, second.rating),
            ],
            game_mode=first.game_mode,
            kind=models.SessionKind.RANKED,
            settings=settings,
            now=now,
        )
        claimed = await queue_service.claim_entries(
            db, [first.entry_id, second.entry_id], battle.session_id, now
        )
        if not claimed:
            await db.rollback()
            logger.info(
                "Pair abandoned: an entry is no longer searching",
                extra={"user_ids": [first.user_id, second.user_id]},
            )
            return None
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to create battle for pair",
            extra={"user_ids": [first.user_id, second.user_id], "error": str(e)},
            exc_info=True,
        )
        return None

    logger.info(
        "Matched %s (%d) vs %s (%d) - %s",
        first.username,
        first.rating,
        second.username,
        second.rating,
        first.game_mode.upper(),
        extra={"session_id": battle.session_id},
    )
    return battle


async def announce_match(
    notifier: Notifier,
    session_id: str,
    first: QueueCandidate,
    second: QueueCandidate,
) -> None:
    """Tell both players who they are facing."""
    for player, opponent in ((first, second), (second, first)):
        await notify_quietly(
            notifier.on_match_found(
                player.user_id,
                {
                    "session_id": session_id,
                    "opponent_username": opponent.username,
                    "opponent_rating": opponent.rating,
                },
            ),
            event="match_found",
            user_id=player.user_id,
        )


async def find_match_now(
    db: AsyncSession,
    entry: models.QueueEntry,
    notifier: Notifier,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> MatchResult | None:
    """
    Try to pair a freshly queued player against the current pool right away
    instead of waiting for the next scan.
    """
    candidate = queue_service.to_candidate(entry)
    pool = [
        queue_service.to_candidate(other)
        for other in await queue_service.list_searching(db, entry.game_mode)
    ]

    opponent = find_opponent(candidate, pool, matched=set())
    if opponent is None:
        return None

    battle = await commit_pair(db, candidate, opponent, settings=settings, now=now)
    if battle is None:
        return None

    await announce_match(notifier, battle.session_id, candidate, opponent)
    return MatchResult(session_id=battle.session_id, opponent=opponent)
