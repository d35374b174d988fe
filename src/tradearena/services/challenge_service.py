# src/tradearena/services/challenge_service.py

"""Friend challenges: direct invitations that start friendly battles."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from tradearena.config import Settings, get_settings
from tradearena.db import models
from tradearena.exceptions import (
    ChallengeNotFoundError,
    ChallengeStateError,
    NotChallengedUserError,
    SelfChallengeError,
)
from tradearena.services import identity_service, rating_service, session_service
from tradearena.utils import ensure_utc, generate_public_id, utcnow

logger = logging.getLogger(__name__)

CHALLENGE_TTL = timedelta(hours=24)


async def create_challenge(
    db: AsyncSession,
    challenger_id: str,
    challenged_id: str,
    game_mode: models.GameMode | str,
    message: str | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> models.FriendChallenge:
    """Invite another player to a friendly battle in the given mode."""
    if challenger_id == challenged_id:
        raise SelfChallengeError(challenger_id)

    settings = settings or get_settings()
    now = now or utcnow()
    mode = models.GameMode(game_mode)

    challenger_rating = await rating_service.get_or_create_rating(
        db, challenger_id, settings
    )
    challenged_rating = await rating_service.get_or_create_rating(
        db, challenged_id, settings
    )

    challenge = models.FriendChallenge(
        challenge_id=generate_public_id("challenge"),
        challenger_id=challenger_id,
        challenger_username=await identity_service.resolve_username(db, challenger_id),
        challenger_rating=challenger_rating.rating_for(mode),
        challenged_id=challenged_id,
        challenged_username=await identity_service.resolve_username(db, challenged_id),
        challenged_rating=challenged_rating.rating_for(mode),
        game_mode=mode.value,
        message=message,
        status=models.ChallengeStatus.PENDING.value,
        expires_at=now + CHALLENGE_TTL,
    )
    db.add(challenge)
    await db.commit()

    logger.info(
        "Challenge created",
        extra={
            "challenge_id": challenge.challenge_id,
            "challenger_id": challenger_id,
            "challenged_id": challenged_id,
        },
    )
    return challenge


async def _get_challenge(db: AsyncSession, challenge_id: str) -> models.FriendChallenge:
    result = await db.execute(
        select(models.FriendChallenge).where(
            models.FriendChallenge.challenge_id == challenge_id
        )
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise ChallengeNotFoundError(challenge_id)
    return challenge


def _ensure_answerable(
    challenge: models.FriendChallenge, user_id: str, now: datetime
) -> None:
    if challenge.challenged_id != user_id:
        raise NotChallengedUserError(challenge.challenge_id, user_id)
    if challenge.status != models.ChallengeStatus.PENDING.value:
        raise ChallengeStateError(challenge.challenge_id, challenge.status)
    if ensure_utc(now) > ensure_utc(challenge.expires_at):
        raise ChallengeStateError(challenge.challenge_id, "expired")


async def _answer(
    db: AsyncSession,
    challenge: models.FriendChallenge,
    status: models.ChallengeStatus,
) -> None:
    """
    Move a challenge out of 'pending', but only if it is still pending.

    Another request may have answered it since it was read: then no row
    matches and the challenge is reported as already answered. Does not
    commit.
    """
    result = await db.execute(
        update(models.FriendChallenge)
        .where(
            models.FriendChallenge.id == challenge.id,
            models.FriendChallenge.status == models.ChallengeStatus.PENDING.value,
        )
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ChallengeStateError(challenge.challenge_id, "already answered")
    set_committed_value(challenge, "status", status.value)


async def accept_challenge(
    db: AsyncSession,
    challenge_id: str,
    user_id: str,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> tuple[models.FriendChallenge, models.BattleSession]:
    """Accept a pending challenge and create the friendly battle."""
    now = now or utcnow()
    challenge = await _get_challenge(db, challenge_id)
    _ensure_answerable(challenge, user_id, now)
    await _answer(db, challenge, models.ChallengeStatus.ACCEPTED)

    battle = await session_service.create_session(
        db,
        participants=[
            session_service.ParticipantSeed(
                challenge.challenger_id,
                challenge.challenger_username,
                challenge.challenger_rating,
            ),
            session_service.ParticipantSeed(
                challenge.challenged_id,
                challenge.challenged_username,
                challenge.challenged_rating,
            ),
        ],
        game_mode=challenge.game_mode,
        kind=models.SessionKind.FRIENDLY,
        settings=settings,
        now=now,
    )
    challenge.session_id = battle.session_id
    await db.commit()

    logger.info(
        "Challenge accepted",
        extra={"challenge_id": challenge_id, "session_id": battle.session_id},
    )
    return challenge, battle


async def decline_challenge(
    db: AsyncSession, challenge_id: str, user_id: str, now: datetime | None = None
) -> models.FriendChallenge:
    challenge = await _get_challenge(db, challenge_id)
    _ensure_answerable(challenge, user_id, now or utcnow())

    await _answer(db, challenge, models.ChallengeStatus.DECLINED)
    await db.commit()
    logger.info("Challenge declined", extra={"challenge_id": challenge_id})
    return challenge


async def list_challenges(
    db: AsyncSession, user_id: str
) -> list[models.FriendChallenge]:
    """Pending and accepted challenges a user sent or received, newest first."""
    result = await db.execute(
        select(models.FriendChallenge)
        .where(
            or_(
                models.FriendChallenge.challenger_id == user_id,
                models.FriendChallenge.challenged_id == user_id,
            ),
            models.FriendChallenge.status.in_(
                [
                    models.ChallengeStatus.PENDING.value,
                    models.ChallengeStatus.ACCEPTED.value,
                ]
            ),
        )
        .order_by(models.FriendChallenge.created_at.desc(), models.FriendChallenge.id.desc())
    )
    return list(result.scalars().all())
