# src/tradearena/api/challenge.py

"""API endpoints for friend challenges."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.db.models import FriendChallenge
from tradearena.db.session import get_db
from tradearena.schemas import challenge as challenge_schema
from tradearena.schemas.common import UserRef
from tradearena.schemas.session import SessionRead
from tradearena.services import challenge_service, session_service

router = APIRouter(prefix="/challenges", tags=["Challenges"])


@router.post(
    "/",
    response_model=challenge_schema.ChallengeRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_challenge(
    challenge_in: challenge_schema.ChallengeCreate,
    db: AsyncSession = Depends(get_db),
) -> FriendChallenge:
    """
    Challenge another player to a friendly battle.

    Raises:
        422 Unprocessable Entity: If a player challenges themselves.
    """
    return await challenge_service.create_challenge(
        db,
        challenge_in.challenger_id,
        challenge_in.challenged_id,
        challenge_in.game_mode,
        message=challenge_in.message,
    )


@router.post(
    "/{challenge_id}/accept", response_model=challenge_schema.ChallengeAccepted
)
async def accept_challenge(
    challenge_id: str, user_in: UserRef, db: AsyncSession = Depends(get_db)
) -> challenge_schema.ChallengeAccepted:
    """
    Accept a challenge and create the friendly battle.

    Raises:
        403 Forbidden: If the user is not the one who was challenged.
        409 Conflict: If the challenge was already answered or has expired.
    """
    challenge, battle = await challenge_service.accept_challenge(
        db, challenge_id, user_in.user_id
    )
    battle = await session_service.get_session(db, battle.session_id)
    return challenge_schema.ChallengeAccepted(
        challenge=challenge_schema.ChallengeRead.model_validate(challenge),
        session=SessionRead.model_validate(battle),
    )


@router.post("/{challenge_id}/decline", response_model=challenge_schema.ChallengeRead)
async def decline_challenge(
    challenge_id: str, user_in: UserRef, db: AsyncSession = Depends(get_db)
) -> FriendChallenge:
    """Decline a pending challenge."""
    return await challenge_service.decline_challenge(db, challenge_id, user_in.user_id)


@router.get(
    "/user/{user_id}", response_model=list[challenge_schema.ChallengeRead]
)
async def list_challenges(
    user_id: str, db: AsyncSession = Depends(get_db)
) -> list[FriendChallenge]:
    """Open and accepted challenges the user sent or received."""
    return await challenge_service.list_challenges(db, user_id)
