# src/tradearena/api/matchmaking.py

"""API endpoints for the ranked matchmaking queue."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.db.models import QueueStatus
from tradearena.db.session import get_db
from tradearena.exceptions import AlreadyQueuedError
from tradearena.schemas import matchmaking as mm_schema
from tradearena.services import matchmaking_service, queue_service
from tradearena.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/matchmaking", tags=["Matchmaking"])


@router.post(
    "/join",
    response_model=mm_schema.JoinResponse,
    response_model_exclude_none=True,
)
async def join_queue(
    join_in: mm_schema.JoinRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> mm_schema.JoinResponse:
    """
    Join the ranked queue for a game mode.

    The player is queued first and then immediately checked against everyone
    already searching. If an opponent fits, the battle is created right away;
    otherwise the background scan keeps looking.

    Joining again while already searching is not an error: the existing
    entry is returned with `alreadyInQueue`.

    Raises:
        409 Conflict: If the user is in a battle that has not finished yet.
    """
    try:
        entry = await queue_service.enqueue(db, join_in.user_id, join_in.game_mode)
    except AlreadyQueuedError as e:
        existing = e.entry
        if existing is None or existing.status != QueueStatus.SEARCHING.value:
            raise
        return mm_schema.JoinResponse(
            in_queue=True,
            already_in_queue=True,
            queue_entry=mm_schema.QueueEntryRead.model_validate(existing),
        )

    # Snapshot now: a failed pairing attempt rolls the session back
    queue_entry = mm_schema.QueueEntryRead.model_validate(entry)

    match = await matchmaking_service.find_match_now(db, entry, notifier)
    if match is None:
        return mm_schema.JoinResponse(in_queue=True, queue_entry=queue_entry)

    return mm_schema.JoinResponse(
        matched=True,
        session_id=match.session_id,
        opponent=mm_schema.OpponentInfo(
            username=match.opponent.username, rating=match.opponent.rating
        ),
    )


@router.post("/leave", response_model=mm_schema.LeaveResponse)
async def leave_queue(
    leave_in: mm_schema.LeaveRequest, db: AsyncSession = Depends(get_db)
) -> mm_schema.LeaveResponse:
    """Leave the queue. Leaving when not queued is a no-op."""
    removed = await queue_service.dequeue(db, leave_in.user_id)
    return mm_schema.LeaveResponse(ok=True, removed=removed)


@router.get(
    "/status/{user_id}",
    response_model=mm_schema.StatusResponse,
    response_model_exclude_none=True,
)
async def queue_status(
    user_id: str, db: AsyncSession = Depends(get_db)
) -> mm_schema.StatusResponse:
    """
    Where a user stands in matchmaking.

    A player matched by the background scan sees `matched` and the battle's
    `sessionId` here until the grace window expires.
    """
    entry = await queue_service.get_entry(db, user_id)
    if entry is None:
        return mm_schema.StatusResponse(in_queue=False)

    if entry.status == QueueStatus.MATCHED.value:
        return mm_schema.StatusResponse(
            in_queue=False, matched=True, session_id=entry.matched_session_id
        )

    return mm_schema.StatusResponse(
        in_queue=True,
        matched=False,
        queue_entry=mm_schema.QueueEntryRead.model_validate(entry),
    )


@router.get("/stats", response_model=mm_schema.QueueStats)
async def queue_stats(
    request: Request, db: AsyncSession = Depends(get_db)
) -> mm_schema.QueueStats:
    """Queue sizes by status and game mode, plus whether the scanner runs."""
    stats = await queue_service.queue_stats(db)
    matchmaker = getattr(request.app.state, "matchmaker", None)
    return mm_schema.QueueStats(
        **stats,
        scanner_running=bool(matchmaker is not None and matchmaker.is_running),
    )
