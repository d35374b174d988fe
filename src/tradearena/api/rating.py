# src/tradearena/api/rating.py

"""API endpoints for ratings and leaderboards."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.db.models import GameMode, RatingRecord
from tradearena.db.session import get_db
from tradearena.schemas import rating as rating_schema
from tradearena.schemas.common import ModeStats
from tradearena.schemas.pagination import PaginatedResponse
from tradearena.services import rating_service
from tradearena.utils import fallback_username

router = APIRouter(prefix="/ratings", tags=["Ratings"])


@router.get(
    "/leaderboard/{game_mode}",
    response_model=PaginatedResponse[rating_schema.LeaderboardEntry],
)
async def get_leaderboard(
    game_mode: GameMode,
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[rating_schema.LeaderboardEntry]:
    """
    Players ranked by their rating in one game mode, best first.

    - **game_mode**: sprint, standard or marathon
    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    """
    rows, total = await rating_service.get_leaderboard(db, game_mode, skip, limit)

    items = [
        rating_schema.LeaderboardEntry(
            rank=skip + index + 1,
            user_id=record.user_id,
            username=username or fallback_username(record.user_id),
            rating=record.rating_for(game_mode),
            stats=ModeStats(**record.stats.get(game_mode.value, {})),
            win_streak=record.win_streak,
            total_battles=record.total_battles,
        )
        for index, (record, username) in enumerate(rows)
    ]

    return PaginatedResponse(
        items=items,
        total=total,
        skip=skip,
        limit=limit,
        has_more=(skip + len(items)) < total,
    )


@router.get("/{user_id}", response_model=rating_schema.RatingRead)
async def read_rating(user_id: str, db: AsyncSession = Depends(get_db)) -> RatingRecord:
    """
    A user's ratings in every mode. Users who never played get the default
    rating record, created on first read.
    """
    record = await rating_service.get_or_create_rating(db, user_id)
    await db.commit()
    return record
