# src/tradearena/services/identity_service.py

"""Display-name lookups against the identity store owned by the auth layer."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.db import models
from tradearena.utils import fallback_username


async def resolve_username(db: AsyncSession, user_id: str) -> str:
    """Return the user's display name, or a placeholder if they are unknown."""
    result = await db.execute(
        select(models.User.username).where(models.User.id == user_id)
    )
    username = result.scalar_one_or_none()
    return username or fallback_username(user_id)
