# src/tradearena/schemas/common.py

"""Common Pydantic schemas used across multiple resources."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API payloads.

    Clients speak camelCase JSON (``userId``, ``gameMode``); snake_case field
    names are accepted on input as well.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ModeStats(CamelModel):
    """Win/loss record for a single game mode."""

    wins: int = Field(0, ge=0)
    losses: int = Field(0, ge=0)
    draws: int = Field(0, ge=0)
    games_played: int = Field(0, ge=0)


class UserRef(CamelModel):
    """Request body that only identifies the acting user."""

    user_id: str = Field(..., min_length=1, description="Opaque user identifier")
