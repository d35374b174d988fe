# src/tradearena/rating/elo_engine.py

"""
Elo rating updates for ranked trading battles.

Expected score: E = 1 / (1 + 10^((R_opponent - R_own) / 400))
Rating change:  round(K * (S - E)), S = 1 (win), 0.5 (draw), 0 (loss)
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tradearena.config import Settings, get_settings
from tradearena.db import models
from tradearena.exceptions import RatingCalculationError
from tradearena.services import rating_service
from tradearena.utils import round_half_up

logger = logging.getLogger(__name__)

# ===============================================
# == Elo Core Implementation
# ===============================================

OUTCOME_SCORES = {
    models.BattleOutcome.WIN: 1.0,
    models.BattleOutcome.DRAW: 0.5,
    models.BattleOutcome.LOSS: 0.0,
}


class EloEngine:
    """Encapsulates the Elo calculation logic."""

    # K controls volatility: higher K means bigger swings per battle.
    def __init__(self, k_factor: int = 32):
        if k_factor <= 0:
            raise RatingCalculationError(f"K-factor must be positive, got {k_factor}")
        self._k = k_factor

    def expected_score(self, own_rating: float, opponent_rating: float) -> float:
        """Probability-like expectation of beating the opponent."""
        return 1 / (1 + 10 ** ((opponent_rating - own_rating) / 400))

    def rating_change(
        self,
        own_rating: float,
        opponent_rating: float,
        outcome: models.BattleOutcome,
    ) -> int:
        """
        Integer rating delta for one player.

        Both players' deltas must be computed from the same pre-battle
        ratings. Rounding can make the winner's gain differ from the loser's
        loss by a point; that is expected.
        """
        expected = self.expected_score(own_rating, opponent_rating)
        actual = OUTCOME_SCORES[models.BattleOutcome(outcome)]
        return round_half_up(self._k * (actual - expected))


# ===============================================
# == TradeArena Integration
# ===============================================


def _outcomes_for(battle: models.BattleSession) -> dict[str, models.BattleOutcome]:
    """Translate the battle's winner into a per-user outcome."""
    if battle.winner is None:
        raise RatingCalculationError(
            "Battle has no result to rate", session_id=battle.session_id
        )

    outcomes = {}
    for participant in battle.participants:
        if battle.winner == "draw":
            outcomes[participant.user_id] = models.BattleOutcome.DRAW
        elif battle.winner == participant.user_id:
            outcomes[participant.user_id] = models.BattleOutcome.WIN
        else:
            outcomes[participant.user_id] = models.BattleOutcome.LOSS
    return outcomes


async def update_ratings_for_session(
    db: AsyncSession,
    battle: models.BattleSession,
    settings: Settings | None = None,
) -> dict[str, int] | None:
    """
    Apply Elo changes for a completed ranked battle.

    Writes both rating records and the participants' rating_delta fields but
    only flushes; the caller commits everything in one transaction. Returns
    the deltas by user_id, or None if the battle was already rated.
    """
    settings = settings or get_settings()

    if any(p.rating_delta is not None for p in battle.participants):
        logger.info(
            "Battle already rated, skipping",
            extra={"session_id": battle.session_id},
        )
        return None

    if len(battle.participants) != 2:
        raise RatingCalculationError(
            f"Expected 2 participants, got {len(battle.participants)}",
            session_id=battle.session_id,
        )

    engine = EloEngine(k_factor=settings.elo_k_factor)
    outcomes = _outcomes_for(battle)
    first, second = battle.participants

    # Both deltas come from the starting snapshots, never from updated values
    deltas = {
        first.user_id: engine.rating_change(
            first.starting_rating, second.starting_rating, outcomes[first.user_id]
        ),
        second.user_id: engine.rating_change(
            second.starting_rating, first.starting_rating, outcomes[second.user_id]
        ),
    }

    for participant in battle.participants:
        record = await rating_service.apply_rating_delta(
            db,
            user_id=participant.user_id,
            game_mode=battle.game_mode,
            delta=deltas[participant.user_id],
            outcome=outcomes[participant.user_id],
            session_id=battle.session_id,
            settings=settings,
        )
        participant.rating_delta = deltas[participant.user_id]
        participant.current_rating = record.rating_for(battle.game_mode)
        db.add(participant)

    await db.flush()
    logger.info(
        "Ratings updated",
        extra={"session_id": battle.session_id, "deltas": deltas},
    )
    return deltas
