# tests/test_elo_engine.py

"""Unit tests for the Elo rating engine."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from tradearena.config import Settings
from tradearena.db.models import BattleOutcome, RatingRecord, SessionKind
from tradearena.exceptions import RatingCalculationError
from tradearena.rating.elo_engine import EloEngine, update_ratings_for_session
from tradearena.services import session_service
from tradearena.services.session_service import ParticipantSeed

# =============================================================================
# Pure calculation
# =============================================================================


def test_expected_score_is_even_for_equal_ratings():
    engine = EloEngine()
    assert engine.expected_score(1200, 1200) == pytest.approx(0.5)


def test_expected_scores_sum_to_one():
    engine = EloEngine()
    total = engine.expected_score(1400, 1200) + engine.expected_score(1200, 1400)
    assert total == pytest.approx(1.0)


def test_win_between_equals_moves_half_of_k():
    engine = EloEngine(k_factor=32)

    assert engine.rating_change(1200, 1200, BattleOutcome.WIN) == 16
    assert engine.rating_change(1200, 1200, BattleOutcome.LOSS) == -16
    assert engine.rating_change(1200, 1200, BattleOutcome.DRAW) == 0


def test_favourite_gains_little_and_underdog_gains_a_lot():
    """
    1400 vs 1200: the favourite's expected score is ~0.7597.
    Favourite win: 32 * 0.2403 = 7.69 -> 8
    Underdog win: 32 * 0.7597 = 24.31 -> 24
    """
    engine = EloEngine(k_factor=32)

    assert engine.rating_change(1400, 1200, BattleOutcome.WIN) == 8
    assert engine.rating_change(1200, 1400, BattleOutcome.LOSS) == -8
    assert engine.rating_change(1200, 1400, BattleOutcome.WIN) == 24
    assert engine.rating_change(1400, 1200, BattleOutcome.LOSS) == -24


def test_heavy_favourite_win_is_worth_three_points():
    """1400 vs 1000: E = 1 / (1 + 10^-1) = 0.909, 32 * 0.091 = 2.91 -> 3."""
    engine = EloEngine(k_factor=32)

    assert engine.rating_change(1400, 1000, BattleOutcome.WIN) == 3
    assert engine.rating_change(1000, 1400, BattleOutcome.LOSS) == -3


def test_draw_pulls_ratings_together():
    engine = EloEngine(k_factor=32)

    assert engine.rating_change(1400, 1200, BattleOutcome.DRAW) == -8
    assert engine.rating_change(1200, 1400, BattleOutcome.DRAW) == 8


def test_half_points_round_up():
    """K=1 between equals gives exactly +0.5 / -0.5."""
    engine = EloEngine(k_factor=1)

    assert engine.rating_change(1200, 1200, BattleOutcome.WIN) == 1
    assert engine.rating_change(1200, 1200, BattleOutcome.LOSS) == 0


def test_k_factor_must_be_positive():
    with pytest.raises(RatingCalculationError):
        EloEngine(k_factor=0)


# =============================================================================
# Session integration
# =============================================================================


async def create_ranked_battle(db: AsyncSession, settings: Settings, a: int, b: int):
    battle = await session_service.create_session(
        db,
        [ParticipantSeed("alice", "Alice", a), ParticipantSeed("bob", "Bob", b)],
        "standard",
        SessionKind.RANKED,
        settings=settings,
    )
    await db.commit()
    return battle


@pytest.mark.asyncio
async def test_update_uses_pre_battle_snapshots(db_session: AsyncSession, settings):
    """
    Deltas come from the ratings captured when the battle was created, and
    both rating records are written.
    """
    # 1. ARRANGE
    battle = await create_ranked_battle(db_session, settings, 1400, 1200)
    battle.winner = "bob"

    # 2. ACT
    deltas = await update_ratings_for_session(db_session, battle, settings)
    await db_session.commit()

    # 3. ASSERT
    assert deltas == {"alice": -24, "bob": 24}

    alice = await RatingRecord.find_by_user(db_session, "alice")
    bob = await RatingRecord.find_by_user(db_session, "bob")
    # Records were created lazily at the default rating, then moved by the delta
    assert alice.ratings["standard"] == settings.default_rating - 24
    assert bob.ratings["standard"] == settings.default_rating + 24

    by_user = {p.user_id: p for p in battle.participants}
    assert by_user["alice"].rating_delta == -24
    assert by_user["bob"].rating_delta == 24
    assert by_user["bob"].current_rating == settings.default_rating + 24


@pytest.mark.asyncio
async def test_second_update_is_a_no_op(db_session: AsyncSession, settings):
    battle = await create_ranked_battle(db_session, settings, 1200, 1200)
    battle.winner = "alice"

    assert await update_ratings_for_session(db_session, battle, settings) is not None
    await db_session.commit()
    assert await update_ratings_for_session(db_session, battle, settings) is None

    alice = await RatingRecord.find_by_user(db_session, "alice")
    assert alice.ratings["standard"] == 1216
    assert alice.total_battles == 1


@pytest.mark.asyncio
async def test_update_requires_a_result(db_session: AsyncSession, settings):
    battle = await create_ranked_battle(db_session, settings, 1200, 1200)

    with pytest.raises(RatingCalculationError):
        await update_ratings_for_session(db_session, battle, settings)


@pytest.mark.asyncio
async def test_rating_never_drops_below_floor(db_session: AsyncSession):
    settings = Settings(default_rating=110, min_rating=100)
    battle = await create_ranked_battle(db_session, settings, 110, 110)
    battle.winner = "bob"

    await update_ratings_for_session(db_session, battle, settings)
    await db_session.commit()

    alice = await RatingRecord.find_by_user(db_session, "alice")
    assert alice.ratings["standard"] == 100
    # The computed delta is kept even though the floor absorbed part of it
    assert battle.participant_for("alice").rating_delta == -16
    assert battle.participant_for("alice").current_rating == 100
