# tests/test_session_service.py

"""Unit tests for battle lifecycle, trading and completion."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tradearena.config import Settings
from tradearena.db.models import RatingRecord, SessionKind, SessionStatus
from tradearena.exceptions import (
    DuplicateParticipantError,
    InvalidTradeError,
    NotAParticipantError,
    SessionNotFoundError,
    SessionStateError,
)
from tradearena.rating import elo_engine
from tradearena.services import session_service
from tradearena.services.session_service import ParticipantSeed

from conftest import T0, RecordingNotifier

# =============================================================================
# Helper Functions
# =============================================================================


async def new_battle(
    db: AsyncSession,
    settings: Settings,
    kind: SessionKind = SessionKind.RANKED,
    mode: str = "sprint",
    ratings: tuple[int, int] = (1200, 1200),
):
    battle = await session_service.create_session(
        db,
        [
            ParticipantSeed("alice", "Alice", ratings[0]),
            ParticipantSeed("bob", "Bob", ratings[1]),
        ],
        mode,
        kind,
        settings=settings,
        now=T0,
    )
    await db.commit()
    return battle


async def started_battle(db: AsyncSession, settings: Settings, **kwargs):
    battle = await new_battle(db, settings, **kwargs)
    return await session_service.start_session(db, battle.session_id, now=T0)


# =============================================================================
# Creation and lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_create_session_snapshots_players(db_session: AsyncSession, settings):
    battle = await new_battle(db_session, settings, ratings=(1300, 1250))

    assert battle.session_id.startswith("battle-")
    assert battle.status == SessionStatus.READY.value
    assert battle.starting_capital == settings.starting_capital
    assert battle.market == "SPY"
    assert [(p.slot, p.user_id, p.starting_rating) for p in battle.participants] == [
        (1, "alice", 1300),
        (2, "bob", 1250),
    ]
    assert all(p.rating_delta is None for p in battle.participants)
    # Simulated window lies in the past
    assert battle.historical_data_start < battle.historical_data_end < T0


@pytest.mark.asyncio
async def test_create_session_rejects_same_user_twice(db_session: AsyncSession, settings):
    with pytest.raises(DuplicateParticipantError):
        await session_service.create_session(
            db_session,
            [ParticipantSeed("alice", "Alice", 1200), ParticipantSeed("alice", "Alice", 1200)],
            "sprint",
            SessionKind.FRIENDLY,
            settings=settings,
        )


@pytest.mark.asyncio
async def test_create_session_requires_two_players(db_session: AsyncSession, settings):
    with pytest.raises(ValueError):
        await session_service.create_session(
            db_session,
            [ParticipantSeed("alice", "Alice", 1200)],
            "sprint",
            SessionKind.FRIENDLY,
            settings=settings,
        )


@pytest.mark.asyncio
async def test_get_unknown_session_raises(db_session: AsyncSession):
    with pytest.raises(SessionNotFoundError):
        await session_service.get_session(db_session, "battle-missing")


@pytest.mark.asyncio
async def test_start_sets_clock_from_game_mode(db_session: AsyncSession, settings):
    battle = await started_battle(db_session, settings, mode="standard")

    assert battle.status == SessionStatus.IN_PROGRESS.value
    assert battle.start_time == T0
    assert battle.ends_at == T0 + timedelta(seconds=900)


@pytest.mark.asyncio
async def test_start_is_idempotent(db_session: AsyncSession, settings):
    battle = await started_battle(db_session, settings)

    again = await session_service.start_session(
        db_session, battle.session_id, now=T0 + timedelta(seconds=30)
    )

    assert again.start_time == T0


# =============================================================================
# Trading
# =============================================================================


@pytest.mark.asyncio
async def test_trade_updates_cash_and_value(db_session: AsyncSession, settings):
    battle = await started_battle(db_session, settings)

    trade = await session_service.record_trade(
        db_session, battle.session_id, "alice", "buy", "aapl", 100, 150.0, now=T0
    )

    assert trade.symbol == "AAPL"
    assert trade.total_value == 15_000.0
    assert trade.cash_after == 85_000.0
    assert trade.portfolio_value_after == 100_000.0


@pytest.mark.asyncio
async def test_trade_requires_started_battle(db_session: AsyncSession, settings):
    battle = await new_battle(db_session, settings)

    with pytest.raises(SessionStateError):
        await session_service.record_trade(
            db_session, battle.session_id, "alice", "buy", "AAPL", 1, 150.0, now=T0
        )


@pytest.mark.asyncio
async def test_trade_after_time_is_up_is_rejected(db_session: AsyncSession, settings):
    battle = await started_battle(db_session, settings, mode="sprint")

    with pytest.raises(SessionStateError):
        await session_service.record_trade(
            db_session,
            battle.session_id,
            "alice",
            "buy",
            "AAPL",
            1,
            150.0,
            now=T0 + timedelta(seconds=301),
        )


@pytest.mark.asyncio
async def test_outsider_cannot_trade(db_session: AsyncSession, settings):
    battle = await started_battle(db_session, settings)

    with pytest.raises(NotAParticipantError):
        await session_service.record_trade(
            db_session, battle.session_id, "mallory", "buy", "AAPL", 1, 150.0, now=T0
        )


@pytest.mark.asyncio
async def test_cannot_overspend_or_short(db_session: AsyncSession, settings):
    battle = await started_battle(db_session, settings)

    with pytest.raises(InvalidTradeError):
        await session_service.record_trade(
            db_session, battle.session_id, "alice", "buy", "AAPL", 1000, 150.0, now=T0
        )
    with pytest.raises(InvalidTradeError):
        await session_service.record_trade(
            db_session, battle.session_id, "alice", "sell", "AAPL", 1, 150.0, now=T0
        )


@pytest.mark.asyncio
async def test_trade_checked_against_stale_log_is_rejected(
    session_factory: async_sessionmaker[AsyncSession], settings
):
    """
    Two buys of $60k against $100k, each validated before the other landed:
    only the first commits, so cash never goes negative.
    """
    # 1. ARRANGE
    async with session_factory() as db:
        session_id = (await started_battle(db, settings)).session_id

    async with session_factory() as first, session_factory() as second:
        # Both requests have read the battle before either writes
        await session_service.get_session(first, session_id)
        await session_service.get_session(second, session_id)

        # 2. ACT
        await session_service.record_trade(
            first, session_id, "alice", "buy", "AAPL", 600, 100.0, now=T0
        )
        with pytest.raises(StaleDataError):
            await session_service.record_trade(
                second, session_id, "alice", "buy", "AAPL", 600, 100.0, now=T0
            )

    # 3. ASSERT
    async with session_factory() as db:
        battle = await session_service.get_session(db, session_id)
        trades = battle.participant_for("alice").trades
        assert [t.cash_after for t in trades] == [40_000.0]


# =============================================================================
# Completion
# =============================================================================


async def play_sample_battle(db: AsyncSession, settings: Settings, **kwargs):
    """
    Alice buys 100 AAPL at 150, Bob buys 50 MSFT at 300. With closing prices
    AAPL 160 / MSFT 290 Alice ends at 101,000 and Bob at 99,500.
    """
    battle = await started_battle(db, settings, **kwargs)
    await session_service.record_trade(
        db, battle.session_id, "alice", "buy", "AAPL", 100, 150.0, now=T0
    )
    await session_service.record_trade(
        db, battle.session_id, "bob", "buy", "MSFT", 50, 300.0, now=T0
    )
    return battle


@pytest.mark.asyncio
async def test_complete_ranked_battle_updates_ratings(
    session_factory: async_sessionmaker[AsyncSession], settings
):
    notifier = RecordingNotifier()
    async with session_factory() as db:
        battle = await play_sample_battle(db, settings)

        battle, winner = await session_service.complete_session(
            db,
            battle.session_id,
            prices={"AAPL": 160.0, "MSFT": 290.0},
            notifier=notifier,
            settings=settings,
        )

    assert winner == "alice"
    assert battle.status == SessionStatus.COMPLETED.value
    assert battle.win_condition == "higher-value"

    alice, bob = battle.participants
    assert alice.results["final_portfolio_value"] == 101_000.0
    assert bob.results["final_portfolio_value"] == 99_500.0
    assert bob.results["max_drawdown"] == pytest.approx(0.5)
    assert (alice.rating_delta, bob.rating_delta) == (16, -16)

    async with session_factory() as check:
        alice_record = await RatingRecord.find_by_user(check, "alice")
        bob_record = await RatingRecord.find_by_user(check, "bob")
        assert alice_record.ratings["sprint"] == 1216
        assert bob_record.ratings["sprint"] == 1184
        assert alice_record.stats["sprint"]["wins"] == 1
        assert bob_record.stats["sprint"]["losses"] == 1
        assert alice_record.recent_games[0]["session_id"] == battle.session_id

    assert sorted(user for user, _ in notifier.rating_changes) == ["alice", "bob"]


@pytest.mark.asyncio
async def test_unpriced_holdings_use_last_trade_price(db_session: AsyncSession, settings):
    """Without closing prices both sides are marked at cost: a draw."""
    battle = await play_sample_battle(db_session, settings)

    battle, winner = await session_service.complete_session(
        db_session, battle.session_id, settings=settings
    )

    assert winner == "draw"
    assert battle.win_condition == "equal-value"
    assert [p.rating_delta for p in battle.participants] == [0, 0]


@pytest.mark.asyncio
async def test_complete_twice_returns_stored_outcome(
    session_factory: async_sessionmaker[AsyncSession], settings
):
    async with session_factory() as db:
        battle = await play_sample_battle(db, settings)
        await session_service.complete_session(
            db, battle.session_id, prices={"AAPL": 160.0}, settings=settings
        )

    async with session_factory() as db:
        # Different prices would flip the result if it were recomputed
        _, winner = await session_service.complete_session(
            db, battle.session_id, prices={"AAPL": 100.0}, settings=settings
        )
        assert winner == "alice"

    async with session_factory() as check:
        alice_record = await RatingRecord.find_by_user(check, "alice")
        assert alice_record.total_battles == 1


@pytest.mark.asyncio
async def test_friendly_battle_leaves_ratings_alone(db_session: AsyncSession, settings):
    battle = await play_sample_battle(db_session, settings, kind=SessionKind.FRIENDLY)

    battle, winner = await session_service.complete_session(
        db_session, battle.session_id, prices={"AAPL": 160.0}, settings=settings
    )

    assert winner == "alice"
    assert all(p.rating_delta is None for p in battle.participants)
    assert await RatingRecord.find_by_user(db_session, "alice") is None


@pytest.mark.asyncio
async def test_failed_rating_update_rolls_back_completion(
    session_factory: async_sessionmaker[AsyncSession], settings
):
    """Results, status and ratings are written together or not at all."""
    async with session_factory() as db:
        battle = await play_sample_battle(db, settings)
        session_id = battle.session_id

        with patch.object(
            elo_engine,
            "update_ratings_for_session",
            side_effect=RuntimeError("rating store down"),
        ):
            with pytest.raises(RuntimeError):
                await session_service.complete_session(
                    db, session_id, prices={"AAPL": 160.0}, settings=settings
                )

    async with session_factory() as check:
        battle = await session_service.get_session(check, session_id)
        assert battle.status == SessionStatus.IN_PROGRESS.value
        assert battle.winner is None
        assert all(p.results is None for p in battle.participants)
        assert await RatingRecord.find_by_user(check, "alice") is None


@pytest.mark.asyncio
async def test_history_lists_completed_battles_newest_first(
    session_factory: async_sessionmaker[AsyncSession], settings
):
    async with session_factory() as db:
        first = await play_sample_battle(db, settings)
        await session_service.complete_session(
            db, first.session_id, settings=settings, now=T0 + timedelta(minutes=5)
        )
        second = await play_sample_battle(db, settings, mode="marathon")
        await session_service.complete_session(
            db, second.session_id, settings=settings, now=T0 + timedelta(minutes=10)
        )
        # Never completed, so never listed
        await new_battle(db, settings)

    async with session_factory() as db:
        history = await session_service.list_history(db, "alice")
        sprint_only = await session_service.list_history(db, "bob", game_mode="sprint")

    assert [b.session_id for b in history] == [second.session_id, first.session_id]
    assert [b.session_id for b in sprint_only] == [first.session_id]
