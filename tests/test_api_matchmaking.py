# tests/test_api_matchmaking.py

"""Tests for the matchmaking API endpoints."""

import pytest
from httpx import AsyncClient

from conftest import RecordingNotifier


async def join(client: AsyncClient, user_id: str, mode: str = "sprint") -> dict:
    res = await client.post(
        "/matchmaking/join", json={"userId": user_id, "gameMode": mode}
    )
    assert res.status_code == 200, res.text
    return res.json()


@pytest.mark.asyncio
async def test_first_player_waits_in_queue(async_client: AsyncClient):
    body = await join(async_client, "alice")

    assert body["matched"] is False
    assert body["inQueue"] is True
    assert "alreadyInQueue" not in body
    entry = body["queueEntry"]
    assert entry["userId"] == "alice"
    assert entry["gameMode"] == "sprint"
    assert (entry["ratingMin"], entry["ratingMax"]) == (1100, 1300)


@pytest.mark.asyncio
async def test_second_compatible_player_is_matched_immediately(
    async_client: AsyncClient, notifier: RecordingNotifier
):
    """Joining runs an immediate match attempt before the background scan."""
    await join(async_client, "alice")
    body = await join(async_client, "bob")

    assert body["matched"] is True
    assert body["sessionId"].startswith("battle-")
    assert body["opponent"] == {"username": "User lice", "rating": 1200}

    # Both players are told, each about the other
    assert sorted(user for user, _ in notifier.match_found) == ["alice", "bob"]

    session = (await async_client.get(f"/sessions/{body['sessionId']}")).json()
    assert session["kind"] == "ranked"
    assert session["status"] == "ready"


@pytest.mark.asyncio
async def test_joining_twice_is_idempotent(async_client: AsyncClient):
    await join(async_client, "alice")
    body = await join(async_client, "alice", mode="marathon")

    assert body["inQueue"] is True
    assert body["alreadyInQueue"] is True
    # The original entry is kept
    assert body["queueEntry"]["gameMode"] == "sprint"


@pytest.mark.asyncio
async def test_matched_player_cannot_rejoin_until_battle_ends(async_client: AsyncClient):
    await join(async_client, "alice")
    await join(async_client, "bob")

    res = await async_client.post(
        "/matchmaking/join", json={"userId": "alice", "gameMode": "sprint"}
    )

    assert res.status_code == 409
    assert res.json()["error_type"] == "AlreadyQueuedError"


@pytest.mark.asyncio
async def test_different_modes_do_not_match(async_client: AsyncClient):
    await join(async_client, "alice", mode="sprint")
    body = await join(async_client, "bob", mode="standard")

    assert body["matched"] is False
    assert body["inQueue"] is True


@pytest.mark.asyncio
async def test_leave_then_status(async_client: AsyncClient):
    await join(async_client, "alice")

    status_before = (await async_client.get("/matchmaking/status/alice")).json()
    res = await async_client.post("/matchmaking/leave", json={"userId": "alice"})
    status_after = (await async_client.get("/matchmaking/status/alice")).json()

    assert status_before["inQueue"] is True
    assert res.status_code == 200
    assert res.json() == {"ok": True, "removed": True}
    assert status_after == {"inQueue": False}


@pytest.mark.asyncio
async def test_leave_when_not_queued_is_ok(async_client: AsyncClient):
    res = await async_client.post("/matchmaking/leave", json={"userId": "ghost"})

    assert res.status_code == 200
    assert res.json() == {"ok": True, "removed": False}


@pytest.mark.asyncio
async def test_status_reports_match_for_polling_clients(async_client: AsyncClient):
    await join(async_client, "alice")
    body = await join(async_client, "bob")

    status = (await async_client.get("/matchmaking/status/alice")).json()

    assert status == {
        "inQueue": False,
        "matched": True,
        "sessionId": body["sessionId"],
    }


@pytest.mark.asyncio
async def test_queue_stats(async_client: AsyncClient):
    await join(async_client, "alice", mode="sprint")
    await join(async_client, "bob", mode="marathon")

    stats = (await async_client.get("/matchmaking/stats")).json()

    assert stats["searching"] == 2
    assert stats["matched"] == 0
    assert stats["byMode"] == {"sprint": 1, "marathon": 1}
    # No lifespan in tests, so the scanner is not running
    assert stats["scannerRunning"] is False


@pytest.mark.asyncio
async def test_join_validates_payload(async_client: AsyncClient):
    bad_mode = await async_client.post(
        "/matchmaking/join", json={"userId": "alice", "gameMode": "blitz"}
    )
    missing_user = await async_client.post(
        "/matchmaking/join", json={"gameMode": "sprint"}
    )

    assert bad_mode.status_code == 422
    assert missing_user.status_code == 422
