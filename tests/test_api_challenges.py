# tests/test_api_challenges.py

"""Tests for the friend challenge endpoints."""

import pytest
from httpx import AsyncClient


async def challenge(client: AsyncClient, challenger: str = "alice", challenged: str = "bob"):
    return await client.post(
        "/challenges/",
        json={
            "challengerId": challenger,
            "challengedId": challenged,
            "gameMode": "marathon",
            "message": "best of one",
        },
    )


@pytest.mark.asyncio
async def test_challenge_accept_and_play_friendly(async_client: AsyncClient):
    """An accepted challenge yields an unrated battle."""
    # 1. ARRANGE
    created = await challenge(async_client)
    assert created.status_code == 201
    challenge_id = created.json()["challengeId"]
    assert created.json()["status"] == "pending"

    # 2. ACT
    accepted = await async_client.post(
        f"/challenges/{challenge_id}/accept", json={"userId": "bob"}
    )

    # 3. ASSERT
    assert accepted.status_code == 200
    body = accepted.json()
    assert body["challenge"]["status"] == "accepted"
    session = body["session"]
    assert session["kind"] == "friendly"
    assert session["gameMode"] == "marathon"
    assert body["challenge"]["sessionId"] == session["sessionId"]

    done = await async_client.post(f"/sessions/{session['sessionId']}/complete")
    assert done.status_code == 200
    assert all(p["ratingDelta"] is None for p in done.json()["session"]["participants"])

    alice = (await async_client.get("/ratings/alice")).json()
    assert alice["totalBattles"] == 0


@pytest.mark.asyncio
async def test_self_challenge_is_rejected(async_client: AsyncClient):
    res = await challenge(async_client, "alice", "alice")

    assert res.status_code == 422
    assert res.json()["error_type"] == "SelfChallengeError"


@pytest.mark.asyncio
async def test_only_challenged_user_may_accept(async_client: AsyncClient):
    challenge_id = (await challenge(async_client)).json()["challengeId"]

    res = await async_client.post(
        f"/challenges/{challenge_id}/accept", json={"userId": "alice"}
    )

    assert res.status_code == 403


@pytest.mark.asyncio
async def test_decline_then_accept_conflicts(async_client: AsyncClient):
    challenge_id = (await challenge(async_client)).json()["challengeId"]

    declined = await async_client.post(
        f"/challenges/{challenge_id}/decline", json={"userId": "bob"}
    )
    accepted = await async_client.post(
        f"/challenges/{challenge_id}/accept", json={"userId": "bob"}
    )

    assert declined.status_code == 200
    assert declined.json()["status"] == "declined"
    assert accepted.status_code == 409


@pytest.mark.asyncio
async def test_list_user_challenges(async_client: AsyncClient):
    await challenge(async_client, "alice", "bob")
    await challenge(async_client, "carol", "alice")

    listed = (await async_client.get("/challenges/user/alice")).json()
    bob_listed = (await async_client.get("/challenges/user/bob")).json()

    assert len(listed) == 2
    assert [c["challengerId"] for c in bob_listed] == ["alice"]


@pytest.mark.asyncio
async def test_unknown_challenge_is_404(async_client: AsyncClient):
    res = await async_client.post(
        "/challenges/challenge-missing/accept", json={"userId": "bob"}
    )

    assert res.status_code == 404
