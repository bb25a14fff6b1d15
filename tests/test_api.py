import asyncio

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pscore.database import init_db
from pscore.routes.api import app, get_session_factory
from pscore.services.score import get_score_service
from pscore.services.session import get_session_controller
from pscore.services.storage import USERNAME, KeyValueStore


@pytest.fixture()
async def client(session_factory, score_service):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_score_service] = lambda: score_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def wait_for_generation(profile_id):
    await get_session_controller(profile_id).wait_for_generation()


async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_initial_state(client):
    resp = await client.get("/profiles/alice/state")

    assert resp.status_code == 200
    state = resp.json()
    assert state["profileId"] == "alice"
    assert state["status"] == "idle"
    assert state["history"] == []
    assert state["hasPosted"] is False
    assert state["canGenerate"] is False


async def test_set_username_reports_validation(client):
    resp = await client.put("/profiles/alice/username", json={"username": "ab"})

    assert resp.status_code == 200
    assert resp.json()["usernameError"] == "Username must be at least 3 characters long."
    assert resp.json()["canGenerate"] is False


async def test_generate_rejects_invalid_username(client):
    resp = await client.post("/profiles/alice/generate", json={"username": "bad name!"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please enter a valid username to start."


async def test_generate_and_post_flow(client):
    resp = await client.post("/profiles/alice/generate", json={"username": "valid_user1"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "generating"
    assert resp.json()["timer"] == 20

    await wait_for_generation("alice")

    state = (await client.get("/profiles/alice/state")).json()
    assert state["status"] == "completed"
    assert state["currentScore"]["scoreData"]["utilizationScore"] == 84
    assert state["userEntry"]["username"] == "valid_user1"
    assert state["userEntry"]["isVerified"] is False

    resp = await client.get("/profiles/alice/leaderboards")
    assert resp.status_code == 403

    state = (await client.post("/profiles/alice/post-unverified")).json()
    assert state["hasPosted"] is True
    assert [e["username"] for e in state["unverifiedLeaderboard"]] == ["valid_user1"]

    state = (await client.post("/profiles/alice/get-verified")).json()
    assert state["userEntry"]["isVerified"] is True
    assert state["unverifiedLeaderboard"] == []

    boards = (await client.get("/profiles/alice/leaderboards")).json()
    assert boards["verified"][0]["runHash"] == state["userEntry"]["runHash"]

    share = (await client.get("/profiles/alice/share")).json()
    assert share["text"].startswith("My AI utilization score is 84/100!")


async def test_generate_conflict(client, fake_completion):
    fake_completion.gate = asyncio.Event()
    await client.post("/profiles/alice/generate", json={"username": "valid_user1"})

    resp = await client.post("/profiles/alice/generate")
    assert resp.status_code == 409

    fake_completion.gate.set()
    await wait_for_generation("alice")


async def test_cancel(client, fake_completion):
    fake_completion.gate = asyncio.Event()
    await client.post("/profiles/alice/generate", json={"username": "valid_user1"})

    state = (await client.post("/profiles/alice/cancel")).json()
    assert state["status"] == "cancelled"
    assert state["error"] == "Score generation cancelled."

    fake_completion.gate.set()
    await wait_for_generation("alice")
    state = (await client.get("/profiles/alice/state")).json()
    assert state["history"] == []

    state = (await client.delete("/profiles/alice/error")).json()
    assert state["error"] is None


async def test_select_history(client):
    resp = await client.post("/profiles/alice/history/0/select")
    assert resp.status_code == 404

    await client.post("/profiles/alice/generate", json={"username": "valid_user1"})
    await wait_for_generation("alice")

    resp = await client.post("/profiles/alice/history/0/select")
    assert resp.status_code == 200
    assert resp.json()["selectedHistoryIndex"] == 0


async def test_profiles_are_separate(client):
    await client.post("/profiles/alice/generate", json={"username": "valid_user1"})
    await wait_for_generation("alice")

    state = (await client.get("/profiles/bob/state")).json()
    assert state["history"] == []
    assert state["userEntry"] is None


async def test_share_without_score(client):
    resp = await client.get("/profiles/alice/share")

    assert resp.status_code == 404


async def test_state_unavailable_until_storage_recovers(client):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    app.dependency_overrides[get_session_factory] = lambda: sessionmaker(bind=engine)

    # No tables yet, so every read fails
    resp = await client.get("/profiles/carol/state")
    assert resp.status_code == 503

    init_db(bind=engine)
    store = KeyValueStore("carol", sessionmaker(bind=engine))
    store.set_item(USERNAME, "carol_1")

    resp = await client.get("/profiles/carol/state")
    assert resp.status_code == 200
    assert resp.json()["username"] == "carol_1"
    engine.dispose()
