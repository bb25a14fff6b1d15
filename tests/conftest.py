import asyncio
import json
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pscore.database import init_db
from pscore.services import score as score_module
from pscore.services.score import ScoreService
from pscore.services.session import SessionController, clear_session_controllers
from pscore.services.storage import KeyValueStore


SAMPLE_REPORT = {
    "utilizationScore": 84,
    "percentileEstimates": "All users ~98th, Paying subscribers ~90th, Developers/programmers ~70th.",
    "inputsObserved": ["Broad use (coding, drafting, data)"],
    "highLeverageBehaviors": ["Iterative prompts"],
    "missedLeverage": ["Limited API/automation"],
    "cohortComparison": [
        {"cohort": "All users", "standing": "~98th", "reason": "Daily use across many task types"},
    ],
    "whatMovesYou": [
        {"title": "Automate repeatables", "points": ["Move weekly reports to batch API runs"]},
    ],
    "minimalRubric": [
        {"category": "Breadth of use", "score": 18, "maxScore": 20},
    ],
    "callToAction": "Let's build a plan.",
}


def completion_response(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model="gemini/gemini-2.5-pro",
        id="completion-1",
    )


class FakeCompletion:
    """Stands in for litellm.acompletion and records its calls.

    Set `gate` to an asyncio.Event to hold the call open until the test
    releases it.
    """

    def __init__(self, content=None, error=None):
        self.content = json.dumps(SAMPLE_REPORT) if content is None else content
        self.error = error
        self.calls = []
        self.gate = None

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return completion_response(self.content)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def store(session_factory):
    return KeyValueStore("test-profile", session_factory)


@pytest.fixture()
def fake_completion(monkeypatch):
    fake = FakeCompletion()
    monkeypatch.setattr(score_module, "acompletion", fake)
    return fake


@pytest.fixture()
def score_service(fake_completion):
    return ScoreService(api_key="test-key", leaderboard_delay=0)


@pytest.fixture()
def controller(store, score_service):
    return SessionController(store, score_service, estimated_time=20, tick_interval=0.01)


@pytest.fixture(autouse=True)
def reset_controllers():
    yield
    clear_session_controllers()


async def settle():
    """Let pending tasks run a couple of steps."""
    for _ in range(2):
        await asyncio.sleep(0)
