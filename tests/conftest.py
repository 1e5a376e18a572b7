"""
Shared pytest fixtures.

Uses a temporary SQLite file for the local store and an in-memory remote
store, so no cloud credentials or API keys are required for tests.
Async services are driven with asyncio.run from plain test functions.
"""
import asyncio
import json
import os
import tempfile
import uuid

_TMP_DIR = tempfile.mkdtemp(prefix="moodsync-tests-")
os.environ["LOCAL_DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'local.db')}"
os.environ["REMOTE_BACKEND"] = "memory"
os.environ["GEMINI_API_KEY"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from moodsync.core.deps import get_remote_store, get_scheduler, get_text_client  # noqa: E402
from moodsync.core.errors import SummarizationFailedError  # noqa: E402
from moodsync.db.base import Base, SessionLocal, create_local_schema, engine  # noqa: E402
from moodsync.main import app  # noqa: E402
from moodsync.models.local_record import LocalRecord  # noqa: E402
from moodsync.services.local_store import SQLLocalStore  # noqa: E402
from moodsync.services.memory import CompressionScheduler  # noqa: E402
from moodsync.services.remote_store import InMemoryRemoteStore, RemoteDocument  # noqa: E402
from moodsync.services.sync import SyncContext  # noqa: E402

VALID_SUMMARY = {
    "profileSummary": "Designer who journals most evenings.",
    "emotionalBaselineSummary": "Generally steady, dips midweek.",
    "personalityPattern": "Reflective and detail-oriented.",
    "stressBaseline": "Moderate, tied to deadlines.",
    "emotionalTriggers": ["deadlines", "poor sleep"],
    "supportPatterns": ["evening walks"],
    "recurringThemes": ["work balance"],
    "relationshipPatterns": ["close to sister"],
}

VALID_ANALYSIS = {
    "reflection": "It sounds like the walk really helped you reset.",
    "moodTag": "calm",
    "sentiment": 0.4,
    "followUpQuestion": "What made the walk feel restorative?",
}

INSIGHT_TEXT = (
    "WHAT IM NOTICING:\nYour evenings have been steadier this week.\n"
    "WATCH FOR:\nShort sleep before busy days.\n"
    "TRY THIS TOMORROW:\n- Take a short walk after lunch.\n- Write one line before bed.\n"
    "REFLECTION:\nWhat helped most on your calmer days?"
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeTextClient:
    """
    Text-completion stand-in. With `responses`, replies are consumed in order;
    otherwise a valid reply is picked from the prompt's wording.
    """

    def __init__(self, responses=None, error=None):
        self.responses = list(responses) if responses is not None else None
        self.error = error
        self.prompts = []
        self.json_outputs = []

    async def complete(self, prompt, temperature=0.2, json_output=True):
        self.prompts.append(prompt)
        self.json_outputs.append(json_output)
        if self.error is not None:
            raise self.error
        if self.responses is not None:
            return self.responses.pop(0)
        if "journaling companion" in prompt:
            return json.dumps(VALID_ANALYSIS)
        if "long-term emotional memory" in prompt:
            return json.dumps(VALID_SUMMARY)
        if "emotional wellness assistant" in prompt:
            return INSIGHT_TEXT
        return json.dumps({"names": []})


class FailingRemoteStore:
    """Every remote call fails, as when offline."""

    def __init__(self):
        self.calls = 0

    async def get_doc(self, path):
        self.calls += 1
        raise ConnectionError("remote unreachable")

    async def set_doc(self, path, data, merge=True):
        self.calls += 1
        raise ConnectionError("remote unreachable")


class WriteFailingRemoteStore(InMemoryRemoteStore):
    """Reads work, writes fail."""

    async def set_doc(self, path, data, merge=True):
        raise ConnectionError("remote write rejected")


class SlowTextClient(FakeTextClient):
    """Blocks inside complete() until `release` is set."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, prompt, temperature=0.2, json_output=True):
        self.started.set()
        await self.release.wait()
        return await super().complete(prompt, temperature, json_output)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

async def _drop_all():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _clear_records():
    async with SessionLocal() as session:
        await session.execute(delete(LocalRecord))
        await session.commit()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    asyncio.run(create_local_schema(engine))
    yield
    asyncio.run(_drop_all())


@pytest.fixture(autouse=True)
def clean_local_store():
    asyncio.run(_clear_records())
    yield


# ---------------------------------------------------------------------------
# Stores and contexts
# ---------------------------------------------------------------------------

@pytest.fixture()
def local():
    return SQLLocalStore(SessionLocal)


@pytest.fixture()
def remote():
    return InMemoryRemoteStore()


@pytest.fixture()
def user_id():
    return f"user-{uuid.uuid4().hex[:8]}"


@pytest.fixture()
def ctx(local, remote, user_id):
    return SyncContext(local=local, remote=remote, user_id=user_id)


@pytest.fixture()
def local_ctx(local):
    """No signed-in user: local store only."""
    return SyncContext(local=local, remote=None, user_id=None)


@pytest.fixture()
def text_client():
    return FakeTextClient()


@pytest.fixture()
def failing_text_client():
    return FakeTextClient(error=SummarizationFailedError("quota exceeded", status_code=429))


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture()
def scheduler(text_client):
    return CompressionScheduler(text_client)


@pytest.fixture()
def client(remote, text_client, scheduler):
    app.dependency_overrides[get_remote_store] = lambda: remote
    app.dependency_overrides[get_text_client] = lambda: text_client
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def headers(user_id):
    return {"X-User-Id": user_id}


def run(coro):
    return asyncio.run(coro)


def remote_doc(remote, user_id, relative_path) -> RemoteDocument:
    return run(remote.get_doc(f"users/{user_id}/{relative_path}"))
