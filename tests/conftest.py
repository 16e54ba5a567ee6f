import os
import sys
from pathlib import Path
from typing import List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Config reads the environment at import time.
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ["GEMINI_API_KEY"] = ""
os.environ["GOOGLE_API_KEY"] = ""
os.environ.setdefault("ENVIRONMENT", "test")

import httpx  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from uniben_assistant.core.identity import Actor, Role  # noqa: E402
from uniben_assistant.engines.ai_engine_async import AIUnavailableError, LLMTurn, ToolCall  # noqa: E402
from uniben_assistant.engines.chat_engine import ChatEngine  # noqa: E402
from uniben_assistant.engines.db_engine_async import AsyncDatabaseEngine  # noqa: E402
from uniben_assistant.utils.auth_utils import create_access_token  # noqa: E402


class ScriptedSession:
    def __init__(self, ai: "ScriptedAI"):
        self.ai = ai

    async def send(self, message: str) -> LLMTurn:
        self.ai.sent.append(("message", message))
        return self.ai.next_turn()

    async def send_tool_result(self, name: str, result: dict) -> LLMTurn:
        self.ai.sent.append(("tool_result", name, result))
        return self.ai.next_turn()


class ScriptedAI:
    """Model double that replays a fixed list of turns (or raises AIUnavailableError)."""

    def __init__(self, turns: Optional[List] = None, unavailable: bool = False):
        self.turns = list(turns or [])
        self.unavailable = unavailable
        self.sent = []
        self.sessions = []

    def start_session(self, system_prompt, tools, history):
        if self.unavailable:
            raise AIUnavailableError("AI model not initialized")
        self.sessions.append({"system_prompt": system_prompt, "tools": tools, "history": history})
        return ScriptedSession(self)

    def next_turn(self) -> LLMTurn:
        if not self.turns:
            return LLMTurn(text="")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn


def text_turn(text: str) -> LLMTurn:
    return LLMTurn(text=text)


def tool_turn(name: str, **args) -> LLMTurn:
    return LLMTurn(tool_calls=[ToolCall(name=name, args=args)])


def token_for(actor: Actor) -> str:
    return create_access_token(actor)


def auth_header(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {token_for(actor)}"}


@pytest.fixture()
def db():
    engine = AsyncDatabaseEngine()
    engine.use_database(AsyncMongoMockClient()["uniben_test"])
    return engine


@pytest.fixture()
def scripted_ai():
    return ScriptedAI()


@pytest.fixture()
def app(db, scripted_ai):
    from main import create_app

    application = create_app()
    application.state.db = db
    application.state.ai = None
    application.state.chat_engine = ChatEngine(scripted_ai, db)
    return application


@pytest.fixture()
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.fixture()
async def student(db):
    user = await db.create_user({
        "name": "John Student", "matricNumber": "CSC/22/1234", "role": Role.STUDENT.value,
        "department": "dept-cs",
    })
    return Actor(id=user["id"], role=Role.STUDENT, name="John Student", department="dept-cs")


@pytest.fixture()
def system_admin():
    return Actor(id="admin-1", role=Role.SYSTEM_ADMIN, name="System Admin")


@pytest.fixture()
def bursary_admin():
    return Actor(id="bursar-1", role=Role.BURSARY_ADMIN, name="Bursar")
