from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Ensure required settings exist before importing application modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "testing-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("QUEUE_MODE", "direct")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ["OPENAI_API_KEY"] = ""
os.environ["CEREBRAS_API_KEY"] = ""
os.environ.pop("TURN_TIMEOUT_S", None)
os.environ.pop("AI_TURN_TIMEOUT_S", None)

import admissions_chat.deps as deps
from admissions_chat.config import settings
from admissions_chat.domain.errors import ExternalServiceError, PersistenceError
from admissions_chat.domain.models import Base
from admissions_chat.domain.schemas import ChatSnapshot, ConversationTurn
from admissions_chat.main import create_app
from admissions_chat.ports.llm import Completion

NO_ESCALATION = '{"escalationNeeded": false, "confidence": 0.2, "reasons": [], "suggestedResponse": "none"}'


class ScriptedLLM:
    """Language model fake answering by call kind: reply, judge or title.

    A script value may be a string, a :class:`Completion` or an exception to
    raise. ``delays`` holds per-kind sleeps in seconds.
    """

    def __init__(
        self,
        *,
        reply: Any = "Tuition is 9,250 GBP per year [kb-tuition-fees].",
        judge: Any = NO_ESCALATION,
        title: Any = "Tuition fee question",
        model: str = "gpt-4o-mini",
    ) -> None:
        self.script: Dict[str, Any] = {"reply": reply, "judge": judge, "title": title}
        self.delays: Dict[str, float] = {}
        self.model = model
        self.calls: List[Dict[str, Any]] = []

    @staticmethod
    def kind_of(messages: List[Dict[str, str]]) -> str:
        if messages and messages[0]["role"] == "system":
            return "reply"
        if "LATEST USER MESSAGE" in messages[-1]["content"]:
            return "judge"
        return "title"

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def complete(self, messages, *, max_tokens: int, temperature: float) -> Completion:
        kind = self.kind_of(messages)
        self.calls.append(
            {"kind": kind, "messages": messages, "max_tokens": max_tokens, "temperature": temperature}
        )
        delay = self.delays.get(kind)
        if delay:
            await asyncio.sleep(delay)
        value = self.script[kind]
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, Completion):
            return value
        return Completion(content=value, model=self.model, usage={"total_tokens": 42})


class FakeChatStore:
    """In-memory ChatStore with switchable write failures."""

    def __init__(self) -> None:
        self.chats: Dict[str, ChatSnapshot] = {}
        self.turns: List[ConversationTurn] = []
        self.audits: List[Dict[str, Any]] = []
        self.updates: List[Dict[str, Any]] = []
        self.get_calls = 0
        self.fail_append = False
        self.fail_update = False
        self.fail_audit = False

    def add_chat(self, chat_id: str = "chat-1", **fields: Any) -> ChatSnapshot:
        data: Dict[str, Any] = {
            "id": chat_id,
            "user_id": "student-1",
            "title": "New Chat",
            "status": "open",
            "created_at": datetime.now(timezone.utc),
        }
        data.update(fields)
        chat = ChatSnapshot(**data)
        self.chats[chat_id] = chat
        return chat

    async def get_chat(self, chat_id: str) -> ChatSnapshot | None:
        self.get_calls += 1
        return self.chats.get(chat_id)

    async def update_chat(self, chat_id: str, **fields: Any) -> ChatSnapshot | None:
        if self.fail_update:
            raise PersistenceError("update refused")
        self.updates.append({"chat_id": chat_id, **fields})
        chat = self.chats.get(chat_id)
        if chat is None:
            return None
        self.chats[chat_id] = chat.model_copy(update=fields)
        return self.chats[chat_id]

    async def append_turn(
        self,
        chat_id: str,
        role: str,
        content: str,
        meta: Mapping[str, Any] | None = None,
    ) -> ConversationTurn:
        if self.fail_append:
            raise PersistenceError("append refused")
        turn = ConversationTurn(
            id=f"msg-{len(self.turns) + 1}",
            chat_id=chat_id,
            role=role,
            content=content,
            meta=dict(meta or {}),
            turn_index=len(self.turns),
            created_at=datetime.now(timezone.utc),
        )
        self.turns.append(turn)
        return turn

    async def record_audit(self, **fields: Any) -> None:
        if self.fail_audit:
            raise PersistenceError("audit refused")
        self.audits.append(fields)


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def store() -> FakeChatStore:
    return FakeChatStore()


@pytest.fixture
def llm_unavailable() -> ExternalServiceError:
    return ExternalServiceError("No LLM providers are configured")


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture
def session_factory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> async_sessionmaker[AsyncSession]:
    """File-backed SQLite database shared by the app and direct store access.

    ``NullPool`` keeps connections from leaking between event loops.
    """

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'admissions.db'}", poolclass=NullPool)
    factory = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    asyncio.run(_create_schema(engine))
    monkeypatch.setattr(deps, "engine", engine)
    monkeypatch.setattr(deps, "SessionLocal", factory)
    return factory


@pytest.fixture
def client(session_factory: async_sessionmaker[AsyncSession]) -> Generator[TestClient, None, None]:
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(user_id: str = "student-1", role: str = "student", **claims: Any) -> Dict[str, str]:
        token = jwt.encode(
            {"user_id": user_id, "role": role, **claims},
            settings.jwt_secret,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
