"""Chat persistence contract and its SQLAlchemy implementation."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, List, Mapping, Protocol

from loguru import logger
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from admissions_chat.domain import models as m
from admissions_chat.domain.errors import ConflictError, PersistenceError
from admissions_chat.domain.schemas import (
    AdminChatSummary,
    AuditEntry,
    BookingOut,
    ChatSnapshot,
    ConversationTurn,
)

UPDATABLE_CHAT_FIELDS = frozenset({"title", "status", "tags", "admin_taken_over", "last_message_at"})
PREVIEW_LENGTH = 120


class ChatStore(Protocol):
    """Operations the turn orchestrator needs from persistence."""

    async def get_chat(self, chat_id: str) -> ChatSnapshot | None:
        ...

    async def update_chat(self, chat_id: str, **fields: Any) -> ChatSnapshot | None:
        ...

    async def append_turn(
        self,
        chat_id: str,
        role: str,
        content: str,
        meta: Mapping[str, Any] | None = None,
    ) -> ConversationTurn:
        ...

    async def record_audit(
        self,
        *,
        chat_id: str,
        message_id: str | None,
        model: str | None,
        prompt: str | None,
        context: Mapping[str, Any] | None,
        response: str | None,
        usage: Mapping[str, Any] | None,
    ) -> None:
        ...


class SqlChatStore:
    """:class:`ChatStore` over a single ``AsyncSession``.

    Every write commits immediately. Driver errors are rolled back and
    re-raised as :class:`PersistenceError`.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.warning("Store operation '{}' failed: {}", operation, exc)
            await self.session.rollback()
            raise PersistenceError(f"Failed to {operation}") from exc

    # ------------------------------------------------------------------ chats
    async def _load_chat(self, chat_id: str) -> m.Chat | None:
        stmt = select(m.Chat).where(m.Chat.id == chat_id).execution_options(populate_existing=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_chat(self, chat_id: str) -> ChatSnapshot | None:
        """Read the chat row from the database, bypassing the identity map."""

        async with self._guard("load chat"):
            chat = await self._load_chat(chat_id)
        return ChatSnapshot.model_validate(chat) if chat is not None else None

    async def update_chat(self, chat_id: str, **fields: Any) -> ChatSnapshot | None:
        unknown = set(fields) - UPDATABLE_CHAT_FIELDS
        if unknown:
            raise ValueError(f"Unsupported chat fields: {sorted(unknown)}")

        async with self._guard("update chat"):
            chat = await self._load_chat(chat_id)
            if chat is None:
                return None
            for name, value in fields.items():
                setattr(chat, name, value)
            await self.session.commit()
        return ChatSnapshot.model_validate(chat)

    async def create_chat(self, *, user_id: str, title: str | None = None, tags: str | None = None) -> ChatSnapshot:
        chat = m.Chat(user_id=user_id, title=(title or "").strip()[:255] or "New Chat", tags=tags)
        async with self._guard("create chat"):
            self.session.add(chat)
            await self.session.commit()
        return ChatSnapshot.model_validate(chat)

    async def list_chats(
        self,
        *,
        user_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> List[ChatSnapshot]:
        """Chats ordered by most recent activity."""

        stmt = select(m.Chat).order_by(
            func.coalesce(m.Chat.last_message_at, m.Chat.created_at).desc(), m.Chat.id.desc()
        )
        if user_id is not None:
            stmt = stmt.where(m.Chat.user_id == user_id)
        if status is not None:
            stmt = stmt.where(m.Chat.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._guard("list chats"):
            rows = (await self.session.execute(stmt)).scalars().all()
        return [ChatSnapshot.model_validate(row) for row in rows]

    async def list_admin_chats(self, *, status: str | None = None, limit: int = 100) -> List[AdminChatSummary]:
        """Chats joined with their owner, message count and latest message."""

        counts = (
            select(
                m.Message.chat_id.label("chat_id"),
                func.count(m.Message.id).label("message_count"),
                func.max(m.Message.turn_index).label("last_turn"),
            )
            .group_by(m.Message.chat_id)
            .subquery()
        )
        last_message = m.Message.__table__.alias("last_message")
        stmt = (
            select(
                m.Chat,
                m.User.name,
                m.User.email,
                counts.c.message_count,
                last_message.c.content,
                last_message.c.role,
            )
            .outerjoin(m.User, m.User.id == m.Chat.user_id)
            .outerjoin(counts, counts.c.chat_id == m.Chat.id)
            .outerjoin(
                last_message,
                and_(last_message.c.chat_id == m.Chat.id, last_message.c.turn_index == counts.c.last_turn),
            )
        )
        if status is not None:
            stmt = stmt.where(m.Chat.status == status)
        stmt = stmt.order_by(
            func.coalesce(m.Chat.last_message_at, m.Chat.created_at).desc(), m.Chat.id.desc()
        ).limit(limit)

        async with self._guard("list admin chats"):
            rows = (await self.session.execute(stmt)).all()

        summaries: List[AdminChatSummary] = []
        for chat, user_name, user_email, message_count, last_content, last_role in rows:
            base = ChatSnapshot.model_validate(chat).model_dump()
            summaries.append(
                AdminChatSummary(
                    **base,
                    user_name=user_name,
                    user_email=user_email,
                    message_count=int(message_count or 0),
                    last_message_preview=last_content[:PREVIEW_LENGTH] if last_content else None,
                    last_message_role=last_role,
                )
            )
        return summaries

    # ------------------------------------------------------------------ users
    async def ensure_user(
        self,
        user_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        role: str = "student",
    ) -> None:
        """Create the user row for a token subject seen for the first time."""

        async with self._guard("register user"):
            existing = await self.session.get(m.User, user_id)
            if existing is not None:
                return
            self.session.add(m.User(id=user_id, name=name or user_id, email=email, role=role))
            await self.session.commit()

    # ------------------------------------------------------------------ turns
    async def _next_turn_index(self, chat_id: str) -> int:
        stmt = select(func.max(m.Message.turn_index)).where(m.Message.chat_id == chat_id)
        current = (await self.session.execute(stmt)).scalar()
        if current is None:
            return 0
        return int(current) + 1

    async def append_turn(
        self,
        chat_id: str,
        role: str,
        content: str,
        meta: Mapping[str, Any] | None = None,
    ) -> ConversationTurn:
        """Persist one conversation turn at the end of the chat."""

        async with self._guard("store message"):
            message = m.Message(
                chat_id=chat_id,
                role=role,
                content=content,
                meta=dict(meta or {}),
                turn_index=await self._next_turn_index(chat_id),
            )
            self.session.add(message)
            await self.session.commit()
        return ConversationTurn.model_validate(message)

    async def get_turn(self, message_id: str) -> ConversationTurn | None:
        async with self._guard("load message"):
            message = await self.session.get(m.Message, message_id)
        return ConversationTurn.model_validate(message) if message is not None else None

    async def list_turns(
        self,
        chat_id: str,
        *,
        limit: int | None = None,
        before_turn_index: int | None = None,
        role: str | None = None,
    ) -> List[ConversationTurn]:
        """Turns in chronological order; with ``limit``, the most recent ones."""

        stmt = select(m.Message).where(m.Message.chat_id == chat_id)
        if role is not None:
            stmt = stmt.where(m.Message.role == role)
        if before_turn_index is not None:
            stmt = stmt.where(m.Message.turn_index < before_turn_index)
        stmt = stmt.order_by(m.Message.turn_index.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._guard("list messages"):
            rows = (await self.session.execute(stmt)).scalars().all()
        return [ConversationTurn.model_validate(row) for row in reversed(rows)]

    # ------------------------------------------------------------------ audit
    async def record_audit(
        self,
        *,
        chat_id: str,
        message_id: str | None,
        model: str | None,
        prompt: str | None,
        context: Mapping[str, Any] | None,
        response: str | None,
        usage: Mapping[str, Any] | None,
    ) -> None:
        async with self._guard("write audit record"):
            self.session.add(
                m.AuditLLM(
                    chat_id=chat_id,
                    message_id=message_id,
                    model=model,
                    prompt=prompt,
                    context=dict(context or {}),
                    response=response,
                    usage=dict(usage or {}),
                )
            )
            await self.session.commit()

    async def list_audit(
        self,
        *,
        chat_id: str | None = None,
        message_id: str | None = None,
        model: str | None = None,
        limit: int = 100,
    ) -> List[AuditEntry]:
        stmt = select(m.AuditLLM)
        if chat_id is not None:
            stmt = stmt.where(m.AuditLLM.chat_id == chat_id)
        if message_id is not None:
            stmt = stmt.where(m.AuditLLM.message_id == message_id)
        if model is not None:
            stmt = stmt.where(m.AuditLLM.model == model)
        stmt = stmt.order_by(m.AuditLLM.created_at.desc(), m.AuditLLM.id.desc()).limit(limit)
        async with self._guard("list audit records"):
            rows = (await self.session.execute(stmt)).scalars().all()
        return [AuditEntry.model_validate(row) for row in rows]

    # --------------------------------------------------------------- bookings
    async def get_booking(self, chat_id: str) -> BookingOut | None:
        stmt = select(m.Booking).where(m.Booking.chat_id == chat_id)
        async with self._guard("load booking"):
            booking = (await self.session.execute(stmt)).scalar_one_or_none()
        return BookingOut.model_validate(booking) if booking is not None else None

    async def list_bookings(
        self,
        *,
        chat_id: str | None = None,
        email: str | None = None,
        limit: int = 20,
    ) -> List[BookingOut]:
        """Most recently created bookings first."""

        stmt = select(m.Booking)
        if chat_id is not None:
            stmt = stmt.where(m.Booking.chat_id == chat_id)
        if email is not None:
            stmt = stmt.where(m.Booking.email == email)
        stmt = stmt.order_by(m.Booking.created_at.desc(), m.Booking.id.desc()).limit(limit)
        async with self._guard("list bookings"):
            rows = (await self.session.execute(stmt)).scalars().all()
        return [BookingOut.model_validate(row) for row in rows]

    async def has_booking_near(self, scheduled_at: datetime, window: timedelta) -> bool:
        """Whether another booking starts strictly within ``window`` of ``scheduled_at``."""

        stmt = (
            select(m.Booking.id)
            .where(
                m.Booking.scheduled_at > scheduled_at - window,
                m.Booking.scheduled_at < scheduled_at + window,
            )
            .limit(1)
        )
        async with self._guard("check booking slot"):
            return (await self.session.execute(stmt)).first() is not None

    async def create_booking(self, *, chat_id: str, name: str, email: str, scheduled_at: datetime) -> BookingOut:
        """Insert a booking; a concurrent second booking for the chat is a conflict."""

        booking = m.Booking(chat_id=chat_id, name=name, email=email, scheduled_at=scheduled_at)
        try:
            async with self._guard("create booking"):
                self.session.add(booking)
                await self.session.commit()
        except PersistenceError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError("A booking already exists for this chat") from exc.__cause__
            raise
        return BookingOut.model_validate(booking)
