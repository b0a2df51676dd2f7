"""SQLAlchemy ORM models for the admissions chat domain."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class CreatedAtMixin:
    """String UUID primary key plus an aware UTC ``created_at`` stamp."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


class User(CreatedAtMixin, Base):
    """Student or admin account that owns chats."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student")


class Chat(CreatedAtMixin, Base):
    """A student's conversation and its workflow state.

    ``admin_taken_over`` is the takeover gate: once set, AI turns for the chat
    are skipped.
    """

    __tablename__ = "chats"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="New Chat")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open", index=True)
    tags: Mapped[str | None] = mapped_column(String, nullable=True)
    admin_taken_over: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Message(CreatedAtMixin, Base):
    """One turn of a chat; ``turn_index`` orders turns within the chat."""

    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("chat_id", "turn_index", name="uq_message_chat_turn"),)

    chat_id: Mapped[str] = mapped_column(ForeignKey("chats.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    turn_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AuditLLM(CreatedAtMixin, Base):
    """Append-only record of one language-model invocation."""

    __tablename__ = "audit_llm"
    __table_args__ = (
        Index("idx_audit_llm_chat_created", "chat_id", "created_at"),
        Index("idx_audit_llm_message", "message_id"),
    )

    chat_id: Mapped[str] = mapped_column(ForeignKey("chats.id"), nullable=False)
    message_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    usage: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)


class Booking(CreatedAtMixin, Base):
    """Call with an admissions adviser; at most one per chat."""

    __tablename__ = "bookings"

    chat_id: Mapped[str] = mapped_column(ForeignKey("chats.id"), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
