"""Chat and message workflows shared by the HTTP routes and the turn worker."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

from loguru import logger

from admissions_chat.domain.errors import NotFoundError, PermissionDeniedError, PersistenceError
from admissions_chat.domain.schemas import ChatSnapshot, ConversationTurn
from admissions_chat.ports.chat_store import SqlChatStore
from admissions_chat.ports.llm import LanguageModel
from admissions_chat.services.response_generator import generate_chat_title

DEFAULT_TITLE = "New Chat"


def is_admin(user: Mapping[str, Any]) -> bool:
    return user.get("role") == "admin"


async def open_chat(
    store: SqlChatStore,
    user: Mapping[str, Any],
    *,
    title: str | None = None,
    tags: str | None = None,
) -> ChatSnapshot:
    """Create a chat owned by the token subject, registering the user on first sight."""

    user_id = str(user["user_id"])
    await store.ensure_user(
        user_id,
        name=user.get("name"),
        email=user.get("email"),
        role=str(user.get("role") or "student"),
    )
    chat = await store.create_chat(user_id=user_id, title=title, tags=tags)
    logger.info("Chat {} created for user {}", chat.id, user_id)
    return chat


async def require_chat(store: SqlChatStore, chat_id: str, user: Mapping[str, Any]) -> ChatSnapshot:
    """Fetch a chat ensuring the caller owns it or is an admin."""

    chat = await store.get_chat(chat_id)
    if chat is None:
        raise NotFoundError(f"Chat {chat_id} not found")
    if not is_admin(user) and chat.user_id != str(user.get("user_id")):
        raise PermissionDeniedError("Chat belongs to another user")
    return chat


async def add_student_message(
    store: SqlChatStore,
    chat: ChatSnapshot,
    content: str,
    meta: Mapping[str, Any] | None = None,
) -> ConversationTurn:
    turn = await store.append_turn(chat.id, "student", content, meta)
    await store.update_chat(chat.id, last_message_at=turn.created_at)
    return turn


async def add_admin_message(
    store: SqlChatStore,
    chat: ChatSnapshot,
    content: str,
    meta: Mapping[str, Any] | None = None,
) -> ConversationTurn:
    """Store an admin reply. An admin speaking in a chat takes it over."""

    turn = await store.append_turn(chat.id, "admin", content, meta)
    await store.update_chat(chat.id, admin_taken_over=True, last_message_at=turn.created_at)
    if not chat.admin_taken_over:
        logger.info("Admin took over chat {} by replying", chat.id)
    return turn


async def set_takeover(store: SqlChatStore, chat_id: str, taken_over: bool) -> ChatSnapshot:
    chat = await store.update_chat(chat_id, admin_taken_over=taken_over)
    if chat is None:
        raise NotFoundError(f"Chat {chat_id} not found")
    logger.info("Chat {} admin takeover {}", chat_id, "engaged" if taken_over else "released")
    return chat


async def update_chat_fields(store: SqlChatStore, chat_id: str, fields: Dict[str, Any]) -> ChatSnapshot:
    if "title" in fields and fields["title"] is not None:
        fields["title"] = fields["title"].strip()[:255] or DEFAULT_TITLE
    chat = await store.update_chat(chat_id, **fields)
    if chat is None:
        raise NotFoundError(f"Chat {chat_id} not found")
    return chat


async def retitle_new_chat(
    store: SqlChatStore,
    llm: LanguageModel,
    chat_id: str,
    first_message: str,
    prior_turns: Sequence[ConversationTurn],
) -> str | None:
    """Name a chat after its first student message; best-effort.

    Only chats still carrying the default title and with no earlier student
    message are renamed. Returns the new title, if any.
    """

    if any(turn.role == "student" for turn in prior_turns):
        return None
    try:
        chat = await store.get_chat(chat_id)
        if chat is None or chat.title != DEFAULT_TITLE:
            return None
        title = await generate_chat_title(llm, first_message)
        await store.update_chat(chat_id, title=title)
    except PersistenceError as exc:
        logger.warning("Failed to title chat {}: {}", chat_id, exc)
        return None
    return title
